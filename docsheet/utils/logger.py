"""Logging setup for docsheet.

Log records go to stderr so that commands printing JSON on stdout stay
machine-readable. Recognition runs execute on worker threads, so the thread
name is part of every line. HTTP and cloud SDK loggers are kept at WARNING.
"""

import logging
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TextIO

LOG_FORMAT = "%(asctime)s [%(threadName)s] %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_SDK_LOGGERS = ("urllib3", "botocore", "boto3", "google", "PIL")


def setup_logging(level: str = "INFO", stream: TextIO | None = None) -> None:
    """Attach a formatted handler to the root logger once.

    Does nothing when the root logger already has handlers, so a host
    application or test runner keeps its own configuration.

    Args:
        level: Level name; unknown names fall back to INFO.
        stream: Destination, defaults to stderr.
    """
    root = logging.getLogger()
    if root.handlers:
        return

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for name in _SDK_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


@contextmanager
def log_elapsed(logger: logging.Logger, label: str) -> Iterator[None]:
    """Log how long the enclosed block took, including when it raises."""
    start = time.perf_counter()
    try:
        yield
    finally:
        logger.info("%s took %.2fs", label, time.perf_counter() - start)
