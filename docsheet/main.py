"""HTTP server entry point.

``--config`` is exported through ``DOCSHEET_CONFIG`` so that every request
handler loads the same file.
"""

import argparse
import os
from pathlib import Path

import uvicorn

from docsheet.api.app import app
from docsheet.utils.config import CONFIG_ENV_VAR, load_config
from docsheet.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def main(argv: list[str] | None = None) -> None:
    """Serve the REST API with uvicorn."""
    parser = argparse.ArgumentParser(description="Docsheet OCR API server")
    parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    parser.add_argument("--port", type=int, default=8000, help="Bind port")
    parser.add_argument(
        "-c", "--config", type=Path, default=None, help="YAML configuration file"
    )
    args = parser.parse_args(argv)

    if args.config is not None:
        os.environ[CONFIG_ENV_VAR] = str(args.config)
    config = load_config()
    setup_logging(config.log_level)

    logger.info("Serving docsheet API on %s:%d", args.host, args.port)
    uvicorn.run(
        app, host=args.host, port=args.port, log_level=config.log_level.lower()
    )


if __name__ == "__main__":
    main()
