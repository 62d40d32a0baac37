"""Per-page image pre-processing ahead of recognition.

Applies optional luminance binarization in place and then, when an
endpoint is configured, the external pre-processing service. A failing
service call never fails the page: the locally prepared image is used.
"""

from dataclasses import dataclass

import numpy as np

from docsheet.errors import PreprocessingError
from docsheet.utils.config import RunSettings
from docsheet.utils.logger import get_logger

from .binarize import binarize_threshold
from .remote import RemotePreprocessor

logger = get_logger(__name__)


@dataclass
class PreprocessingReport:
    """What happened to one page image."""

    binarized: bool = False
    remote_applied: bool = False
    remote_error: str | None = None


class PreprocessingPipeline:
    """Configurable page pre-processing.

    Args:
        binarize: Whether to apply luminance binarization.
        threshold: Binarization threshold.
        remote: External service client, or ``None`` to skip that step.
    """

    def __init__(
        self,
        binarize: bool = False,
        threshold: int = 128,
        remote: RemotePreprocessor | None = None,
    ) -> None:
        self.binarize = binarize
        self.threshold = threshold
        self.remote = remote

    @classmethod
    def from_settings(cls, settings: RunSettings) -> "PreprocessingPipeline":
        remote = None
        if settings.preprocess_url and settings.preprocess_url.strip():
            remote = RemotePreprocessor(
                settings.preprocess_url.strip(), timeout=settings.preprocess_timeout
            )
        return cls(
            binarize=settings.binarize,
            threshold=settings.binarize_threshold,
            remote=remote,
        )

    @property
    def enabled(self) -> bool:
        return self.binarize or self.remote is not None

    def process(
        self, image: np.ndarray, page: int
    ) -> tuple[np.ndarray, PreprocessingReport]:
        """Prepare one page image for recognition.

        Args:
            image: Rendered page; binarization modifies it in place.
            page: Page number, used for logging.

        Returns:
            Tuple of (image_to_recognize, report).
        """
        report = PreprocessingReport()

        if self.binarize:
            binarize_threshold(image, self.threshold)
            report.binarized = True

        result = image
        if self.remote is not None:
            try:
                result = self.remote.process(image)
                report.remote_applied = True
                logger.info("Page %d: using pre-processed image from service", page)
            except PreprocessingError as exc:
                report.remote_error = str(exc)
                logger.warning(
                    "Page %d: pre-processing failed, falling back to original "
                    "image: %s",
                    page,
                    exc,
                )

        return result, report

    def close(self) -> None:
        if self.remote is not None:
            self.remote.close()
