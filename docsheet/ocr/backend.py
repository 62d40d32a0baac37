"""Recognition backend interface and factory.

Every recognizer, local or remote, exposes the same ``recognize`` call and
is used as a scoped resource: it is opened once per processing run and
closed when the run ends, whether the run succeeded or not.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum
from types import TracebackType

import numpy as np

from docsheet.errors import ConfigurationError
from docsheet.ocr.geometry import Rect
from docsheet.utils.config import RunSettings
from docsheet.utils.logger import get_logger

logger = get_logger(__name__)


class BackendKind(StrEnum):
    """Available recognition backends."""

    TESSERACT = "tesseract"
    TEXTRACT = "textract"
    GOOGLE = "google"
    OCR_SPACE = "ocrspace"


@dataclass
class RecognitionOutcome:
    """Result of recognising one page.

    Exactly one of ``raw_text`` and ``structured_rows`` is set.
    """

    raw_text: str | None = None
    structured_rows: list[dict[str, str]] | None = None

    @property
    def is_structured(self) -> bool:
        return self.structured_rows is not None


class RecognitionBackend(ABC):
    """Base class for recognition backends.

    Subclasses set ``kind`` and declare whether they honour regions of
    interest, whether they return pre-structured rows and whether page
    images are pre-processed before being handed to them.
    """

    kind: BackendKind
    accepts_regions: bool = False
    returns_rows: bool = False
    uses_preprocessing: bool = False

    def open(self) -> None:
        """Acquire clients or engine state for a run.

        Raises:
            ConfigurationError: If a required credential is missing.
        """

    def close(self) -> None:
        """Release whatever :meth:`open` acquired."""

    def __enter__(self) -> "RecognitionBackend":
        self.open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    @abstractmethod
    def recognize(
        self, image: np.ndarray, regions: list[Rect] | None = None
    ) -> RecognitionOutcome:
        """Recognise a single page image.

        Args:
            image: Full-resolution page image (RGB or grayscale).
            regions: Optional regions of interest in image coordinates.
                Backends that do not accept regions ignore them.

        Returns:
            Raw text or structured rows, depending on the backend.

        Raises:
            BackendError: On transport failure, rejected credentials or a
                malformed response.
        """


def create_backend(settings: RunSettings) -> RecognitionBackend:
    """Instantiate the backend named by ``settings.engine``.

    Raises:
        ConfigurationError: If the engine name is unknown.
    """
    try:
        kind = BackendKind(settings.engine)
    except ValueError as exc:
        raise ConfigurationError(f"Unknown OCR engine: {settings.engine}") from exc

    logger.debug("Creating %s backend", kind)

    # Engine modules import this one, so they are loaded on demand.
    if kind is BackendKind.TESSERACT:
        from .tesseract_engine import TesseractEngine

        return TesseractEngine(
            languages=list(settings.languages),
            char_whitelist=settings.char_whitelist,
            tesseract_cmd=settings.tesseract_cmd,
            psm=settings.psm,
            preserve_interword_spaces=settings.preserve_interword_spaces,
        )
    if kind is BackendKind.TEXTRACT:
        from .textract_engine import TextractEngine

        return TextractEngine(region=settings.aws_region)
    if kind is BackendKind.GOOGLE:
        from .vision_engine import VisionEngine

        return VisionEngine(languages=list(settings.languages))

    from .ocr_space_engine import OcrSpaceEngine

    return OcrSpaceEngine(
        api_key=settings.ocr_space_api_key,
        languages=list(settings.languages),
        url=settings.ocr_space_url,
        timeout=settings.ocr_space_timeout,
        engine=settings.ocr_space_engine,
    )
