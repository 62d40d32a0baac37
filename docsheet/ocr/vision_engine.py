"""Google Cloud Vision document text detection backend."""

import os

import numpy as np
from google.api_core import exceptions as google_exceptions
from google.auth.exceptions import DefaultCredentialsError
from google.cloud import vision

from docsheet.errors import BackendAuthError, BackendError, ConfigurationError
from docsheet.utils.images import encode_png
from docsheet.utils.logger import get_logger

from .backend import BackendKind, RecognitionBackend, RecognitionOutcome
from .geometry import Rect
from .languages import language_hints

logger = get_logger(__name__)


class VisionEngine(RecognitionBackend):
    """Remote plain-text backend using ``document_text_detection``.

    Languages are passed to the service as BCP-47 hints.

    Args:
        languages: Tesseract-style language codes selected for the run.
    """

    kind = BackendKind.GOOGLE

    def __init__(self, languages: list[str]) -> None:
        self.hints = language_hints(languages)
        self._client: vision.ImageAnnotatorClient | None = None

    def open(self) -> None:
        if not os.environ.get("GOOGLE_APPLICATION_CREDENTIALS") and not os.environ.get(
            "GCP_PROJECT"
        ):
            logger.warning(
                "Google Cloud credentials may not be configured; relying on "
                "application default credentials"
            )
        try:
            self._client = vision.ImageAnnotatorClient()
        except DefaultCredentialsError as exc:
            raise ConfigurationError(
                f"Could not initialize Google Cloud Vision client: {exc}"
            ) from exc
        logger.info("Google Vision client ready (hints=%s)", self.hints)

    def close(self) -> None:
        if self._client is not None:
            self._client.transport.close()
        self._client = None

    def recognize(
        self, image: np.ndarray, regions: list[Rect] | None = None
    ) -> RecognitionOutcome:
        if self._client is None:
            raise BackendError("Vision client used outside of an open run")
        if regions:
            logger.debug("Google Vision ignores %d regions of interest", len(regions))

        try:
            response = self._client.document_text_detection(
                image=vision.Image(content=encode_png(image)),
                image_context=vision.ImageContext(language_hints=self.hints),
            )
        except (
            google_exceptions.PermissionDenied,
            google_exceptions.Unauthenticated,
        ) as exc:
            raise BackendAuthError(
                "Google Cloud Vision authentication failed. Please configure "
                "application default credentials.",
                exc,
            ) from exc
        except google_exceptions.GoogleAPIError as exc:
            raise BackendError(f"Google Cloud Vision request failed: {exc}", exc) from exc

        if response.error.message:
            raise BackendError(f"Google Cloud Vision error: {response.error.message}")

        text = response.full_text_annotation.text or ""
        return RecognitionOutcome(raw_text=text.strip())
