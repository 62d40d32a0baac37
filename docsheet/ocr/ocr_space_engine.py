"""OCR.space plain-text backend.

Posts each page as a base64 data URI and enforces a fixed request timeout.
"""

import numpy as np
import requests

from docsheet.errors import BackendError, BackendTimeoutError, ConfigurationError
from docsheet.utils.images import to_data_uri
from docsheet.utils.logger import get_logger

from .backend import BackendKind, RecognitionBackend, RecognitionOutcome
from .geometry import Rect

logger = get_logger(__name__)


class OcrSpaceEngine(RecognitionBackend):
    """Remote plain-text backend for the OCR.space parse API.

    Args:
        api_key: OCR.space API key.
        languages: Language codes, sent comma-joined.
        url: Parse endpoint.
        timeout: Upper bound in seconds for each request.
        engine: OCR.space engine number.
    """

    kind = BackendKind.OCR_SPACE

    def __init__(
        self,
        api_key: str,
        languages: list[str],
        url: str = "https://api.ocr.space/parse/image",
        timeout: float = 60.0,
        engine: int = 2,
    ) -> None:
        self.api_key = api_key
        self.language = ",".join(languages)
        self.url = url
        self.timeout = timeout
        self.engine = engine
        self._session: requests.Session | None = None

    def open(self) -> None:
        if not self.api_key or not self.api_key.strip():
            raise ConfigurationError(
                "OCR.space API key is missing. Please provide a valid API key."
            )
        self._session = requests.Session()

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
        self._session = None

    def build_form(self, image: np.ndarray) -> dict[str, str]:
        return {
            "base64Image": to_data_uri(image),
            "apikey": self.api_key,
            "language": self.language,
            "isOverlayRequired": "false",
            "detectOrientation": "true",
            "scale": "true",
            "OCREngine": str(self.engine),
        }

    def recognize(
        self, image: np.ndarray, regions: list[Rect] | None = None
    ) -> RecognitionOutcome:
        if self._session is None:
            raise BackendError("OCR.space session used outside of an open run")
        if regions:
            logger.debug("OCR.space ignores %d regions of interest", len(regions))

        try:
            response = self._session.post(
                self.url, data=self.build_form(image), timeout=self.timeout
            )
        except requests.Timeout as exc:
            raise BackendTimeoutError(
                f"The request to OCR.space timed out after {self.timeout:g} seconds.",
                exc,
            ) from exc
        except requests.RequestException as exc:
            raise BackendError(f"OCR.space request failed: {exc}", exc) from exc

        if not response.ok:
            raise BackendError(
                f"OCR.space API request failed with status {response.status_code}: "
                f"{response.text}"
            )

        try:
            result = response.json()
        except ValueError as exc:
            raise BackendError("OCR.space returned a non-JSON response", exc) from exc
        if not isinstance(result, dict):
            raise BackendError("Malformed OCR.space response")

        if result.get("IsErroredOnProcessing"):
            messages = result.get("ErrorMessage") or ["unknown error"]
            if isinstance(messages, str):
                messages = [messages]
            raise BackendError(f"OCR.space processing error: {', '.join(messages)}")

        parsed = result.get("ParsedResults") or []
        text = (parsed[0].get("ParsedText") or "") if parsed else ""
        return RecognitionOutcome(raw_text=text.strip())
