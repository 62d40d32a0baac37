"""Client for an external image pre-processing service.

The service receives ``{"imageDataUri": ...}`` and answers with
``{"processedImageDataUri": ...}``. Every failure is reported as
:class:`PreprocessingError` so callers can fall back to the original image.
"""

import numpy as np
import requests

from docsheet.errors import PreprocessingError
from docsheet.utils.images import from_data_uri, to_data_uri
from docsheet.utils.logger import get_logger

logger = get_logger(__name__)


class RemotePreprocessor:
    """Sends page images to a user-supplied pre-processing endpoint.

    Args:
        url: Endpoint accepting a JSON POST.
        timeout: Request timeout in seconds.
        session: Optional shared HTTP session.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def process(self, image: np.ndarray) -> np.ndarray:
        """Return the service's replacement for ``image``.

        Raises:
            PreprocessingError: On transport errors, a non-success status,
                a missing ``processedImageDataUri`` field or an undecodable
                image payload.
        """
        try:
            response = self.session.post(
                self.url,
                json={"imageDataUri": to_data_uri(image)},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise PreprocessingError(f"Pre-processing request failed: {exc}") from exc

        if not response.ok:
            raise PreprocessingError(
                f"API request failed with status {response.status_code}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise PreprocessingError("Pre-processing response is not JSON") from exc

        uri = payload.get("processedImageDataUri") if isinstance(payload, dict) else None
        if not uri:
            raise PreprocessingError(
                "API response did not contain 'processedImageDataUri'."
            )

        try:
            return from_data_uri(uri)
        except ValueError as exc:
            raise PreprocessingError(f"Unusable processed image: {exc}") from exc

    def close(self) -> None:
        self.session.close()
