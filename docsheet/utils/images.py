"""Conversions between numpy page images, PNG bytes and data URIs."""

import base64
import binascii
import io

import numpy as np
from PIL import Image, UnidentifiedImageError

_PNG_DATA_URI_PREFIX = "data:image/png;base64,"


def encode_png(image: np.ndarray) -> bytes:
    """Encode an RGB or grayscale array as PNG bytes."""
    buf = io.BytesIO()
    Image.fromarray(image).save(buf, format="PNG")
    return buf.getvalue()


def decode_image(data: bytes) -> np.ndarray:
    """Decode image bytes into an RGB array.

    Raises:
        ValueError: If the bytes are not a readable image.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            return np.array(img.convert("RGB"))
    except (UnidentifiedImageError, OSError) as exc:
        raise ValueError(f"Unreadable image data: {exc}") from exc


def to_data_uri(image: np.ndarray) -> str:
    """Encode an image as a ``data:image/png;base64,...`` URI."""
    return _PNG_DATA_URI_PREFIX + base64.b64encode(encode_png(image)).decode("ascii")


def from_data_uri(uri: str) -> np.ndarray:
    """Decode an image data URI of any image media type.

    Raises:
        ValueError: If the URI has no base64 payload or the payload is not
            an image.
    """
    _, sep, payload = uri.partition(",")
    if not sep or not payload:
        raise ValueError("Invalid image data URI.")
    try:
        raw = base64.b64decode(payload, validate=True)
    except binascii.Error as exc:
        raise ValueError(f"Invalid base64 payload: {exc}") from exc
    return decode_image(raw)
