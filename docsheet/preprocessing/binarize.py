"""Global-threshold binarization for rendered page images.

Pixels are classified by their luminance against a fixed threshold and
rewritten to pure black or white in place, which helps Tesseract on
faint or coloured scans.
"""

import cv2
import numpy as np

from docsheet.utils.logger import get_logger

logger = get_logger(__name__)

# ITU-R BT.601 luma weights.
_LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float32)


def luminance(image: np.ndarray) -> np.ndarray:
    """Compute per-pixel luminance as a float32 array.

    Args:
        image: RGB, RGBA or grayscale image.

    Returns:
        Array of shape ``image.shape[:2]``.
    """
    if image.ndim == 2:
        return image.astype(np.float32)
    return image[..., :3].astype(np.float32) @ _LUMA_WEIGHTS


def binarize_threshold(image: np.ndarray, threshold: int = 128) -> np.ndarray:
    """Binarize an image in place using a luminance threshold.

    Pixels with luminance strictly above ``threshold`` become white, the
    rest black. Colour channels are all set to the same value; an alpha
    channel is left untouched.

    Args:
        image: Writable RGB, RGBA or grayscale ``uint8`` array.
        threshold: Luminance cut-off in ``0..255``.

    Returns:
        The same array, modified in place.
    """
    _, binary = cv2.threshold(
        luminance(image), float(threshold), 255.0, cv2.THRESH_BINARY
    )
    binary = binary.astype(np.uint8)

    if image.ndim == 2:
        image[...] = binary
    else:
        image[..., :3] = binary[..., None]

    logger.debug("Applied luminance binarization (threshold=%d)", threshold)
    return image
