"""Coordinate mapping between preview and full-resolution page images.

Selection rectangles are drawn against a scaled preview of a page but
recognition runs on the full-resolution rendering, so each rectangle is
rescaled axis by axis before it is stored on the document.
"""

import math
from dataclasses import dataclass

from docsheet.utils.logger import get_logger

logger = get_logger(__name__)

MIN_SELECTION_SIZE = 5


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (2.5 -> 3)."""
    return math.floor(value + 0.5)


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in pixel coordinates."""

    left: int
    top: int
    width: int
    height: int

    @classmethod
    def from_points(cls, x0: int, y0: int, x1: int, y1: int) -> "Rect":
        """Build a rectangle from two opposite corners in any order."""
        return cls(
            left=min(x0, x1),
            top=min(y0, y1),
            width=abs(x1 - x0),
            height=abs(y1 - y0),
        )

    def as_dict(self) -> dict[str, int]:
        return {
            "left": self.left,
            "top": self.top,
            "width": self.width,
            "height": self.height,
        }


@dataclass(frozen=True)
class Size:
    """Width and height of an image in pixels."""

    width: int
    height: int


def scale_rect(rect: Rect, source: Size, target: Size) -> Rect:
    """Rescale a rectangle from one image size to another.

    Each axis is scaled independently and rounded half up to the nearest
    integer. No clipping is applied, so rectangles that extend past the source
    image extend past the target image by the same proportion.

    Args:
        rect: Rectangle in ``source`` coordinates.
        source: Size of the image the rectangle was drawn on.
        target: Size of the image to map into.

    Returns:
        Rectangle in ``target`` coordinates.

    Raises:
        ValueError: If the source size has a zero dimension.
    """
    if source.width <= 0 or source.height <= 0:
        raise ValueError(f"Source size must be positive, got {source}")

    sx = target.width / source.width
    sy = target.height / source.height
    return Rect(
        left=round_half_up(rect.left * sx),
        top=round_half_up(rect.top * sy),
        width=round_half_up(rect.width * sx),
        height=round_half_up(rect.height * sy),
    )


def map_selection(rect: Rect, display: Size, original: Size) -> Rect | None:
    """Map a rectangle drawn on a preview into full-resolution space.

    Args:
        rect: Rectangle in display coordinates.
        display: Size of the displayed preview image.
        original: Size of the full-resolution recognition image.

    Returns:
        The mapped rectangle, or ``None`` when the selection is smaller
        than the minimum size and is treated as an accidental click.
    """
    if rect.width < MIN_SELECTION_SIZE or rect.height < MIN_SELECTION_SIZE:
        logger.debug("Ignoring %dx%d selection", rect.width, rect.height)
        return None
    return scale_rect(rect, display, original)


def to_display(
    rect: Rect, original: Size, display: Size
) -> tuple[float, float, float, float]:
    """Project a stored rectangle back onto the preview for overlay drawing.

    Returns unrounded ``(left, top, width, height)`` values.
    """
    sx = display.width / original.width
    sy = display.height / original.height
    return (rect.left * sx, rect.top * sy, rect.width * sx, rect.height * sy)
