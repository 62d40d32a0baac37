"""Page rasterisation for PDF and single-image documents.

Renders one page at a time at a requested resolution so that only a
single full-resolution page is held in memory while a run is in flight.
"""

import io

import numpy as np
from pdf2image import convert_from_bytes
from pdf2image.exceptions import PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError
from pdf2image.pdf2image import pdfinfo_from_bytes
from PIL import Image, UnidentifiedImageError

from docsheet.errors import SetupError
from docsheet.utils.logger import get_logger

logger = get_logger(__name__)

_PDF_ERRORS = (PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError, OSError)


def is_pdf(data: bytes) -> bool:
    return data[:4] == b"%PDF"


def downscale(image: np.ndarray, factor: float) -> np.ndarray:
    """Resize an image by ``factor`` (e.g. 0.25 for a preview)."""
    img = Image.fromarray(image)
    size = (max(1, round(img.width * factor)), max(1, round(img.height * factor)))
    return np.array(img.resize(size, Image.Resampling.LANCZOS))


class PageRenderer:
    """Renders pages of a document held in memory.

    Args:
        data: Raw bytes of a PDF or of a single image.
        processing_dpi: Resolution treated as the native size of image
            documents. PDFs are rendered at whatever DPI is requested.
    """

    def __init__(self, data: bytes, processing_dpi: int = 144) -> None:
        self.data = data
        self.processing_dpi = processing_dpi
        self.is_pdf = is_pdf(data)
        self._page_count: int | None = None

    def page_count(self) -> int:
        """Number of pages in the document.

        Raises:
            SetupError: If the document cannot be read.
        """
        if self._page_count is not None:
            return self._page_count

        if not self.is_pdf:
            self._load_image()
            self._page_count = 1
            return 1

        try:
            info = pdfinfo_from_bytes(self.data)
        except _PDF_ERRORS as exc:
            raise SetupError(f"Could not read PDF: {exc}") from exc
        self._page_count = int(info["Pages"])
        logger.debug("PDF has %d pages", self._page_count)
        return self._page_count

    def render_page(self, page: int, dpi: int) -> np.ndarray:
        """Render a single 1-based page as an RGB array.

        Raises:
            SetupError: If the page does not exist or rendering fails.
        """
        total = self.page_count()
        if not 1 <= page <= total:
            raise SetupError(f"Page {page} is out of range 1..{total}")

        if not self.is_pdf:
            return self._render_image(dpi)

        try:
            images = convert_from_bytes(
                self.data, dpi=dpi, first_page=page, last_page=page
            )
        except _PDF_ERRORS as exc:
            raise SetupError(f"PDF conversion failed on page {page}: {exc}") from exc
        if not images:
            raise SetupError(f"PDF conversion produced no image for page {page}")

        result = np.array(images[0].convert("RGB"))
        logger.debug("Rendered page %d at %d DPI: %s", page, dpi, result.shape)
        return result

    def _load_image(self) -> Image.Image:
        try:
            img = Image.open(io.BytesIO(self.data))
            img.load()
        except (UnidentifiedImageError, OSError) as exc:
            raise SetupError(f"Unsupported or unreadable document: {exc}") from exc
        return img.convert("RGB")

    def _render_image(self, dpi: int) -> np.ndarray:
        image = np.array(self._load_image())
        if dpi != self.processing_dpi:
            return downscale(image, dpi / self.processing_dpi)
        return image
