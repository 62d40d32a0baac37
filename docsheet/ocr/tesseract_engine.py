"""In-process Tesseract recognizer with region-of-interest support.

Wraps pytesseract with a per-run configuration (languages, character
whitelist, dictionary switches) and reconstructs page text line by line.
"""

import shlex

import numpy as np
import pytesseract
from PIL import Image

from docsheet.errors import BackendError
from docsheet.utils.logger import get_logger

from .backend import BackendKind, RecognitionBackend, RecognitionOutcome
from .geometry import Rect

logger = get_logger(__name__)


def crop_region(image: np.ndarray, rect: Rect) -> np.ndarray:
    """Cut a region out of an image, clamping its origin to the image.

    Regions reaching past the right or bottom edge are truncated by the
    slice; regions entirely outside the image yield an empty array.
    """
    left = max(rect.left, 0)
    top = max(rect.top, 0)
    right = max(rect.left + rect.width, 0)
    bottom = max(rect.top + rect.height, 0)
    return image[top:bottom, left:right]


def text_lines(raw: str) -> str:
    """Normalise Tesseract output to non-blank, right-trimmed lines."""
    lines = (line.rstrip() for line in raw.replace("\f", "\n").splitlines())
    return "\n".join(line for line in lines if line.strip())


class TesseractEngine(RecognitionBackend):
    """Tesseract recognizer configured once per processing run.

    Args:
        languages: Tesseract language codes, joined with ``+``.
        char_whitelist: Characters Tesseract is allowed to emit.
        tesseract_cmd: Path to the Tesseract executable.
            If ``None``, uses the system default.
        psm: Tesseract page segmentation mode.
        preserve_interword_spaces: Keep runs of spaces between words,
            which column separators often rely on.
    """

    kind = BackendKind.TESSERACT
    accepts_regions = True
    uses_preprocessing = True

    def __init__(
        self,
        languages: list[str],
        char_whitelist: str,
        tesseract_cmd: str | None = None,
        psm: int = 6,
        preserve_interword_spaces: bool = True,
    ) -> None:
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.lang = "+".join(languages)
        self.char_whitelist = char_whitelist
        self.psm = psm
        self.preserve_interword_spaces = preserve_interword_spaces
        self._config: str | None = None

    def build_config(self) -> str:
        """Build the Tesseract command-line configuration string."""
        params = {
            "preserve_interword_spaces": "1" if self.preserve_interword_spaces else "0",
            "tessedit_char_whitelist": self.char_whitelist,
            "load_system_dawg": "0",
            "load_freq_dawg": "0",
        }
        options = [f"--psm {self.psm}"]
        options.extend(f"-c {shlex.quote(f'{k}={v}')}" for k, v in params.items())
        return " ".join(options)

    def open(self) -> None:
        self._config = self.build_config()
        logger.info("Tesseract ready (lang=%s, psm=%d)", self.lang, self.psm)

    def close(self) -> None:
        self._config = None
        logger.debug("Tesseract released")

    def recognize(
        self, image: np.ndarray, regions: list[Rect] | None = None
    ) -> RecognitionOutcome:
        """Recognise a page, or only the given regions of it.

        Region texts are concatenated in region order, one block per
        region, separated by newlines.
        """
        if self._config is None:
            raise BackendError("Tesseract engine used outside of an open run")

        if not regions:
            return RecognitionOutcome(raw_text=self._read(image))

        texts: list[str] = []
        for rect in regions:
            crop = crop_region(image, rect)
            if crop.size == 0:
                logger.warning("Region %s lies outside the page, skipping", rect)
                continue
            text = self._read(crop)
            if text:
                texts.append(text)

        logger.info("Recognised %d of %d regions", len(texts), len(regions))
        return RecognitionOutcome(raw_text="\n".join(texts))

    def _read(self, image: np.ndarray) -> str:
        pil_image = Image.fromarray(image)
        try:
            raw = pytesseract.image_to_string(
                pil_image, lang=self.lang, config=self._config
            )
        except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError) as exc:
            raise BackendError(f"Tesseract failed: {exc}", exc) from exc
        text = text_lines(raw)
        logger.debug("Tesseract read %d characters", len(text))
        return text
