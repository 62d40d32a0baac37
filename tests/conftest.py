"""Shared test fixtures for the docsheet test suite."""

import io
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from docsheet.ocr.backend import BackendKind, RecognitionBackend, RecognitionOutcome
from docsheet.ocr.geometry import Rect
from docsheet.utils.config import AppConfig, RunSettings


class ScriptedBackend(RecognitionBackend):
    """Test backend replaying canned outcomes and recording its use."""

    def __init__(
        self,
        texts: dict[int, str] | None = None,
        rows: list[dict[str, str]] | None = None,
        fail_on_call: int | None = None,
        kind: BackendKind = BackendKind.TESSERACT,
    ) -> None:
        self.kind = kind
        self.returns_rows = rows is not None
        self.accepts_regions = kind is BackendKind.TESSERACT
        self.uses_preprocessing = kind is BackendKind.TESSERACT
        self.texts = texts or {}
        self.rows = rows
        self.fail_on_call = fail_on_call
        self.calls: list[tuple[np.ndarray, list[Rect] | None]] = []
        self.opened = 0
        self.closed = 0

    def open(self) -> None:
        self.opened += 1

    def close(self) -> None:
        self.closed += 1

    def recognize(
        self, image: np.ndarray, regions: list[Rect] | None = None
    ) -> RecognitionOutcome:
        from docsheet.errors import BackendError

        self.calls.append((image, regions))
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            raise BackendError("recognition service unavailable")
        if self.rows is not None:
            return RecognitionOutcome(structured_rows=list(self.rows))
        page = int(image[0, 0, 0])
        return RecognitionOutcome(raw_text=self.texts.get(page, f"text of page {page}"))


def page_image(page: int, width: int = 80, height: int = 60) -> np.ndarray:
    """Synthetic page whose top-left pixel encodes its page number."""
    image = np.full((height, width, 3), 255, dtype=np.uint8)
    image[0, 0] = page
    return image


@pytest.fixture
def sample_image() -> np.ndarray:
    """Create a simple synthetic grayscale test image."""
    image = np.zeros((200, 300), dtype=np.uint8)
    image[50:150, 50:250] = 255
    return image


@pytest.fixture
def sample_color_image() -> np.ndarray:
    """Create a simple synthetic RGB test image."""
    image = np.zeros((200, 300, 3), dtype=np.uint8)
    image[50:150, 50:250] = (255, 255, 255)
    return image


@pytest.fixture
def png_bytes() -> bytes:
    """A 200x100 PNG document."""
    img = Image.fromarray(np.full((100, 200, 3), 255, dtype=np.uint8))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig()


@pytest.fixture
def run_settings(app_config: AppConfig) -> RunSettings:
    return RunSettings.from_config(app_config)


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"
