"""Shared test fixtures for the receipt scanner test suite."""

import io
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from receipt_scanner.ocr.engine import OCRResult
from receipt_scanner.pipeline import ReceiptScanner
from receipt_scanner.utils.config import AppConfig

COSTCO_RECEIPT = """\
COSTCO WHOLESALE
BROSSARD #503
2025/01/15 14:32
1717085 GAIN EFL 65,99 FP
1716006 BIO KT BANAN 3,30
1683741 CERISES 22,99
1684741 FRAISES 18,49
2046602 JAMBON CUIT 21,99
1794181 KS YOG GREC 8,99
1794181 KS YOG GREC 8,99
367159 THON RIOMARE 24,99
1078552 BABYBEL ORIG 26,49
313563 KS BIO OEUFS 12,49
1502209 BOEUF HACHE MAIGRE 62,38
1099881 CHIPS KETTLE 5,99
ANNUL.
TPO/1717085 3,80-FP
TPR/2154720 5,00-FP
SOUS TOTAL 268,29
TPS 2,10
TVQ 4,19
TOTAL 274,36
VISA 274,36
"""


@pytest.fixture
def costco_receipt_text() -> str:
    """A warehouse-club receipt from Quebec with a void and two rebates."""
    return COSTCO_RECEIPT


@pytest.fixture
def sample_image() -> np.ndarray:
    """Create a simple synthetic grayscale test image."""
    image = np.full((200, 300), 255, dtype=np.uint8)
    image[60:70, 40:260] = 0
    image[100:110, 40:200] = 0
    return image


@pytest.fixture
def sample_color_image() -> np.ndarray:
    """Create a simple synthetic RGB test image."""
    image = np.full((200, 300, 3), 230, dtype=np.uint8)
    image[60:70, 40:260] = (20, 20, 20)
    image[100:110, 40:200] = (20, 20, 20)
    return image


@pytest.fixture
def bars_image() -> np.ndarray:
    """White page with horizontal text-like bars, well inside the margins."""
    image = np.full((400, 600), 255, dtype=np.uint8)
    for y in range(80, 330, 30):
        image[y : y + 4, 120:480] = 0
    return image


@pytest.fixture
def png_bytes(sample_color_image: np.ndarray) -> bytes:
    """Encode the sample color image as PNG bytes."""
    buf = io.BytesIO()
    Image.fromarray(sample_color_image).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"


class StaticOrchestrator:
    """Stands in for the OCR orchestrator, returning canned text."""

    def __init__(self, text: str = "", error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.images: list[np.ndarray] = []

    def recognize(self, image: np.ndarray, context=None) -> OCRResult:
        self.images.append(image)
        if self.error is not None:
            raise self.error
        return OCRResult(
            text=self.text, tokens=[], confidence=0.88, language="eng", engine="fake"
        )


@pytest.fixture
def make_scanner():
    """Factory for scanners whose OCR step returns fixed text or raises."""

    def _make(text: str = COSTCO_RECEIPT, error: Exception | None = None):
        orchestrator = StaticOrchestrator(text, error)
        return ReceiptScanner(AppConfig(), orchestrator=orchestrator)

    return _make
