"""Common OCR data types and the engine contract.

Every OCR backend turns an image into an :class:`OCRResult` made of
word-level :class:`OCRToken` objects with pixel bounding boxes and
confidences normalized to 0..1.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import IntEnum

import numpy as np


@dataclass
class BoundingBox:
    """Axis-aligned bounding box for a detected element."""

    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2

    @property
    def center_y(self) -> float:
        return self.y + self.height / 2

    def overlaps(self, other: "BoundingBox") -> bool:
        """Return True if the two boxes share any area."""
        return (
            self.x < other.right
            and other.x < self.right
            and self.y < other.bottom
            and other.y < self.bottom
        )

    def offset(self, dx: int, dy: int) -> "BoundingBox":
        """Return a copy translated by ``(dx, dy)``."""
        return BoundingBox(self.x + dx, self.y + dy, self.width, self.height)


@dataclass
class OCRToken:
    """A single word recognized by OCR with position and confidence."""

    text: str
    confidence: float
    bbox: BoundingBox
    block_num: int = 0
    line_num: int = 0


@dataclass
class OCRResult:
    """Complete OCR result for a receipt image."""

    text: str
    tokens: list[OCRToken]
    confidence: float
    language: str
    engine: str
    line_confidences: list[float] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.text.strip() and not self.tokens


class PageMode(IntEnum):
    """Page segmentation modes, valued as Tesseract ``--psm`` numbers."""

    AUTO = 3
    SINGLE_COLUMN = 4
    UNIFORM_BLOCK = 6
    SINGLE_LINE = 7


def mean_confidence(tokens: list[OCRToken]) -> float:
    """Average token confidence, or 0.0 for no tokens."""
    if not tokens:
        return 0.0
    return sum(t.confidence for t in tokens) / len(tokens)


class OCREngine(ABC):
    """Interface implemented by every OCR backend."""

    name: str = "engine"
    supports_char_whitelist: bool = False

    @abstractmethod
    def is_available(self) -> bool:
        """Return True if the engine can be called right now."""

    @abstractmethod
    def recognize(
        self,
        image: np.ndarray,
        mode: PageMode = PageMode.UNIFORM_BLOCK,
        char_whitelist: str | None = None,
    ) -> OCRResult:
        """Recognize text in an image.

        Args:
            image: Input image as a numpy array.
            mode: Page segmentation hint.
            char_whitelist: Restrict recognition to these characters when
                the engine supports it.

        Returns:
            OCR result with tokens in engine order.

        Raises:
            OCREngineError: If the engine fails.
        """
