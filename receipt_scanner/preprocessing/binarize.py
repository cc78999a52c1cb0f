"""Grayscale conversion and adaptive binarization for receipt photos.

Receipts are shot under uneven light, so a single global threshold
loses faded thermal print; a Gaussian-weighted local threshold keeps it.
"""

import cv2
import numpy as np

from receipt_scanner.utils.logger import get_logger

logger = get_logger(__name__)


def to_grayscale(image: np.ndarray) -> np.ndarray:
    """Convert an RGB or RGBA image to single-channel luma.

    Uses the ITU-R 601 weights (0.299 R + 0.587 G + 0.114 B).

    Args:
        image: Input image (grayscale, RGB or RGBA).

    Returns:
        A new grayscale image.
    """
    if image.ndim == 2:
        return image.copy()
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_RGBA2GRAY)
    return cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)


def binarize_adaptive(
    image: np.ndarray, block_size: int = 35, c: int = 2
) -> np.ndarray:
    """Binarize an image using adaptive Gaussian thresholding.

    Args:
        image: Input image (RGB or grayscale).
        block_size: Odd size of the neighborhood used for each threshold.
        c: Constant subtracted from the weighted neighborhood mean.

    Returns:
        Binary image with pixel values 0 (ink) or 255 (paper).

    Raises:
        ValueError: If ``block_size`` is not an odd number greater than 1.
    """
    if block_size < 3 or block_size % 2 == 0:
        raise ValueError(f"block_size must be odd and >= 3, got {block_size}")

    gray = to_grayscale(image)
    result = cv2.adaptiveThreshold(
        gray,
        255,
        cv2.ADAPTIVE_THRESH_GAUSSIAN_C,
        cv2.THRESH_BINARY,
        block_size,
        c,
    )
    logger.debug("Applied adaptive binarization (block=%d, c=%d)", block_size, c)
    return result
