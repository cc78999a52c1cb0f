"""Unsharp masking to restore glyph edges after thresholding."""

import math

import cv2
import numpy as np

from receipt_scanner.utils.logger import get_logger

logger = get_logger(__name__)


def unsharp_mask(
    image: np.ndarray, amount: float = 0.5, sigma: float = 1.5
) -> np.ndarray:
    """Sharpen an image with a separable Gaussian unsharp mask.

    The blur runs as a horizontal pass followed by a vertical pass with a
    kernel radius of ``ceil(3 * sigma)``. The output is
    ``original + amount * (original - blurred)`` clamped to 0..255.

    Args:
        image: Grayscale uint8 image.
        amount: Strength of the sharpening.
        sigma: Standard deviation of the Gaussian blur.

    Returns:
        A new sharpened uint8 image.
    """
    radius = max(1, math.ceil(3 * sigma))
    kernel = cv2.getGaussianKernel(2 * radius + 1, sigma)
    original = image.astype(np.float32)
    blurred = cv2.sepFilter2D(
        original, cv2.CV_32F, kernel, kernel, borderType=cv2.BORDER_REPLICATE
    )
    sharpened = original + amount * (original - blurred)
    logger.debug("Applied unsharp mask (amount=%.2f, sigma=%.2f)", amount, sigma)
    return np.clip(np.rint(sharpened), 0, 255).astype(np.uint8)
