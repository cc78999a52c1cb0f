"""Edge-preserving noise reduction for receipt images."""

import cv2
import numpy as np

from receipt_scanner.utils.logger import get_logger

logger = get_logger(__name__)


def denoise_bilateral(
    image: np.ndarray,
    d: int = 9,
    sigma_color: float = 75,
    sigma_space: float = 75,
) -> np.ndarray:
    """Apply a bilateral filter to smooth paper texture but keep glyph edges.

    Args:
        image: Input image as a numpy array.
        d: Diameter of each pixel neighborhood.
        sigma_color: Filter sigma in the intensity space.
        sigma_space: Filter sigma in the coordinate space.

    Returns:
        Denoised image.
    """
    result = cv2.bilateralFilter(image, d, sigma_color, sigma_space)
    logger.debug("Applied bilateral denoise with d=%d", d)
    return result
