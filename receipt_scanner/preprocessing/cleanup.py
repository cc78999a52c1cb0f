"""Border cropping and background flattening for binarized receipts."""

import numpy as np

from receipt_scanner.errors import PreprocessingError
from receipt_scanner.utils.logger import get_logger

logger = get_logger(__name__)


def crop_to_content(
    image: np.ndarray, threshold: int = 200, padding: int = 10
) -> np.ndarray:
    """Crop an image to the bounding box of its dark pixels plus padding.

    Args:
        image: Grayscale image.
        threshold: Pixels strictly below this value count as content.
        padding: Margin kept around the content, clamped to the image.

    Returns:
        A new cropped image.

    Raises:
        PreprocessingError: If the image contains no content pixels.
    """
    ys, xs = np.nonzero(image < threshold)
    if len(ys) == 0:
        raise PreprocessingError("No receipt content found in the image")

    h, w = image.shape[:2]
    top = max(0, int(ys.min()) - padding)
    bottom = min(h, int(ys.max()) + padding + 1)
    left = max(0, int(xs.min()) - padding)
    right = min(w, int(xs.max()) + padding + 1)

    logger.debug("Cropped to x=%d..%d, y=%d..%d", left, right, top, bottom)
    return image[top:bottom, left:right].copy()


def flatten_background(
    image: np.ndarray, threshold: int = 200, gray: int = 240
) -> np.ndarray:
    """Replace all near-white pixels with one uniform paper tone.

    Args:
        image: Grayscale image.
        threshold: Pixels strictly above this value are background.
        gray: Replacement background value.

    Returns:
        A new image with a flat background.
    """
    result = image.copy()
    result[result > threshold] = gray
    return result
