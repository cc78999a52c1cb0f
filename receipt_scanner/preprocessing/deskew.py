"""Deskew correction for receipt images.

Receipt photos rarely contain long ruled lines, so instead of a Hough
transform the skew is found with a projection-profile search: for each
candidate angle the dark pixels are projected onto a rotated vertical
axis, and the angle whose row histogram has the highest variance (text
lines collapsing into sharp peaks) wins.
"""

import math

import cv2
import numpy as np

from receipt_scanner.utils.logger import get_logger

logger = get_logger(__name__)

_DARK_THRESHOLD = 128
_MAX_POINTS = 200_000


def _dark_points(image: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    gray = image if image.ndim == 2 else cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)
    ys, xs = np.nonzero(gray < _DARK_THRESHOLD)
    if len(ys) > _MAX_POINTS:
        stride = math.ceil(len(ys) / _MAX_POINTS)
        ys, xs = ys[::stride], xs[::stride]
    return ys.astype(np.float64), xs.astype(np.float64)


def projection_score(
    ys: np.ndarray, xs: np.ndarray, angle: float, height: int, width: int
) -> float:
    """Variance of the row histogram of points projected at ``angle``.

    The histogram always has ``height + 2 * width + 3`` bins, so scores
    are comparable across angles.

    Args:
        ys: Row coordinates of dark pixels.
        xs: Column coordinates of dark pixels.
        angle: Candidate skew angle in degrees.
        height: Image height in pixels.
        width: Image width in pixels.

    Returns:
        Variance of the projection histogram.
    """
    rad = math.radians(angle)
    projected = ys * math.cos(rad) - xs * math.sin(rad)
    offset = width + 1
    length = height + 2 * width + 3
    bins = np.clip(np.rint(projected).astype(np.int64) + offset, 0, length - 1)
    histogram = np.bincount(bins, minlength=length)
    return float(histogram.var())


def detect_skew_angle(
    image: np.ndarray, max_angle: float = 15.0, step: float = 0.5
) -> float:
    """Detect the skew angle of the text lines in an image.

    A positive angle means lines descend to the right (image rows grow
    downward).

    Args:
        image: Input image (binary, grayscale or RGB).
        max_angle: Largest absolute angle searched, in degrees.
        step: Search resolution in degrees.

    Returns:
        Estimated skew angle in degrees, or 0.0 when there is no ink.
    """
    ys, xs = _dark_points(image)
    if len(ys) == 0:
        logger.debug("No dark pixels for skew estimation")
        return 0.0

    height, width = image.shape[:2]
    count = int(round(2 * max_angle / step)) + 1
    best_angle = 0.0
    best_score = -1.0
    for i in range(count):
        angle = -max_angle + i * step
        score = projection_score(ys, xs, angle, height, width)
        if score > best_score:
            best_angle, best_score = angle, score

    logger.debug("Detected skew angle: %.2f degrees", best_angle)
    return best_angle


def rotate_image(image: np.ndarray, angle: float) -> np.ndarray:
    """Rotate an image about its centre, keeping its size.

    Uses nearest-neighbour sampling so binary images stay binary, and
    fills uncovered corners with white paper. A line with slope angle
    ``s`` ends up with slope angle ``s + angle``.

    Args:
        image: Input image.
        angle: Rotation in degrees.

    Returns:
        A new rotated image with the same shape and dtype.
    """
    h, w = image.shape[:2]
    rad = math.radians(angle)
    cos_a, sin_a = math.cos(rad), math.sin(rad)
    cx, cy = (w - 1) / 2.0, (h - 1) / 2.0
    # destination -> source mapping
    matrix = np.array(
        [
            [cos_a, sin_a, cx - cos_a * cx - sin_a * cy],
            [-sin_a, cos_a, cy + sin_a * cx - cos_a * cy],
        ],
        dtype=np.float64,
    )
    return cv2.warpAffine(
        image,
        matrix,
        (w, h),
        flags=cv2.INTER_NEAREST | cv2.WARP_INVERSE_MAP,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=(255, 255, 255),
    )


def deskew(
    image: np.ndarray,
    max_angle: float = 15.0,
    step: float = 0.5,
    min_angle: float = 0.5,
) -> tuple[np.ndarray, float]:
    """Correct rotational skew in a receipt image.

    Args:
        image: Input image (binary works best).
        max_angle: Largest absolute angle searched, in degrees.
        step: Search resolution in degrees.
        min_angle: Minimum absolute angle that triggers a rotation.

    Returns:
        Tuple of (image, applied_correction). The image is a copy of the
        input when no correction was needed.
    """
    angle = detect_skew_angle(image, max_angle=max_angle, step=step)

    if abs(angle) < min_angle:
        logger.debug("Skew angle below threshold, skipping correction")
        return image.copy(), 0.0

    result = rotate_image(image, -angle)
    logger.info("Applied deskew correction: %.2f degrees", -angle)
    return result, -angle
