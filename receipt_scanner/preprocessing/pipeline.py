"""Configurable image preprocessing pipeline for receipt OCR.

Decodes the uploaded photo and runs resize, grayscale, bilateral
denoise, adaptive threshold, deskew, border crop, background
flattening and unsharp masking, tracking quality metrics and a list of
the adjustments that were applied.
"""

import io
from dataclasses import dataclass, field

import cv2
import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from receipt_scanner.context import ScanContext
from receipt_scanner.errors import PreprocessingError
from receipt_scanner.utils.config import PreprocessingConfig
from receipt_scanner.utils.logger import get_logger

from .binarize import binarize_adaptive, to_grayscale
from .cleanup import crop_to_content, flatten_background
from .denoise import denoise_bilateral
from .deskew import deskew
from .sharpen import unsharp_mask

logger = get_logger(__name__)


@dataclass
class QualityMetrics:
    """Before/after image quality measurements."""

    sharpness_before: float
    sharpness_after: float
    contrast_before: float
    contrast_after: float


@dataclass
class PreprocessingResult:
    """Output of the preprocessing pipeline."""

    image: np.ndarray
    quality_metrics: QualityMetrics
    adjustments: list[str] = field(default_factory=list)
    skew_angle: float = 0.0


def calculate_sharpness(image: np.ndarray) -> float:
    """Calculate image sharpness using Laplacian variance.

    Args:
        image: Input image (RGB or grayscale).

    Returns:
        Sharpness score (higher means sharper).
    """
    gray = to_grayscale(image)
    return float(cv2.Laplacian(gray, cv2.CV_64F).var())


def calculate_contrast(image: np.ndarray) -> float:
    """Calculate image contrast as the standard deviation of pixel intensities.

    Args:
        image: Input image (RGB or grayscale).

    Returns:
        Contrast score (higher means more contrast).
    """
    return float(to_grayscale(image).std())


def decode_image(data: bytes) -> np.ndarray:
    """Decode uploaded image bytes into an RGB array.

    EXIF orientation is applied so phone photos come out upright.

    Args:
        data: Encoded image bytes (PNG, JPEG, TIFF, ...).

    Returns:
        RGB image as an ``H x W x 3`` uint8 array.

    Raises:
        PreprocessingError: If the bytes are not a readable image.
    """
    if not data:
        raise PreprocessingError("Empty image upload")
    try:
        with Image.open(io.BytesIO(data)) as pil_image:
            pil_image = ImageOps.exif_transpose(pil_image)
            return np.array(pil_image.convert("RGB"))
    except (UnidentifiedImageError, OSError) as exc:
        raise PreprocessingError(f"Could not decode image: {exc}") from exc


def resize_to_max(image: np.ndarray, max_dimension: int) -> np.ndarray:
    """Downscale an image so its longest side is at most ``max_dimension``."""
    h, w = image.shape[:2]
    longest = max(h, w)
    if longest <= max_dimension:
        return image.copy()
    scale = max_dimension / longest
    size = (max(1, round(w * scale)), max(1, round(h * scale)))
    return cv2.resize(image, size, interpolation=cv2.INTER_AREA)


def _ensure_not_empty(image: np.ndarray, step: str) -> None:
    if image.ndim < 2 or image.shape[0] == 0 or image.shape[1] == 0:
        raise PreprocessingError(f"Image has no area after {step}")


class PreprocessingPipeline:
    """Configurable receipt image preprocessing pipeline.

    Every step returns a new array; the caller's image is never modified.

    Args:
        config: Preprocessing configuration controlling which steps to apply.
    """

    def __init__(self, config: PreprocessingConfig | None = None) -> None:
        self.config = config or PreprocessingConfig()

    def process(
        self, image: np.ndarray, context: ScanContext | None = None
    ) -> PreprocessingResult:
        """Run the full preprocessing pipeline on an image.

        Args:
            image: Decoded receipt image (RGB, RGBA or grayscale).
            context: Optional scan context checked for cancellation
                between steps.

        Returns:
            The cleaned grayscale image with metrics and adjustments.

        Raises:
            PreprocessingError: If the image is empty or degenerates to
                zero area.
            ScanCancelled: If the context is cancelled mid-pipeline.
        """
        _ensure_not_empty(image, "decode")
        cfg = self.config
        adjustments: list[str] = []
        skew_angle = 0.0

        metrics = QualityMetrics(
            sharpness_before=calculate_sharpness(image),
            contrast_before=calculate_contrast(image),
            sharpness_after=0.0,
            contrast_after=0.0,
        )

        result = image
        if cfg.resize_enabled and max(image.shape[:2]) > cfg.max_dimension:
            result = resize_to_max(result, cfg.max_dimension)
            adjustments.append(
                f"resized to {result.shape[1]}x{result.shape[0]}"
            )

        result = to_grayscale(result)
        adjustments.append("grayscale")
        self._checkpoint(context)

        if cfg.denoise_enabled:
            result = denoise_bilateral(
                result,
                d=cfg.bilateral_diameter,
                sigma_color=cfg.bilateral_sigma_color,
                sigma_space=cfg.bilateral_sigma_space,
            )
            adjustments.append("bilateral denoise")

        if cfg.binarize_enabled:
            result = binarize_adaptive(
                result, block_size=cfg.threshold_block_size, c=cfg.threshold_c
            )
            adjustments.append("adaptive threshold")
        self._checkpoint(context)

        if cfg.deskew_enabled:
            result, skew_angle = deskew(
                result,
                max_angle=cfg.deskew_max_angle,
                step=cfg.deskew_step,
                min_angle=cfg.deskew_min_angle,
            )
            if skew_angle:
                adjustments.append(f"deskewed {skew_angle:+.1f} degrees")
        self._checkpoint(context)

        if cfg.crop_enabled:
            result = crop_to_content(
                result, threshold=cfg.crop_threshold, padding=cfg.crop_padding
            )
            _ensure_not_empty(result, "crop")
            adjustments.append(f"cropped to {result.shape[1]}x{result.shape[0]}")

        if cfg.flatten_enabled:
            result = flatten_background(
                result, threshold=cfg.background_threshold, gray=cfg.background_gray
            )
            adjustments.append("background flattened")

        if cfg.sharpen_enabled:
            result = unsharp_mask(
                result, amount=cfg.sharpen_amount, sigma=cfg.sharpen_sigma
            )
            adjustments.append("sharpened")

        _ensure_not_empty(result, "preprocessing")
        metrics.sharpness_after = calculate_sharpness(result)
        metrics.contrast_after = calculate_contrast(result)

        if context is not None:
            context.adjustments.extend(adjustments)

        logger.info(
            "Preprocessing complete: sharpness %.1f->%.1f, contrast %.1f->%.1f",
            metrics.sharpness_before,
            metrics.sharpness_after,
            metrics.contrast_before,
            metrics.contrast_after,
        )
        return PreprocessingResult(
            image=result,
            quality_metrics=metrics,
            adjustments=adjustments,
            skew_angle=skew_angle,
        )

    @staticmethod
    def _checkpoint(context: ScanContext | None) -> None:
        if context is not None:
            context.check_cancelled()
