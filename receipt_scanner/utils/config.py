"""Configuration management for the receipt scanner.

Loads and validates YAML configuration with sensible defaults
for preprocessing, OCR, parsing, and categorization settings.
"""

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class PreprocessingConfig(BaseModel):
    """Configuration for the image preprocessing pipeline."""

    resize_enabled: bool = True
    max_dimension: int = 2000
    denoise_enabled: bool = True
    bilateral_diameter: int = 9
    bilateral_sigma_color: float = 75.0
    bilateral_sigma_space: float = 75.0
    binarize_enabled: bool = True
    threshold_block_size: int = 35
    threshold_c: int = 2
    deskew_enabled: bool = True
    deskew_max_angle: float = 15.0
    deskew_step: float = 0.5
    deskew_min_angle: float = 0.5
    crop_enabled: bool = True
    crop_threshold: int = 200
    crop_padding: int = 10
    flatten_enabled: bool = True
    background_threshold: int = 200
    background_gray: int = 240
    sharpen_enabled: bool = True
    sharpen_amount: float = 0.5
    sharpen_sigma: float = 1.5


class OCRConfig(BaseModel):
    """Configuration for OCR engines and the orchestration heuristics."""

    tesseract_cmd: str | None = None
    default_lang: str = "eng+fra"
    accept_confidence: float = 0.75
    band_tolerance_ratio: float = 0.5
    band_tolerance_min_px: int = 4
    column_gap_factor: float = 3.0
    multi_column_ratio: float = 0.3
    price_region_fraction: float = 0.6
    price_region_padding: int = 6
    price_whitelist: str = "0123456789.,$-"
    vision_enabled: bool = True
    vision_api_key: str | None = Field(
        default_factory=lambda: os.environ.get("GOOGLE_VISION_API_KEY")
    )
    vision_endpoint: str = "https://vision.googleapis.com/v1/images:annotate"
    vision_timeout: float = 30.0
    vision_language_hints: list[str] = Field(default_factory=lambda: ["en", "fr"])


class ParsingConfig(BaseModel):
    """Configuration for receipt line parsing and reconciliation."""

    currency: str = "CAD"
    reconciliation_tolerance: float = 0.01
    day_first: bool = True
    ocr_corrections: dict[str, str] = Field(
        default_factory=lambda: {
            "O": "0",
            "o": "0",
            "I": "1",
            "l": "1",
            "S": "5",
            "B": "8",
        }
    )
    abbreviations: dict[str, str] = Field(
        default_factory=lambda: {
            "KS": "Kirkland Signature",
            "ORG": "Organic",
            "NAT": "Natural",
            "BNLS": "Boneless",
            "SKLS": "Skinless",
            "CHKN": "Chicken",
            "GRND": "Ground",
            "BF": "Beef",
            "VEG": "Vegetable",
            "WHL": "Whole",
            "FRZ": "Frozen",
        }
    )


class CategorizationConfig(BaseModel):
    """Configuration for categorization and expiry prediction."""

    default_category: str = "pantry"
    default_shelf_life_days: int = 30


class ServerConfig(BaseModel):
    """Bind address for the HTTP API."""

    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)


class AppConfig(BaseModel):
    """Top-level application configuration."""

    preprocessing: PreprocessingConfig = Field(default_factory=PreprocessingConfig)
    ocr: OCRConfig = Field(default_factory=OCRConfig)
    parsing: ParsingConfig = Field(default_factory=ParsingConfig)
    categorization: CategorizationConfig = Field(default_factory=CategorizationConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    log_level: str = "INFO"


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig(**raw)

    logger.info("No config file found at %s, using defaults", path)
    return AppConfig()
