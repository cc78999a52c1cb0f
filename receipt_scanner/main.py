"""Entry point for the receipt scanner API server.

Reads the bind address from the ``server`` section of the configuration
and reports which OCR engines the ``/scan`` endpoint will be able to use
before handing the app to uvicorn.
"""

import shutil

import uvicorn

from receipt_scanner.api.app import app
from receipt_scanner.utils.config import AppConfig, load_config
from receipt_scanner.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def available_engines(config: AppConfig) -> list[str]:
    """Names of the OCR engines usable with this configuration."""
    engines = []
    if config.ocr.vision_enabled and config.ocr.vision_api_key:
        engines.append("vision")
    if shutil.which(config.ocr.tesseract_cmd or "tesseract"):
        engines.append("tesseract")
    return engines


def main() -> None:
    """Start the receipt scanner API."""
    config = load_config()
    setup_logging(config.log_level)

    engines = available_engines(config)
    if engines:
        logger.info("OCR engines available: %s", ", ".join(engines))
    else:
        logger.warning(
            "No OCR engine available; only /parse will succeed until "
            "tesseract is installed or a Vision API key is set"
        )

    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
