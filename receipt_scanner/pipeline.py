"""End-to-end receipt scanning pipeline.

Chains decoding, preprocessing, OCR orchestration, text checks, line
parsing and categorization, reporting progress and honouring
cancellation through a caller-owned :class:`ScanContext`.
"""

from dataclasses import dataclass, field
from datetime import date

import numpy as np

from receipt_scanner.categorization.engine import CategorizedItem, ItemCategorizer
from receipt_scanner.context import ScanContext
from receipt_scanner.errors import NoItemsFound
from receipt_scanner.ocr.engine import OCRResult
from receipt_scanner.ocr.orchestrator import OCROrchestrator
from receipt_scanner.parsing.line_parser import ReceiptParser
from receipt_scanner.parsing.models import ParsedReceipt
from receipt_scanner.preprocessing.pipeline import (
    PreprocessingPipeline,
    QualityMetrics,
    decode_image,
)
from receipt_scanner.utils.config import AppConfig
from receipt_scanner.utils.logger import get_logger
from receipt_scanner.validation.text_checks import TextCheckReport, check_receipt_text

logger = get_logger(__name__)


@dataclass
class ScanResult:
    """Everything produced by one receipt scan."""

    run_id: str
    receipt: ParsedReceipt
    items: list[CategorizedItem]
    text_report: TextCheckReport
    ocr_confidence: float | None = None
    ocr_engine: str | None = None
    quality_metrics: QualityMetrics | None = None
    adjustments: list[str] = field(default_factory=list)

    @property
    def needs_review(self) -> bool:
        return self.receipt.needs_review


class ReceiptScanner:
    """Runs the full receipt pipeline with shared, stateless components.

    One scanner can serve many concurrent scans; all per-run state lives
    in the :class:`ScanContext` passed to each call.

    Args:
        config: Application configuration.
        orchestrator: OCR orchestrator; built from ``config.ocr`` if omitted.
        categorizer: Item categorizer; built from config if omitted.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        orchestrator: OCROrchestrator | None = None,
        categorizer: ItemCategorizer | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.preprocessing = PreprocessingPipeline(self.config.preprocessing)
        self.orchestrator = orchestrator or OCROrchestrator.from_config(self.config.ocr)
        self.parser = ReceiptParser(self.config.parsing)
        self.categorizer = categorizer or ItemCategorizer(self.config.categorization)

    def recognize(
        self, image: np.ndarray, context: ScanContext
    ) -> tuple[OCRResult, QualityMetrics]:
        """Preprocess an image and run OCR on it."""
        context.check_cancelled()
        context.report(5, "preprocessing")
        prep = self.preprocessing.process(image, context)
        context.report(35, "recognizing text")

        ocr = self.orchestrator.recognize(prep.image, context)
        context.report(75, "text recognized")
        return ocr, prep.quality_metrics

    def scan(
        self,
        image_bytes: bytes,
        context: ScanContext | None = None,
        purchase_date: str | date | None = None,
    ) -> ScanResult:
        """Scan an encoded receipt photo.

        Args:
            image_bytes: Encoded image (PNG, JPEG, ...).
            context: Per-run context; a fresh one is created if omitted.
            purchase_date: Overrides the date printed on the receipt.

        Returns:
            Parsed, categorized receipt with diagnostics.

        Raises:
            PreprocessingError: If the image is unreadable or empty.
            OCRUnavailable: If no OCR engine produced text.
            NoItemsFound: If no purchase lines were parsed.
            ScanCancelled: If the context was cancelled.
        """
        context = context or ScanContext()
        logger.info(
            "[%s] Starting receipt scan (%d bytes)", context.run_id, len(image_bytes)
        )
        context.report(0, "decoding")
        image = decode_image(image_bytes)

        ocr, metrics = self.recognize(image, context)
        result = self._parse_and_categorize(ocr.text, context, purchase_date)
        result.ocr_confidence = ocr.confidence
        result.ocr_engine = ocr.engine
        result.quality_metrics = metrics
        return result

    def parse_text(
        self,
        text: str,
        context: ScanContext | None = None,
        purchase_date: str | date | None = None,
    ) -> ScanResult:
        """Run parsing and categorization on already-recognized text."""
        context = context or ScanContext()
        return self._parse_and_categorize(text, context, purchase_date)

    def _parse_and_categorize(
        self,
        text: str,
        context: ScanContext,
        purchase_date: str | date | None,
    ) -> ScanResult:
        context.check_cancelled()
        text_report = check_receipt_text(text)
        context.report(80, "parsing")

        try:
            receipt = self.parser.parse(text)
        except NoItemsFound as exc:
            guidance = text_report.guidance()
            if guidance:
                raise NoItemsFound(exc.message, guidance=guidance) from exc
            raise
        context.report(90, "categorizing")

        context.check_cancelled()
        items = self.categorizer.categorize_all(
            receipt.items, purchase_date or receipt.date
        )
        context.report(100, "done")

        logger.info(
            "[%s] Scan complete: %d items, review=%s",
            context.run_id,
            len(items),
            receipt.needs_review,
        )
        return ScanResult(
            run_id=context.run_id,
            receipt=receipt,
            items=items,
            text_report=text_report,
            adjustments=list(context.adjustments),
        )
