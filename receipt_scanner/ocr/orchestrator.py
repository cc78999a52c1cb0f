"""Multi-engine OCR orchestration.

Runs an ordered list of recognition strategies against the cleaned
receipt image and keeps the best-scoring result:

1. the primary (cloud) engine, accepted outright above a confidence bar;
2. otherwise the fallback engine on the full page;
3. the fallback again in single-column mode when the page looks like
   it has more than one column.

The winner's right-hand price column is then re-read with a digit
whitelist and merged back before tokens are put in reading order.
"""

from dataclasses import dataclass, replace

import numpy as np

from receipt_scanner.context import EngineAttempt, ScanContext
from receipt_scanner.errors import OCREngineError, OCRUnavailable
from receipt_scanner.utils.config import OCRConfig
from receipt_scanner.utils.logger import get_logger

from .engine import OCREngine, OCRResult, OCRToken, PageMode, mean_confidence
from .layout import LayoutAnalyzer
from .tesseract_engine import TesseractEngine
from .vision_engine import VisionEngine

logger = get_logger(__name__)


@dataclass
class Candidate:
    """One scored OCR attempt."""

    strategy: str
    result: OCRResult

    @property
    def score(self) -> float:
        return self.result.confidence


def merge_tokens(base: list[OCRToken], targeted: list[OCRToken]) -> list[OCRToken]:
    """Merge re-read tokens into a page's tokens.

    A targeted token that overlaps existing tokens replaces all of them
    only when its confidence is higher than every one of them; otherwise
    it is dropped. Targeted tokens that overlap nothing are appended.

    Args:
        base: Tokens of the full-page pass.
        targeted: Tokens from region re-reads, in page coordinates.

    Returns:
        The merged token list.
    """
    merged = list(base)
    for token in targeted:
        overlapping = [t for t in merged if t.bbox.overlaps(token.bbox)]
        if not overlapping:
            merged.append(token)
        elif all(token.confidence > t.confidence for t in overlapping):
            merged = [t for t in merged if all(t is not o for o in overlapping)]
            merged.append(token)
    return merged


class OCROrchestrator:
    """Chooses and combines OCR passes for a receipt image.

    Args:
        primary: Preferred engine, typically the cloud engine. Optional.
        fallback: Local engine used when the primary is missing or weak.
        layout: Layout analyzer for bands, columns, and price regions.
        accept_confidence: Primary results at or above this confidence
            are accepted without running the fallback.
        price_whitelist: Characters allowed when re-reading prices.
    """

    def __init__(
        self,
        primary: OCREngine | None,
        fallback: OCREngine | None,
        layout: LayoutAnalyzer | None = None,
        accept_confidence: float = 0.75,
        price_whitelist: str = "0123456789.,$-",
    ) -> None:
        self.primary = primary
        self.fallback = fallback
        self.layout = layout or LayoutAnalyzer()
        self.accept_confidence = accept_confidence
        self.price_whitelist = price_whitelist

    @classmethod
    def from_config(cls, config: OCRConfig) -> "OCROrchestrator":
        """Build the default Vision + Tesseract orchestrator from config."""
        primary = None
        if config.vision_enabled:
            primary = VisionEngine(
                api_key=config.vision_api_key,
                endpoint=config.vision_endpoint,
                timeout=config.vision_timeout,
                language_hints=config.vision_language_hints,
            )
        fallback = TesseractEngine(
            tesseract_cmd=config.tesseract_cmd,
            default_lang=config.default_lang,
        )
        layout = LayoutAnalyzer(
            band_tolerance_ratio=config.band_tolerance_ratio,
            band_tolerance_min_px=config.band_tolerance_min_px,
            column_gap_factor=config.column_gap_factor,
            multi_column_ratio=config.multi_column_ratio,
            price_region_fraction=config.price_region_fraction,
            price_region_padding=config.price_region_padding,
        )
        return cls(
            primary=primary,
            fallback=fallback,
            layout=layout,
            accept_confidence=config.accept_confidence,
            price_whitelist=config.price_whitelist,
        )

    def _attempt(
        self,
        engine: OCREngine | None,
        image: np.ndarray,
        mode: PageMode,
        strategy: str,
        context: ScanContext,
    ) -> OCRResult | None:
        """Run one engine pass, turning failures into ``None``."""
        context.check_cancelled()
        if engine is None:
            return None
        if not engine.is_available():
            logger.info("OCR engine %s unavailable, skipping %s", engine.name, strategy)
            context.engine_attempts.append(
                EngineAttempt(engine.name, strategy, None, "unavailable")
            )
            return None
        try:
            result = engine.recognize(image, mode=mode)
        except OCREngineError as exc:
            logger.warning("OCR engine %s failed on %s: %s", engine.name, strategy, exc)
            context.engine_attempts.append(
                EngineAttempt(engine.name, strategy, None, str(exc))
            )
            return None
        if result.is_empty:
            logger.info("OCR engine %s returned no text on %s", engine.name, strategy)
            context.engine_attempts.append(
                EngineAttempt(engine.name, strategy, 0.0, "empty result")
            )
            return None
        context.engine_attempts.append(
            EngineAttempt(engine.name, strategy, result.confidence)
        )
        return result

    def _collect_candidates(
        self, image: np.ndarray, context: ScanContext
    ) -> list[Candidate]:
        candidates: list[Candidate] = []

        primary = self._attempt(
            self.primary, image, PageMode.UNIFORM_BLOCK, "primary", context
        )
        if primary is not None:
            candidates.append(Candidate("primary", primary))
            if primary.confidence >= self.accept_confidence:
                logger.info(
                    "Accepted %s result (confidence %.2f)",
                    primary.engine,
                    primary.confidence,
                )
                return candidates

        full_page = self._attempt(
            self.fallback, image, PageMode.UNIFORM_BLOCK, "full_page", context
        )
        if full_page is not None:
            candidates.append(Candidate("full_page", full_page))

        layout_source = full_page or primary
        if layout_source is not None and self.layout.is_multi_column(
            layout_source.tokens
        ):
            logger.info("Multi-column layout detected, re-running single column")
            single = self._attempt(
                self.fallback, image, PageMode.SINGLE_COLUMN, "single_column", context
            )
            if single is not None:
                candidates.append(Candidate("single_column", single))

        return candidates

    def _reread_prices(
        self, result: OCRResult, image: np.ndarray, context: ScanContext
    ) -> OCRResult:
        engine = self.fallback
        if (
            engine is None
            or not engine.supports_char_whitelist
            or not engine.is_available()
        ):
            return result

        height, width = image.shape[:2]
        regions = self.layout.find_price_regions(result.tokens, width, height)
        targeted: list[OCRToken] = []
        for region in regions:
            context.check_cancelled()
            crop = image[region.y : region.bottom, region.x : region.right]
            try:
                region_result = engine.recognize(
                    crop,
                    mode=PageMode.UNIFORM_BLOCK,
                    char_whitelist=self.price_whitelist,
                )
            except OCREngineError as exc:
                logger.warning("Price re-read failed for %s: %s", region, exc)
                continue
            targeted.extend(
                replace(t, bbox=t.bbox.offset(region.x, region.y))
                for t in region_result.tokens
            )

        if not targeted:
            return result

        tokens = merge_tokens(result.tokens, targeted)
        logger.info(
            "Merged %d re-read price tokens from %d regions",
            len(targeted),
            len(regions),
        )
        return replace(result, tokens=tokens, confidence=mean_confidence(tokens))

    def recognize(
        self, image: np.ndarray, context: ScanContext | None = None
    ) -> OCRResult:
        """Produce the best OCR result for a preprocessed receipt image.

        Args:
            image: Cleaned receipt image.
            context: Scan context for cancellation and diagnostics.

        Returns:
            The winning result with re-read prices, in reading order.

        Raises:
            OCRUnavailable: If no engine produced any text.
            ScanCancelled: If the context is cancelled between passes.
        """
        context = context or ScanContext()
        candidates = self._collect_candidates(image, context)
        if not candidates:
            raise OCRUnavailable("No OCR engine produced any text")

        best = max(candidates, key=lambda c: c.score)
        logger.info(
            "Selected %s (%s) with confidence %.2f from %d candidates",
            best.strategy,
            best.result.engine,
            best.score,
            len(candidates),
        )

        result = best.result
        if result.tokens:
            result = self._reread_prices(result, image, context)
        context.check_cancelled()
        return self.layout.apply_reading_order(result)
