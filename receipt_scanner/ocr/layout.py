"""Layout analysis for receipt OCR tokens.

Groups tokens into horizontal bands (visual lines), detects two-column
layouts, finds the right-hand price column for targeted re-reads, and
rebuilds text in reading order.
"""

import re
import statistics
from dataclasses import replace

from receipt_scanner.utils.logger import get_logger

from .engine import BoundingBox, OCRResult, OCRToken, mean_confidence

logger = get_logger(__name__)

PRICE_TOKEN = re.compile(r"\d{1,4}[.,]\d{2}(?!\d)")


class LayoutAnalyzer:
    """Analyzes OCR token positions to recover receipt structure.

    Args:
        band_tolerance_ratio: Fraction of the median token height within
            which two token centres belong to the same band.
        band_tolerance_min_px: Lower bound for the band tolerance.
        column_gap_factor: A horizontal gap larger than this multiple of
            the band's mean token width counts as a column gap.
        multi_column_ratio: Share of bands with a column gap above which
            the page is treated as multi-column.
        price_region_fraction: Tokens whose centre lies right of this
            fraction of the page width are price-column candidates.
        price_region_padding: Pixels added around each price region.
    """

    def __init__(
        self,
        band_tolerance_ratio: float = 0.5,
        band_tolerance_min_px: int = 4,
        column_gap_factor: float = 3.0,
        multi_column_ratio: float = 0.3,
        price_region_fraction: float = 0.6,
        price_region_padding: int = 6,
    ) -> None:
        self.band_tolerance_ratio = band_tolerance_ratio
        self.band_tolerance_min_px = band_tolerance_min_px
        self.column_gap_factor = column_gap_factor
        self.multi_column_ratio = multi_column_ratio
        self.price_region_fraction = price_region_fraction
        self.price_region_padding = price_region_padding

    def _band_tolerance(self, tokens: list[OCRToken]) -> float:
        median_height = statistics.median(t.bbox.height for t in tokens)
        return max(
            float(self.band_tolerance_min_px),
            self.band_tolerance_ratio * median_height,
        )

    def group_bands(self, tokens: list[OCRToken]) -> list[list[OCRToken]]:
        """Group tokens into bands by vertical centre, top to bottom.

        Args:
            tokens: OCR tokens in any order.

        Returns:
            Bands of tokens, each sorted left to right.
        """
        if not tokens:
            return []

        tolerance = self._band_tolerance(tokens)
        bands: list[list[OCRToken]] = []
        band_center = 0.0

        for token in sorted(tokens, key=lambda t: t.bbox.center_y):
            if bands and abs(token.bbox.center_y - band_center) <= tolerance:
                bands[-1].append(token)
                band_center = statistics.fmean(t.bbox.center_y for t in bands[-1])
            else:
                bands.append([token])
                band_center = token.bbox.center_y

        return [sorted(band, key=lambda t: t.bbox.x) for band in bands]

    def has_column_gap(self, band: list[OCRToken]) -> bool:
        """Return True if a band has a horizontal gap wide enough to split it."""
        if len(band) < 2:
            return False
        mean_width = statistics.fmean(t.bbox.width for t in band)
        if mean_width <= 0:
            return False
        for left, right in zip(band, band[1:]):
            if right.bbox.x - left.bbox.right > self.column_gap_factor * mean_width:
                return True
        return False

    def is_multi_column(self, tokens: list[OCRToken]) -> bool:
        """Decide whether the page is laid out in more than one column.

        Args:
            tokens: OCR tokens of the full page.

        Returns:
            True if the share of bands with a column gap exceeds
            ``multi_column_ratio``.
        """
        bands = self.group_bands(tokens)
        if not bands:
            return False
        flagged = sum(1 for band in bands if self.has_column_gap(band))
        ratio = flagged / len(bands)
        logger.debug("Column gaps in %d/%d bands (%.2f)", flagged, len(bands), ratio)
        return ratio > self.multi_column_ratio

    def find_price_regions(
        self, tokens: list[OCRToken], page_width: int, page_height: int
    ) -> list[BoundingBox]:
        """Locate vertical clusters of price-shaped tokens on the right side.

        Args:
            tokens: OCR tokens of the full page.
            page_width: Image width in pixels.
            page_height: Image height in pixels.

        Returns:
            Padded regions, clamped to the page, top to bottom.
        """
        min_x = self.price_region_fraction * page_width
        candidates = sorted(
            (
                t
                for t in tokens
                if PRICE_TOKEN.search(t.text) and t.bbox.center_x >= min_x
            ),
            key=lambda t: t.bbox.y,
        )
        if not candidates:
            return []

        max_gap = 3 * statistics.median(t.bbox.height for t in candidates)
        clusters: list[list[OCRToken]] = [[candidates[0]]]
        for token in candidates[1:]:
            previous_bottom = max(t.bbox.bottom for t in clusters[-1])
            if token.bbox.y - previous_bottom > max_gap:
                clusters.append([token])
            else:
                clusters[-1].append(token)

        pad = self.price_region_padding
        regions = []
        for cluster in clusters:
            left = max(0, min(t.bbox.x for t in cluster) - pad)
            top = max(0, min(t.bbox.y for t in cluster) - pad)
            right = min(page_width, max(t.bbox.right for t in cluster) + pad)
            bottom = min(page_height, max(t.bbox.bottom for t in cluster) + pad)
            if right > left and bottom > top:
                regions.append(BoundingBox(left, top, right - left, bottom - top))

        logger.debug("Found %d price regions", len(regions))
        return regions

    def apply_reading_order(self, result: OCRResult) -> OCRResult:
        """Reorder tokens and rebuild text one band per line.

        Results without tokens are returned unchanged.

        Args:
            result: OCR result in engine order.

        Returns:
            A new result with tokens in reading order, rebuilt text, and
            per-line confidences.
        """
        if not result.tokens:
            return result

        bands = self.group_bands(result.tokens)
        ordered = [token for band in bands for token in band]
        lines = [" ".join(t.text for t in band) for band in bands]
        line_confidences = [mean_confidence(band) for band in bands]

        return replace(
            result,
            text="\n".join(lines),
            tokens=ordered,
            confidence=mean_confidence(ordered),
            line_confidences=line_confidences,
        )
