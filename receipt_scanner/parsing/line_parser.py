"""Receipt line parser.

Turns raw OCR text into items, discounts and declared totals. Lines go
through a fixed sequence: void removal, summary/total extraction,
discount detection, and item parsing with quantity annotations and name
cleanup. The result is reconciled arithmetically before it is frozen
into a :class:`ParsedReceipt`.
"""

import re
from decimal import ROUND_HALF_UP, Decimal

from receipt_scanner.errors import NoItemsFound, PriceParseError
from receipt_scanner.utils.config import ParsingConfig
from receipt_scanner.utils.logger import get_logger
from receipt_scanner.validation.reconciliation import Reconciler

from .models import ParsedReceipt, ReceiptDiscount, ReceiptItem, SkippedLine
from .money import CENTS, PriceMatch, find_prices
from .totals import (
    LABEL_START,
    detect_date,
    detect_vendor,
    find_totals,
    label_tail_is_summary,
)

logger = get_logger(__name__)

VOID_PATTERN = re.compile(r"\b(?:ANNUL\w*|VOIDED|VOID)\b\.?", re.I)

SUMMARY_PATTERN = re.compile(
    LABEL_START
    + r"(?:GRAND\s+TOTAL|SOUS[\s-]?TOTAL|SUB[\s-]?TOTAL|TOTAL"
    r"|TAXES?|TPS|TVQ|TVH|HST|GST|PST|QST"
    r"|VISA|MASTERCARD|AMEX|D[EÉ]BIT|CR[EÉ]DIT|INTERAC|CASH|COMPTANT|MONNAIE"
    r"|CHANGE|BALANCE|SOLDE|MEMBER|MEMBRE|PAYMENT|PAIEMENT|APPROUV[EÉ]E?"
    r"|APPROVED|AUTORISATION|AUTHORI[SZ]ATION|POINTS|TENDER)\b",
    re.I,
)

DISCOUNT_PREFIX = re.compile(
    r"^\s*(?:#?\d{4,}\s+)?(?P<keyword>TPR|TPO|COUPON|RABAIS|REDUC\w*|PROMO\w*"
    r"|ESCOMPTE|INSTANT\s+SAVINGS|DISCOUNT|MANUFACTURER\s+COUPON)\b",
    re.I,
)

_SKU = re.compile(r"(?:^|\s)[/#]?\d{4,}\b")
_PLU = re.compile(r"\bPLU\s*#?\s*\d+\b", re.I)
_PROMO_CODE = re.compile(r"\bTP[RO]\s*/\s*\d+\b", re.I)
_PROMO_SUFFIX = re.compile(r"\s+(?:F?P|[A-Z]?\*|\*+)\s*$")
_LEADING_JUNK = re.compile(r"^[\s\-*/#.,:]+")
_TRAILING_JUNK = re.compile(r"[\s\-*/#.,:@]+$")

_UNITS = r"kg|lbs?|g|ml|l"
_QTY_AT = re.compile(
    r"(?<![\d.,])(?P<qty>\d+(?:[.,]\d{1,3})?)\s*(?P<unit>" + _UNITS + r")?\s*@\s*\$?"
    r"(?P<price>\d{1,4}[.,]\d{2})(?:\s*/\s*(?:" + _UNITS + r"|ea|ch))?",
    re.I,
)
_QTY_TIMES_BEFORE = re.compile(r"(?<![\w.,])(?P<qty>\d{1,3})\s*[xX](?![A-Za-z])")
_QTY_TIMES_AFTER = re.compile(r"(?<![A-Za-z])[xX]\s*(?P<qty>\d{1,3})(?![\d.,])")
_UNIT_PRICE_ONLY = re.compile(
    r"@\s*\$?(?P<price>\d{1,4}[.,]\d{2})(?:\s*/\s*(?:" + _UNITS + r"|ea|ch))?", re.I
)
_MEASURE = re.compile(
    r"(?<![\w.,])(?P<qty>\d{1,4}(?:[.,]\d{1,3})?)\s?(?P<unit>" + _UNITS + r")\b",
    re.I,
)


def _decimal(text: str) -> Decimal:
    return Decimal(text.replace(",", "."))


class ReceiptParser:
    """Parses OCR text of a grocery receipt.

    Args:
        config: Parsing configuration with currency, tolerance, and the
            OCR-correction and abbreviation tables.
    """

    def __init__(self, config: ParsingConfig | None = None) -> None:
        self.config = config or ParsingConfig()
        self.reconciler = Reconciler(self.config.reconciliation_tolerance)
        self._correction_pattern = self._build_correction_pattern(
            self.config.ocr_corrections
        )
        self._abbreviations = [
            (re.compile(rf"\b{re.escape(short)}\b"), expanded)
            for short, expanded in self.config.abbreviations.items()
        ]

    @staticmethod
    def _build_correction_pattern(table: dict[str, str]) -> re.Pattern | None:
        if not table:
            return None
        letters = "".join(re.escape(c) for c in table)
        # inside a number ("1O,99", "2,O0") or opening an amount ("S,49");
        # codes such as "B12" stay letters
        return re.compile(
            rf"(?<=[\d.,])[{letters}](?=[\d.,])"
            rf"|(?<![A-Za-z])[{letters}](?=\d*[.,]\d)"
        )

    def correct_ocr_confusions(self, line: str) -> str:
        """Replace letters misread for digits where a number is expected."""
        if self._correction_pattern is None:
            return line
        table = self.config.ocr_corrections
        previous = None
        while previous != line:
            previous = line
            line = self._correction_pattern.sub(lambda m: table[m.group(0)], line)
        return line

    def clean_name(self, raw: str) -> str:
        """Normalize an item name: drop codes and flags, expand abbreviations.

        Args:
            raw: Text that preceded the price on the line.

        Returns:
            The cleaned display name (may be empty).
        """
        name = _PROMO_CODE.sub(" ", raw)
        name = _PLU.sub(" ", name)
        name = _SKU.sub(" ", name)
        name = _PROMO_SUFFIX.sub("", name)
        name = re.sub(r"\s+", " ", name)
        name = _LEADING_JUNK.sub("", name)
        name = _TRAILING_JUNK.sub("", name)
        for pattern, expanded in self._abbreviations:
            name = pattern.sub(expanded, name)
        return name.strip()

    @staticmethod
    def find_voided(lines: list[str]) -> set[int]:
        """Indices removed by void markers: each marker line and the line above it."""
        voided: set[int] = set()
        for i, line in enumerate(lines):
            if VOID_PATTERN.search(line):
                voided.add(i)
                if i > 0:
                    voided.add(i - 1)
        return voided

    def _parse_discount(
        self, line: str, prices: list[PriceMatch], keyword: str | None, number: int
    ) -> ReceiptDiscount:
        amount = -abs(prices[-1].amount)
        label = self.clean_name(line[: prices[0].start])
        if not label:
            label = keyword.upper() if keyword else "Discount"
        return ReceiptDiscount(label=label, amount=amount, line_number=number)

    def _parse_item(
        self,
        line: str,
        prices: list[PriceMatch],
        number: int,
        name_hint: str | None = None,
    ) -> ReceiptItem:
        """Build an item from a priced line.

        ``name_hint`` is the preceding unpriced line, used as the name when
        the register printed the name above a quantity line.
        """
        quantity = Decimal(1)
        unit: str | None = None
        unit_price: Decimal | None = None
        price_total = prices[-1].amount
        working = line

        m = _QTY_AT.search(working)
        if m:
            quantity = _decimal(m.group("qty"))
            unit = m.group("unit").lower() if m.group("unit") else None
            unit_price = _decimal(m.group("price")).quantize(CENTS)
            working = working[: m.start()] + " " + working[m.end() :]
            try:
                remaining = find_prices(working)
            except PriceParseError:
                remaining = []
            if remaining:
                price_total = remaining[-1].amount
                name_part = working[: remaining[0].start]
            else:
                price_total = (quantity * unit_price).quantize(
                    CENTS, rounding=ROUND_HALF_UP
                )
                name_part = working
        else:
            name_part = line[: prices[0].start]
            times = _QTY_TIMES_BEFORE.search(name_part) or _QTY_TIMES_AFTER.search(
                name_part
            )
            at = _UNIT_PRICE_ONLY.search(line)
            measure = _MEASURE.search(name_part)
            if times and int(times.group("qty")) > 0:
                quantity = Decimal(times.group("qty"))
                unit_price = (price_total / quantity).quantize(
                    CENTS, rounding=ROUND_HALF_UP
                )
                name_part = name_part[: times.start()] + " " + name_part[times.end() :]
            elif at:
                unit_price = _decimal(at.group("price")).quantize(CENTS)
                name_part = line[: at.start()]
            elif measure:
                quantity = _decimal(measure.group("qty"))
                unit = measure.group("unit").lower()
                name_part = (
                    name_part[: measure.start()] + " " + name_part[measure.end() :]
                )

        raw_name = re.sub(r"\s+", " ", name_part).strip()
        name = self.clean_name(name_part)
        if len(name) < 2 and name_hint:
            raw_name = f"{name_hint} {raw_name}".strip()
            name = self.clean_name(name_hint)

        reasons: list[str] = []
        if len(name) < 2:
            reasons.append(f"Line {number}: item name {name!r} is too short")
        if price_total <= 0:
            reasons.append(f"Line {number}: item price {price_total} is not positive")

        return ReceiptItem(
            name=name,
            raw_name=raw_name,
            price_total=price_total,
            quantity=quantity,
            unit=unit,
            unit_price=unit_price,
            needs_review=bool(reasons),
            review_reasons=tuple(reasons),
            line_number=number,
        )

    def parse(self, text: str) -> ParsedReceipt:
        """Parse the OCR text of one receipt.

        Args:
            text: Raw OCR text, one receipt line per text line.

        Returns:
            Frozen parsed receipt with review flags and mismatches.

        Raises:
            NoItemsFound: If no purchase lines could be parsed.
        """
        numbered = [
            (number, self.correct_ocr_confusions(line.strip()))
            for number, line in enumerate(text.splitlines(), 1)
            if line.strip()
        ]
        lines = [line for _, line in numbered]

        voided = self.find_voided(lines)
        if voided:
            logger.info("Dropping %d voided lines", len(voided))
        totals = find_totals(lines, skip=voided)

        items: list[ReceiptItem] = []
        discounts: list[ReceiptDiscount] = []
        skipped: list[SkippedLine] = []
        name_hint: str | None = None

        for i, (number, line) in enumerate(numbered):
            if i in voided or i in totals.consumed:
                continue

            try:
                prices = find_prices(line)
            except PriceParseError as exc:
                logger.warning("Skipping line %d %r: %s", number, line, exc)
                skipped.append(SkippedLine(number, line, str(exc)))
                continue
            if not prices:
                name_hint = line if re.search(r"[A-Za-z]{2}", line) else None
                continue

            prefix = DISCOUNT_PREFIX.match(line)
            if prefix:
                discounts.append(
                    self._parse_discount(line, prices, prefix.group("keyword"), number)
                )
                continue
            summary = SUMMARY_PATTERN.match(line)
            if summary and label_tail_is_summary(line, summary.end()):
                skipped.append(SkippedLine(number, line, "Summary or payment line"))
                continue
            if prices[-1].negative:
                discounts.append(self._parse_discount(line, prices, None, number))
                continue

            items.append(self._parse_item(line, prices, number, name_hint))
            name_hint = None

        if not items:
            raise NoItemsFound("No purchase lines could be parsed from the receipt")

        report = self.reconciler.reconcile(
            items_total=sum((i.price_total for i in items), Decimal("0.00")),
            discounts_total=sum((d.amount for d in discounts), Decimal("0.00")),
            tax_total=totals.tax_total,
            subtotal=totals.subtotal,
            total=totals.total,
        )

        review_reasons = [r for item in items for r in item.review_reasons]
        review_reasons.extend(m.describe() for m in report.mismatches)

        receipt = ParsedReceipt(
            items=tuple(items),
            discounts=tuple(discounts),
            vendor=detect_vendor(lines),
            date=detect_date(text, day_first=self.config.day_first),
            currency=self.config.currency,
            subtotal=totals.subtotal,
            tax_total=totals.tax_total,
            total=totals.total,
            needs_review=bool(review_reasons),
            review_reasons=tuple(review_reasons),
            mismatches=tuple(report.mismatches),
            skipped_lines=tuple(skipped),
            voided_lines=tuple(sorted(numbered[i][0] for i in voided)),
            raw_text=text,
        )
        logger.info(
            "Parsed %d items, %d discounts, %d skipped lines (review=%s)",
            len(receipt.items),
            len(receipt.discounts),
            len(receipt.skipped_lines),
            receipt.needs_review,
        )
        return receipt
