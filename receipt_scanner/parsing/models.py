"""Immutable records produced by the receipt line parser."""

from dataclasses import dataclass
from decimal import Decimal

from receipt_scanner.validation.reconciliation import ValidationMismatch


@dataclass(frozen=True)
class ReceiptItem:
    """One purchased line."""

    name: str
    raw_name: str
    price_total: Decimal
    quantity: Decimal = Decimal(1)
    unit: str | None = None
    unit_price: Decimal | None = None
    category: str | None = None
    needs_review: bool = False
    review_reasons: tuple[str, ...] = ()
    line_number: int = 0


@dataclass(frozen=True)
class ReceiptDiscount:
    """A coupon, instant rebate, or price reduction. ``amount`` is negative."""

    label: str
    amount: Decimal
    line_number: int = 0


@dataclass(frozen=True)
class SkippedLine:
    """A priced line that became neither an item nor a discount."""

    line_number: int
    text: str
    reason: str


@dataclass(frozen=True)
class ParsedReceipt:
    """Structured result of parsing one receipt's text."""

    items: tuple[ReceiptItem, ...]
    discounts: tuple[ReceiptDiscount, ...] = ()
    vendor: str | None = None
    date: str | None = None
    currency: str = "CAD"
    subtotal: Decimal | None = None
    tax_total: Decimal | None = None
    total: Decimal | None = None
    needs_review: bool = False
    review_reasons: tuple[str, ...] = ()
    mismatches: tuple[ValidationMismatch, ...] = ()
    skipped_lines: tuple[SkippedLine, ...] = ()
    voided_lines: tuple[int, ...] = ()
    raw_text: str = ""

    @property
    def items_total(self) -> Decimal:
        return sum((item.price_total for item in self.items), Decimal("0.00"))

    @property
    def discounts_total(self) -> Decimal:
        return sum((d.amount for d in self.discounts), Decimal("0.00"))
