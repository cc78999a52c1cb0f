"""Categorization and expiry prediction for parsed receipt items."""

import re
from collections import Counter
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from receipt_scanner.parsing.models import ReceiptItem
from receipt_scanner.utils.config import CategorizationConfig
from receipt_scanner.utils.logger import get_logger

from .rules import (
    CATEGORY_DEFAULT_SHELF_LIFE,
    CATEGORY_PATTERNS,
    RECOGNIZED_WORDS,
    SHELF_LIFE_RULES,
    ShelfLifeRule,
)

logger = get_logger(__name__)

_SPECIAL_CHARS = re.compile(r"[^a-zA-Z0-9\s\-']")
_DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y")


@dataclass(frozen=True)
class CategorizedItem:
    """A receipt item with its category and predicted expiry."""

    item: ReceiptItem
    category: str
    shelf_life_days: int
    rule_label: str
    expires_on: date
    ocr_confidence: float

    @property
    def name(self) -> str:
        return self.item.name

    def to_record(self) -> dict[str, object]:
        """Flatten to the record stored by the inventory step."""
        return {
            "name": self.item.name,
            "raw_name": self.item.raw_name,
            "quantity": str(self.item.quantity),
            "unit": self.item.unit,
            "unit_price": (
                str(self.item.unit_price) if self.item.unit_price is not None else None
            ),
            "price": str(self.item.price_total),
            "category": self.category,
            "shelf_life_days": self.shelf_life_days,
            "rule": self.rule_label,
            "expires_on": self.expires_on.isoformat(),
            "ocr_confidence": round(self.ocr_confidence, 2),
            "needs_review": self.item.needs_review,
        }


def estimate_name_confidence(name: str) -> float:
    """Heuristic confidence that an item name was read correctly.

    Starts at 0.9 and penalizes very short names, punctuation noise,
    long digit runs, and shouting capitals; recognized grocery words
    earn a small bonus. The result is clamped to [0.1, 1.0].
    """
    confidence = 0.9
    if len(name) < 3:
        confidence -= 0.3

    special = len(_SPECIAL_CHARS.findall(name))
    if special > 2:
        confidence -= 0.1 * special

    if sum(ch.isdigit() for ch in name) > 3:
        confidence -= 0.1

    if re.search(r"[A-Z]{4,}", name):
        confidence -= 0.2

    if RECOGNIZED_WORDS.search(name):
        confidence += 0.05

    return max(0.1, min(1.0, confidence))


def parse_purchase_date(value: str | date | None) -> date | None:
    """Read a purchase date given as ISO or ``MM/DD/YYYY``; ``None`` if unreadable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value.strip(), fmt).date()
        except ValueError:
            continue
    return None


class ItemCategorizer:
    """Assigns categories and expiry dates to receipt items.

    Args:
        config: Default category and shelf life for unmatched items.
        today: Clock used when the purchase date is missing or unreadable.
    """

    def __init__(
        self,
        config: CategorizationConfig | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.config = config or CategorizationConfig()
        self.today = today

    def match_rule(self, name: str) -> ShelfLifeRule | None:
        """Return the first specific shelf-life rule matching a name."""
        for rule in SHELF_LIFE_RULES:
            if rule.pattern.search(name):
                return rule
        return None

    @staticmethod
    def match_category(name: str) -> str | None:
        """Return the first coarse category with a keyword in the name."""
        for category, pattern in CATEGORY_PATTERNS:
            if pattern.search(name):
                return category
        return None

    def categorize(
        self, item: ReceiptItem, purchase_date: str | date | None = None
    ) -> CategorizedItem:
        """Categorize one item and predict its expiry date.

        Args:
            item: Parsed receipt item.
            purchase_date: Receipt date; today is used when missing or
                unparsable.

        Returns:
            The categorized item.
        """
        name = item.name
        rule = self.match_rule(name)
        if rule is not None:
            category = item.category or rule.category
            days, label = rule.days, rule.label
        else:
            category = item.category or self.match_category(name)
            if category is not None:
                days = CATEGORY_DEFAULT_SHELF_LIFE.get(
                    category, self.config.default_shelf_life_days
                )
                label = category
            else:
                category = self.config.default_category
                days = self.config.default_shelf_life_days
                label = "default"

        start = parse_purchase_date(purchase_date)
        if start is None:
            if purchase_date:
                logger.warning(
                    "Unreadable purchase date %r, using today", purchase_date
                )
            start = self.today()

        logger.debug("%r -> %s (%s, %d days)", name, category, label, days)
        return CategorizedItem(
            item=item,
            category=category,
            shelf_life_days=days,
            rule_label=label,
            expires_on=start + timedelta(days=days),
            ocr_confidence=estimate_name_confidence(name),
        )

    def categorize_all(
        self, items: Iterable[ReceiptItem], purchase_date: str | date | None = None
    ) -> list[CategorizedItem]:
        """Categorize a batch of items sharing one purchase date."""
        results = [self.categorize(item, purchase_date) for item in items]
        counts = Counter(r.category for r in results)
        logger.info("Category distribution: %s", dict(counts))
        return results
