"""Locale-aware money parsing for receipt text.

Canadian receipts mix ``12.99`` and ``12,99``; thousands may be grouped
with the other character (``1,234.56`` or ``1.234,56``). The decimal
separator is always the last ``.`` or ``,`` followed by exactly two
digits.
"""

import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from receipt_scanner.errors import PriceParseError

CENTS = Decimal("0.01")

_UNITS = r"(?i:kg|lb|lbs|g|ml|l)"

PRICE_PATTERN = re.compile(
    r"(?<![\d.,])(?P<lead>-)?\$?\s?"
    r"(?P<amount>(?:\d{1,3}(?:[.,]\d{3})+|\d+)[.,]\d{2})"
    r"(?!\d|[.,]\d)(?!\s?" + _UNITS + r"\b)"
    r"(?P<trail>-)?"
)

_DECIMAL_FORM = re.compile(r"^(?P<int>\d[\d.,]*?|)(?P<sep>[.,])(?P<frac>\d{2})$")
_GROUPED_INT = r"^\d{{1,3}}(?:{sep}\d{{3}})+$"
_THOUSANDS_ONLY = re.compile(r"^\d{1,3}(?P<sep>[.,])\d{3}(?:(?P=sep)\d{3})*$")


@dataclass(frozen=True)
class PriceMatch:
    """A price found in a line of text."""

    start: int
    end: int
    amount: Decimal
    negative: bool

    @property
    def signed(self) -> Decimal:
        return -self.amount if self.negative else self.amount


def _to_cents(value: str) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def normalize_money(raw: str) -> Decimal:
    """Parse a price string into a Decimal rounded to cents.

    A leading or trailing ``-`` makes the value negative. Currency
    symbols, the ``CAD`` code and spaces are ignored.

    Args:
        raw: Price text, e.g. ``"12,99"``, ``"$1,234.56"`` or ``"3,80-"``.

    Returns:
        The amount as a ``Decimal`` with two decimal places.

    Raises:
        PriceParseError: If the text is not a well-formed amount.
    """
    text = raw.strip().replace("$", "").replace(" ", "")
    text = re.sub(r"(?i)CAD", "", text)
    negative = False
    if text.startswith("-"):
        negative, text = True, text[1:]
    elif text.endswith("-"):
        negative, text = True, text[:-1]
    if text.startswith("+"):
        text = text[1:]

    match = _DECIMAL_FORM.match(text)
    if match:
        integer, sep, frac = match.group("int"), match.group("sep"), match.group("frac")
        integer = integer or "0"
        if not integer.isdigit():
            group_sep = "," if sep == "." else "."
            if not re.match(_GROUPED_INT.format(sep=re.escape(group_sep)), integer):
                raise PriceParseError(f"Malformed amount: {raw!r}")
            integer = integer.replace(group_sep, "")
        value = _to_cents(f"{integer}.{frac}")
    elif _THOUSANDS_ONLY.match(text):
        value = _to_cents(re.sub(r"[.,]", "", text))
    elif text.isdigit():
        value = _to_cents(text)
    else:
        raise PriceParseError(f"Malformed amount: {raw!r}")

    return -value if negative else value


def find_prices(line: str) -> list[PriceMatch]:
    """Find every price-shaped substring in a line, left to right.

    Args:
        line: One line of receipt text.

    Returns:
        Matches with parsed amounts.

    Raises:
        PriceParseError: If a price-shaped substring has malformed
            digit grouping, e.g. ``1,234,56``.
    """
    matches = []
    for m in PRICE_PATTERN.finditer(line):
        amount = normalize_money(m.group("amount"))
        matches.append(
            PriceMatch(
                start=m.start(),
                end=m.end(),
                amount=amount,
                negative=bool(m.group("lead") or m.group("trail")),
            )
        )
    return matches
