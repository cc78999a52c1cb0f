"""Label-anchored extraction of receipt totals, vendor and date.

Subtotal, tax and total are located independently: each label takes the
nearest price after it on the same line, or a bare price on the next
line when the register printed the amount below its label.
"""

import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from receipt_scanner.errors import PriceParseError
from receipt_scanner.utils.logger import get_logger

from .money import PriceMatch, find_prices

logger = get_logger(__name__)

# Labels open the line, after optional register codes or decorations.
LABEL_START = r"^[\s*=#>:\-]*(?:[#/]?\d{4,}\s+)?"

SUBTOTAL_LABEL = re.compile(
    LABEL_START + r"(?:SOUS[\s-]?TOTAL|SUB[\s-]?TOTAL|S/TOTAL)\b", re.I
)
TOTAL_TAX_LABEL = re.compile(
    LABEL_START + r"(?:TOTAL\s+(?:DES\s+)?TAXES?|TAXES?\s+TOTALES?)\b", re.I
)
TAX_LABEL = re.compile(
    LABEL_START + r"(?:TPS|TVQ|TVH|GST|HST|PST|QST|TAXES?)\b", re.I
)
TOTAL_LABEL = re.compile(LABEL_START + r"(?:GRAND\s+)?TOTAL\b", re.I)
SAVINGS_LABEL = re.compile(
    r"\b(?:[EÉ]CONOMIES?|SAVINGS|SAVED|RABAIS|ARTICLES|ITEMS)\b", re.I
)

# Words allowed between a summary or tender label and its amount.
SUMMARY_WORDS = frozenset(
    """
    TOTAL SOUS SUB SUBTOTAL GRAND TAX TAXE TAXES TOTALE TOTALES TPS TVQ TVH
    GST HST PST QST DUE DES DE LA DU PAYER ECONOMIES ÉCONOMIES ECONOMIE
    ÉCONOMIE SAVINGS SAVED YOU RABAIS ARTICLES ITEMS ITEM NUMBER OF SOLD
    VENDUS NOMBRE NB CARD CARTE CREDIT CRÉDIT DEBIT DÉBIT VISA MASTERCARD MC
    AMEX INTERAC CASH BACK COMPTANT MONNAIE CHANGE BALANCE SOLDE MEMBER
    MEMBRE NO NUM ID PAYMENT PAIEMENT TEND TENDER TENDERED REMIS RENDU
    AMOUNT MONTANT POINTS EARNED GAGNES GAGNÉS CUMULES CUMULÉS APPROVED
    APPROUVE APPROUVÉ APPROUVEE APPROUVÉE AUTHORIZATION AUTHORISATION
    AUTORISATION AUTH CODE REF TRANS TRANSACTION ACCOUNT ACCT COMPTE CHEQUE
    CHÈQUE CHEQUING FLASH CONTACTLESS SANS CONTACT TAP CHIP PUCE CAD USD ON
    SALE VENTE PURCHASE ACHAT
    """.split()
)

# (pattern, canonical banner)
_VENDOR_PATTERNS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"\bCOSTCO\b", re.I), "Costco"),
    (re.compile(r"\bSUPER\s*C\b", re.I), "Super C"),
    (re.compile(r"\bMETRO\b", re.I), "Metro"),
    (re.compile(r"\bIGA\b", re.I), "IGA"),
    (re.compile(r"\bMAXI\b", re.I), "Maxi"),
    (re.compile(r"\bPROVIGO\b", re.I), "Provigo"),
    (re.compile(r"\bLOBLAWS?\b", re.I), "Loblaws"),
    (re.compile(r"\bWAL[\s-]?MART\b", re.I), "Walmart"),
    (re.compile(r"\bSOBEYS\b", re.I), "Sobeys"),
    (re.compile(r"\bCARREFOUR\b", re.I), "Carrefour"),
    (re.compile(r"\bAVRIL\b", re.I), "Avril"),
    (re.compile(r"\bADONIS\b", re.I), "Adonis"),
]
_VENDOR_SEARCH_LINES = 8

_ISO_DATE = re.compile(r"(?<!\d)(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})(?!\d)")
_NUMERIC_DATE = re.compile(r"(?<!\d)(\d{1,2})[-/.](\d{1,2})[-/.](\d{4}|\d{2})(?!\d)")


@dataclass
class Totals:
    """Declared amounts found on a receipt and the lines they came from."""

    subtotal: Decimal | None = None
    tax_total: Decimal | None = None
    total: Decimal | None = None
    tax_lines: list[Decimal] = field(default_factory=list)
    consumed: set[int] = field(default_factory=set)


def label_tail_is_summary(line: str, label_end: int) -> bool:
    """Whether only summary vocabulary sits between a label and its amount.

    Keeps branded item names such as ``TOTAL CEREAL`` or ``CASH BACK CHIPS``
    from being read as totals or tenders.
    """
    tail = re.split(r"\d", line[label_end:], maxsplit=1)[0]
    words = re.findall(r"[^\W\d_]{2,}", tail)
    return all(word.upper() in SUMMARY_WORDS for word in words)


def _bare_price(line: str) -> PriceMatch | None:
    """Return the price if a line holds nothing but a price and flags."""
    try:
        prices = find_prices(line)
    except PriceParseError:
        return None
    if len(prices) != 1:
        return None
    rest = (line[: prices[0].start] + line[prices[0].end :]).strip()
    if re.fullmatch(r"[A-Z$*]{0,3}", rest, re.I):
        return prices[0]
    return None


def _amount_after(
    lines: list[str], index: int, label_end: int, consumed: set[int]
) -> Decimal | None:
    line = lines[index]
    try:
        prices = [p for p in find_prices(line) if p.start >= label_end]
    except PriceParseError as exc:
        logger.warning("Unreadable amount on summary line %r: %s", line, exc)
        prices = []
    if prices:
        return prices[0].signed
    if index + 1 < len(lines):
        bare = _bare_price(lines[index + 1])
        if bare is not None:
            consumed.add(index + 1)
            return bare.signed
    return None


def find_totals(lines: list[str], skip: set[int] | None = None) -> Totals:
    """Locate subtotal, tax and total amounts by their labels.

    Multiple tax lines (e.g. TPS and TVQ) are summed unless a "total
    tax" line is present, in which case that amount is used.

    Args:
        lines: Receipt lines.
        skip: Indices to ignore, such as voided lines.

    Returns:
        Declared totals and the indices of every summary line consumed.
    """
    skip = skip or set()
    totals = Totals()
    total_tax: Decimal | None = None

    for i, line in enumerate(lines):
        if i in skip or i in totals.consumed:
            continue

        m = SUBTOTAL_LABEL.search(line)
        if m:
            totals.consumed.add(i)
            amount = _amount_after(lines, i, m.end(), totals.consumed)
            if totals.subtotal is None and amount is not None:
                totals.subtotal = amount
            continue

        m = TOTAL_TAX_LABEL.search(line)
        if m:
            totals.consumed.add(i)
            amount = _amount_after(lines, i, m.end(), totals.consumed)
            if total_tax is None and amount is not None:
                total_tax = amount
            continue

        m = TAX_LABEL.search(line)
        if m:
            totals.consumed.add(i)
            amount = _amount_after(lines, i, m.end(), totals.consumed)
            if amount is not None:
                totals.tax_lines.append(amount)
            continue

        m = TOTAL_LABEL.search(line)
        if m and label_tail_is_summary(line, m.end()):
            totals.consumed.add(i)
            if SAVINGS_LABEL.search(line):
                continue
            amount = _amount_after(lines, i, m.end(), totals.consumed)
            if totals.total is None and amount is not None:
                totals.total = amount

    if total_tax is not None:
        totals.tax_total = total_tax
    elif totals.tax_lines:
        totals.tax_total = sum(totals.tax_lines, Decimal("0.00"))

    logger.debug(
        "Totals: subtotal=%s tax=%s total=%s",
        totals.subtotal,
        totals.tax_total,
        totals.total,
    )
    return totals


def detect_vendor(lines: list[str]) -> str | None:
    """Identify the store banner, preferring matches near the top."""
    for window in (lines[:_VENDOR_SEARCH_LINES], lines):
        for line in window:
            for pattern, name in _VENDOR_PATTERNS:
                if pattern.search(line):
                    return name
    return None


def _build_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def detect_date(text: str, day_first: bool = True) -> str | None:
    """Find the purchase date and return it as ``YYYY-MM-DD``.

    ISO-ordered dates win. For ``NN/NN/YYYY`` forms the order is taken
    from whichever field exceeds 12, falling back to ``day_first``; two
    digit years are read as 20YY.

    Args:
        text: Receipt text.
        day_first: Read ambiguous dates as day/month.

    Returns:
        ISO date string, or ``None`` if no valid date is present.
    """
    for m in _ISO_DATE.finditer(text):
        parsed = _build_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        if parsed:
            return parsed.isoformat()

    for m in _NUMERIC_DATE.finditer(text):
        first, second, year_text = int(m.group(1)), int(m.group(2)), m.group(3)
        year = int(year_text) + 2000 if len(year_text) == 2 else int(year_text)
        if first > 12:
            day, month = first, second
        elif second > 12:
            month, day = first, second
        elif day_first:
            day, month = first, second
        else:
            month, day = first, second
        parsed = _build_date(year, month, day)
        if parsed:
            return parsed.isoformat()

    return None
