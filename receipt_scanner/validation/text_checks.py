"""Sanity checks on raw OCR text before parsing.

Flags photos that are too blurry, cut off, contain several receipts,
or come from restaurants and gas stations, and guesses the receipt
language. The issues are diagnostic: they never stop a scan, but their
suggestions are used as guidance when parsing finds nothing.
"""

import re
from dataclasses import dataclass, field

from receipt_scanner.parsing.money import PRICE_PATTERN
from receipt_scanner.utils.logger import get_logger

logger = get_logger(__name__)

MIN_TEXT_LENGTH = 20

_PHONE = re.compile(r"\d{3}[-\s]\d{3}[-\s]\d{4}")
_HEADER_WORDS = ("store", "market", "receipt", "marché", "magasin", "entrepôt")
_FOOTER_WORDS = ("total", "thank", "balance", "change", "merci", "monnaie")
_STORE_NAMES = re.compile(
    r"\b(walmart|costco|metro|iga|loblaws|sobeys|provigo|maxi|whole foods)\b", re.I
)
_TOTAL_WORD = re.compile(r"\btotal\b", re.I)
_RESTAURANT = re.compile(
    r"\b(server|serveur|table|tip|gratuity|pourboire|party)\b", re.I
)
_GAS = re.compile(r"\b(gallon|gal|pump|pompe|fuel|diesel|octane|essence)\b", re.I)

_FRENCH_WORDS = (
    "épicerie",
    "épicier",
    "marché",
    "prix",
    "sous-total",
    "sous total",
    "tps",
    "tvq",
    "merci",
    "bonjour",
    "montant",
)
_ENGLISH_WORDS = (
    "grocery",
    "store",
    "market",
    "price",
    "subtotal",
    "tax",
    "total",
    "thank",
    "change",
    "amount",
)


@dataclass
class TextIssue:
    """A problem detected in receipt text."""

    code: str
    severity: str
    message: str
    suggestion: str


@dataclass
class TextCheckReport:
    """All issues found in a receipt's text plus its detected language."""

    issues: list[TextIssue] = field(default_factory=list)
    language: str = "eng"

    @property
    def has_errors(self) -> bool:
        return any(issue.severity == "error" for issue in self.issues)

    def guidance(self) -> str | None:
        """Combined suggestions of error-level issues, if any."""
        suggestions = [i.suggestion for i in self.issues if i.severity == "error"]
        return " ".join(dict.fromkeys(suggestions)) or None


def detect_language(text: str) -> str:
    """Guess whether receipt text is French (``fra``) or English (``eng``)."""
    lower = text.lower()
    french = sum(1 for word in _FRENCH_WORDS if word in lower)
    english = sum(1 for word in _ENGLISH_WORDS if word in lower)
    if french > english and french > 2:
        return "fra"
    return "eng"


def check_receipt_text(text: str) -> TextCheckReport:
    """Run every text check on OCR output.

    Args:
        text: Raw OCR text of one receipt.

    Returns:
        Report listing the detected issues and language.
    """
    issues: list[TextIssue] = []
    lower = text.lower()

    if len(text.strip()) < MIN_TEXT_LENGTH:
        issues.append(
            TextIssue(
                "LOW_QUALITY",
                "error",
                "Image is too blurry or unclear",
                "Retake the photo with better lighting and make sure the "
                "receipt is in focus.",
            )
        )

    has_header = any(w in lower for w in _HEADER_WORDS) or bool(_PHONE.search(text))
    has_footer = any(w in lower for w in _FOOTER_WORDS)
    if not has_header and not has_footer:
        issues.append(
            TextIssue(
                "PARTIAL_RECEIPT",
                "warning",
                "Receipt appears incomplete",
                "Make sure the entire receipt is visible, including top and bottom.",
            )
        )

    if len(PRICE_PATTERN.findall(text)) < 2:
        issues.append(
            TextIssue(
                "NO_PRICES",
                "error",
                "Couldn't find prices in the receipt",
                "Check image quality and make sure the price column is visible.",
            )
        )

    stores = {m.lower() for m in _STORE_NAMES.findall(text)}
    if len(stores) > 1 or len(_TOTAL_WORD.findall(text)) > 2:
        issues.append(
            TextIssue(
                "MULTIPLE_RECEIPTS",
                "warning",
                "Multiple receipts detected in image",
                "Photograph one receipt at a time.",
            )
        )

    if _RESTAURANT.search(text):
        issues.append(
            TextIssue(
                "NON_GROCERY",
                "error",
                "This appears to be a restaurant receipt",
                "Only grocery receipts are supported; restaurant bills are not.",
            )
        )
    elif _GAS.search(text):
        issues.append(
            TextIssue(
                "NON_GROCERY",
                "error",
                "This appears to be a gas station receipt",
                "Only grocery receipts are supported; gas station receipts are not.",
            )
        )

    language = detect_language(text)
    for issue in issues:
        logger.info("Receipt text issue %s: %s", issue.code, issue.message)
    return TextCheckReport(issues=issues, language=language)
