"""Shelf-life rules and category keywords for grocery items.

Names are matched in French and English. Specific rules are ordered
from shortest to longest shelf life so that, for example, ground beef
hits the two-day ground-meat rule before the generic fresh-meat rule.
"""

import re
from dataclasses import dataclass

# Days used for non-perishables; far enough out to never trigger alerts.
NEVER_EXPIRES = 9999


@dataclass(frozen=True)
class ShelfLifeRule:
    """A name pattern with its shelf life and category."""

    pattern: re.Pattern
    days: int
    label: str
    category: str


def _rule(pattern: str, days: int, label: str, category: str) -> ShelfLifeRule:
    return ShelfLifeRule(re.compile(pattern, re.I), days, label, category)


SHELF_LIFE_RULES: list[ShelfLifeRule] = [
    # meat
    _rule(
        r"\b(?:poulet|chicken|poultry|volaille|dinde|turkey)\b", 2, "poultry", "meat"
    ),
    _rule(r"\b(?:ground|hach[eé]e?s?)\b", 2, "ground-meat", "meat"),
    _rule(r"\b(?:jambon|ham|deli|charcuterie)\b", 5, "deli-ham", "meat"),
    _rule(r"\b(?:boeuf|bœuf|beef|steak|porc|pork)\b", 3, "fresh-meat", "meat"),
    # dairy
    _rule(r"\b(?:yogourts?|yogurts?|yog)\b", 10, "yogurt", "dairy"),
    _rule(r"\bbabybel\b", 25, "babybel", "dairy"),
    _rule(r"\b(?:œufs|oeufs|eggs?)\b", 28, "eggs", "dairy"),
    _rule(r"\b(?:lait|milk)\b", 7, "milk", "dairy"),
    _rule(r"\b(?:fromages?|cheese)\b", 14, "cheese", "dairy"),
    _rule(r"\b(?:beurre|butter)\b", 30, "butter", "dairy"),
    # produce
    _rule(
        r"\b(?:cerises|cherr\w*|fraises|strawberr\w*|berries|baies"
        r"|bleuets|framboises)\b",
        4,
        "berries",
        "produce",
    ),
    _rule(r"\bbanan\w*", 5, "bananas", "produce"),
    _rule(r"\b(?:brocoli|broccoli)\b", 5, "broccoli", "produce"),
    _rule(r"\b(?:tomates?|tomatoes?)\b", 5, "tomatoes", "produce"),
    _rule(
        r"\b(?:salade|laitue|lettuce|épinards|epinards|spinach)\b",
        5,
        "leafy-greens",
        "produce",
    ),
    _rule(r"\b(?:avocats?|avocados?)\b", 4, "avocado", "produce"),
    _rule(r"\b(?:pommes?|apples?)\b", 14, "apples", "produce"),
    _rule(
        r"\b(?:carott\w*|carrots?|oranges?|oignons?|onions?)\b",
        10,
        "hardy-produce",
        "produce",
    ),
    # pantry
    _rule(r"\b(?:pain|bread|baguette)\b", 5, "bread", "pantry"),
    _rule(r"\b(?:thon|tuna|conserves?|canned)\b", 365, "canned", "pantry"),
    _rule(
        r"\b(?:pâtes|pates|pasta|riz|rice|céréales|cereales|cereal)\b",
        365,
        "dry-goods",
        "pantry",
    ),
    # frozen
    _rule(r"\b(?:frozen|congel[eé]e?s?|ice cream|glace)\b", 90, "frozen", "frozen"),
    # household
    _rule(
        r"\b(?:gain|tide|d[eé]tergent|detergent|nettoyant|cleaner|savon|soap)\b",
        NEVER_EXPIRES,
        "household",
        "household",
    ),
    _rule(
        r"\b(?:essuie\w*|papier|towels?|tissues?|mouchoirs)\b",
        NEVER_EXPIRES,
        "paper-goods",
        "household",
    ),
]

# Ordered; the first category with a keyword prefix in the name wins.
CATEGORY_KEYWORDS: dict[str, list[str]] = {
    "produce": [
        "cerise", "fraise", "banan", "pomme", "tomate", "brocoli", "avocat",
        "salade", "épinard", "epinard", "apple", "orange", "lettuce", "spinach",
        "carrot", "pepper", "poivron", "cucumber", "concombre", "berries",
        "strawberr", "cherr", "fruit", "légume", "legume",
    ],
    "dairy": [
        "yogourt", "yogurt", "yog", "babybel", "fromage", "lait", "œuf", "oeuf",
        "beurre", "milk", "cheese", "butter", "cream", "crème", "creme", "egg",
    ],
    "meat": [
        "poulet", "boeuf", "bœuf", "porc", "jambon", "cuit", "chicken", "beef",
        "pork", "ham", "turkey", "bacon", "sausage", "saucisse", "ground", "steak",
    ],
    "pantry": [
        "thon", "rio mare", "riomare", "haricot", "pâtes", "pates", "riz",
        "huile", "céréale", "cereale", "tuna", "beans", "pasta", "rice", "oil",
        "cereal", "bread", "pain", "flour", "farine", "sugar", "sucre", "sauce",
        "conserve",
    ],
    "household": [
        "gain", "détergent", "detergent", "essuie", "papier", "soap", "savon",
        "cleaner", "towel", "tissue", "trash", "bag", "sac", "nettoyant",
    ],
    "frozen": ["frozen", "congelé", "congele", "ice cream", "glace", "pizza"],
    "snacks": [
        "chips", "cookie", "biscuit", "candy", "bonbon", "chocolate", "chocolat",
        "snack", "grignotine", "croustille",
    ],
}

CATEGORY_DEFAULT_SHELF_LIFE: dict[str, int] = {
    "produce": 7,
    "dairy": 10,
    "meat": 3,
    "frozen": 90,
    "pantry": 365,
    "snacks": 60,
    "household": NEVER_EXPIRES,
}

# Keywords that make a name look like a real grocery word.
RECOGNIZED_CATEGORIES = ("produce", "dairy", "meat", "pantry")


def compile_keywords(keywords: list[str]) -> re.Pattern:
    """Build a word-prefix pattern from a keyword list."""
    ordered = sorted(keywords, key=len, reverse=True)
    alternatives = "|".join(re.escape(k) for k in ordered)
    return re.compile(rf"\b(?:{alternatives})", re.I)


CATEGORY_PATTERNS: list[tuple[str, re.Pattern]] = [
    (category, compile_keywords(words)) for category, words in CATEGORY_KEYWORDS.items()
]

RECOGNIZED_WORDS = compile_keywords(
    [w for c in RECOGNIZED_CATEGORIES for w in CATEGORY_KEYWORDS[c]]
)
