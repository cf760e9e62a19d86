"""
Closed vocabulary recognised in customer messages.

Everything here is matched against normalize_text() output unless noted.
"""

import re
from enum import Enum


class ProductType(Enum):
    """Garment families the atelier produces."""
    SHIRTS = "tricouri"
    HOODIES = "hanorace"
    POLO = "polo"


# Canonical sizes in display order
SIZES = ["XS", "S", "M", "L", "XL", "XXL", "3XL"]

# Longest tokens first so "XXL" is not read as "XL"
SIZE_ALTERNATION = "3XL|XXL|XS|XL|S|M|L"

# Canonical palette
COLORS = ["Alb", "Negru", "Navy", "Gri", "Roșu", "Verde", "Albastru"]

# Normalized alias -> canonical color
COLOR_ALIASES = {
    "alb": "Alb", "albe": "Alb", "alba": "Alb", "albi": "Alb", "white": "Alb",
    "negru": "Negru", "negre": "Negru", "neagra": "Negru", "negri": "Negru", "black": "Negru",
    "navy": "Navy", "bleumarin": "Navy",
    "gri": "Gri", "gris": "Gri", "gray": "Gri", "grey": "Gri",
    "rosu": "Roșu", "rosie": "Roșu", "rosii": "Roșu", "rosi": "Roșu", "red": "Roșu",
    "verde": "Verde", "verzi": "Verde", "green": "Verde",
    "albastru": "Albastru", "albastra": "Albastru", "albastri": "Albastru",
    "albastre": "Albastru", "blue": "Albastru",
}

PRODUCT_PATTERNS = [
    (ProductType.SHIRTS, re.compile(r"\b(?:tricou\w*|t-?shirt\w*)")),
    (ProductType.HOODIES, re.compile(r"\b(?:hanorac\w*|hoodie\w*)")),
    (ProductType.POLO, re.compile(r"\bpolo\w*")),
]

# Words allowed between the quantity and the color: "30 de tricouri rosii"
PRODUCT_WORD = r"(?:tricou\w*|t-?shirt\w*|hanorac\w*|hoodie\w*|polo\w*)"

# Phrases that release the active variant
UNLOCK_PHRASES = ["schimb", "vreau altceva", "reset variant", "alta culoare"]

REST_WORD = r"(?:restul|rest)"

# Personalization
TECHNIQUES = {
    "broderie": "BRODERIE",
    "brodat": "BRODERIE",
    "brodate": "BRODERIE",
    "dtg": "DTG",
    "serigrafie": "SERIGRAFIE",
    "sublimare": "SUBLIMARE",
    "vinil": "VINIL",
}

ZONES = {
    "piept": "piept",
    "spate": "spate",
    "maneca": "mânecă",
    "maneci": "mânecă",
    "guler": "guler",
}

NO_PERSONALIZATION_PHRASES = [
    "fara personalizare",
    "fara logo",
    "fara imprimeu",
    "nu vreau personalizare",
]

PERSONALIZATION_KEYWORD = "personaliz"

YES_WORDS = {"da", "sigur", "yes"}
NO_WORDS = {"nu", "no"}


def alias_pattern(alias: str) -> re.Pattern:
    """Whole-word pattern for a color alias."""
    return re.compile(rf"\b{re.escape(alias)}\b")


COLOR_ALIAS_PATTERNS = {alias: alias_pattern(alias) for alias in COLOR_ALIASES}
