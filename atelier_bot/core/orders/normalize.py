"""
Diacritic-insensitive text normalization used by every matcher.
"""

import unicodedata

# Romanian letters that may survive NFD (cedilla forms, precomposed input)
_LETTER_MAP = str.maketrans({
    "ă": "a",
    "â": "a",
    "î": "i",
    "ș": "s",
    "ş": "s",
    "ț": "t",
    "ţ": "t",
})


def normalize_text(value) -> str:
    """
    Lowercase and strip diacritics.

    Accepts any value: None becomes "", non-strings are coerced with str().
    """
    if value is None:
        return ""
    if not isinstance(value, str):
        value = str(value)

    decomposed = unicodedata.normalize("NFD", value.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.translate(_LETTER_MAP)

