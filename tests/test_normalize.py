"""
Tests for text normalization.
"""

from atelier_bot.core.orders.normalize import normalize_text


class TestNormalizeText:
    def test_folds_case_and_romanian_diacritics(self):
        assert normalize_text("Roșii ȘI Țesături Încă") == "rosii si tesaturi inca"

    def test_cedilla_and_comma_forms_are_equal(self):
        assert normalize_text("roşu") == normalize_text("roșu") == "rosu"
        assert normalize_text("ţesut") == normalize_text("țesut") == "tesut"

    def test_none_and_non_strings(self):
        assert normalize_text(None) == ""
        assert normalize_text(40) == "40"

    def test_idempotent(self):
        once = normalize_text("Mânecă Albastră")
        assert normalize_text(once) == once

