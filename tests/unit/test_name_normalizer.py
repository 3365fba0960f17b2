"""
Unit tests for name folding and locale casing
"""

import pytest
from ingestion.transformers.name_normalizer import (
    DEFAULT_RULES,
    LOCALE_RULES,
    fold,
    get_locale_rules,
    proper_case,
)
from models.base import SupportedCountry


class TestFold:
    """Test ASCII folding"""

    @pytest.mark.parametrize("name,expected", [
        ("Białystok", "Bialystok"),
        ("München", "Munchen"),
        ("Łódź", "Lodz"),
        ("Gießen", "Giessen"),
        ("Málaga", "Malaga"),
        ("Saint-Étienne", "Saint-Etienne"),
    ])
    def test_strips_diacritics(self, name, expected):
        assert fold(name) == expected

    def test_none_folds_to_empty(self):
        assert fold(None) == ""

    def test_collapses_whitespace(self):
        assert fold("  Nowy   Sącz ") == "Nowy Sacz"

    def test_remove_punctuation_and_lower(self):
        assert fold("Saint-Étienne (Loire)!", remove_punctuation=True, lower=True) == "saint-etienne loire"

    def test_output_is_ascii(self):
        assert fold("Zürich Ωmega").isascii()


class TestProperCase:
    """Test display casing"""

    def test_keeps_diacritics(self):
        assert proper_case("KRAKÓW", "PL") == "Kraków"

    def test_hyphenated_parts_are_capitalized(self):
        assert proper_case("  bielsko-biała ", "PL") == "Bielsko-Biała"

    def test_german_function_words(self):
        assert proper_case("frankfurt am main", "DE") == "Frankfurt am Main"
        assert proper_case("FRANKFURT AN DER ODER", "DE") == "Frankfurt an der Oder"

    def test_french_function_words_inside_hyphenated_name(self):
        assert proper_case("aix-en-provence", "FR") == "Aix-en-Provence"

    def test_first_word_keeps_capital(self):
        assert proper_case("la coruña", "ES") == "La Coruña"

    def test_function_words_ignored_without_locale(self):
        assert proper_case("frankfurt am main") == "Frankfurt Am Main"

    def test_apostrophe_starts_a_word(self):
        assert proper_case("villeneuve-d'ascq", "FR") == "Villeneuve-D'Ascq"

    @pytest.mark.parametrize("value", ["", None])
    def test_empty_input(self, value):
        assert proper_case(value, "PL") == ""

    def test_accepts_enum_locale(self):
        assert proper_case("frankfurt am main", SupportedCountry.DE) == "Frankfurt am Main"


class TestLocaleRules:
    """Test locale lookup"""

    def test_lookup_is_case_insensitive(self):
        assert get_locale_rules("de") is LOCALE_RULES["DE"]

    def test_unknown_locale_uses_defaults(self):
        assert get_locale_rules("IT") is DEFAULT_RULES
        assert get_locale_rules(None) is DEFAULT_RULES

    def test_polish_has_no_function_words(self):
        assert not LOCALE_RULES["PL"].function_words
