"""Tests for language normalisation and whitelist derivation."""

import pytest

from docsheet.errors import ConfigurationError
from docsheet.ocr.languages import (
    ENG_CHARS,
    HINDI_CHARS,
    SYMBOLS,
    derive_whitelist,
    language_hints,
    normalize_languages,
)


class TestNormalizeLanguages:
    """Tests for normalize_languages."""

    def test_hinglish_expands(self) -> None:
        assert normalize_languages(["hinglish"]) == ["eng", "hin"]

    def test_deduplicates_in_order(self) -> None:
        assert normalize_languages(["hin", "eng", "hinglish"]) == ["hin", "eng"]

    def test_case_and_whitespace(self) -> None:
        assert normalize_languages([" ENG "]) == ["eng"]

    @pytest.mark.parametrize("languages", [[], [""], ["  "]])
    def test_empty_rejected(self, languages: list[str]) -> None:
        with pytest.raises(ConfigurationError):
            normalize_languages(languages)


class TestDeriveWhitelist:
    """Tests for derive_whitelist."""

    def test_english(self) -> None:
        assert derive_whitelist(["eng"]) == ENG_CHARS + SYMBOLS

    def test_hindi(self) -> None:
        assert derive_whitelist(["hin"]) == HINDI_CHARS + SYMBOLS

    def test_fixed_order_regardless_of_selection_order(self) -> None:
        expected = ENG_CHARS + HINDI_CHARS + SYMBOLS
        assert derive_whitelist(["hin", "eng"]) == expected
        assert derive_whitelist(["hinglish"]) == expected

    def test_unknown_language_gets_symbols_only(self) -> None:
        assert derive_whitelist(["fra"]) == SYMBOLS


class TestLanguageHints:
    """Tests for language_hints."""

    def test_maps_known_codes(self) -> None:
        assert language_hints(["hinglish"]) == ["en", "hi"]

    def test_skips_unknown_codes(self) -> None:
        assert language_hints(["eng", "fra"]) == ["en"]
