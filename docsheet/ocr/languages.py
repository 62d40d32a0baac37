"""Recognition language handling and character whitelist derivation."""

from docsheet.errors import ConfigurationError

ENG_CHARS = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
HINDI_CHARS = (
    "ँंःअआइईउऊऋएऐओऔकखगघङचछजझञटठडढणतथदधनपफबभमयरलवशषसह़ािीुूृेैोौ्०१२३४५६७८९"
)
SYMBOLS = ".,-/:()# "

# Fixed concatenation order for the whitelist.
_SCRIPT_CHARS: tuple[tuple[str, str], ...] = (
    ("eng", ENG_CHARS),
    ("hin", HINDI_CHARS),
)

_ALIASES: dict[str, tuple[str, ...]] = {
    "hinglish": ("eng", "hin"),
}

# Tesseract codes to BCP-47 hints for services that want them.
_BCP47: dict[str, str] = {
    "eng": "en",
    "hin": "hi",
}


def normalize_languages(languages: list[str]) -> list[str]:
    """Expand aliases and drop duplicates while keeping first-seen order.

    Raises:
        ConfigurationError: If no language remains.
    """
    result: list[str] = []
    for lang in languages:
        code = lang.strip().lower()
        if not code:
            continue
        for expanded in _ALIASES.get(code, (code,)):
            if expanded not in result:
                result.append(expanded)

    if not result:
        raise ConfigurationError("At least one language must be selected for OCR.")
    return result


def derive_whitelist(languages: list[str]) -> str:
    """Build the allowed-character string for a language set.

    The script characters of each selected language are concatenated in a
    fixed order (English, then Hindi), followed by the shared symbol set.
    """
    selected = set(normalize_languages(languages))
    chars = "".join(script for code, script in _SCRIPT_CHARS if code in selected)
    return chars + SYMBOLS


def language_hints(languages: list[str]) -> list[str]:
    """Translate language codes to BCP-47 hints, skipping unknown codes."""
    return [_BCP47[code] for code in normalize_languages(languages) if code in _BCP47]
