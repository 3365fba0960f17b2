"""
Locale-aware place name normalization.

Two pure functions:
- fold(): strip diacritics and compatibility forms down to plain ASCII
  ("Białystok" -> "Bialystok", "München" -> "Munchen"), used for dedup keys
  and Wikipedia lookups
- proper_case(): display casing that keeps diacritics and lowercases the
  locale's function words ("frankfurt am main" -> "Frankfurt am Main")

Neither function raises; malformed input yields a best-effort result.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet
import re
import unicodedata

from unidecode import unidecode


@dataclass(frozen=True)
class LocaleRules:
    """Casing rules for one supported country"""
    code: str
    function_words: FrozenSet[str] = frozenset()
    preserve_diacritics: bool = True


LOCALE_RULES: Dict[str, LocaleRules] = {
    "PL": LocaleRules("PL"),
    "DE": LocaleRules("DE", frozenset({"am", "an", "der", "im", "ob", "bei", "vor"})),
    "ES": LocaleRules("ES", frozenset({"de", "del", "la", "las", "los", "y"})),
    "FR": LocaleRules(
        "FR",
        frozenset({"de", "du", "des", "le", "la", "les", "sur", "sous", "en", "au", "aux", "et"}),
    ),
}

DEFAULT_RULES = LocaleRules("")

# Characters NFKD does not decompose into an ASCII base letter
PRE_MAP = {
    "ß": "ss", "ẞ": "SS",
    "Æ": "AE", "æ": "ae",
    "Ø": "O", "ø": "o",
    "Œ": "OE", "œ": "oe",
    "Ł": "L", "ł": "l",
    "Đ": "D", "đ": "d",
    "Ħ": "H", "ħ": "h",
    "İ": "I", "ı": "i",
    "ſ": "s", "ƒ": "f",
    "Þ": "Th", "þ": "th",
    "Ð": "D", "ð": "d",
}

_WHITESPACE = re.compile(r"\s+")
_NOT_WORDISH = re.compile(r"[^A-Za-z0-9\s-]")
# A letter at the start, or after a space, dash, apostrophe, slash, parenthesis or dot
_WORD_START = re.compile(r"(^|[\s\-‐-―'’/().])([^\W\d_])")
_WORD_SEPARATOR = re.compile(r"([ \-])")


def get_locale_rules(locale) -> LocaleRules:
    code = str(getattr(locale, "value", locale) or "").strip().upper()
    return LOCALE_RULES.get(code, DEFAULT_RULES)


def fold(name, remove_punctuation: bool = False, lower: bool = False) -> str:
    """
    ASCII-fold a name.

    Args:
        name: Any value; None folds to ""
        remove_punctuation: Keep only letters, digits, spaces and hyphens
        lower: Lowercase the result
    """
    if name is None:
        return ""

    s = "".join(PRE_MAP.get(ch, ch) for ch in str(name))
    s = unicodedata.normalize("NFKD", s)
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    # Anything still outside ASCII (other scripts, symbols) is transliterated
    s = unidecode(s)

    if remove_punctuation:
        s = _NOT_WORDISH.sub("", s)

    s = _WHITESPACE.sub(" ", s).strip()
    return s.lower() if lower else s


def proper_case(name, locale=None) -> str:
    """Capitalize each name part, keeping diacritics and locale function words."""
    if not name:
        return ""

    rules = get_locale_rules(locale)
    s = unicodedata.normalize("NFKC", str(name))
    s = _WHITESPACE.sub(" ", s).strip().lower()
    s = _WORD_START.sub(lambda m: m.group(1) + m.group(2).upper(), s)

    if rules.function_words:
        # separators sit at odd indexes; the first word keeps its capital
        parts = _WORD_SEPARATOR.split(s)
        s = "".join(
            part.lower() if index > 0 and part.lower() in rules.function_words else part
            for index, part in enumerate(parts)
        )

    if not rules.preserve_diacritics:
        s = fold(s)
    return s
