"""
Heuristic classification of raw pollution record names into city names.

The pollution API mixes real city names with monitoring stations,
districts, placeholders and decorated variants ("Warsaw (Zone)",
"Lyon-East", "City of Madrid"). classify() decides per record whether the
name is usable as is, usable after cleanup, or should be discarded.

Pipeline:
    1. Shape checks on the raw name (length, letters, symbols, placeholders)
    2. Strip parenthetical, directional and "City of X" / "X City" wrappers
    3. Locale proper-casing of the stripped base
    4. Facility / administrative / sub-locality vocabulary check
    5. Digits check
    6. Accept (unchanged) or accept-cleaned (transformed)

The vocabulary lists below are configuration, not ground truth.
"""

from typing import List, Tuple
import re
import unicodedata

from ingestion.transformers.name_normalizer import fold, proper_case
from models.base import Verdict
from models.city import ClassificationVerdict, RawRecord

MIN_NAME_LENGTH = 2
MAX_NAME_LENGTH = 64

KEEP_CONFIDENCE = 0.9
CLEANED_CONFIDENCE = 0.7
REJECT_CONFIDENCE = 1.0

DIRECTIONS = [
    "north", "south", "east", "west",
    "northeast", "northwest", "southeast", "southwest",
]

FACILITY_WORDS = [
    "airport", "station", "terminal", "harbor", "harbour", "port", "metro",
    "railway", "bus", "power plant", "refinery", "mine", "industrial", "zone",
    "park", "bridge", "dam", "factory", "plant", "works", "depot", "yard",
    "stadium", "arena", "mall", "market", "plaza", "campus", "university",
    "college", "hospital", "clinic", "monitoring", "sensor",
]

ADMIN_WORDS = [
    "state", "province", "region", "county", "district", "prefecture",
    "municipality", "commune", "arrondissement", "borough", "canton",
    "parish", "division", "ward", "zone",
]

SUB_LOCALITY_WORDS = [
    "village", "hamlet", "suburb", "neighbourhood", "neighborhood", "sector",
    "block", "phase", "quarter", "colony", "township",
]

PLACEHOLDERS = {
    "unknown", "n/a", "na", "null", "none", "undefined", "test", "lorem",
    "sample", "example",
}

CITY_NOUNS = "city|capital|metropolis|municipality"

_BAD_SYMBOLS = re.compile(r"[@/_#|\\]")
_DIGITS = re.compile(r"\d")
_LETTER = re.compile(r"[^\W\d_]")
_WHITESPACE = re.compile(r"\s+")
_TRAILING_PAREN = re.compile(r"\s*\(([^)]+)\)\s*$")
_TRAILING_DIRECTION = re.compile(
    r"\s*[-–—]?\s*(?:" + "|".join(map(re.escape, DIRECTIONS)) + r")\b\.?$",
    re.IGNORECASE,
)
_CITY_OF = re.compile(rf"^(?:{CITY_NOUNS})\s+of\s+(.+)$", re.IGNORECASE)
_X_CITY = re.compile(rf"^(.+?)\s+(?:{CITY_NOUNS})$", re.IGNORECASE)


def _word_pattern(words: List[str]) -> re.Pattern:
    return re.compile(r"\b(?:" + "|".join(map(re.escape, words)) + r")\b", re.IGNORECASE)


_FACILITY_OR_ADMIN = _word_pattern(FACILITY_WORDS + ADMIN_WORDS + SUB_LOCALITY_WORDS)
_PLACEHOLDER_WORD = _word_pattern(sorted(PLACEHOLDERS) + ["area"])


def _clean(name: str) -> str:
    return _WHITESPACE.sub(" ", unicodedata.normalize("NFKC", name or "")).strip()


def _has_digits(s: str) -> bool:
    return bool(_DIGITS.search(s))


def _bad_shape(s: str) -> bool:
    if _BAD_SYMBOLS.search(s):
        return True
    letters = len(_LETTER.findall(s))
    return letters == 0 or letters / len(s) < 0.5


def looks_like_facility_or_admin(s: str) -> bool:
    """Station, plant, district, ward... or a numbered placeholder ("Area 51")."""
    if _PLACEHOLDER_WORD.search(s) and _has_digits(s):
        return True
    return bool(_FACILITY_OR_ADMIN.search(s))


def strip_qualifiers(name: str) -> Tuple[str, List[str]]:
    """
    Remove decorations around the place name.

    Returns:
        (base, tags) where tags lists the applied strips in order:
        "paren", "direction", "city-noun"
    """
    tags = []
    base = name

    if _TRAILING_PAREN.search(base):
        base = _TRAILING_PAREN.sub("", base).strip()
        tags.append("paren")

    stripped = _TRAILING_DIRECTION.sub("", base).strip()
    if stripped != base and stripped:
        base = stripped
        tags.append("direction")

    match = _CITY_OF.match(base) or _X_CITY.match(base)
    if match:
        base = match.group(1).strip()
        tags.append("city-noun")

    return base, tags


def _reject(reason: str, name: str = "") -> ClassificationVerdict:
    return ClassificationVerdict(
        verdict=Verdict.DISCARD,
        normalized_name=name,
        ascii_name=fold(name, remove_punctuation=True),
        reason=reason,
        confidence=REJECT_CONFIDENCE,
    )


def classify(record: RawRecord, locale=None) -> ClassificationVerdict:
    """
    Classify a raw record name for the given country locale.

    Never raises; every input yields a verdict.
    """
    original = _clean(str(record.name) if record.name is not None else "")

    if not original:
        return _reject("empty")
    if len(original) < MIN_NAME_LENGTH or len(original) > MAX_NAME_LENGTH:
        return _reject("length", original)
    if _bad_shape(original):
        return _reject("bad-shape", original)
    if original.lower() in PLACEHOLDERS:
        return _reject("placeholder", original)

    stripped, tags = strip_qualifiers(original)
    base = proper_case(stripped, locale)

    if len(base) < MIN_NAME_LENGTH or len(base) > MAX_NAME_LENGTH:
        return _reject("length", base)

    ascii_name = fold(base, remove_punctuation=True)

    if looks_like_facility_or_admin(original):
        if looks_like_facility_or_admin(base) or _has_digits(base) or _bad_shape(base):
            return _reject("facility/admin", base)
        return ClassificationVerdict(
            verdict=Verdict.ACCEPT_CLEANED,
            normalized_name=base,
            ascii_name=ascii_name,
            reason=f"salvaged:{','.join(tags) or 'qualifier'}",
            confidence=CLEANED_CONFIDENCE,
        )

    if _has_digits(base):
        return _reject("digits", base)

    if base == original:
        return ClassificationVerdict(
            verdict=Verdict.ACCEPT,
            normalized_name=base,
            ascii_name=ascii_name,
            reason="heuristic",
            confidence=KEEP_CONFIDENCE,
        )

    return ClassificationVerdict(
        verdict=Verdict.ACCEPT_CLEANED,
        normalized_name=base,
        ascii_name=ascii_name,
        reason=f"normalized:{','.join(tags) or 'case'}",
        confidence=CLEANED_CONFIDENCE,
    )
