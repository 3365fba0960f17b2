from dataclasses import dataclass, field, replace
from typing import Iterable, List, Optional, Set
import time

from ingestion.transformers.name_normalizer import fold
from models.base import Verdict


def dedup_key(name: str, country: str) -> str:
    """ASCII-folded, lowercased, punctuation-free name joined with the country code"""
    return f"{fold(name, remove_punctuation=True, lower=True)}|{country}"


@dataclass(frozen=True)
class RawRecord:
    """One row of a pollution API page. value is None when unusable."""
    name: str
    value: Optional[float]


@dataclass(frozen=True)
class ClassificationVerdict:
    """
    Result of classifying a RawRecord.

    normalized_name is the locale proper-cased display name (empty when the
    record was discarded before cleanup), ascii_name its folded form.
    """
    verdict: Verdict
    normalized_name: str
    ascii_name: str
    reason: str
    confidence: float

    @property
    def is_accepted(self) -> bool:
        return self.verdict in (Verdict.ACCEPT, Verdict.ACCEPT_CLEANED)


@dataclass(frozen=True)
class EnrichedEntity:
    """A validated city with its pollution value and Wikipedia description"""
    country: str
    name: str
    value: float
    description: Optional[str]

    @property
    def dedup_key(self) -> str:
        return dedup_key(self.name, self.country)


@dataclass(frozen=True)
class CountryCacheEntry:
    """
    Progressive accumulation state for one country.

    Instances are never mutated; the engine stores a new entry after every
    processed page.
    """
    country: str
    entities: tuple = ()
    last_page_fetched: int = 0
    total_pages: Optional[int] = None
    is_complete: bool = False
    timestamp: float = field(default_factory=time.time)

    def keys(self) -> Set[str]:
        return {entity.dedup_key for entity in self.entities}

    def has_key(self, key: str) -> bool:
        return any(entity.dedup_key == key for entity in self.entities)

    def ranked(self) -> List[EnrichedEntity]:
        # sorted() is stable, so equal values keep discovery order
        return sorted(self.entities, key=lambda entity: entity.value, reverse=True)

    def with_entities(self, new_entities: Iterable[EnrichedEntity], **changes) -> "CountryCacheEntry":
        """Copy with new_entities appended (skipping known keys) and other fields replaced"""
        known = self.keys()
        merged = list(self.entities)
        for entity in new_entities:
            key = entity.dedup_key
            if key in known:
                continue
            known.add(key)
            merged.append(entity)
        return replace(self, entities=tuple(merged), timestamp=time.time(), **changes)
