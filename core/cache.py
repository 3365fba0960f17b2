"""
In-process TTL/LRU caches shared by the upstream clients and the engine.

Expiry is checked lazily on read; there is no background sweep.
"""

from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Hashable, Optional, TypeVar
import logging
import time

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """A stored value with the time it was stored and its own TTL."""
    data: T
    stored_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.stored_at > self.ttl


class TTLCache(Generic[T]):
    """
    Bounded key/value store with per-entry expiry and LRU eviction.

    - get() on an expired entry removes it and returns the default
    - get() and set() both mark the key as most recently used
    - when the size exceeds max_size the least recently used key is evicted

    Attributes:
        name: Label used in logs and diagnostics
        max_size: Maximum number of entries
        default_ttl: TTL in seconds used when set() gets none
    """

    def __init__(
        self,
        max_size: int,
        default_ttl: float,
        name: str = "cache",
        clock: Callable[[], float] = time.monotonic
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.name = name
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: "OrderedDict[Hashable, CacheEntry[T]]" = OrderedDict()

    def get(self, key: Hashable, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default

        if entry.is_expired(self._clock()):
            del self._entries[key]
            logger.debug(f"[{self.name}] expired key {key!r}")
            return default

        self._entries.move_to_end(key)
        return entry.data

    def set(self, key: Hashable, value: T, ttl: Optional[float] = None) -> None:
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(
            data=value,
            stored_at=self._clock(),
            ttl=self.default_ttl if ttl is None else ttl,
        )

        while len(self._entries) > self.max_size:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"[{self.name}] evicted LRU key {evicted!r}")

    def delete(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def live_size(self) -> int:
        """Number of entries that have not expired yet."""
        now = self._clock()
        return sum(1 for entry in self._entries.values() if not entry.is_expired(now))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not entry.is_expired(self._clock())


class CacheStore:
    """
    The three cache instances used by the service.

    - pages: raw pollution API pages keyed "country:page:limit"
    - descriptions: Wikipedia descriptions (or None) keyed by requested title
    - countries: progressive CountryCacheEntry per country code
    """

    def __init__(self, pages: TTLCache, descriptions: TTLCache, countries: TTLCache):
        self.pages = pages
        self.descriptions = descriptions
        self.countries = countries

    @classmethod
    def from_settings(cls, settings, clock: Callable[[], float] = time.monotonic) -> "CacheStore":
        return cls(
            pages=TTLCache(
                settings.POLLUTION_CACHE_SIZE, settings.POLLUTION_CACHE_TTL, "pollution", clock
            ),
            descriptions=TTLCache(
                settings.WIKIPEDIA_CACHE_SIZE, settings.WIKIPEDIA_CACHE_TTL, "wikipedia", clock
            ),
            countries=TTLCache(
                settings.COUNTRY_CACHE_SIZE, settings.COUNTRY_CACHE_TTL, "country", clock
            ),
        )

    def stats(self) -> Dict[str, int]:
        pollution = self.pages.live_size()
        wiki = self.descriptions.live_size()
        country = self.countries.live_size()
        return {
            "totalKeys": pollution + wiki + country,
            "pollutionKeys": pollution,
            "wikiKeys": wiki,
            "countryKeys": country,
        }

    def clear(self) -> None:
        self.pages.clear()
        self.descriptions.clear()
        self.countries.clear()
