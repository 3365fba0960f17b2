# ============================================================================
# File: ingestion/aggregator.py
# Description: Progressive per-country aggregation of polluted cities
# ============================================================================
"""
City Aggregator - builds the ranked, paginated city list for a country.

This module provides the orchestration between the pollution API, the
classifier and Wikipedia:
- Serves pages from the progressive country cache when it holds enough
- Otherwise pulls the next unfetched pollution pages, one at a time
- Classifies and de-duplicates records, validates names in batches
- Commits the country cache after every page (no rollback on failure,
  a retried request resumes from last_page_fetched + 1)

The per-page state transition is the pure function apply_page(), kept
apart from the network-calling loop in CityAggregator.
"""

from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Set
import asyncio
import logging

from core.cache import CacheStore
from core.config import settings
from core.exceptions import InvalidInputError
from ingestion.extractors.pollution_client import PollutionAPIClient
from ingestion.extractors.wikipedia_client import WikipediaClient
from ingestion.transformers.classifier import classify
from models.base import SupportedCountry
from models.city import CountryCacheEntry, EnrichedEntity, RawRecord, dedup_key
from schemas.pollution import PageParsed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Candidate:
    """An accepted, not yet validated city from one pollution page"""
    name: str
    value: float
    title: str
    key: str


@dataclass(frozen=True)
class RankedPage:
    entities: List[EnrichedEntity]
    has_more: bool
    page: int
    limit: int


def lookup_title(name: str) -> str:
    """Wikipedia title for a display name; two-word names become "Word_Word"."""
    parts = name.split()
    if len(parts) != 2:
        return name
    return "_".join(part[:1].upper() + part[1:].lower() for part in parts)


def build_candidates(
    records: Iterable[RawRecord],
    country: str,
    known_keys: Set[str]
) -> List[Candidate]:
    """Classify records, keeping accepted names not already known for the country."""
    seen = set(known_keys)
    candidates = []

    for record in records:
        if record.value is None:
            continue

        verdict = classify(record, country)
        if not verdict.is_accepted:
            logger.debug(f"Discarded {record.name!r}: {verdict.reason}")
            continue

        key = dedup_key(verdict.normalized_name, country)
        if key in seen:
            continue
        seen.add(key)

        candidates.append(Candidate(
            name=verdict.normalized_name,
            value=record.value,
            title=lookup_title(verdict.normalized_name),
            key=key,
        ))

    return candidates


def apply_page(
    entry: CountryCacheEntry,
    page: PageParsed,
    page_number: int,
    candidates: List[Candidate],
    descriptions: Dict[str, Optional[str]]
) -> CountryCacheEntry:
    """
    Fold one processed pollution page into the country entry.

    Only candidates with a non-empty description become entities.
    last_page_fetched never decreases nor passes total_pages, and
    is_complete never goes back to False.
    """
    total_pages = entry.total_pages if entry.total_pages is not None else page.total_pages
    last_page = min(max(entry.last_page_fetched, page_number), total_pages)

    new_entities = []
    for candidate in candidates:
        description = (descriptions.get(candidate.title) or "").strip()
        if description:
            new_entities.append(EnrichedEntity(
                country=entry.country,
                name=candidate.name,
                value=candidate.value,
                description=description,
            ))

    return entry.with_entities(
        new_entities,
        last_page_fetched=last_page,
        total_pages=total_pages,
        is_complete=entry.is_complete or page.is_last or page_number >= total_pages,
    )


class CityAggregator:
    """
    Ranked, paginated city lists per country, built progressively.

    Responsibilities:
    - Fetch only as many pollution pages as a request needs
    - Keep the country cache consistent (unique keys, monotonic progress)
    - Serialize accumulation per country
    """

    def __init__(
        self,
        pollution_client: PollutionAPIClient,
        wikipedia_client: WikipediaClient,
        caches: CacheStore,
        page_size: Optional[int] = None,
        max_limit: Optional[int] = None
    ):
        self.pollution = pollution_client
        self.wikipedia = wikipedia_client
        self.caches = caches
        self.page_size = page_size or settings.POLLUTION_PAGE_SIZE
        self.max_limit = max_limit or settings.MAX_CITY_LIMIT
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, country: str) -> asyncio.Lock:
        if country not in self._locks:
            self._locks[country] = asyncio.Lock()
        return self._locks[country]

    async def get_ranked(self, country, limit: int = 10, page: int = 1) -> RankedPage:
        """
        Return one page of the most polluted cities of a country.

        Args:
            country: Country code or SupportedCountry
            limit: Page size, clamped to 1..max_limit
            page: 1-based page number

        Raises:
            InvalidInputError: Unsupported country or page < 1
            PollutionAPIError: Unrecoverable pollution API failure
        """
        code = SupportedCountry.parse(getattr(country, "value", country)).value
        if page < 1:
            raise InvalidInputError(
                "Page must be 1 or greater",
                error_code="invalid-page",
                context={"page": page}
            )

        want = max(settings.MIN_CITY_LIMIT, min(limit, self.max_limit))
        offset = (page - 1) * want

        async with self._lock_for(code):
            entry = await self._accumulate(code, offset + want)

        ranked = entry.ranked()
        window = ranked[offset:offset + want]
        has_more = offset + want < len(ranked)

        logger.info(
            f"Returning page {page} for {code}: {len(window)} cities "
            f"({offset}-{offset + len(window)} of {len(ranked)} total)"
        )
        return RankedPage(entities=window, has_more=has_more, page=page, limit=want)

    async def get_top_n(self, country, limit: int = 10) -> List[EnrichedEntity]:
        """Legacy form: the first page only."""
        result = await self.get_ranked(country, limit, 1)
        return result.entities

    async def _accumulate(self, country: str, target: int) -> CountryCacheEntry:
        entry: Optional[CountryCacheEntry] = self.caches.countries.get(country)

        if entry is not None and (len(entry.entities) >= target or entry.is_complete):
            logger.info(f"Cache hit: {len(entry.entities)} cached cities for {country}")
            return entry

        if entry is None:
            logger.info(f"Cache miss: fetching fresh data for {country} ({target} cities needed)")
            entry = CountryCacheEntry(country=country)
        else:
            logger.info(
                f"Partial cache hit: have {len(entry.entities)}, "
                f"need {target - len(entry.entities)} more cities for {country}"
            )

        while len(entry.entities) < target and not entry.is_complete:
            page_number = entry.last_page_fetched + 1
            if entry.total_pages is not None and page_number > entry.total_pages:
                entry = replace(entry, is_complete=True)
                self.caches.countries.set(country, entry)
                break

            result = await self.pollution.fetch_country_page(country, page_number, self.page_size)
            candidates = build_candidates(result.records, country, entry.keys())

            descriptions: Dict[str, Optional[str]] = {}
            if candidates:
                descriptions = await self.wikipedia.get_summaries(
                    [c.title for c in candidates], country
                )

            entry = apply_page(entry, result, page_number, candidates, descriptions)
            self.caches.countries.set(country, entry)

            logger.info(
                f"Processed page {page_number}/{entry.total_pages} for {country}: "
                f"{len(candidates)} candidates, {len(entry.entities)} cities so far"
            )

        if entry.is_complete:
            logger.info(f"No more pages for {country}; complete with {len(entry.entities)} cities")
        return entry

    def cache_stats(self) -> Dict[str, int]:
        return self.caches.stats()
