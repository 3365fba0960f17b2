"""
Wikipedia client that validates candidate city names and returns descriptions.

This module provides batched, retried lookups against the action=query API:
- Titles are queried in chunks of at most max_titles, by a worker pool of
  max_concurrency, paced with a fixed delay between chunk requests
- Each chunk request retries transient failures with exponential backoff
- normalized/redirects chains are resolved before matching returned pages
- A category and intro-sentence heuristic decides whether a page is a city
- Disambiguation, missing and undecided titles get exactly one more pass,
  ASCII-folded (and suffixed with the country for disambiguations)

Every outcome, including None, is cached under the requested title.
"""

import httpx
import asyncio
import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set, Union
from core.cache import CacheStore
from core.config import settings
from core.exceptions import InvalidInputError, ValidationUnavailable
from ingestion.transformers.name_normalizer import fold
from models.base import SupportedCountry
from schemas.wikipedia import QueryResponse, WikiPage
from pydantic import ValidationError
import logging

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = {408, 429, 502, 503, 504}

# ============================================================================
# Validation heuristics (tuned for enwiki, treat as configuration)
# ============================================================================

NEG_INTRO = re.compile(
    r"\b(is|was|are|were)\s+(?:an?|the)\s+(?:[a-z-]+\s+){0,4}"
    r"(district|county|province|region|suburb|neighbou?rhood|borough|ward|township|village|hamlet"
    r"|airport|railway\s+station|metro\s+station|station|university|power\s+(?:plant|station)"
    r"|park|lake|river)\b",
    re.IGNORECASE,
)

POS_INTRO = re.compile(
    r"\b(is|was|are|were)\s+(?:an?|the)\s+(?:[a-z-]+\s+){0,4}"
    r"(city|capital|metropolis|municipality|independent\s+city|city[-\s]state|city[-\s]county)\b",
    re.IGNORECASE,
)

CAT_ALLOW = [
    re.compile(r"^Category:Cities?(?: and towns)? in .+", re.IGNORECASE),
    re.compile(r"^Category:City counties of .+", re.IGNORECASE),
    re.compile(r"^Category:Port cities and towns .+", re.IGNORECASE),
    re.compile(r"^Category:Capitals (?:of|in) .+", re.IGNORECASE),
    re.compile(r"^Category:Municipalities in .+", re.IGNORECASE),
]

CAT_DENY = [
    re.compile(
        r"^Category:(Districts|Suburbs|Neighbourhoods|Neighborhoods|Villages|Towns|Townships|Boroughs) in .+",
        re.IGNORECASE,
    ),
    re.compile(
        r"^Category:.* (railway stations|airports|power stations|universities|lakes|rivers) in .+",
        re.IGNORECASE,
    ),
]

# Reasons that earn a second pass
RETRY_REASONS = {"missing", "no-intro", "no-signal"}

_PARENS = re.compile(r"\([^)]*\)")
_WHITESPACE = re.compile(r"\s+")
_SENTENCE = re.compile(r"^[^.!?]+")

_MISSING = object()

Sleep = Callable[[float], Awaitable[None]]


def chunk(items: List[str], size: int) -> List[List[str]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


def first_sentence(text: str) -> str:
    no_parens = _WHITESPACE.sub(" ", _PARENS.sub(" ", text)).strip()
    match = _SENTENCE.match(no_parens)
    return (match.group(0) if match else no_parens).strip()


def resolve_title(title: str, normalized: Dict[str, str], redirects: Dict[str, str]) -> str:
    """input -> normalized.to (if any) -> redirects.to (if any)"""
    norm = normalized.get(title, title)
    return redirects.get(norm, norm)


@dataclass(frozen=True)
class PageCheck:
    ok: bool
    reason: str


def validate_page(page: WikiPage) -> PageCheck:
    """Decide whether a Wikipedia page describes a city."""
    if page.missing or page.invalid:
        return PageCheck(False, "missing")
    if page.ns != 0:
        return PageCheck(False, "not-article")
    if page.is_disambiguation:
        return PageCheck(False, "disambiguation")

    categories = page.category_titles
    if any(rx.search(c) for c in categories for rx in CAT_DENY):
        return PageCheck(False, "deny-category")
    if any(rx.search(c) for c in categories for rx in CAT_ALLOW):
        return PageCheck(True, "allow-category")

    intro_full = (page.extract or "").strip()
    if not intro_full:
        return PageCheck(False, "no-intro")

    intro = first_sentence(intro_full)
    if POS_INTRO.search(intro):
        return PageCheck(True, "intro-cityish")
    if NEG_INTRO.search(intro):
        return PageCheck(False, "intro-noncity")

    return PageCheck(False, "no-signal")


# ============================================================================
# Batch results
# ============================================================================

@dataclass
class BatchResult:
    """Merged outcome of one or more action=query calls"""
    normalized: Dict[str, str] = field(default_factory=dict)
    redirects: Dict[str, str] = field(default_factory=dict)
    pages: Dict[str, WikiPage] = field(default_factory=dict)
    failed_titles: Set[str] = field(default_factory=set)

    def add_response(self, response: QueryResponse) -> None:
        for mapping in response.query.normalized:
            self.normalized[mapping.from_] = mapping.to
        for mapping in response.query.redirects:
            self.redirects[mapping.from_] = mapping.to
        for page in response.query.pages:
            self.add_page(page)

    def add_page(self, page: WikiPage) -> None:
        previous = self.pages.get(page.title)
        if previous is None:
            self.pages[page.title] = page.model_copy(deep=True)
        else:
            previous.merge(page)

    def merge(self, other: "BatchResult") -> None:
        self.normalized.update(other.normalized)
        self.redirects.update(other.redirects)
        for page in other.pages.values():
            self.add_page(page)
        self.failed_titles.update(other.failed_titles)

    def find_page(self, title: str) -> Optional[WikiPage]:
        resolved = resolve_title(title, self.normalized, self.redirects)
        page = self.pages.get(resolved)
        if page is None:
            # case-insensitive fallback (rare)
            lower = resolved.lower()
            for key, candidate in self.pages.items():
                if key.lower() == lower:
                    return candidate
        return page


# ============================================================================
# Two-pass resolution states
# ============================================================================

@dataclass(frozen=True)
class Resolved:
    description: str


@dataclass(frozen=True)
class PendingRetry:
    query: str


@dataclass(frozen=True)
class Failed:
    reason: str

    @property
    def is_outage(self) -> bool:
        return self.reason == "unavailable"


ResolutionState = Union[Resolved, PendingRetry, Failed]


def first_pass_state(title: str, batch: BatchResult, country_label: str) -> ResolutionState:
    page = batch.find_page(title)
    if page is None:
        return PendingRetry(title)

    check = validate_page(page)
    if check.reason == "disambiguation":
        return PendingRetry(f"{title}, {country_label}")
    if check.ok:
        description = (page.extract or "").strip()
        return Resolved(description) if description else Failed("no-intro")
    if check.reason in RETRY_REASONS:
        return PendingRetry(title)
    return Failed(check.reason)


def second_pass_state(query: str, batch: BatchResult) -> ResolutionState:
    page = batch.find_page(query)
    if page is None:
        return Failed("unavailable" if query in batch.failed_titles else "missing")

    check = validate_page(page)
    description = (page.extract or "").strip()
    if check.ok and description:
        return Resolved(description)
    return Failed(check.reason)


def _country_label(country) -> str:
    try:
        return SupportedCountry.parse(getattr(country, "value", country)).label
    except InvalidInputError:
        return str(country)


class WikipediaClient:
    """
    Batched, retried Wikipedia lookups with a description cache in front.

    Attributes:
        max_titles: Titles per action=query call
        max_concurrency: Chunk requests in flight at once
        request_delay: Pause after each chunk request when several chunks run
        max_retries: Attempts per request on retryable failures
        retry_delay: First backoff delay in seconds, doubled per attempt
        failure_ttl: Cache TTL for None results caused by an outage
    """

    def __init__(
        self,
        caches: CacheStore,
        api_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        max_titles: Optional[int] = None,
        max_concurrency: Optional[int] = None,
        request_delay: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        failure_ttl: Optional[float] = None,
        sleep: Sleep = asyncio.sleep
    ):
        self.caches = caches
        self.api_url = api_url or settings.WIKIPEDIA_API_URL
        self.max_titles = max_titles or settings.WIKIPEDIA_MAX_TITLES
        self.max_concurrency = max_concurrency or settings.WIKIPEDIA_MAX_CONCURRENCY
        self.request_delay = request_delay if request_delay is not None else settings.WIKIPEDIA_REQUEST_DELAY
        self.max_retries = max_retries or settings.WIKIPEDIA_MAX_RETRIES
        self.retry_delay = retry_delay if retry_delay is not None else settings.WIKIPEDIA_RETRY_DELAY
        self.failure_ttl = failure_ttl if failure_ttl is not None else settings.WIKIPEDIA_FAILURE_TTL
        self._sleep = sleep

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=settings.WIKIPEDIA_TIMEOUT,
            headers={"User-Agent": settings.WIKIPEDIA_USER_AGENT},
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "WikipediaClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _get_json(self, params: Dict[str, object], context: str) -> QueryResponse:
        """
        GET the action API with retry on transient failures.

        Raises:
            ValidationUnavailable: retries exhausted or non-retryable failure
        """
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_retries + 1):
            try:
                response = await self._client.get(self.api_url, params=params)
                response.raise_for_status()
                return QueryResponse.model_validate(response.json())
            except httpx.HTTPStatusError as e:
                last_error = e
                retryable = e.response.status_code in RETRYABLE_STATUSES
            except httpx.RequestError as e:
                # timeouts, connection refused/reset and DNS are transient;
                # undecodable bodies and redirect loops are not
                last_error = e
                retryable = isinstance(e, httpx.TransportError)
            except (ValueError, ValidationError) as e:
                last_error = e
                retryable = False

            if not retryable or attempt == self.max_retries:
                break

            delay = self.retry_delay * (2 ** (attempt - 1))
            logger.warning(
                f"Wikipedia API {context} failed (attempt {attempt}/{self.max_retries}): "
                f"{last_error}. Retrying in {delay:.2f}s"
            )
            await self._sleep(delay)

        logger.error(f"Wikipedia API {context} failed: {last_error}")
        raise ValidationUnavailable(
            f"Wikipedia API unavailable: {last_error}",
            context={"request": context, "retry_count": attempt},
            original_exception=last_error
        )

    async def fetch_batch_single(self, titles: List[str]) -> BatchResult:
        """One action=query call for up to max_titles titles, following clcontinue."""
        base = {
            "action": "query",
            "format": "json",
            "formatversion": 2,
            "redirects": 1,
            "prop": "pageprops|categories|extracts",
            "ppprop": "wikibase_item|disambiguation",
            "clshow": "!hidden",
            "cllimit": "max",
            "exintro": 1,
            "explaintext": 1,
            "exsentences": 2,
            "titles": "|".join(titles),
            "origin": "*",
        }

        result = BatchResult()
        cont: Optional[Dict[str, str]] = None
        while True:
            params = {**base, **cont} if cont else base
            response = await self._get_json(params, f"batch fetch for {len(titles)} titles")
            result.add_response(response)

            cont = response.continue_
            if not cont or "clcontinue" not in cont:
                return result

    async def fetch_batch(self, titles: List[str]) -> BatchResult:
        """
        Chunk titles and fetch them with a bounded worker pool.

        A failing chunk does not cancel its siblings; its titles are recorded
        in failed_titles. Raises ValidationUnavailable only when every chunk
        failed.
        """
        chunks = chunk(titles, self.max_titles)
        semaphore = asyncio.Semaphore(self.max_concurrency)
        pace = len(chunks) > 1

        async def worker(batch: List[str]) -> BatchResult:
            async with semaphore:
                try:
                    return await self.fetch_batch_single(batch)
                except ValidationUnavailable as e:
                    logger.error(f"Failed to fetch batch of {len(batch)} titles: {e.message}")
                    return BatchResult(failed_titles=set(batch))
                finally:
                    if pace:
                        await self._sleep(self.request_delay)

        results = await asyncio.gather(*(worker(batch) for batch in chunks))

        merged = BatchResult()
        for result in results:
            merged.merge(result)

        if chunks and len(merged.failed_titles) == len(set(titles)):
            raise ValidationUnavailable(
                "Wikipedia API unavailable for every batch",
                context={"titles": len(titles), "batches": len(chunks)}
            )
        return merged

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def _resolve(self, titles: List[str], country) -> Dict[str, ResolutionState]:
        label = _country_label(country)

        # PASS 1
        first = await self.fetch_batch(titles)
        states: Dict[str, ResolutionState] = {
            title: first_pass_state(title, first, label) for title in titles
        }

        pending = {
            title: fold(state.query)
            for title, state in states.items()
            if isinstance(state, PendingRetry)
        }
        if not pending:
            return states

        # PASS 2 (once, never recursing)
        logger.info(f"Retrying {len(pending)} unresolved Wikipedia titles")
        queries = list(dict.fromkeys(pending.values()))
        try:
            second = await self.fetch_batch(queries)
        except ValidationUnavailable:
            second = BatchResult(failed_titles=set(queries))

        for title, query in pending.items():
            states[title] = second_pass_state(query, second)
        return states

    async def get_summaries(self, titles: Iterable[str], country) -> Dict[str, Optional[str]]:
        """
        Map every requested title to its description, or None.

        Pass 1 queries uncached titles; pass 2 re-queries disambiguation,
        missing and undecided ones once. Never raises for upstream failures.
        """
        requested = list(dict.fromkeys(titles))
        result: Dict[str, Optional[str]] = {}
        if not requested:
            return result

        uncached = []
        for title in requested:
            cached = self.caches.descriptions.get(title, _MISSING)
            if cached is _MISSING:
                uncached.append(title)
            else:
                result[title] = cached

        if not uncached:
            logger.info(f"All {len(requested)} Wikipedia descriptions served from cache")
            return result

        logger.info(f"Fetching {len(uncached)}/{len(requested)} Wikipedia descriptions from API")

        try:
            states = await self._resolve(uncached, country)
        except ValidationUnavailable as e:
            logger.error(f"Wikipedia API completely failed: {e.message}")
            for title in uncached:
                result[title] = None
                self.caches.descriptions.set(title, None, ttl=self.failure_ttl)
            return result

        for title in uncached:
            state = states.get(title, Failed("missing"))
            if isinstance(state, Resolved):
                result[title] = state.description
                self.caches.descriptions.set(title, state.description)
            else:
                result[title] = None
                ttl = self.failure_ttl if isinstance(state, Failed) and state.is_outage else None
                self.caches.descriptions.set(title, None, ttl=ttl)

        return result
