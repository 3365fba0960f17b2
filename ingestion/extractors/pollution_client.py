"""
Pollution API client with authentication, rate limiting, and retry logic.

This module provides the measurement source client with:
- Bearer token session (login, refresh, fallback to login on refresh failure)
- Sliding window rate gate (5 requests / 10 seconds upstream)
- Exponential backoff on HTTP 429, honoring Retry-After
- Page cache in front of every /pollution call
- Comprehensive error handling with custom exceptions
"""

import httpx
import asyncio
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
from core.cache import CacheStore
from core.config import settings
from core.exceptions import (
    AuthenticationError,
    MalformedResponseError,
    PollutionAPIError,
    RateLimitExceeded,
    UpstreamHTTPError,
    UpstreamTransportError,
)
from models.auth import AuthSession
from models.city import RawRecord
from schemas.pollution import LoginResponse, PageMalformed, PageParsed, parse_pollution_page
from pydantic import ValidationError
import logging

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 50

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


class SlidingWindowRateLimiter:
    """
    Allow at most max_requests calls in any rolling window of window_seconds.

    acquire() suspends the caller until the oldest call in the window leaves
    it (plus safety_margin), then records the new call.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        safety_margin: float = 0.1,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.safety_margin = safety_margin
        self._clock = clock
        self._sleep = sleep
        self._calls: deque = deque()
        self._lock = asyncio.Lock()

    def _prune(self, now: float) -> None:
        while self._calls and now - self._calls[0] >= self.window_seconds:
            self._calls.popleft()

    async def acquire(self) -> None:
        async with self._lock:
            while True:
                now = self._clock()
                self._prune(now)
                if len(self._calls) < self.max_requests:
                    self._calls.append(now)
                    return

                wait = self.window_seconds - (now - self._calls[0]) + self.safety_margin
                logger.info(f"Rate limit: waiting {wait:.2f}s before next request")
                await self._sleep(wait)

    @property
    def recent_calls(self) -> Tuple[float, ...]:
        return tuple(self._calls)


@dataclass
class LimitedFetch:
    """Result of fetch_country_limited()"""
    records: List[RawRecord]
    total_fetched: int
    pages_checked: int


class PollutionAPIClient:
    """
    Authenticated, rate-limited client for the pollution measurement API.

    Features:
    - Bearer token authentication with opportunistic refresh
    - Sliding window rate gate on every outbound call (auth included)
    - Retry on 429 with exponential backoff, capped
    - Non-throttling failures propagate immediately, tagged with the status
    - Raw page responses cached per (country, page, limit)

    Attributes:
        max_retries: Attempts per call when throttled (default: 3)
        backoff_base: First backoff delay in seconds, doubled per attempt
        backoff_cap: Upper bound for a single backoff delay
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        caches: CacheStore,
        username: Optional[str] = None,
        password: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        max_retries: Optional[int] = None,
        backoff_base: Optional[float] = None,
        backoff_cap: Optional[float] = None,
        timeout: Optional[float] = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep
    ):
        self.caches = caches
        self.username = username if username is not None else settings.POLLU_API_USERNAME
        self.password = password if password is not None else settings.POLLU_API_PASSWORD
        self.base_url = base_url or settings.POLLU_API_BASE_URL
        self.max_retries = max_retries if max_retries is not None else settings.RATE_LIMIT_MAX_RETRIES
        self.backoff_base = backoff_base if backoff_base is not None else settings.RATE_LIMIT_BACKOFF_BASE
        self.backoff_cap = backoff_cap if backoff_cap is not None else settings.RATE_LIMIT_BACKOFF_CAP
        self.timeout = timeout or settings.POLLU_API_TIMEOUT
        self._clock = clock
        self._sleep = sleep

        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter(
            max_requests=settings.RATE_LIMIT_MAX_REQUESTS,
            window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
            safety_margin=settings.RATE_LIMIT_SAFETY_MARGIN,
            clock=clock,
            sleep=sleep,
        )

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={"Content-Type": "application/json"},
        )

        # Auth state
        self._session: Optional[AuthSession] = None
        self._auth_lock = asyncio.Lock()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "PollutionAPIClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    @property
    def session(self) -> Optional[AuthSession]:
        return self._session

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _backoff_delay(self, attempt: int, response: httpx.Response) -> Tuple[float, Optional[float]]:
        """Delay before the next attempt and the upstream Retry-After, if any"""
        retry_after = None
        header = response.headers.get("Retry-After")
        if header is not None:
            try:
                retry_after = max(float(header), 0.0)
            except ValueError:
                retry_after = None

        if retry_after is not None:
            return retry_after, retry_after
        return min(self.backoff_base * (2 ** (attempt - 1)), self.backoff_cap), None

    async def _request(
        self,
        method: str,
        path: str,
        **kwargs: Any
    ) -> httpx.Response:
        """
        Make a rate-gated HTTP request, retrying only on throttling.

        Raises:
            RateLimitExceeded: 429 persisted for max_retries attempts
            UpstreamHTTPError: any other 4xx/5xx response
            UpstreamTransportError: timeout or network failure
        """
        url = f"{self.base_url}{path}"

        for attempt in range(1, self.max_retries + 1):
            await self.rate_limiter.acquire()

            try:
                logger.debug(f"{method} {path} attempt {attempt}/{self.max_retries}")
                response = await self._client.request(method, path, **kwargs)
            except httpx.TimeoutException as e:
                raise UpstreamTransportError(
                    f"Request timeout for {path}",
                    context={"api_url": url, "timeout": self.timeout},
                    original_exception=e
                )
            except httpx.RequestError as e:
                # connection, DNS, protocol, decoding and redirect failures
                raise UpstreamTransportError(
                    f"Network error for {path}: {e}",
                    context={"api_url": url},
                    original_exception=e
                )

            if response.status_code == 429:
                delay, retry_after = self._backoff_delay(attempt, response)
                logger.warning(
                    f"Rate limited (429). Attempt {attempt}/{self.max_retries}. "
                    f"Waiting {delay:.2f}s"
                )

                if attempt == self.max_retries:
                    raise RateLimitExceeded(
                        f"Rate limit exceeded after {self.max_retries} attempts. "
                        f"API allows {self.rate_limiter.max_requests} requests per "
                        f"{self.rate_limiter.window_seconds:g} seconds.",
                        context={
                            "api_url": url,
                            "max_requests": self.rate_limiter.max_requests,
                            "window_seconds": self.rate_limiter.window_seconds,
                            "attempts": attempt,
                        },
                        retry_after=retry_after
                    )

                await self._sleep(delay)
                continue

            if response.status_code >= 400:
                raise UpstreamHTTPError(
                    f"{method} {path} failed with status {response.status_code}",
                    status_code=response.status_code,
                    context={"api_url": url, "response_body": response.text[:500]}
                )

            return response

        # max_retries < 1
        raise RateLimitExceeded(
            "No attempts allowed",
            context={"api_url": url, "attempts": 0}
        )

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def _authenticate(self, path: str, body: Dict[str, Any]) -> AuthSession:
        try:
            response = await self._request("POST", path, json=body)
            data = LoginResponse.model_validate(response.json())
        except UpstreamHTTPError as e:
            raise AuthenticationError(
                f"Auth failed with status {e.status_code}",
                context={"api_url": f"{self.base_url}{path}"},
                original_exception=e,
                status_code=e.status_code
            )
        except (ValueError, ValidationError) as e:
            raise AuthenticationError(
                "Auth response did not contain a token",
                context={"api_url": f"{self.base_url}{path}"},
                original_exception=e
            )

        lifetime = data.expiresIn if data.expiresIn is not None else settings.TOKEN_DEFAULT_LIFETIME_SECONDS
        return AuthSession(
            access_token=data.token,
            expires_at=self._clock() + lifetime,
            refresh_token=data.refreshToken,
        )

    async def _login(self) -> AuthSession:
        if not self.username or not self.password:
            raise AuthenticationError(
                "Pollution API credentials are not configured",
                context={"api_url": self.base_url}
            )
        logger.info("Logging in to pollution API")
        return await self._authenticate(
            "/auth/login", {"username": self.username, "password": self.password}
        )

    async def _refresh(self, refresh_token: str) -> AuthSession:
        logger.info("Refreshing pollution API token")
        session = await self._authenticate("/auth/refresh", {"refreshToken": refresh_token})
        if session.refresh_token is None:
            # Upstream may omit a new refresh token; keep the current one
            session.refresh_token = refresh_token
        return session

    async def ensure_token(self) -> str:
        """Return a bearer token valid for at least the expiry margin."""
        async with self._auth_lock:
            margin = settings.TOKEN_EXPIRY_MARGIN_SECONDS
            if self._session and self._session.is_valid(self._clock(), margin):
                return self._session.access_token

            if self._session and self._session.refresh_token:
                try:
                    self._session = await self._refresh(self._session.refresh_token)
                    return self._session.access_token
                except PollutionAPIError as e:
                    logger.warning(f"Token refresh failed, falling back to login: {e.message}")
                    self._session = None

            self._session = await self._login()
            return self._session.access_token

    def invalidate_session(self) -> None:
        self._session = None

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------

    async def _get_page_payload(self, country: str, page: int, limit: int) -> Any:
        params = {"country": country, "page": str(page), "limit": str(limit)}

        for attempt in (1, 2):
            token = await self.ensure_token()
            try:
                response = await self._request(
                    "GET",
                    "/pollution",
                    params=params,
                    headers={"Authorization": f"Bearer {token}"}
                )
            except UpstreamHTTPError as e:
                if e.status_code == 401 and attempt == 1:
                    logger.warning("Token rejected by pollution API, re-authenticating")
                    self.invalidate_session()
                    continue
                e.context.update({"country": country, "page": page})
                raise

            try:
                return response.json()
            except ValueError as e:
                raise MalformedResponseError(
                    "Failed to parse JSON response",
                    context={
                        "country": country,
                        "page": page,
                        "response_body": response.text[:500]
                    },
                    original_exception=e
                )

    async def fetch_country_page(
        self,
        country: str,
        page: int,
        limit: int = MAX_PAGE_SIZE
    ) -> PageParsed:
        """
        Fetch one page of pollution records, served from cache when possible.

        Raises:
            MalformedResponseError: body is not a pollution page
            PollutionAPIError: any auth, throttling, HTTP or transport failure
        """
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        cache_key = f"{country}:{page}:{limit}"

        payload = self.caches.pages.get(cache_key)
        if payload is not None:
            logger.debug(f"Page cache hit for {cache_key}")
            return parse_pollution_page(payload)

        logger.info(f"Fetching pollution page {page} for {country} (limit {limit})")
        payload = await self._get_page_payload(country, page, limit)

        parsed = parse_pollution_page(payload)
        if isinstance(parsed, PageMalformed):
            raise MalformedResponseError(
                f"Malformed pollution page: {parsed.reason}",
                context={"country": country, "page": page}
            )

        self.caches.pages.set(cache_key, payload)
        return parsed

    async def fetch_all_country(self, country: str) -> List[RawRecord]:
        """Fetch every page for a country (legacy, unbounded)."""
        first = await self.fetch_country_page(country, 1, MAX_PAGE_SIZE)
        records = list(first.records)
        for page in range(2, first.total_pages + 1):
            result = await self.fetch_country_page(country, page, MAX_PAGE_SIZE)
            records.extend(result.records)
        return records

    async def fetch_country_limited(
        self,
        country: str,
        target: int,
        validator: Optional[Callable[[RawRecord], bool]] = None,
        page_size: Optional[int] = None
    ) -> LimitedFetch:
        """
        Fetch pages until target records pass validator or pages run out.

        The first page uses page_size (default: target); later pages only
        ask for what is still needed.
        """
        records: List[RawRecord] = []
        total_fetched = 0
        page = 1
        first_size = min(max(page_size or target, 1), MAX_PAGE_SIZE)

        while True:
            needed = max(target - len(records), 0)
            if needed == 0:
                return LimitedFetch(records, total_fetched, page - 1)

            limit = first_size if page == 1 else min(needed, MAX_PAGE_SIZE)
            result = await self.fetch_country_page(country, page, limit)
            total_fetched += len(result.records)

            for record in result.records:
                if validator is None or validator(record):
                    records.append(record)
                    if len(records) >= target:
                        return LimitedFetch(records, total_fetched, page)

            if page >= result.total_pages:
                return LimitedFetch(records, total_fetched, page)
            page += 1
