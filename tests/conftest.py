"""
Pytest configuration and fixtures
"""

import json
from typing import Dict, List, Optional

import httpx
import pytest

from core.cache import CacheStore
from core.config import settings
from ingestion.aggregator import CityAggregator
from ingestion.extractors.pollution_client import PollutionAPIClient, SlidingWindowRateLimiter
from ingestion.extractors.wikipedia_client import WikipediaClient

POLLU_BASE_URL = "https://pollu.test"
WIKI_API_URL = "https://wiki.test/w/api.php"


class FakeClock:
    """Monotonic clock whose sleep() advances time instead of waiting"""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += max(seconds, 0)


class FakePollutionAPI:
    """
    httpx.MockTransport handler imitating the pollution API.

    pages maps a country code to its pages, each a list of result rows.
    """

    def __init__(self, pages: Optional[Dict[str, List[List[dict]]]] = None, expires_in: float = 3600):
        self.pages = pages or {}
        self.expires_in = expires_in
        self.requests: List[httpx.Request] = []
        self.logins = 0
        self.refreshes = 0
        self.valid_tokens = set()
        self.login_status = 200
        self.refresh_status = 200
        self.throttle_next = 0
        self.retry_after: Optional[str] = None
        self.page_status: Dict[tuple, int] = {}
        self.issue_refresh_token = True

    @property
    def data_calls(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == "/pollution"]

    def _token(self, kind: str) -> httpx.Response:
        token = f"{kind}-token-{self.logins + self.refreshes}"
        self.valid_tokens.add(token)
        body = {"token": token, "expiresIn": self.expires_in}
        if self.issue_refresh_token:
            body["refreshToken"] = f"refresh-{self.logins + self.refreshes}"
        return httpx.Response(200, json=body)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if self.throttle_next > 0:
            self.throttle_next -= 1
            headers = {"Retry-After": self.retry_after} if self.retry_after is not None else {}
            return httpx.Response(429, headers=headers, json={"message": "Too Many Requests"})

        path = request.url.path
        if path == "/auth/login":
            self.logins += 1
            if self.login_status != 200:
                return httpx.Response(self.login_status, json={"message": "Invalid credentials"})
            body = json.loads(request.content)
            assert body["username"] and body["password"]
            return self._token("login")

        if path == "/auth/refresh":
            self.refreshes += 1
            if self.refresh_status != 200:
                return httpx.Response(self.refresh_status, json={"message": "Invalid refresh token"})
            return self._token("refresh")

        if path == "/pollution":
            auth = request.headers.get("Authorization", "")
            if auth.removeprefix("Bearer ") not in self.valid_tokens:
                return httpx.Response(401, json={"message": "Unauthorized"})

            country = request.url.params["country"]
            page = int(request.url.params["page"])
            if (country, page) in self.page_status:
                return httpx.Response(self.page_status[(country, page)], json={"message": "boom"})

            country_pages = self.pages.get(country, [])
            results = country_pages[page - 1] if page <= len(country_pages) else []
            return httpx.Response(200, json={
                "meta": {"page": page, "totalPages": len(country_pages)},
                "results": results,
            })

        return httpx.Response(404, json={"message": "Not Found"})


class FakeWikipedia:
    """
    httpx.MockTransport handler imitating the action=query API.

    pages maps a canonical title to a dict with optional keys
    extract, categories, disambiguation, ns.
    """

    def __init__(self, pages: Optional[Dict[str, dict]] = None, redirects: Optional[Dict[str, str]] = None):
        self.pages = pages or {}
        self.redirects = redirects or {}
        self.requests: List[List[str]] = []
        self.fail_status: Optional[int] = None
        self.fail_times = 0
        self.fail_titles = set()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        titles = request.url.params["titles"].split("|")
        self.requests.append(titles)

        if self.fail_status is not None and (self.fail_times > 0 or self.fail_times == -1):
            if self.fail_times > 0:
                self.fail_times -= 1
            return httpx.Response(self.fail_status, text="unavailable")
        if self.fail_titles.intersection(titles):
            return httpx.Response(503, text="unavailable")

        normalized, redirects, pages = [], [], []
        for title in titles:
            norm = title.replace("_", " ")
            if norm != title:
                normalized.append({"from": title, "to": norm})
            target = self.redirects.get(norm, norm)
            if target != norm:
                redirects.append({"from": norm, "to": target})

            spec = self.pages.get(target)
            if spec is None:
                pages.append({"ns": 0, "title": target, "missing": True})
                continue

            page = {
                "pageid": abs(hash(target)) % 100000,
                "ns": spec.get("ns", 0),
                "title": target,
                "extract": spec.get("extract", ""),
                "categories": [{"ns": 14, "title": c} for c in spec.get("categories", [])],
            }
            if spec.get("disambiguation"):
                page["pageprops"] = {"disambiguation": ""}
            pages.append(page)

        return httpx.Response(200, json={
            "batchcomplete": True,
            "query": {"normalized": normalized, "redirects": redirects, "pages": pages},
        })


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def caches(clock):
    return CacheStore.from_settings(settings, clock=clock)


@pytest.fixture
def pollution_api():
    return FakePollutionAPI()


@pytest.fixture
def wikipedia_api():
    return FakeWikipedia()


@pytest.fixture
def pollution_client(caches, clock, pollution_api):
    client = httpx.AsyncClient(transport=httpx.MockTransport(pollution_api), base_url=POLLU_BASE_URL)
    limiter = SlidingWindowRateLimiter(5, 10.0, safety_margin=0.1, clock=clock, sleep=clock.sleep)
    return PollutionAPIClient(
        caches,
        username="user",
        password="secret",
        base_url=POLLU_BASE_URL,
        client=client,
        rate_limiter=limiter,
        clock=clock,
        sleep=clock.sleep,
    )


@pytest.fixture
def wikipedia_client(caches, clock, wikipedia_api):
    client = httpx.AsyncClient(transport=httpx.MockTransport(wikipedia_api))
    return WikipediaClient(
        caches,
        api_url=WIKI_API_URL,
        client=client,
        sleep=clock.sleep,
    )


@pytest.fixture
def aggregator(pollution_client, wikipedia_client, caches):
    return CityAggregator(pollution_client, wikipedia_client, caches)
