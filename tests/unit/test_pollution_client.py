"""
Unit tests for the pollution API client
"""

import httpx
import pytest
from core.exceptions import (
    AuthenticationError,
    MalformedResponseError,
    PollutionAPIError,
    RateLimitExceeded,
    UpstreamHTTPError,
    UpstreamTransportError,
)
from ingestion.extractors.pollution_client import PollutionAPIClient, SlidingWindowRateLimiter
from models.city import RawRecord

POLLU_BASE_URL = "https://pollu.test"


def rows(*pairs):
    return [{"name": name, "pollution": value} for name, value in pairs]


def make_client(caches, clock, handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=POLLU_BASE_URL)
    limiter = SlidingWindowRateLimiter(5, 10.0, safety_margin=0.1, clock=clock, sleep=clock.sleep)
    options = {"username": "user", "password": "secret"}
    options.update(kwargs)
    return PollutionAPIClient(
        caches,
        base_url=POLLU_BASE_URL,
        client=client,
        rate_limiter=limiter,
        clock=clock,
        sleep=clock.sleep,
        **options
    )


class TestSlidingWindowRateLimiter:
    """Test the outbound rate gate"""

    @pytest.mark.asyncio
    async def test_sixth_call_waits_for_window(self, clock):
        limiter = SlidingWindowRateLimiter(5, 10.0, safety_margin=0.1, clock=clock, sleep=clock.sleep)

        for _ in range(5):
            await limiter.acquire()
        assert clock.sleeps == []

        await limiter.acquire()

        assert clock.sleeps == [pytest.approx(10.1)]
        assert clock() == pytest.approx(1010.1)

    @pytest.mark.asyncio
    async def test_never_more_than_max_in_any_window(self, clock):
        limiter = SlidingWindowRateLimiter(5, 10.0, safety_margin=0.1, clock=clock, sleep=clock.sleep)
        stamps = []

        for i in range(17):
            await limiter.acquire()
            stamps.append(clock())
            clock.advance(0.7 if i % 3 else 0.2)

        for i in range(len(stamps) - 5):
            assert stamps[i + 5] - stamps[i] >= 10.0

    @pytest.mark.asyncio
    async def test_spread_out_calls_do_not_wait(self, clock):
        limiter = SlidingWindowRateLimiter(5, 10.0, clock=clock, sleep=clock.sleep)

        for _ in range(12):
            await limiter.acquire()
            clock.advance(2.5)

        assert clock.sleeps == []
        assert len(limiter.recent_calls) == 4


class TestAuthentication:
    """Test login, token reuse and refresh"""

    @pytest.mark.asyncio
    async def test_logs_in_once_for_several_calls(self, pollution_client, pollution_api):
        pollution_api.pages = {"PL": [rows(("Kraków", 80)), rows(("Łódź", 70))]}

        await pollution_client.fetch_country_page("PL", 1)
        await pollution_client.fetch_country_page("PL", 2)

        assert pollution_api.logins == 1
        assert len(pollution_api.data_calls) == 2
        assert pollution_api.data_calls[0].headers["Authorization"].startswith("Bearer login-token")

    @pytest.mark.asyncio
    async def test_refreshes_expiring_token(self, pollution_client, pollution_api, clock):
        pollution_api.expires_in = 60
        pollution_api.pages = {"PL": [rows(("Kraków", 80)), rows(("Łódź", 70))]}

        await pollution_client.fetch_country_page("PL", 1)
        clock.advance(56)
        await pollution_client.fetch_country_page("PL", 2)

        assert pollution_api.logins == 1
        assert pollution_api.refreshes == 1
        assert pollution_client.session.access_token.startswith("refresh-token")

    @pytest.mark.asyncio
    async def test_refresh_keeps_old_refresh_token_when_none_returned(self, pollution_client, pollution_api, clock):
        pollution_api.expires_in = 60
        await pollution_client.ensure_token()
        first_refresh_token = pollution_client.session.refresh_token

        pollution_api.issue_refresh_token = False
        clock.advance(60)
        await pollution_client.ensure_token()

        assert pollution_api.refreshes == 1
        assert pollution_client.session.refresh_token == first_refresh_token

    @pytest.mark.asyncio
    async def test_refresh_failure_falls_back_to_login(self, pollution_client, pollution_api, clock):
        pollution_api.expires_in = 60
        await pollution_client.ensure_token()

        pollution_api.refresh_status = 401
        clock.advance(60)
        token = await pollution_client.ensure_token()

        assert pollution_api.refreshes == 1
        assert pollution_api.logins == 2
        assert token.startswith("login-token")

    @pytest.mark.asyncio
    async def test_rejected_token_triggers_one_relogin(self, pollution_client, pollution_api):
        pollution_api.pages = {"PL": [rows(("Kraków", 80)), rows(("Łódź", 70))]}
        await pollution_client.fetch_country_page("PL", 1)

        pollution_api.valid_tokens.clear()
        result = await pollution_client.fetch_country_page("PL", 2)

        assert pollution_api.logins == 2
        assert result.records == (RawRecord("Łódź", 70.0),)

    @pytest.mark.asyncio
    async def test_bad_credentials(self, pollution_client, pollution_api):
        pollution_api.login_status = 401

        with pytest.raises(AuthenticationError) as exc_info:
            await pollution_client.fetch_country_page("PL", 1)

        assert exc_info.value.status_code == 401
        assert pollution_api.data_calls == []

    @pytest.mark.asyncio
    async def test_missing_credentials(self, caches, clock, pollution_api):
        client = make_client(caches, clock, pollution_api, username="", password="")

        with pytest.raises(AuthenticationError):
            await client.ensure_token()
        assert pollution_api.requests == []


class TestRequestRetries:
    """Test throttling and failure handling"""

    @pytest.mark.asyncio
    async def test_retries_429_with_exponential_backoff(self, pollution_client, pollution_api, clock):
        pollution_api.pages = {"PL": [rows(("Kraków", 80))]}
        pollution_api.throttle_next = 2

        result = await pollution_client.fetch_country_page("PL", 1)

        assert clock.sleeps == [2, 4]
        assert pollution_api.logins == 1
        assert len(pollution_api.requests) == 4
        assert len(result.records) == 1

    @pytest.mark.asyncio
    async def test_honors_retry_after(self, pollution_client, pollution_api, clock):
        pollution_api.throttle_next = 1
        pollution_api.retry_after = "7"

        await pollution_client.ensure_token()

        assert clock.sleeps == [7.0]

    @pytest.mark.asyncio
    async def test_persistent_429_raises_rate_limit_exceeded(self, pollution_client, pollution_api, clock):
        pollution_api.throttle_next = 10

        with pytest.raises(RateLimitExceeded) as exc_info:
            await pollution_client.ensure_token()

        error = exc_info.value
        assert error.context["attempts"] == 3
        assert error.context["max_requests"] == 5
        assert error.context["window_seconds"] == 10.0
        assert "5 requests per 10 seconds" in error.message
        assert len(pollution_api.requests) == 3
        assert clock.sleeps == [2, 4]

    @pytest.mark.asyncio
    async def test_server_error_is_not_retried(self, pollution_client, pollution_api):
        pollution_api.pages = {"PL": [rows(("Kraków", 80))]}
        pollution_api.page_status[("PL", 1)] = 500

        with pytest.raises(UpstreamHTTPError) as exc_info:
            await pollution_client.fetch_country_page("PL", 1)

        assert exc_info.value.status_code == 500
        assert exc_info.value.context["country"] == "PL"
        assert len(pollution_api.data_calls) == 1

    @pytest.mark.asyncio
    async def test_transport_error(self, caches, clock):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(caches, clock, handler)

        with pytest.raises(UpstreamTransportError) as exc_info:
            await client.ensure_token()

        assert isinstance(exc_info.value, PollutionAPIError)
        assert isinstance(exc_info.value.original_exception, httpx.ConnectError)
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_undecodable_body_is_wrapped(self, caches, clock):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.DecodingError("corrupt gzip body", request=request)

        client = make_client(caches, clock, handler)

        with pytest.raises(UpstreamTransportError) as exc_info:
            await client.ensure_token()

        assert isinstance(exc_info.value.original_exception, httpx.DecodingError)
        assert "corrupt gzip body" in exc_info.value.message
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_zero_retries_makes_no_request(self, caches, clock, pollution_api):
        client = make_client(caches, clock, pollution_api, max_retries=0)

        assert client.max_retries == 0
        with pytest.raises(RateLimitExceeded) as exc_info:
            await client.ensure_token()

        assert exc_info.value.context["attempts"] == 0
        assert pollution_api.requests == []


class TestPages:
    """Test page fetching and caching"""

    @pytest.mark.asyncio
    async def test_parses_page(self, pollution_client, pollution_api):
        pollution_api.pages = {"PL": [
            rows(("Kraków", 80.5), ("Bad value", "abc"), ("Negative", -3), ("Flag", True)),
            rows(("Łódź", 70)),
        ]}

        result = await pollution_client.fetch_country_page("PL", 1)

        assert result.page == 1
        assert result.total_pages == 2
        assert not result.is_last
        assert result.records == (
            RawRecord("Kraków", 80.5),
            RawRecord("Bad value", None),
            RawRecord("Negative", None),
            RawRecord("Flag", None),
        )

    @pytest.mark.asyncio
    async def test_cached_page_makes_no_request(self, pollution_client, pollution_api, caches):
        pollution_api.pages = {"PL": [rows(("Kraków", 80))]}

        first = await pollution_client.fetch_country_page("PL", 1)
        second = await pollution_client.fetch_country_page("PL", 1)

        assert first == second
        assert len(pollution_api.data_calls) == 1
        assert "PL:1:50" in caches.pages

    @pytest.mark.asyncio
    async def test_page_cache_expires(self, pollution_client, pollution_api, clock):
        pollution_api.pages = {"PL": [rows(("Kraków", 80))]}

        await pollution_client.fetch_country_page("PL", 1)
        clock.advance(301)
        await pollution_client.fetch_country_page("PL", 1)

        assert len(pollution_api.data_calls) == 2

    @pytest.mark.asyncio
    async def test_limit_is_clamped(self, pollution_client, pollution_api, caches):
        await pollution_client.fetch_country_page("FR", 1, limit=500)

        assert pollution_api.data_calls[0].url.params["limit"] == "50"
        assert "FR:1:50" in caches.pages

    @pytest.mark.asyncio
    async def test_empty_country_has_one_page(self, pollution_client):
        result = await pollution_client.fetch_country_page("ES", 1)

        assert result.records == ()
        assert result.total_pages == 1
        assert result.is_last

    @pytest.mark.asyncio
    async def test_malformed_page_is_not_cached(self, caches, clock, pollution_api):
        def handler(request):
            if request.url.path == "/pollution":
                pollution_api.requests.append(request)
                return httpx.Response(200, json={"results": "nope"})
            return pollution_api(request)

        client = make_client(caches, clock, handler)

        with pytest.raises(MalformedResponseError):
            await client.fetch_country_page("PL", 1)
        assert len(caches.pages) == 0

    @pytest.mark.asyncio
    async def test_invalid_json_is_malformed(self, caches, clock, pollution_api):
        def handler(request):
            if request.url.path == "/pollution":
                return httpx.Response(200, text="<html>oops</html>")
            return pollution_api(request)

        client = make_client(caches, clock, handler)

        with pytest.raises(MalformedResponseError):
            await client.fetch_country_page("PL", 1)

    @pytest.mark.asyncio
    async def test_fetch_all_country(self, pollution_client, pollution_api):
        pollution_api.pages = {"DE": [rows(("Berlin", 60)), rows(("Hamburg", 50), ("Köln", 40))]}

        records = await pollution_client.fetch_all_country("DE")

        assert [r.name for r in records] == ["Berlin", "Hamburg", "Köln"]

    @pytest.mark.asyncio
    async def test_fetch_country_limited_stops_at_target(self, pollution_client, pollution_api):
        pollution_api.pages = {"DE": [
            rows(("Berlin", 60), ("Station 1", 55)),
            rows(("Hamburg", 50), ("Köln", 40)),
            rows(("München", 30)),
        ]}

        result = await pollution_client.fetch_country_limited(
            "DE", 2, validator=lambda record: "Station" not in record.name
        )

        assert [r.name for r in result.records] == ["Berlin", "Hamburg"]
        assert result.pages_checked == 2
        assert result.total_fetched == 4
        assert len(pollution_api.data_calls) == 2
