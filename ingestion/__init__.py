"""
Aggregation and progressive-caching engine for polluted cities.

This package contains all components between the HTTP surface and the two
upstream services:

Modules:
    aggregator: Progressive per-country accumulation and ranked pagination
    city_service: Query boundary returning a payload or a typed error

Subpackages:
    extractors: Pollution API client (auth, rate gate, retries) and
                Wikipedia client (batched two-pass validation)
    transformers: Name normalization (ASCII folding, locale casing) and
                  record classification

Architecture:
    A page request flows through four steps, all inside the request:

    1. Serve from the country cache when it already holds enough cities
    2. Otherwise fetch the next pollution page (rate-gated, page-cached)
    3. Classify and de-duplicate its records, validate names on Wikipedia
    4. Commit the grown country entry and repeat until satisfied

    Upstream failures after the local retry budget propagate; the cache
    keeps every page committed before the failure.

Usage:
    from core.cache import CacheStore
    from core.config import settings
    from ingestion.extractors.pollution_client import PollutionAPIClient
    from ingestion.extractors.wikipedia_client import WikipediaClient
    from ingestion.aggregator import CityAggregator
    from ingestion.city_service import CityQueryService

Example:
    caches = CacheStore.from_settings(settings)
    aggregator = CityAggregator(
        PollutionAPIClient(caches),
        WikipediaClient(caches),
        caches,
    )
    service = CityQueryService(aggregator)

    result = await service.query("PL", limit=10, page=1)
"""

__all__ = [
    "CityAggregator",
    "CityQueryService",
    "PollutionAPIClient",
    "WikipediaClient",
    "classify",
    "fold",
    "proper_case",
]
