"""
Core utilities and configuration for the polluted cities service.

This package provides foundational components used throughout the engine:

Modules:
    config: Application configuration and environment variable management
    cache: TTL/LRU cache and the cache store shared by clients and engine
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration and utilities

Usage:
    from core.config import settings
    from core.cache import CacheStore, TTLCache
    from core.exceptions import RateLimitExceeded, ValidationUnavailable
    from core.logging import setup_logging

Example:
    # Initialize logging
    setup_logging()

    # Build the three caches from settings
    caches = CacheStore.from_settings(settings)
    print(caches.stats())
"""

__all__ = [
    "settings",
    "setup_logging",
    "TTLCache",
    "CacheStore",
    # Exceptions
    "AggregatorException",
    "RetryableError",
    "NonRetryableError",
    "UpstreamError",
    "PollutionAPIError",
    "AuthenticationError",
    "RateLimitExceeded",
    "UpstreamHTTPError",
    "UpstreamTransportError",
    "MalformedResponseError",
    "ValidationUnavailable",
    "InvalidInputError",
]
