"""
Domain models shared by the clients, the engine and the API.

This package defines plain dataclasses and enums; nothing here talks to
the network:

Models:
    base: Shared enums (SupportedCountry, Verdict)
    city: Raw records, classifier verdicts, enriched cities and the
          per-country progressive cache entry
    auth: Pollution API bearer token session

Usage:
    from models.base import SupportedCountry, Verdict
    from models.city import EnrichedEntity, CountryCacheEntry, dedup_key
    from models.auth import AuthSession

Example:
    country = SupportedCountry.parse("pl")
    entry = CountryCacheEntry(country=country.value)
    entry = entry.with_entities(
        [EnrichedEntity(country.value, "Kraków", 81.5, "Kraków is a city...")],
        last_page_fetched=1,
    )

Invariants:
    - No two entities of a CountryCacheEntry share a dedup key
    - ranked() orders by value descending, ties in discovery order
"""

__all__ = [
    "SupportedCountry",
    "Verdict",
    "RawRecord",
    "ClassificationVerdict",
    "EnrichedEntity",
    "CountryCacheEntry",
    "AuthSession",
    "dedup_key",
]
