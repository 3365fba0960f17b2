"""
Pydantic schemas for data validation and serialization.

This package defines Pydantic models for upstream payloads and for the
responses the service produces:

Schemas:
    pollution: Pollution API login and page bodies, parsed into a tagged
               PageParsed | PageMalformed result
    wikipedia: Wikipedia action=query response (pages, normalized, redirects)
    api: City query response, typed query errors and cache diagnostics

Usage:
    from schemas.pollution import parse_pollution_page, PageParsed
    from schemas.wikipedia import QueryResponse
    from schemas.api import CitiesResponse, QueryError

Example:
    parsed = parse_pollution_page({
        "meta": {"page": 1, "totalPages": 3},
        "results": [{"name": "Kraków", "pollution": 91.2}],
    })
    assert isinstance(parsed, PageParsed)
    assert parsed.records[0].value == 91.2

Validation:
    Upstream rows with non-numeric, negative or non-finite pollution parse
    with value None; a body missing meta parses as PageMalformed.
"""

__all__ = [
    "LoginResponse",
    "PollutionPage",
    "PageParsed",
    "PageMalformed",
    "parse_pollution_page",
    "QueryResponse",
    "WikiPage",
    "CitiesResponse",
    "CityOut",
    "QueryError",
    "CacheStats",
    "HealthCheckResponse",
]
