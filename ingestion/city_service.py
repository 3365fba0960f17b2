"""
Query boundary consumed by the HTTP layer and scripts.

query() never raises for expected failures: it returns either a
CitiesResponse or a QueryError with one of the codes
invalid-country, invalid-page, rate-limit-exceeded, upstream-unavailable.
"""

from typing import Any, Dict, Optional, Union
import logging

from core.config import settings
from core.exceptions import InvalidInputError, RateLimitExceeded, UpstreamError
from ingestion.aggregator import CityAggregator
from models.base import SupportedCountry
from schemas.api import CitiesResponse, CityOut, QueryError

logger = logging.getLogger(__name__)

QueryResult = Union[CitiesResponse, QueryError]


def _parse_int(value: Any, default: int, name: str) -> int:
    """Integer query parameter; missing means default, anything else must be >= 1"""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        parsed = None
    elif isinstance(value, int):
        parsed = value
    else:
        try:
            parsed = int(str(value).strip())
        except ValueError:
            parsed = None

    if parsed is None or parsed < 1:
        raise InvalidInputError(
            f"{name.capitalize()} must be an integer of 1 or greater",
            error_code="invalid-page",
            context={name: value}
        )
    return parsed


class CityQueryService:
    """Validate input, run the aggregator and shape the response payload."""

    def __init__(self, aggregator: CityAggregator):
        self.aggregator = aggregator

    async def query(
        self,
        country_code: Any,
        limit: Optional[Any] = None,
        page: Optional[Any] = None
    ) -> QueryResult:
        try:
            country = SupportedCountry.parse(country_code)
            page_number = _parse_int(page, 1, "page")
            page_size = _parse_int(limit, settings.DEFAULT_CITY_LIMIT, "limit")

            ranked = await self.aggregator.get_ranked(country, page_size, page_number)

        except InvalidInputError as e:
            logger.info(f"Rejected city query: {e.message}")
            return QueryError(error=e.error_code, message=e.message)

        except RateLimitExceeded as e:
            logger.warning(f"City query for {country_code} rate limited: {e}")
            return QueryError(error="rate-limit-exceeded", message=e.message)

        except UpstreamError as e:
            logger.error(f"City query for {country_code} failed upstream: {e}")
            return QueryError(error="upstream-unavailable", message=e.message)

        return CitiesResponse(
            page=page_number,
            limit=len(ranked.entities),
            hasMore=ranked.has_more,
            cities=[
                CityOut(
                    name=entity.name,
                    country=country.label,
                    pollution=entity.value,
                    description=entity.description,
                )
                for entity in ranked.entities
            ],
        )

    def cache_stats(self) -> Dict[str, int]:
        return self.aggregator.cache_stats()
