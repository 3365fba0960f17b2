"""
Service wiring shared by the routes and scripts
"""

from typing import Optional
import logging

from core.cache import CacheStore
from core.config import settings
from ingestion.aggregator import CityAggregator
from ingestion.city_service import CityQueryService
from ingestion.extractors.pollution_client import PollutionAPIClient
from ingestion.extractors.wikipedia_client import WikipediaClient

logger = logging.getLogger(__name__)

_service: Optional[CityQueryService] = None


def build_service() -> CityQueryService:
    """Create the caches, both upstream clients and the aggregator"""
    caches = CacheStore.from_settings(settings)
    aggregator = CityAggregator(
        pollution_client=PollutionAPIClient(caches),
        wikipedia_client=WikipediaClient(caches),
        caches=caches,
    )
    return CityQueryService(aggregator)


def get_city_service() -> CityQueryService:
    """FastAPI dependency returning the process-wide service"""
    global _service
    if _service is None:
        _service = build_service()
        logger.info("City query service initialized")
    return _service


async def close_service() -> None:
    global _service
    if _service is None:
        return
    aggregator = _service.aggregator
    await aggregator.pollution.aclose()
    await aggregator.wikipedia.aclose()
    _service = None
    logger.info("Upstream clients closed")
