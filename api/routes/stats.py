"""
Cache statistics endpoint
"""
from fastapi import APIRouter, Depends
from api.dependencies import get_city_service
from ingestion.city_service import CityQueryService
from schemas.api import CacheStats
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Statistics"])


@router.get("/stats/cache", response_model=CacheStats)
async def get_cache_stats(service: CityQueryService = Depends(get_city_service)):
    """Live entry counts of the pollution, Wikipedia and country caches."""
    stats = service.cache_stats()
    logger.debug(f"GET /stats/cache - {stats}")
    return CacheStats(**stats)
