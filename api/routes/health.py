"""
Health check endpoint with cache status
"""

from fastapi import APIRouter, Depends
from api.dependencies import get_city_service
from core.config import settings
from ingestion.city_service import CityQueryService
from schemas.api import CacheStats, HealthCheckResponse
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(service: CityQueryService = Depends(get_city_service)):
    """
    Health check endpoint.

    Returns:
    - Liveness flag
    - Environment name
    - Live entry counts of the caches
    """
    return HealthCheckResponse(
        ok=True,
        environment=settings.ENVIRONMENT,
        cache=CacheStats(**service.cache_stats())
    )
