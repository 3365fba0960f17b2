"""
Most polluted cities endpoint with pagination
"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from typing import Optional
import time
import logging

from api.dependencies import get_city_service
from ingestion.city_service import CityQueryService
from schemas.api import CitiesResponse, QueryError

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Cities"])

ERROR_STATUS = {
    "invalid-country": 400,
    "invalid-page": 400,
    "rate-limit-exceeded": 429,
    "upstream-unavailable": 502,
}


@router.get(
    "/cities",
    response_model=CitiesResponse,
    responses={400: {"model": QueryError}, 429: {"model": QueryError}, 502: {"model": QueryError}},
)
async def get_cities(
    country: Optional[str] = Query(None, description="Country code: PL, DE, ES or FR"),
    limit: Optional[str] = Query(None, description="Cities per page (1-50, default 10)"),
    page: Optional[str] = Query(None, description="Page number (default 1)"),
    service: CityQueryService = Depends(get_city_service)
):
    """
    Most polluted cities of a country, with Wikipedia descriptions.

    Features:
    - Pagination over a progressively built, cached ranking
    - Typed errors for invalid input and upstream failures
    """
    start_time = time.time()
    logger.info(f"GET /cities - country={country}, limit={limit}, page={page}")

    result = await service.query(country, limit=limit, page=page)
    api_latency_ms = (time.time() - start_time) * 1000

    if isinstance(result, QueryError):
        logger.info(f"{result.error}: {result.message} ({api_latency_ms:.2f}ms)")
        return JSONResponse(status_code=ERROR_STATUS[result.error], content=result.model_dump())

    logger.info(f"Returned {result.limit} cities ({api_latency_ms:.2f}ms)")
    return result
