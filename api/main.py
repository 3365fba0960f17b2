"""
FastAPI application initialization
"""

from fastapi import FastAPI
from api.routes import cities, health, stats
from api.dependencies import close_service, get_city_service
from api.middleware import RequestContextMiddleware
from core.config import settings
from core.logging import setup_logging
import logging

# Configure logging
setup_logging()

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

# Create FastAPI app
app = FastAPI(
    title="Polluted Cities API",
    description="Most polluted cities per country, enriched with Wikipedia descriptions",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Request id and latency headers
app.add_middleware(RequestContextMiddleware)


# Include routers
app.include_router(health.router, prefix=API_PREFIX)
app.include_router(cities.router, prefix=API_PREFIX)
app.include_router(stats.router, prefix=API_PREFIX)


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting Polluted Cities API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Pollution API: {settings.POLLU_API_BASE_URL}")
    if not settings.POLLU_API_USERNAME or not settings.POLLU_API_PASSWORD:
        logger.warning("POLLU_API_USERNAME / POLLU_API_PASSWORD are not set; city queries will fail")

    get_city_service()


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Polluted Cities API")
    await close_service()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Polluted Cities API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": f"{API_PREFIX}/health",
        "endpoints": {
            "cities": f"{API_PREFIX}/cities?country=PL&limit=10&page=1",
            "cache_stats": f"{API_PREFIX}/stats/cache"
        }
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api.main:app", host=settings.API_HOST, port=settings.API_PORT)
