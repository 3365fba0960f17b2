"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field
from typing import List, Optional, Literal


# ============================================================================
# City Query Schemas
# ============================================================================

class CityOut(BaseModel):
    """One polluted city in a response"""
    name: str
    country: str = Field(..., description="English country name")
    pollution: float = Field(..., ge=0)
    description: Optional[str] = None


class CitiesResponse(BaseModel):
    """Paginated most-polluted cities for one country"""
    page: int = Field(..., ge=1)
    limit: int = Field(..., ge=0, description="Number of cities in this page")
    hasMore: bool
    cities: List[CityOut] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "page": 1,
                "limit": 2,
                "hasMore": True,
                "cities": [
                    {
                        "name": "Kraków",
                        "country": "Poland",
                        "pollution": 91.2,
                        "description": "Kraków is the second-largest city in Poland..."
                    },
                    {
                        "name": "Katowice",
                        "country": "Poland",
                        "pollution": 88.0,
                        "description": "Katowice is a city in southern Poland..."
                    }
                ]
            }
        }


ErrorCode = Literal[
    "invalid-country",
    "invalid-page",
    "rate-limit-exceeded",
    "upstream-unavailable",
]


class QueryError(BaseModel):
    """Typed failure of a city query"""
    error: ErrorCode
    message: str


# ============================================================================
# Diagnostics Schemas
# ============================================================================

class CacheStats(BaseModel):
    """Live entry counts of the three caches"""
    totalKeys: int = 0
    pollutionKeys: int = 0
    wikiKeys: int = 0
    countryKeys: int = 0


class HealthCheckResponse(BaseModel):
    """Health check response model"""
    ok: bool = True
    environment: str
    cache: CacheStats
