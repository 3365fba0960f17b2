"""
Pydantic schemas for pollution API payloads, parsed into tagged results
"""

from dataclasses import dataclass
from typing import Any, List, Optional, Tuple, Union
import math

from pydantic import BaseModel, Field, ValidationError, validator

from models.city import RawRecord


class LoginResponse(BaseModel):
    """Body of /auth/login and /auth/refresh"""
    token: str = Field(..., min_length=1)
    expiresIn: Optional[float] = None
    refreshToken: Optional[str] = None

    class Config:
        extra = "ignore"


class PollutionItem(BaseModel):
    """One result row; upstream types are not guaranteed"""
    name: str = ""
    pollution: Optional[float] = None

    @validator("name", pre=True)
    def coerce_name(cls, v):
        return "" if v is None else str(v)

    @validator("pollution", pre=True)
    def parse_pollution(cls, v):
        """Only finite, non-negative numbers are usable"""
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            return None
        if not math.isfinite(v) or v < 0:
            return None
        return float(v)

    class Config:
        extra = "ignore"


class PageMeta(BaseModel):
    page: int = Field(..., ge=1)
    totalPages: int = Field(..., ge=0)

    class Config:
        extra = "ignore"


class PollutionPage(BaseModel):
    """Body of GET /pollution"""
    meta: PageMeta
    results: List[PollutionItem] = Field(default_factory=list)

    class Config:
        extra = "ignore"


# ============================================================================
# Tagged parse result
# ============================================================================

@dataclass(frozen=True)
class PageParsed:
    page: int
    total_pages: int
    records: Tuple[RawRecord, ...]

    @property
    def is_last(self) -> bool:
        return self.page >= self.total_pages


@dataclass(frozen=True)
class PageMalformed:
    reason: str


ParsedPage = Union[PageParsed, PageMalformed]


def parse_pollution_page(payload: Any) -> ParsedPage:
    """Validate a raw /pollution body; never raises."""
    try:
        page = PollutionPage.model_validate(payload)
    except ValidationError as e:
        return PageMalformed(reason=f"{e.error_count()} validation error(s): {e.errors()[0]['msg']}")

    return PageParsed(
        page=page.meta.page,
        total_pages=max(page.meta.totalPages, 1),
        records=tuple(RawRecord(name=item.name, value=item.pollution) for item in page.results),
    )
