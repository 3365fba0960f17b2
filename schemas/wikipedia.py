"""
Pydantic schemas for the Wikipedia action=query response (formatversion=2)
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class TitleMapping(BaseModel):
    """Entry of query.normalized or query.redirects"""
    from_: str = Field(..., alias="from")
    to: str

    class Config:
        populate_by_name = True
        extra = "ignore"


class Category(BaseModel):
    title: str

    class Config:
        extra = "ignore"


class PageProps(BaseModel):
    disambiguation: Optional[str] = None
    wikibase_item: Optional[str] = None

    class Config:
        extra = "ignore"


class WikiPage(BaseModel):
    pageid: Optional[int] = None
    ns: int = 0
    title: str
    missing: bool = False
    invalid: bool = False
    extract: Optional[str] = None
    categories: List[Category] = Field(default_factory=list)
    pageprops: Optional[PageProps] = None

    class Config:
        extra = "ignore"

    @property
    def is_disambiguation(self) -> bool:
        return self.pageprops is not None and self.pageprops.disambiguation is not None

    @property
    def category_titles(self) -> List[str]:
        return [c.title for c in self.categories]

    def merge(self, other: "WikiPage") -> None:
        """Fold a clcontinue continuation of the same page into this one"""
        if other.extract and not self.extract:
            self.extract = other.extract
        if other.pageprops and not self.pageprops:
            self.pageprops = other.pageprops
        seen = set(self.category_titles)
        for category in other.categories:
            if category.title not in seen:
                seen.add(category.title)
                self.categories.append(category)


class QueryBody(BaseModel):
    normalized: List[TitleMapping] = Field(default_factory=list)
    redirects: List[TitleMapping] = Field(default_factory=list)
    pages: List[WikiPage] = Field(default_factory=list)

    class Config:
        extra = "ignore"


class QueryResponse(BaseModel):
    query: QueryBody = Field(default_factory=QueryBody)
    continue_: Optional[Dict[str, str]] = Field(None, alias="continue")

    class Config:
        populate_by_name = True
        extra = "ignore"
