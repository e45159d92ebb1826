"""
Pydantic models for Firecrawl batch scrape responses.
"""

from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class ScrapeMetadata(BaseModel):
    """Per-page metadata reported by the crawl provider."""
    source_url: Optional[str] = Field(None, alias="sourceURL", description="URL as submitted")
    url: Optional[str] = Field(None, description="Final URL after redirects")
    status_code: int = Field(0, alias="statusCode")
    title: Optional[str] = None

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator("status_code", mode="before")
    @classmethod
    def null_status(cls, v: Any) -> int:
        return v or 0

    @field_validator("title", mode="before")
    @classmethod
    def first_title(cls, v: Any) -> Optional[str]:
        # Pages with several <title> tags come back as a list
        if isinstance(v, list):
            return str(v[0]) if v else None
        return v


class ScrapedItem(BaseModel):
    """One scraped page."""
    markdown: str = ""
    images: List[str] = Field(default_factory=list)
    metadata: ScrapeMetadata = Field(default_factory=ScrapeMetadata)

    model_config = ConfigDict(extra="ignore")

    @field_validator("markdown", mode="before")
    @classmethod
    def null_markdown(cls, v: Any) -> str:
        return v or ""

    @field_validator("images", mode="before")
    @classmethod
    def null_images(cls, v: Any) -> List[str]:
        return [i for i in (v or []) if isinstance(i, str)]

    @field_validator("metadata", mode="before")
    @classmethod
    def null_metadata(cls, v: Any) -> Any:
        return v or {}


class BatchScrapePage(BaseModel):
    """
    One page of batch scrape results.

    ``next`` is the provider's opaque cursor and is absent exactly when no
    further pages exist.
    """
    status: str = "unknown"
    total: int = 0
    completed: int = 0
    credits_used: int = Field(0, alias="creditsUsed")
    data: List[ScrapedItem] = Field(default_factory=list)
    next: Optional[str] = None

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator("total", "completed", "credits_used", mode="before")
    @classmethod
    def null_counts(cls, v: Any) -> int:
        return v or 0

    @field_validator("data", mode="before")
    @classmethod
    def null_data(cls, v: Any) -> Any:
        return v or []

    @field_validator("next", mode="before")
    @classmethod
    def empty_cursor(cls, v: Any) -> Optional[str]:
        return v or None


class SubmitResult(BaseModel):
    """Response to a batch scrape submission."""
    success: bool = False
    id: Optional[str] = None
    url: Optional[str] = None
    invalid_urls: List[str] = Field(default_factory=list, alias="invalidURLs")

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator("invalid_urls", mode="before")
    @classmethod
    def null_invalid(cls, v: Any) -> Any:
        return v or []
