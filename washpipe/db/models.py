"""
Pydantic models for the pipeline's database rows.

This module defines the three row types the pipeline reads and writes:
listings, batches (one per submitted crawl job) and runs (the immutable
per-listing audit trail).
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Union
from pydantic import AliasChoices, BaseModel, Field, field_validator, ConfigDict


# Listing ids are bigint in older tables and uuid in newer ones.
ListingId = Union[int, str]


class Listing(BaseModel):
    """
    A business listing, restricted to the fields this pipeline touches.
    """
    id: ListingId = Field(..., description="Listing primary key")
    name: Optional[str] = Field(None, description="Business name")
    website: Optional[str] = Field(None, description="Website URL as entered")

    is_touchless: Optional[bool] = Field(None, description="Tri-state verdict; None means unclassified")
    crawl_status: Optional[str] = Field(None, description="Outcome of the most recent crawl")
    touchless_evidence: Optional[str] = Field(None, description="Evidence quoted by the classifier")

    amenities: List[str] = Field(default_factory=list, description="Accumulated amenity tags")
    hero_image: Optional[str] = Field(None, description="Primary photo URL")
    logo_image: Optional[str] = Field(None, description="Logo URL")
    website_photos: Optional[List[str]] = Field(None, description="Photos found on the website")
    description: Optional[str] = Field(None, description="Short factual description")

    last_crawled_at: Optional[str] = Field(None, description="Last crawl timestamp (ISO 8601)")

    model_config = ConfigDict(extra="ignore")

    @field_validator("amenities", mode="before")
    @classmethod
    def coerce_amenities(cls, v: Any) -> List[str]:
        """Accept null and single-string values stored by older imports."""
        if v is None:
            return []
        if isinstance(v, str):
            return [v] if v.strip() else []
        return [str(a) for a in v if a]


class Batch(BaseModel):
    """
    One submitted crawl job and its classification progress.

    ``url_to_ids`` maps each submitted URL, exactly as sent to the crawl
    provider, to every listing id that shares it.
    """
    id: ListingId = Field(..., description="Batch primary key")
    firecrawl_job_id: str = Field(..., min_length=1, description="Opaque crawl provider job id")
    batch_type: str = Field(default="classify", description="classify or enrich_touchless")

    status: str = Field(default="pending", description="pending/running/completed/failed")
    classify_status: Optional[str] = Field(None, description="Classification progress state")

    total_urls: int = Field(default=0, ge=0)
    completed_count: int = Field(default=0, ge=0, description="Provider's own completed count")
    classified_count: int = Field(default=0, ge=0, description="Listing writes accumulated across polls")
    credits_used: int = Field(default=0, ge=0)
    stall_count: int = Field(default=0, ge=0, description="Watchdog re-kicks so far")
    chunk_index: int = Field(default=0, ge=0)

    url_to_ids: Dict[str, List[ListingId]] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("url_to_ids", "url_to_id"),
        description="Submitted URL -> listing ids",
    )

    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    classify_started_at: Optional[str] = None
    classify_completed_at: Optional[str] = None

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator("completed_count", "classified_count", "credits_used", "stall_count", "total_urls", "chunk_index", mode="before")
    @classmethod
    def null_to_zero(cls, v: Any) -> Any:
        return 0 if v is None else v

    @field_validator("url_to_ids", mode="before")
    @classmethod
    def normalize_url_map(cls, v: Any) -> Dict[str, List[Any]]:
        """
        Normalize the stored map to ``url -> [ids]``.

        Older batches stored a single id per URL; both shapes are accepted.
        """
        if not v:
            return {}
        if not isinstance(v, dict):
            raise ValueError("url_to_ids must be a mapping")

        normalized: Dict[str, List[Any]] = {}
        for url, ids in v.items():
            if not url or ids is None:
                continue
            if not isinstance(ids, (list, tuple)):
                ids = [ids]
            unique: List[Any] = []
            for listing_id in ids:
                if listing_id is not None and listing_id not in unique:
                    unique.append(listing_id)
            if unique:
                normalized[str(url)] = unique
        return normalized

    @property
    def listing_ids(self) -> List[ListingId]:
        """Every listing id referenced by this batch, in map order."""
        seen: List[ListingId] = []
        for ids in self.url_to_ids.values():
            for listing_id in ids:
                if listing_id not in seen:
                    seen.append(listing_id)
        return seen


class RunRecord(BaseModel):
    """
    Immutable audit row for one (listing, scraped page) classification event.
    """
    listing_id: ListingId
    batch_id: Optional[ListingId] = None
    crawl_status: str = Field(..., min_length=1)
    is_touchless: Optional[bool] = None
    touchless_evidence: str = ""
    raw_markdown: Optional[str] = None
    images_found: int = Field(default=0, ge=0)
    processed_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(),
        description="Classification timestamp"
    )

    @classmethod
    def build(
        cls,
        listing_id: ListingId,
        batch_id: Optional[ListingId],
        crawl_status: str,
        is_touchless: Optional[bool],
        evidence: Optional[str],
        markdown: Optional[str],
        images_found: int,
        max_markdown_chars: int,
    ) -> "RunRecord":
        """
        Create a run row, truncating the stored page text.

        Example:
            >>> run = RunRecord.build(1, 7, "classified", True, "Touchless bay", "x" * 10, 3, 5)
            >>> run.raw_markdown
            'xxxxx'
        """
        raw = markdown[:max_markdown_chars] if markdown else None
        return cls(
            listing_id=listing_id,
            batch_id=batch_id,
            crawl_status=crawl_status,
            is_touchless=is_touchless,
            touchless_evidence=evidence or "",
            raw_markdown=raw,
            images_found=images_found,
        )
