"""
Result Writer: applies one page's outcome to every listing that shares its URL.

Each listing is re-read right before the write so a verdict set meanwhile
(by another page, a reclassify pass or a manual edit) is never clobbered.
Cumulative fields only grow: amenities are unioned, photo and description
fields are written only while empty.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from washpipe.core.config import Config, get_config
from washpipe.core.error_logger import ErrorLogger, get_error_logger
from washpipe.core.error_models import ErrorComponent, ErrorSeverity, ErrorStage
from washpipe.core.logging import get_logger
from washpipe.db.models import Batch, Listing, ListingId, RunRecord
from washpipe.pipeline.filters import FilterSync
from washpipe.pipeline.state import BatchType
from washpipe.utils.date_utils import get_current_timestamp

logger = get_logger(__name__)


@dataclass
class PageResult:
    """Outcome of assessing one scraped page."""
    crawl_status: str
    verdict: Optional[bool] = None
    evidence: str = ""
    amenities: List[str] = field(default_factory=list)
    description: Optional[str] = None
    images: List[str] = field(default_factory=list)
    markdown: str = ""
    url: Optional[str] = None


def merge_amenities(existing: Iterable[str], new: Iterable[str]) -> List[str]:
    """
    Union two amenity lists, keeping existing order and casing.

    Example:
        >>> merge_amenities(["Vacuum"], ["vacuum", "Towels"])
        ['Vacuum', 'Towels']
    """
    merged: List[str] = []
    seen = set()
    for amenity in list(existing or []) + list(new or []):
        key = amenity.strip().lower()
        if key and key not in seen:
            seen.add(key)
            merged.append(amenity.strip())
    return merged


def enrichment_fields(listing: Listing, result: PageResult, max_photos: int = 10) -> Dict[str, Any]:
    """Additive updates for a touchless listing; existing values always win."""
    fields: Dict[str, Any] = {}

    merged = merge_amenities(listing.amenities, result.amenities)
    if merged != listing.amenities:
        fields["amenities"] = merged

    photos = result.images[:max_photos]
    if photos:
        if not listing.hero_image:
            fields["hero_image"] = photos[0]
        if not listing.website_photos:
            fields["website_photos"] = photos

    if result.description and not listing.description:
        fields["description"] = result.description

    return fields


class ResultWriter:
    """
    Writes page results to listings, run history and search facets.

    Args:
        store: PipelineStore
        config: Pipeline configuration
        error_logger: Sink for best-effort failures
        filter_sync: Facet sync (defaults to one backed by ``store``)
    """

    def __init__(
        self,
        store,
        config: Optional[Config] = None,
        error_logger: Optional[ErrorLogger] = None,
        filter_sync: Optional[FilterSync] = None,
    ):
        self.store = store
        self.config = config or get_config()
        self.error_logger = error_logger or get_error_logger()
        self.filter_sync = filter_sync or FilterSync(store)

    def write(self, listing_ids: Iterable[ListingId], result: PageResult, batch: Batch) -> int:
        """
        Apply ``result`` to each listing.

        A failed listing update is logged and skipped; it does not stop the
        remaining listings.

        Returns:
            Number of listings written
        """
        enrich_only = batch.batch_type == BatchType.ENRICH_TOUCHLESS.value
        written = 0
        for listing_id in listing_ids:
            if self.write_listing(listing_id, result, batch.id, batch.firecrawl_job_id, enrich_only):
                written += 1
        return written

    def write_listing(
        self,
        listing_id: ListingId,
        result: PageResult,
        batch_id: Optional[ListingId] = None,
        job_id: Optional[str] = None,
        enrich_only: bool = False,
    ) -> bool:
        """
        Apply ``result`` to one listing.

        Returns:
            True if the listing was written, False if it was skipped or the write failed
        """
        try:
            return self._write_one(listing_id, result, batch_id, job_id, enrich_only)
        except Exception as e:
            self.error_logger.log_exception(
                e,
                component=ErrorComponent.DATABASE,
                stage=ErrorStage.WRITE_LISTING,
                url=result.url,
                job_id=job_id,
                listing_id=listing_id,
            )
            return False

    def _write_one(
        self,
        listing_id: ListingId,
        result: PageResult,
        batch_id: Optional[ListingId],
        job_id: Optional[str],
        enrich_only: bool,
    ) -> bool:
        listing = self.store.get_listing(listing_id)
        if listing is None:
            logger.debug(f"[Writer] listing {listing_id} no longer exists")
            return False

        if listing.is_touchless is False:
            return False

        now = get_current_timestamp()
        enrich_only = enrich_only or listing.is_touchless is True

        if enrich_only:
            if listing.is_touchless is not True:
                # enrichment batches never decide a verdict
                return False
            effective = True
            fields = enrichment_fields(listing, result, self.config.max_photos)
            fields["last_crawled_at"] = now
        else:
            effective = listing.is_touchless
            fields = {
                "crawl_status": result.crawl_status,
                "touchless_evidence": result.evidence or "",
                "last_crawled_at": now,
            }
            if result.verdict is not None:
                fields["is_touchless"] = result.verdict
                effective = result.verdict
            if effective is True:
                fields.update(enrichment_fields(listing, result, self.config.max_photos))

        self.store.update_listing(listing.id, fields)
        logger.debug(f"[Writer] listing {listing.id}: {result.crawl_status} verdict={effective}")

        self._record_run(listing, result, batch_id, job_id)
        if effective is True:
            self._sync_filters(listing, fields.get("amenities", listing.amenities), job_id)
        return True

    def _record_run(self, listing: Listing, result: PageResult, batch_id: Optional[ListingId], job_id: Optional[str]) -> None:
        try:
            run = RunRecord.build(
                listing_id=listing.id,
                batch_id=batch_id,
                crawl_status=result.crawl_status,
                is_touchless=result.verdict,
                evidence=result.evidence,
                markdown=result.markdown,
                images_found=len(result.images),
                max_markdown_chars=self.config.raw_markdown_max_chars,
            )
            self.store.insert_run(run)
        except Exception as e:
            self.error_logger.log_exception(
                e,
                component=ErrorComponent.DATABASE,
                stage=ErrorStage.WRITE_RUN,
                url=result.url,
                job_id=job_id,
                listing_id=listing.id,
                severity=ErrorSeverity.WARNING,
            )

    def _sync_filters(self, listing: Listing, amenities: List[str], job_id: Optional[str]) -> None:
        try:
            self.filter_sync.sync(listing.id, amenities, True)
        except Exception as e:
            self.error_logger.log_exception(
                e,
                component=ErrorComponent.DATABASE,
                stage=ErrorStage.SYNC_FILTERS,
                job_id=job_id,
                listing_id=listing.id,
                severity=ErrorSeverity.WARNING,
            )
