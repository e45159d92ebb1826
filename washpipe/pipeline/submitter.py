"""
Batch Submitter: selects listings, dedupes their websites and submits one
crawl job.

Submitted listings are marked ``queued`` so a repeated call selects
nothing new and reports ``done``. Skip-listed websites are marked
``no_website`` without spending crawl credits.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from washpipe.core.config import Config, get_config
from washpipe.core.error_logger import ErrorLogger, get_error_logger
from washpipe.core.error_models import ErrorComponent, ErrorStage
from washpipe.core.event_logger import PipelineEventLogger, get_event_logger
from washpipe.core.event_models import PipelineStatus, PipelineStep
from washpipe.core.exceptions import BatchAlreadyRunningError, ProviderError
from washpipe.core.logging import get_logger
from washpipe.db.models import Listing, ListingId
from washpipe.pipeline.state import (
    BatchStatus,
    BatchType,
    CrawlStatus,
    RETRYABLE_CRAWL_STATUSES,
)
from washpipe.utils.date_utils import get_current_timestamp
from washpipe.utils.url_utils import is_skip_listed

logger = get_logger(__name__)


@dataclass
class SubmitOutcome:
    done: bool = False
    batch_id: Optional[ListingId] = None
    job_id: Optional[str] = None
    urls_submitted: int = 0
    listings_submitted: int = 0
    listings_skipped: int = 0
    chunk_index: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def build_url_map(listings: List[Listing]) -> Dict[str, List[ListingId]]:
    """
    Group listings by their website exactly as entered.

    Example:
        >>> build_url_map([Listing(id=1, website="https://wash1.com"),
        ...                Listing(id=2, website="https://wash1.com")])
        {'https://wash1.com': [1, 2]}
    """
    url_to_ids: Dict[str, List[ListingId]] = {}
    for listing in listings:
        url = (listing.website or "").strip()
        if not url:
            continue
        ids = url_to_ids.setdefault(url, [])
        if listing.id not in ids:
            ids.append(listing.id)
    return url_to_ids


class BatchSubmitter:
    """
    Args:
        store: PipelineStore
        provider: Crawl provider client (``submit_batch_scrape``)
        config: Pipeline configuration
    """

    def __init__(
        self,
        store,
        provider,
        config: Optional[Config] = None,
        error_logger: Optional[ErrorLogger] = None,
        event_logger: Optional[PipelineEventLogger] = None,
    ):
        self.store = store
        self.provider = provider
        self.config = config or get_config()
        self.error_logger = error_logger or get_error_logger()
        self.event_logger = event_logger or get_event_logger()

    @staticmethod
    def selection_filters(retry_failed: bool, batch_type: str) -> List[tuple]:
        if batch_type == BatchType.ENRICH_TOUCHLESS.value:
            return [("eq", "is_touchless", True), ("is", "hero_image", "null")]
        if retry_failed:
            return [("in", "crawl_status", sorted(RETRYABLE_CRAWL_STATUSES))]
        return [("is", "is_touchless", "null"), ("is", "crawl_status", "null")]

    def submit(
        self,
        retry_failed: bool = False,
        force: bool = False,
        chunk_size: Optional[int] = None,
        chunk_index: int = 0,
        batch_type: str = BatchType.CLASSIFY.value,
    ) -> SubmitOutcome:
        """
        Submit the next chunk of eligible listings as one crawl job.

        Args:
            retry_failed: Select listings whose last attempt failed retryably
            force: Submit a retry or enrich batch even if another batch is running
            chunk_size: Listings per batch (default CHUNK_SIZE)
            chunk_index: Which chunk of the selection to submit
            batch_type: classify or enrich_touchless

        Returns:
            SubmitOutcome; ``done`` is True when nothing is left to submit

        Raises:
            BatchAlreadyRunningError: Retry requested while a batch is running, or
                enrich requested while an enrich batch is running
            ProviderError: The crawl provider rejected the job (no batch is created)
        """
        batch_type = BatchType(batch_type).value
        chunk_size = chunk_size or self.config.chunk_size

        if retry_failed and not force and self.store.has_running_batch():
            raise BatchAlreadyRunningError("A batch is already running; pass force=true to submit anyway")

        # enrich selections are never marked queued; one running enrich job at a time
        enrich = batch_type == BatchType.ENRICH_TOUCHLESS.value
        if enrich and not force and self.store.has_running_batch(batch_type=batch_type):
            raise BatchAlreadyRunningError("An enrich batch is already running; pass force=true to submit anyway")

        try:
            listings = self.store.select_listings(
                self.selection_filters(retry_failed, batch_type),
                offset=chunk_index * chunk_size,
                limit=chunk_size,
            )
        except Exception as e:
            self.error_logger.log_exception(e, component=ErrorComponent.DATABASE, stage=ErrorStage.SUBMIT_SELECT)
            raise

        if not listings:
            logger.info(f"[Submit] nothing to submit (retry_failed={retry_failed}, type={batch_type})")
            return SubmitOutcome(done=True, chunk_index=chunk_index)

        skipped = [l for l in listings if is_skip_listed(l.website)]
        crawlable = [l for l in listings if not is_skip_listed(l.website)]

        if skipped and batch_type == BatchType.CLASSIFY.value:
            self._mark_skipped(skipped)

        url_to_ids = build_url_map(crawlable)
        if not url_to_ids:
            logger.info(f"[Submit] all {len(skipped)} selected listings were skip-listed")
            # classify selections move past skip-listed rows once they are marked
            return SubmitOutcome(done=batch_type != BatchType.CLASSIFY.value, listings_skipped=len(skipped), chunk_index=chunk_index)

        urls = list(url_to_ids)
        try:
            result = self.provider.submit_batch_scrape(urls, webhook_url=self.config.firecrawl_webhook_url)
        except ProviderError as e:
            self.error_logger.log_exception(
                e,
                component=ErrorComponent.CRAWL,
                stage=ErrorStage.SUBMIT_BATCH,
                metadata={"urls": len(urls), "retry_failed": retry_failed},
            )
            raise

        try:
            batch = self.store.insert_batch({
                "firecrawl_job_id": result.id,
                "batch_type": batch_type,
                "status": BatchStatus.RUNNING.value,
                "classify_status": None,
                "total_urls": len(urls),
                "completed_count": 0,
                "classified_count": 0,
                "credits_used": 0,
                "stall_count": 0,
                "chunk_index": chunk_index,
                "url_to_ids": url_to_ids,
            })
        except Exception as e:
            self.error_logger.log_exception(
                e, component=ErrorComponent.DATABASE, stage=ErrorStage.PERSIST_BATCH, job_id=result.id
            )
            raise

        submitted_ids = [listing_id for ids in url_to_ids.values() for listing_id in ids]
        if batch_type == BatchType.CLASSIFY.value:
            self.store.mark_listings(submitted_ids, {"crawl_status": CrawlStatus.QUEUED.value})

        outcome = SubmitOutcome(
            batch_id=batch.id,
            job_id=result.id,
            urls_submitted=len(urls),
            listings_submitted=len(submitted_ids),
            listings_skipped=len(skipped),
            chunk_index=chunk_index,
        )
        self.event_logger.log_step(
            PipelineStep.BATCH_SUBMITTED,
            job_id=result.id,
            batch_id=batch.id,
            metadata={
                "urls_submitted": outcome.urls_submitted,
                "listings_submitted": outcome.listings_submitted,
                "listings_skipped": outcome.listings_skipped,
                "invalid_urls": len(result.invalid_urls),
                "batch_type": batch_type,
            },
        )
        return outcome

    def _mark_skipped(self, listings: List[Listing]) -> None:
        count = self.store.mark_listings(
            [l.id for l in listings],
            {"crawl_status": CrawlStatus.NO_WEBSITE.value, "last_crawled_at": get_current_timestamp()},
        )
        self.event_logger.log_step(
            PipelineStep.LISTINGS_SKIPPED,
            status=PipelineStatus.SUCCESS,
            metadata={"listings_skipped": count, "domains": sorted({l.website for l in listings if l.website})[:20]},
        )
