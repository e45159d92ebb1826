"""
Result Poller: one bounded step through a crawl job's results.

Each call fetches a single page at the caller's cursor, resolves every
scraped item back to the listings that submitted its URL, classifies the
items concurrently and hands the outcomes to the Result Writer. The Batch
row is then advanced with a compare-and-set so a concurrent watchdog
sweep is never overwritten. The caller keeps calling with the returned
cursor until ``done``.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

from washpipe.core.config import Config, get_config
from washpipe.core.error_logger import ErrorLogger, get_error_logger
from washpipe.core.error_models import ErrorComponent, ErrorSeverity, ErrorStage, ErrorType
from washpipe.core.event_logger import PipelineEventLogger, get_event_logger
from washpipe.core.event_models import PipelineStatus, PipelineStep
from washpipe.core.exceptions import BatchNotFoundError, ClassificationError, PollInProgressError, ProviderError
from washpipe.core.logging import get_logger
from washpipe.crawl.models import BatchScrapePage, ScrapedItem
from washpipe.db.models import Batch, ListingId
from washpipe.pipeline.state import (
    BatchStatus,
    BatchType,
    ClassifyStatus,
    CrawlStatus,
    can_transition_classify,
    is_done_page,
    is_expired_page,
    is_terminal,
    plan_poll_update,
)
from washpipe.pipeline.writer import PageResult, ResultWriter
from washpipe.utils.date_utils import get_current_timestamp
from washpipe.utils.images import filter_images
from washpipe.utils.url_utils import extract_domain, is_skip_listed, normalize_url, url_variants

logger = get_logger(__name__)

_job_locks: Dict[str, threading.Lock] = {}
_job_locks_guard = threading.Lock()


@contextmanager
def job_lock(job_id: str) -> Iterator[None]:
    """
    Hold the in-process poll lock for one job.

    Raises:
        PollInProgressError: Another poll of the same job is running
    """
    with _job_locks_guard:
        lock = _job_locks.setdefault(job_id, threading.Lock())
        if not lock.acquire(blocking=False):
            raise PollInProgressError(f"A poll for job {job_id} is already in progress")
    try:
        yield
    finally:
        # entries live only while a poll holds them
        with _job_locks_guard:
            lock.release()
            _job_locks.pop(job_id, None)


@dataclass
class PollOutcome:
    processed: int = 0
    next_cursor: Optional[str] = None
    done: bool = False
    expired: bool = False
    batch_status: Optional[str] = None
    classify_status: Optional[str] = None
    credits_used: int = 0
    page_size: int = 0
    total: int = 0
    total_completed: int = 0
    unmatched: int = 0
    provider_status: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def build_url_index(url_to_ids: Dict[str, List[ListingId]]) -> Dict[str, List[ListingId]]:
    """
    Re-key a batch's URL map by normalized URL.

    Submitted URLs that normalize to the same key have their ids merged.

    Example:
        >>> build_url_index({"https://Wash1.com/": [1], "http://www.wash1.com": [2]})
        {'wash1.com': [1, 2]}
    """
    index: Dict[str, List[ListingId]] = {}
    for url, ids in url_to_ids.items():
        key = normalize_url(url)
        if not key:
            continue
        bucket = index.setdefault(key, [])
        for listing_id in ids:
            if listing_id not in bucket:
                bucket.append(listing_id)
    return index


class ResultPoller:
    """
    Args:
        store: PipelineStore
        provider: Crawl provider client (``get_batch_scrape_page``)
        classifier: PageClassifier (``classify(text)``)
        writer: ResultWriter (defaults to one backed by ``store``)
        config: Pipeline configuration
    """

    BATCH_UPDATE_ATTEMPTS = 3

    def __init__(
        self,
        store,
        provider,
        classifier,
        writer: Optional[ResultWriter] = None,
        config: Optional[Config] = None,
        error_logger: Optional[ErrorLogger] = None,
        event_logger: Optional[PipelineEventLogger] = None,
    ):
        self.store = store
        self.provider = provider
        self.classifier = classifier
        self.config = config or get_config()
        self.error_logger = error_logger or get_error_logger()
        self.event_logger = event_logger or get_event_logger()
        self.writer = writer or ResultWriter(store, self.config, self.error_logger)

    def poll(self, job_id: str, cursor: Optional[str] = None) -> PollOutcome:
        """
        Process one page of a job's results.

        Args:
            job_id: Crawl provider job id
            cursor: Opaque cursor returned by the previous call (None to start)

        Returns:
            PollOutcome with the next cursor and the done/expired flags

        Raises:
            BatchNotFoundError: No batch was submitted under ``job_id``
            PollInProgressError: Another poll of this job holds the lock
            ProviderError: The provider failed to return the page
        """
        batch = self.store.get_batch_by_job_id(job_id)
        if batch is None:
            raise BatchNotFoundError(f"No batch found for job {job_id}")

        with job_lock(job_id):
            return self._poll_locked(batch, cursor)

    def _poll_locked(self, batch: Batch, cursor: Optional[str]) -> PollOutcome:
        job_id = batch.firecrawl_job_id

        if is_terminal(batch):
            expired = batch.classify_status == ClassifyStatus.EXPIRED.value
            logger.info(f"[Poll] {job_id} already {batch.status}/{batch.classify_status}")
            return self._outcome(batch, done=True, expired=expired)

        if cursor is None:
            batch = self._mark_started(batch)

        try:
            page = self.provider.get_batch_scrape_page(
                job_id,
                cursor=cursor,
                limit=None if cursor else self.config.poll_page_size,
            )
        except ProviderError as e:
            self.error_logger.log_exception(
                e, component=ErrorComponent.CRAWL, stage=ErrorStage.POLL_FETCH, job_id=job_id,
                metadata={"cursor": cursor},
            )
            raise

        resolved, unmatched = self._resolve_page(batch, page)
        work = self._eligible_work(batch, resolved)
        results = self._assess_all(batch, [item for item, _ in work])

        written = 0
        for (item, listing_ids), result in zip(work, results):
            written += self.writer.write(listing_ids, result, batch)

        settled = False
        if not page.next and page.data and written == 0 and page.status == "completed":
            settled = not self._queued_listing_ids(batch)

        updated = self.store.modify_batch(
            batch,
            lambda latest: plan_poll_update(latest, page, written, settled=settled),
            attempts=self.BATCH_UPDATE_ATTEMPTS,
        )
        if updated is None:
            self.error_logger.log_error(
                component=ErrorComponent.PIPELINE,
                stage=ErrorStage.UPDATE_BATCH,
                error_type=ErrorType.DB_WRITE_ERROR,
                message=f"Batch {batch.id} update lost {self.BATCH_UPDATE_ATTEMPTS} compare-and-set races",
                job_id=job_id,
                severity=ErrorSeverity.WARNING,
            )
            updated = self.store.get_batch(batch.id) or batch

        metadata = {
            "page_size": len(page.data),
            "processed": written,
            "unmatched": unmatched,
            "completed": page.completed,
            "total": page.total,
            "has_next": bool(page.next),
        }
        self.event_logger.log_step(PipelineStep.PAGE_POLLED, job_id=job_id, batch_id=batch.id, metadata=metadata)

        if is_expired_page(page):
            return self._expire(updated, page)

        done = is_done_page(page, written, settled)
        if done and updated.status == BatchStatus.COMPLETED.value:
            released = self._release_queued(updated)
            self.event_logger.log_step(
                PipelineStep.BATCH_COMPLETED,
                job_id=job_id,
                batch_id=updated.id,
                metadata={"classified_count": updated.classified_count, "released": released},
            )

        return self._outcome(
            updated,
            page=page,
            processed=written,
            done=done,
            unmatched=unmatched,
        )

    # ------------------------------------------------------------------

    def _mark_started(self, batch: Batch) -> Batch:
        def plan(latest: Batch) -> Optional[Dict[str, Any]]:
            if latest.classify_status == ClassifyStatus.COMPLETED.value:
                return None
            if not can_transition_classify(latest.classify_status, ClassifyStatus.RUNNING):
                return None
            fields: Dict[str, Any] = {"classify_status": ClassifyStatus.RUNNING.value}
            if not latest.classify_started_at:
                fields["classify_started_at"] = get_current_timestamp()
            return fields

        return self.store.modify_batch(batch, plan, attempts=self.BATCH_UPDATE_ATTEMPTS) or batch

    def _resolve_page(self, batch: Batch, page: BatchScrapePage) -> Tuple[List[Tuple[ScrapedItem, List[ListingId]]], int]:
        index = build_url_index(batch.url_to_ids)
        resolved: List[Tuple[ScrapedItem, List[ListingId]]] = []
        unmatched = 0

        for item in page.data:
            ids = self._resolve_item(item, index)
            if not ids and not index:
                ids = self._resolve_by_website(item)
            if ids:
                resolved.append((item, ids))
            else:
                unmatched += 1
                logger.debug(
                    f"[Poll] no listing for {item.metadata.source_url or item.metadata.url} in {batch.firecrawl_job_id}"
                )

        if page.data and unmatched == len(page.data):
            self.error_logger.log_error(
                component=ErrorComponent.PIPELINE,
                stage=ErrorStage.RESOLVE_URLS,
                error_type=ErrorType.VALIDATION_ERROR,
                message=f"None of the {len(page.data)} items on this page matched a submitted URL",
                job_id=batch.firecrawl_job_id,
                severity=ErrorSeverity.WARNING,
                metadata={"sample": [i.metadata.source_url for i in page.data[:5]]},
            )
        return resolved, unmatched

    @staticmethod
    def _resolve_item(item: ScrapedItem, index: Dict[str, List[ListingId]]) -> List[ListingId]:
        ids: List[ListingId] = []
        for url in (item.metadata.source_url, item.metadata.url):
            for listing_id in index.get(normalize_url(url), []) if url else []:
                if listing_id not in ids:
                    ids.append(listing_id)
        return ids

    def _resolve_by_website(self, item: ScrapedItem) -> List[ListingId]:
        """Legacy batches carry no URL map: match on the listing's website spellings."""
        variants: List[str] = []
        for url in (item.metadata.source_url, item.metadata.url):
            variants.extend(url_variants(url))
        if not variants:
            return []
        return [listing.id for listing in self.store.find_listings_by_websites(variants)]

    def _eligible_work(
        self, batch: Batch, resolved: List[Tuple[ScrapedItem, List[ListingId]]]
    ) -> List[Tuple[ScrapedItem, List[ListingId]]]:
        all_ids: List[ListingId] = []
        for _, ids in resolved:
            all_ids.extend(i for i in ids if i not in all_ids)
        if not all_ids:
            return []

        listings = {str(k): v for k, v in self.store.get_listings(all_ids).items()}
        wanted = True if batch.batch_type == BatchType.ENRICH_TOUCHLESS.value else None

        work = []
        for item, ids in resolved:
            eligible = [i for i in ids if str(i) in listings and listings[str(i)].is_touchless is wanted]
            if eligible:
                work.append((item, eligible))
        return work

    def _assess_all(self, batch: Batch, items: List[ScrapedItem]) -> List[PageResult]:
        if not items:
            return []
        workers = max(1, min(self.config.classify_concurrency, len(items)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(lambda item: self.assess(item, batch), items))

    def assess(self, item: ScrapedItem, batch: Optional[Batch] = None) -> PageResult:
        """Decide one item's crawl status, classifying it when the page is usable."""
        meta = item.metadata
        images = filter_images(item.images, limit=self.config.max_photos)
        base = {"images": images, "markdown": item.markdown, "url": meta.url or meta.source_url}

        if meta.status_code >= 400:
            return PageResult(CrawlStatus.FETCH_FAILED.value, evidence=f"HTTP {meta.status_code}", **base)

        if len(item.markdown.strip()) < self.config.min_content_chars:
            return PageResult(CrawlStatus.NO_CONTENT.value, evidence="Page had too little text", **base)

        if meta.url and is_skip_listed(meta.url):
            return PageResult(CrawlStatus.REDIRECT.value, evidence=f"Redirected to {extract_domain(meta.url)}", **base)

        try:
            classification = self.classifier.classify(item.markdown)
        except ClassificationError as e:
            self.error_logger.log_exception(
                e,
                component=ErrorComponent.LLM,
                stage=ErrorStage.CLASSIFY_PAGE,
                domain=extract_domain(base["url"]) or None,
                url=base["url"],
                job_id=batch.firecrawl_job_id if batch else None,
                severity=ErrorSeverity.WARNING,
            )
            return PageResult(CrawlStatus.CLASSIFY_FAILED.value, evidence=str(e)[:500], **base)

        return PageResult(
            CrawlStatus.CLASSIFIED.value,
            verdict=classification.verdict,
            evidence=classification.evidence,
            amenities=classification.amenities,
            description=classification.description,
            **base,
        )

    # ------------------------------------------------------------------

    def _queued_listing_ids(self, batch: Batch) -> List[ListingId]:
        listings = self.store.get_listings(batch.listing_ids)
        return [l.id for l in listings.values() if l.crawl_status == CrawlStatus.QUEUED.value]

    def _release_queued(self, batch: Batch) -> int:
        """Listings the provider never returned become retryable ``failed``."""
        if batch.batch_type != BatchType.CLASSIFY.value or not batch.url_to_ids:
            return 0
        released = self.store.mark_listings(
            batch.listing_ids,
            {"crawl_status": CrawlStatus.FAILED.value, "last_crawled_at": get_current_timestamp()},
            only_status=CrawlStatus.QUEUED.value,
        )
        if released:
            logger.info(f"[Poll] released {released} unreturned listings of {batch.firecrawl_job_id}")
        return released

    def _expire(self, batch: Batch, page: BatchScrapePage) -> PollOutcome:
        released = self._release_queued(batch)
        self.error_logger.log_error(
            component=ErrorComponent.PIPELINE,
            stage=ErrorStage.POLL_FETCH,
            error_type=ErrorType.EXPIRED,
            message="Crawl job returned no data and no progress; its results have expired",
            job_id=batch.firecrawl_job_id,
            severity=ErrorSeverity.WARNING,
            metadata={"released": released},
        )
        self.event_logger.log_step(
            PipelineStep.BATCH_EXPIRED,
            job_id=batch.firecrawl_job_id,
            batch_id=batch.id,
            status=PipelineStatus.FAILED,
            metadata={"released": released},
        )
        return self._outcome(batch, page=page, done=True, expired=True)

    @staticmethod
    def _outcome(
        batch: Batch,
        page: Optional[BatchScrapePage] = None,
        processed: int = 0,
        done: bool = False,
        expired: bool = False,
        unmatched: int = 0,
    ) -> PollOutcome:
        return PollOutcome(
            processed=processed,
            next_cursor=page.next if page else None,
            done=done,
            expired=expired,
            batch_status=batch.status,
            classify_status=batch.classify_status,
            credits_used=batch.credits_used,
            page_size=len(page.data) if page else 0,
            total=page.total if page else batch.total_urls,
            total_completed=page.completed if page else batch.completed_count,
            unmatched=unmatched,
            provider_status=page.status if page else None,
        )
