"""Progress reporting for the dashboard: one job, or the whole pipeline."""

from typing import Any, Dict, List, Optional

from washpipe.core.error_logger import ErrorLogger, get_error_logger
from washpipe.core.error_models import ErrorComponent, ErrorSeverity, ErrorStage
from washpipe.core.exceptions import BatchNotFoundError, ProviderError
from washpipe.core.logging import get_logger
from washpipe.pipeline.state import CrawlStatus, batch_phase

logger = get_logger(__name__)

HAS_WEBSITE = [("not_is", "website", "null"), ("neq", "website", "")]

FAILURE_BUCKETS = (
    CrawlStatus.FETCH_FAILED.value,
    CrawlStatus.NO_CONTENT.value,
    CrawlStatus.CLASSIFY_FAILED.value,
    CrawlStatus.REDIRECT.value,
    CrawlStatus.NO_WEBSITE.value,
)


class StatusReporter:
    """
    Args:
        store: PipelineStore
        provider: Crawl provider client for live progress (optional)
    """

    RECENT_BATCHES = 20
    RUNS_PAGE_SIZE = 50

    def __init__(self, store, provider=None, error_logger: Optional[ErrorLogger] = None):
        self.store = store
        self.provider = provider
        self.error_logger = error_logger or get_error_logger()

    def status(self, job_id: Optional[str] = None, runs_page: int = 0) -> Dict[str, Any]:
        if job_id:
            return self.job_status(job_id)
        return self.overview(runs_page)

    def job_status(self, job_id: str) -> Dict[str, Any]:
        """
        Raises:
            BatchNotFoundError: No batch was submitted under ``job_id``
        """
        batch = self.store.get_batch_by_job_id(job_id)
        if batch is None:
            raise BatchNotFoundError(f"No batch found for job {job_id}")

        report: Dict[str, Any] = {
            "batch": batch.model_dump(exclude={"url_to_ids"}),
            "phase": batch_phase(batch),
            "listings": len(batch.listing_ids),
            "progress": None,
        }

        if self.provider is not None:
            try:
                page = self.provider.get_progress(job_id)
                report["progress"] = {
                    "status": page.status,
                    "total": page.total,
                    "completed": page.completed,
                    "credits_used": page.credits_used,
                }
            except ProviderError as e:
                self.error_logger.log_exception(
                    e,
                    component=ErrorComponent.CRAWL,
                    stage=ErrorStage.POLL_FETCH,
                    job_id=job_id,
                    severity=ErrorSeverity.WARNING,
                )
                report["progress_error"] = e.message

        # read after the progress call so a provider failure shows up here
        report["recent_errors"] = self.error_logger.get_errors_for_job(job_id, limit=20)
        return report

    def overview(self, runs_page: int = 0) -> Dict[str, Any]:
        return {
            "stats": self.stats(),
            "recent_batches": self._recent_batches(),
            "recent_runs": self.store.recent_runs(page=runs_page, page_size=self.RUNS_PAGE_SIZE),
            "runs_page": runs_page,
            "total_runs": self.store.count_runs(),
        }

    def stats(self) -> Dict[str, int]:
        count = self.store.count_listings
        stats = {
            "total_with_websites": count(HAS_WEBSITE),
            "queue": count(HAS_WEBSITE + [("is", "is_touchless", "null"), ("is", "crawl_status", "null")]),
            "scraped": count([("not_is", "crawl_status", "null"), ("neq", "crawl_status", CrawlStatus.QUEUED.value)]),
            "classified": count([("eq", "crawl_status", CrawlStatus.CLASSIFIED.value)]),
            "touchless": count([("eq", "is_touchless", True)]),
            "not_touchless": count([("eq", "is_touchless", False)]),
        }
        for bucket in FAILURE_BUCKETS:
            stats[bucket] = count([("eq", "crawl_status", bucket)])
        return stats

    def _recent_batches(self) -> List[Dict[str, Any]]:
        rows = self.store.recent_batches(limit=self.RECENT_BATCHES)
        # the URL map can be thousands of entries; the dashboard only needs its size
        for row in rows:
            url_map = row.pop("url_to_ids", None)
            legacy_map = row.pop("url_to_id", None)
            url_map = url_map or legacy_map or {}
            row["unique_urls"] = len(url_map)
        return rows
