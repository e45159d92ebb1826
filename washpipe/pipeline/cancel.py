"""Administrative stop for every running batch."""

from typing import Any, Dict, List, Optional

from washpipe.core.error_logger import ErrorLogger, get_error_logger
from washpipe.core.error_models import ErrorComponent, ErrorSeverity, ErrorStage
from washpipe.core.event_logger import PipelineEventLogger, get_event_logger
from washpipe.core.event_models import PipelineStep
from washpipe.core.exceptions import ProviderError
from washpipe.core.logging import get_logger
from washpipe.db.models import Batch
from washpipe.pipeline.state import BatchStatus, BatchType, ClassifyStatus, CrawlStatus, can_transition_batch
from washpipe.utils.date_utils import get_current_timestamp

logger = get_logger(__name__)


class BatchCanceller:
    """
    Args:
        store: PipelineStore
        provider: Crawl provider client (``cancel_batch_scrape``)
    """

    def __init__(
        self,
        store,
        provider,
        error_logger: Optional[ErrorLogger] = None,
        event_logger: Optional[PipelineEventLogger] = None,
    ):
        self.store = store
        self.provider = provider
        self.error_logger = error_logger or get_error_logger()
        self.event_logger = event_logger or get_event_logger()

    def cancel_running(self) -> Dict[str, Any]:
        """
        Cancel every running batch.

        Provider cancellation is best effort; the batch is marked failed and
        abandoned either way.

        Returns:
            {"cancelled": n, "batches": [{job_id, provider_cancelled, released}]}
        """
        results: List[Dict[str, Any]] = []
        for batch in self.store.list_batches(BatchStatus.RUNNING.value):
            results.append(self._cancel(batch))
        cancelled = sum(1 for r in results if r["cancelled"])
        logger.info(f"[Cancel] cancelled {cancelled} of {len(results)} running batches")
        return {"cancelled": cancelled, "batches": results}

    def _cancel(self, batch: Batch) -> Dict[str, Any]:
        job_id = batch.firecrawl_job_id
        provider_cancelled = True
        try:
            self.provider.cancel_batch_scrape(job_id)
        except ProviderError as e:
            provider_cancelled = False
            self.error_logger.log_exception(
                e,
                component=ErrorComponent.CRAWL,
                stage=ErrorStage.CANCEL_BATCH,
                job_id=job_id,
                severity=ErrorSeverity.WARNING,
            )

        def plan(latest: Batch) -> Optional[Dict[str, Any]]:
            if not can_transition_batch(latest.status, BatchStatus.FAILED):
                return None
            return {"status": BatchStatus.FAILED.value, "classify_status": ClassifyStatus.ABANDONED.value}

        updated = self.store.modify_batch(batch, plan)
        cancelled = updated is not None and updated.status == BatchStatus.FAILED.value

        released = 0
        if cancelled and batch.batch_type == BatchType.CLASSIFY.value:
            released = self.store.mark_listings(
                batch.listing_ids,
                {"crawl_status": CrawlStatus.FAILED.value, "last_crawled_at": get_current_timestamp()},
                only_status=CrawlStatus.QUEUED.value,
            )

        self.event_logger.log_step(
            PipelineStep.BATCH_CANCELLED,
            job_id=job_id,
            batch_id=batch.id,
            metadata={"provider_cancelled": provider_cancelled, "released": released},
        )
        return {"job_id": job_id, "cancelled": cancelled, "provider_cancelled": provider_cancelled, "released": released}
