"""
Watchdog: periodic sweep that rescues stalled work.

Covers two kinds of jobs:

1. Task-table jobs of the sibling background processors (photo enrich,
   gallery backfill, hero audit). Each job owns rows in a tasks table;
   a task stuck ``in_progress`` is reset to ``pending`` or, after too many
   attempts, forced to ``done``. A job with pending work but nothing in
   flight is kicked awake; a job with nothing left is completed.
2. Crawl batches of this pipeline whose row has not moved for a while. They
   are re-kicked from the first page a few times, then abandoned.

Every action is conditional on the state just read, so overlapping sweeps
are harmless.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from washpipe.core.config import Config, get_config
from washpipe.core.error_logger import ErrorLogger, get_error_logger
from washpipe.core.error_models import ErrorComponent, ErrorSeverity, ErrorStage, ErrorType
from washpipe.core.event_logger import PipelineEventLogger, get_event_logger
from washpipe.core.event_models import PipelineStep
from washpipe.core.logging import get_logger
from washpipe.db.models import Batch
from washpipe.pipeline.state import BatchStatus, BatchType, ClassifyStatus, CrawlStatus
from washpipe.utils.date_utils import get_current_timestamp, is_older_than, minutes_ago

logger = get_logger(__name__)

KICKED = "KICKED"
FIXED = "FIXED"
COMPLETED = "COMPLETED"
HEALTHY = "HEALTHY"
ABANDONED = "ABANDONED"
SKIPPED = "SKIPPED"
ERROR = "ERROR"


@dataclass(frozen=True)
class TaskJobType:
    name: str
    jobs_table: str
    tasks_table: str
    processor_path: str


TASK_JOB_TYPES = (
    TaskJobType("photo_enrich", "photo_enrich_jobs", "photo_enrich_tasks", "photo-enrich"),
    TaskJobType("gallery_backfill", "gallery_backfill_jobs", "gallery_backfill_tasks", "gallery-backfill"),
    TaskJobType("hero_audit", "hero_audit_jobs", "hero_audit_tasks", "hero-audit"),
)

STUCK_REASON = "Watchdog: repeated timeouts"


class Watchdog:
    """
    Args:
        store: PipelineStore
        kicker: HttpKicker (``kick_poll`` / ``kick_task_job``)
        config: Thresholds (WATCHDOG_*, BATCH_STALL_MINUTES)
        job_types: Task-table job types to check
        sleep: Pause between staggered kicks (replaceable in tests)
    """

    def __init__(
        self,
        store,
        kicker,
        config: Optional[Config] = None,
        job_types=TASK_JOB_TYPES,
        error_logger: Optional[ErrorLogger] = None,
        event_logger: Optional[PipelineEventLogger] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.kicker = kicker
        self.config = config or get_config()
        self.job_types = job_types
        self.error_logger = error_logger or get_error_logger()
        self.event_logger = event_logger or get_event_logger()
        self.sleep = sleep

    def sweep(self) -> Dict[str, Any]:
        """
        Check every running job once.

        Returns:
            {"checked_at", "jobs_checked", "report": [{type, job_id, action, ...}]}
        """
        report: List[Dict[str, Any]] = []

        for job_type in self.job_types:
            try:
                jobs = self.store.running_task_jobs(job_type.jobs_table)
            except Exception as e:
                self._log_failure(e, job_type.name, None)
                report.append({"type": job_type.name, "job_id": None, "action": ERROR, "error": str(e)})
                continue
            for job in jobs:
                report.append(self._check_task_job(job_type, job["id"]))

        try:
            batches = self.store.list_batches(BatchStatus.RUNNING.value)
        except Exception as e:
            self._log_failure(e, "crawl_batch", None)
            report.append({"type": "crawl_batch", "job_id": None, "action": ERROR, "error": str(e)})
            batches = []
        for batch in batches:
            try:
                report.append(self._check_batch(batch))
            except Exception as e:
                self._log_failure(e, "crawl_batch", batch.firecrawl_job_id)
                report.append({"type": "crawl_batch", "job_id": batch.firecrawl_job_id, "action": ERROR, "error": str(e)})

        result = {"checked_at": get_current_timestamp(), "jobs_checked": len(report), "report": report}
        self.event_logger.log_step(
            PipelineStep.WATCHDOG_SWEEP,
            metadata={
                "jobs_checked": len(report),
                "actions": {a: sum(1 for r in report if r["action"] == a) for a in {r["action"] for r in report}},
            },
        )
        return result

    # ------------------------------------------------------------------
    # Task-table jobs
    # ------------------------------------------------------------------

    def _check_task_job(self, job_type: TaskJobType, job_id: Any) -> Dict[str, Any]:
        entry: Dict[str, Any] = {"type": job_type.name, "job_id": job_id}
        try:
            cutoff = minutes_ago(self.config.watchdog_stuck_minutes)
            finished = self.store.finish_stuck_tasks(
                job_type.tasks_table, job_id, cutoff, self.config.watchdog_max_attempts, STUCK_REASON
            )
            reset = self.store.reset_stuck_tasks(
                job_type.tasks_table, job_id, cutoff, self.config.watchdog_max_attempts
            )
            pending = self.store.count_tasks(job_type.tasks_table, job_id, "pending")
            in_progress = self.store.count_tasks(job_type.tasks_table, job_id, "in_progress")
            entry.update({"finished": finished, "reset": reset, "pending": pending, "in_progress": in_progress})

            if in_progress == 0 and pending > 0:
                kicks = self._kick_task_job(job_type, job_id)
                entry.update({"action": KICKED, "kicks": kicks})
            elif finished or reset:
                entry["action"] = FIXED
            elif pending == 0 and in_progress == 0:
                self.store.complete_task_job(job_type.jobs_table, job_id)
                entry["action"] = COMPLETED
            else:
                entry["action"] = HEALTHY
        except Exception as e:
            self._log_failure(e, job_type.name, job_id)
            entry.update({"action": ERROR, "error": str(e)})

        if entry["action"] != HEALTHY:
            logger.info(f"[Watchdog] {job_type.name} {job_id}: {entry['action']}")
        return entry

    def _kick_task_job(self, job_type: TaskJobType, job_id: Any) -> int:
        """Several staggered kicks; each one starts its own processing chain."""
        landed = 0
        chains = self.config.watchdog_kick_chains
        for i in range(chains):
            if self.kicker.kick_task_job(job_type.name, job_type.processor_path, job_id):
                landed += 1
            if i < chains - 1:
                self.sleep(self.config.watchdog_kick_stagger_s)
        return landed

    # ------------------------------------------------------------------
    # Crawl batches
    # ------------------------------------------------------------------

    def _check_batch(self, batch: Batch) -> Dict[str, Any]:
        entry: Dict[str, Any] = {"type": "crawl_batch", "job_id": batch.firecrawl_job_id, "batch_id": batch.id}

        if not is_older_than(batch.updated_at, self.config.batch_stall_minutes):
            entry["action"] = HEALTHY
            return entry

        if batch.stall_count < self.config.watchdog_max_attempts:
            fields: Dict[str, Any] = {"stall_count": batch.stall_count + 1}
            if batch.classify_status != ClassifyStatus.COMPLETED.value:
                fields["classify_status"] = ClassifyStatus.WAITING.value
            updated = self.store.update_batch(
                batch.id, fields, expected_updated_at=batch.updated_at, check_version=True
            )
            if updated is None:
                entry["action"] = SKIPPED
                return entry
            kicked = self.kicker.kick_poll(batch.firecrawl_job_id, None)
            entry.update({"action": KICKED, "stall_count": updated.stall_count, "kicked": kicked})
        else:
            updated = self.store.update_batch(
                batch.id,
                {"status": BatchStatus.FAILED.value, "classify_status": ClassifyStatus.ABANDONED.value},
                expected_updated_at=batch.updated_at,
                check_version=True,
            )
            if updated is None:
                entry["action"] = SKIPPED
                return entry
            released = self._release_queued(updated)
            entry.update({"action": ABANDONED, "released": released})
            self.error_logger.log_error(
                component=ErrorComponent.WATCHDOG,
                stage=ErrorStage.WATCHDOG_SWEEP,
                error_type=ErrorType.STALLED,
                message=f"Batch abandoned after {batch.stall_count} stalled re-kicks",
                job_id=batch.firecrawl_job_id,
                severity=ErrorSeverity.WARNING,
                metadata={"released": released},
            )

        logger.info(f"[Watchdog] batch {batch.firecrawl_job_id}: {entry['action']}")
        return entry

    def _release_queued(self, batch: Batch) -> int:
        if batch.batch_type != BatchType.CLASSIFY.value:
            return 0
        return self.store.mark_listings(
            batch.listing_ids,
            {"crawl_status": CrawlStatus.FAILED.value, "last_crawled_at": get_current_timestamp()},
            only_status=CrawlStatus.QUEUED.value,
        )

    def _log_failure(self, exc: Exception, job_type: str, job_id: Any) -> None:
        self.error_logger.log_exception(
            exc,
            component=ErrorComponent.WATCHDOG,
            stage=ErrorStage.WATCHDOG_SWEEP,
            job_id=str(job_id) if job_id is not None else None,
            metadata={"job_type": job_type},
        )
