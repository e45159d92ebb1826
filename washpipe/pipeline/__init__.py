"""
The batch scrape-and-classify pipeline.

Module Structure:
- state: Batch/listing statuses, transitions and the per-page batch update
- submitter: Select listings and submit one crawl job
- poller: Process one page of a job's results
- writer: Apply page results to listings, run history and facets
- filters: Amenity -> search filter sync
- watchdog: Rescue stalled jobs and batches
- kicker: Fire-and-forget self-continuation
- status / reclassify / cancel: Reporting and admin operations
- service: Component wiring
"""

from washpipe.pipeline.state import (
    BatchStatus,
    BatchType,
    ClassifyStatus,
    CrawlStatus,
    RETRYABLE_CRAWL_STATUSES,
    TERMINAL_CRAWL_STATUSES,
    batch_phase,
    plan_poll_update,
)
from washpipe.pipeline.submitter import BatchSubmitter, SubmitOutcome
from washpipe.pipeline.poller import ResultPoller, PollOutcome
from washpipe.pipeline.writer import ResultWriter, PageResult
from washpipe.pipeline.filters import AMENITY_TO_FILTER_SLUG, FilterSync
from washpipe.pipeline.watchdog import Watchdog, TASK_JOB_TYPES
from washpipe.pipeline.kicker import HttpKicker
from washpipe.pipeline.status import StatusReporter
from washpipe.pipeline.reclassify import SavedRunReclassifier
from washpipe.pipeline.cancel import BatchCanceller
from washpipe.pipeline.service import PipelineService

__all__ = [
    "BatchStatus",
    "BatchType",
    "ClassifyStatus",
    "CrawlStatus",
    "RETRYABLE_CRAWL_STATUSES",
    "TERMINAL_CRAWL_STATUSES",
    "batch_phase",
    "plan_poll_update",
    "BatchSubmitter",
    "SubmitOutcome",
    "ResultPoller",
    "PollOutcome",
    "ResultWriter",
    "PageResult",
    "AMENITY_TO_FILTER_SLUG",
    "FilterSync",
    "Watchdog",
    "TASK_JOB_TYPES",
    "HttpKicker",
    "StatusReporter",
    "SavedRunReclassifier",
    "BatchCanceller",
    "PipelineService",
]
