"""
Batch and listing state machine.

A Batch carries two status columns: ``status`` tracks the crawl job as a
whole, ``classify_status`` tracks our progress through its results. Both
have sticky terminal states. Listing ``crawl_status`` records the outcome
of the most recent attempt and decides whether "retry failed" picks the
listing up again.
"""

from enum import Enum
from typing import Any, Dict, Optional

from washpipe.core.exceptions import InvalidTransitionError
from washpipe.crawl.models import BatchScrapePage
from washpipe.db.models import Batch
from washpipe.utils.date_utils import get_current_timestamp


class BatchStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ClassifyStatus(str, Enum):
    RUNNING = "running"
    WAITING = "waiting"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"
    ABANDONED = "abandoned"


class CrawlStatus(str, Enum):
    """Per-listing outcome of the most recent crawl attempt."""
    QUEUED = "queued"
    CLASSIFIED = "classified"
    SUCCESS = "success"
    UNKNOWN = "unknown"
    FETCH_FAILED = "fetch_failed"
    NO_CONTENT = "no_content"
    CLASSIFY_FAILED = "classify_failed"
    REDIRECT = "redirect"
    NO_WEBSITE = "no_website"
    FAILED = "failed"
    TIMEOUT = "timeout"


class BatchType(str, Enum):
    CLASSIFY = "classify"
    ENRICH_TOUCHLESS = "enrich_touchless"


RETRYABLE_CRAWL_STATUSES = frozenset({
    CrawlStatus.FETCH_FAILED.value,
    CrawlStatus.NO_CONTENT.value,
    CrawlStatus.CLASSIFY_FAILED.value,
    CrawlStatus.FAILED.value,
    CrawlStatus.TIMEOUT.value,
})

TERMINAL_CRAWL_STATUSES = frozenset({CrawlStatus.NO_WEBSITE.value})

BATCH_TRANSITIONS = {
    BatchStatus.PENDING.value: {BatchStatus.RUNNING.value, BatchStatus.FAILED.value},
    BatchStatus.RUNNING.value: {BatchStatus.RUNNING.value, BatchStatus.COMPLETED.value, BatchStatus.FAILED.value},
    BatchStatus.COMPLETED.value: {BatchStatus.COMPLETED.value},
    BatchStatus.FAILED.value: {BatchStatus.FAILED.value},
}

# None is "not started"
CLASSIFY_TRANSITIONS = {
    None: {ClassifyStatus.RUNNING.value, ClassifyStatus.WAITING.value, ClassifyStatus.COMPLETED.value,
           ClassifyStatus.EXPIRED.value, ClassifyStatus.FAILED.value, ClassifyStatus.ABANDONED.value},
    ClassifyStatus.RUNNING.value: {ClassifyStatus.RUNNING.value, ClassifyStatus.WAITING.value,
                                   ClassifyStatus.COMPLETED.value, ClassifyStatus.EXPIRED.value,
                                   ClassifyStatus.FAILED.value, ClassifyStatus.ABANDONED.value},
    ClassifyStatus.WAITING.value: {ClassifyStatus.RUNNING.value, ClassifyStatus.WAITING.value,
                                   ClassifyStatus.COMPLETED.value, ClassifyStatus.EXPIRED.value,
                                   ClassifyStatus.FAILED.value, ClassifyStatus.ABANDONED.value},
    ClassifyStatus.COMPLETED.value: {ClassifyStatus.COMPLETED.value},
    ClassifyStatus.EXPIRED.value: {ClassifyStatus.EXPIRED.value},
    ClassifyStatus.FAILED.value: {ClassifyStatus.FAILED.value},
    ClassifyStatus.ABANDONED.value: {ClassifyStatus.ABANDONED.value},
}

TERMINAL_CLASSIFY_STATUSES = frozenset({
    ClassifyStatus.COMPLETED.value,
    ClassifyStatus.EXPIRED.value,
    ClassifyStatus.FAILED.value,
    ClassifyStatus.ABANDONED.value,
})


def _value(status: Any) -> Optional[str]:
    return status.value if isinstance(status, Enum) else status


def can_transition_batch(current: Any, target: Any) -> bool:
    return _value(target) in BATCH_TRANSITIONS.get(_value(current), set())


def can_transition_classify(current: Any, target: Any) -> bool:
    return _value(target) in CLASSIFY_TRANSITIONS.get(_value(current), set())


def check_batch_transition(current: Any, target: Any) -> None:
    """
    Raises:
        InvalidTransitionError: If ``current -> target`` is not allowed
    """
    if not can_transition_batch(current, target):
        raise InvalidTransitionError(f"Batch status cannot move from {_value(current)} to {_value(target)}")


def check_classify_transition(current: Any, target: Any) -> None:
    """
    Raises:
        InvalidTransitionError: If ``current -> target`` is not allowed
    """
    if not can_transition_classify(current, target):
        raise InvalidTransitionError(f"Classify status cannot move from {_value(current)} to {_value(target)}")


def is_terminal(batch: Batch) -> bool:
    """
    True once neither polling nor the watchdog should touch the batch again.

    A batch whose classification completed while the provider was still
    scraping stays open until the provider finishes too.
    """
    return batch.status in (BatchStatus.COMPLETED.value, BatchStatus.FAILED.value)


def batch_phase(batch: Batch) -> str:
    """
    Collapse the two status columns into one lifecycle phase.

    Returns:
        One of submitted, scraping, classifying, completed, failed, expired
    """
    if batch.classify_status == ClassifyStatus.EXPIRED.value:
        return "expired"
    if batch.status == BatchStatus.FAILED.value or batch.classify_status in (
        ClassifyStatus.FAILED.value,
        ClassifyStatus.ABANDONED.value,
    ):
        return "failed"
    if batch.classify_status == ClassifyStatus.COMPLETED.value:
        return "completed"
    if batch.classify_status == ClassifyStatus.WAITING.value:
        return "scraping"
    if batch.classify_status == ClassifyStatus.RUNNING.value:
        return "classifying"
    return "submitted"


def is_expired_page(page: BatchScrapePage) -> bool:
    """The provider discarded the job's data: no cursor, no items, nothing completed."""
    return not page.next and not page.data and page.completed == 0


def is_done_page(page: BatchScrapePage, written: int, settled: bool = False) -> bool:
    """
    Last page that produced at least one write.

    ``settled`` covers a re-poll of the last page after a crash: the provider
    is finished, every listing of the batch has left the queued state, and the
    page legitimately writes nothing.
    """
    return not page.next and len(page.data) > 0 and (written > 0 or settled)


def plan_poll_update(
    batch: Batch,
    page: BatchScrapePage,
    written: int,
    settled: bool = False,
    now: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Compute the batch update for one polled page.

    ``batch`` must be the latest row; the caller applies the result as a
    compare-and-set against ``batch.updated_at``. Terminal states already
    reached are kept.

    Args:
        batch: Latest batch row
        page: The page just fetched from the provider
        written: Listings written for this page
        settled: Provider finished and nothing of the batch is still queued
        now: Timestamp override (tests)

    Returns:
        Column values to write

    Example:
        >>> fields = plan_poll_update(batch, page, written=3)
        >>> fields["classified_count"]
        3
    """
    now = now or get_current_timestamp()
    fields: Dict[str, Any] = {
        "completed_count": max(page.completed, 0),
        "classified_count": max(batch.classified_count + max(written, 0), 0),
        "credits_used": max(page.credits_used, batch.credits_used),
    }
    if page.total:
        fields["total_urls"] = max(batch.total_urls, page.total)

    current_status = batch.status
    current_classify = batch.classify_status

    if is_expired_page(page):
        target_status, target_classify = BatchStatus.FAILED.value, ClassifyStatus.EXPIRED.value
    elif is_done_page(page, written, settled):
        target_classify = ClassifyStatus.COMPLETED.value
        target_status = BatchStatus.COMPLETED.value if page.status == "completed" else BatchStatus.RUNNING.value
    elif not page.data:
        target_status, target_classify = current_status, ClassifyStatus.WAITING.value
    else:
        target_status, target_classify = current_status, ClassifyStatus.RUNNING.value

    if can_transition_batch(current_status, target_status):
        fields["status"] = target_status
    if can_transition_classify(current_classify, target_classify):
        fields["classify_status"] = target_classify
        if target_classify == ClassifyStatus.COMPLETED.value and current_classify != target_classify:
            fields["classify_completed_at"] = now

    return fields
