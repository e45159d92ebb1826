"""
Supabase-backed store for every query the pipeline issues.

The store is the pipeline's only durable state: listings, batches (the
resume point for polling), runs (audit trail), filter joins and the
task tables of sibling background jobs checked by the watchdog.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from washpipe.core.config import Config, get_config
from washpipe.core.logging import get_logger
from washpipe.db.models import Batch, Listing, ListingId, RunRecord
from washpipe.utils.date_utils import get_current_timestamp

logger = get_logger(__name__)

LISTING_COLUMNS = (
    "id, name, website, is_touchless, crawl_status, touchless_evidence, amenities, "
    "hero_image, logo_image, website_photos, description, last_crawled_at"
)
RUN_COLUMNS = "id, listing_id, batch_id, crawl_status, is_touchless, touchless_evidence, images_found, processed_at"

# Keeps `in.(...)` filters well inside URL length limits.
ID_CHUNK = 200

# (operator, column, value) triples understood by _apply_filters
Filter = Tuple[str, str, Any]


def _chunks(items: Sequence[Any], size: int = ID_CHUNK) -> Iterable[Sequence[Any]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


def _apply_filters(query, filters: Iterable[Filter]):
    for op, column, value in filters:
        if op == "eq":
            query = query.eq(column, value)
        elif op == "neq":
            query = query.neq(column, value)
        elif op == "is":
            query = query.is_(column, value)
        elif op == "not_is":
            query = query.not_.is_(column, value)
        elif op == "in":
            query = query.in_(column, list(value))
        elif op == "lt":
            query = query.lt(column, value)
        elif op == "gte":
            query = query.gte(column, value)
        else:
            raise ValueError(f"Unsupported filter operator: {op}")
    return query


class PipelineStore:
    """
    Thin wrapper over a Supabase client.

    Args:
        client: Supabase client (or a compatible test double)
        config: Pipeline configuration (table names, page sizes)
    """

    RECLASSIFY_FILTERS: List[Filter] = [
        ("is", "is_touchless", "null"),
        ("not_is", "raw_markdown", "null"),
        ("neq", "raw_markdown", ""),
    ]

    def __init__(self, client: Any, config: Optional[Config] = None):
        if client is None:
            raise RuntimeError("Supabase client is not configured (check SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY)")
        self.client = client
        self.config = config or get_config()

    def _table(self, name: str):
        return self.client.table(name)

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def select_listings(self, filters: List[Filter], offset: int, limit: int) -> List[Listing]:
        """
        Select listings with a website, ordered by id, paging through the
        store's per-query row cap until ``limit`` rows are collected.
        """
        page_size = self.config.store_page_size
        base_filters = list(filters) + [("not_is", "website", "null"), ("neq", "website", "")]

        listings: List[Listing] = []
        cursor = offset
        while len(listings) < limit:
            want = min(page_size, limit - len(listings))
            query = _apply_filters(self._table(self.config.listings_table).select(LISTING_COLUMNS), base_filters)
            result = query.order("id").range(cursor, cursor + want - 1).execute()
            rows = result.data or []
            listings.extend(Listing.model_validate(r) for r in rows)
            if len(rows) < want:
                break
            cursor += want
        return listings

    def get_listing(self, listing_id: ListingId) -> Optional[Listing]:
        result = (
            self._table(self.config.listings_table)
            .select(LISTING_COLUMNS)
            .eq("id", listing_id)
            .limit(1)
            .execute()
        )
        rows = result.data or []
        return Listing.model_validate(rows[0]) if rows else None

    def get_listings(self, listing_ids: Sequence[ListingId]) -> Dict[ListingId, Listing]:
        found: Dict[ListingId, Listing] = {}
        for chunk in _chunks(list(listing_ids)):
            result = self._table(self.config.listings_table).select(LISTING_COLUMNS).in_("id", list(chunk)).execute()
            for row in result.data or []:
                listing = Listing.model_validate(row)
                found[listing.id] = listing
        return found

    def find_listings_by_websites(self, websites: Sequence[str]) -> List[Listing]:
        listings: List[Listing] = []
        for chunk in _chunks(list(dict.fromkeys(websites))):
            result = self._table(self.config.listings_table).select(LISTING_COLUMNS).in_("website", list(chunk)).execute()
            listings.extend(Listing.model_validate(r) for r in result.data or [])
        return listings

    def update_listing(self, listing_id: ListingId, fields: Dict[str, Any]) -> None:
        self._table(self.config.listings_table).update(fields).eq("id", listing_id).execute()

    def mark_listings(self, listing_ids: Sequence[ListingId], fields: Dict[str, Any], only_status: Optional[str] = None) -> int:
        """
        Apply the same update to many listings.

        Args:
            listing_ids: Listings to update
            fields: Column values to set
            only_status: If given, only rows whose crawl_status equals it are touched

        Returns:
            Number of rows updated
        """
        updated = 0
        for chunk in _chunks(list(listing_ids)):
            query = self._table(self.config.listings_table).update(fields).in_("id", list(chunk))
            if only_status is not None:
                query = query.eq("crawl_status", only_status)
            result = query.execute()
            updated += len(result.data or [])
        return updated

    def count_listings(self, filters: List[Filter]) -> int:
        return self._count(self.config.listings_table, filters)

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def insert_batch(self, row: Dict[str, Any]) -> Batch:
        now = get_current_timestamp()
        payload = {"created_at": now, "updated_at": now, **row}
        result = self._table(self.config.batches_table).insert(payload).execute()
        rows = result.data or []
        if not rows:
            raise RuntimeError("Batch insert returned no row")
        return Batch.model_validate(rows[0])

    def get_batch(self, batch_id: ListingId) -> Optional[Batch]:
        result = self._table(self.config.batches_table).select("*").eq("id", batch_id).limit(1).execute()
        rows = result.data or []
        return Batch.model_validate(rows[0]) if rows else None

    def get_batch_by_job_id(self, job_id: str) -> Optional[Batch]:
        result = (
            self._table(self.config.batches_table)
            .select("*")
            .eq("firecrawl_job_id", job_id)
            .limit(1)
            .execute()
        )
        rows = result.data or []
        return Batch.model_validate(rows[0]) if rows else None

    def list_batches(self, status: str) -> List[Batch]:
        result = (
            self._table(self.config.batches_table)
            .select("*")
            .eq("status", status)
            .order("created_at")
            .execute()
        )
        return [Batch.model_validate(r) for r in result.data or []]

    def has_running_batch(self, batch_type: Optional[str] = None) -> bool:
        filters = [("eq", "status", "running")]
        if batch_type is not None:
            filters.append(("eq", "batch_type", batch_type))
        return self._count(self.config.batches_table, filters) > 0

    def recent_batches(self, limit: int = 20) -> List[Dict[str, Any]]:
        result = (
            self._table(self.config.batches_table)
            .select("*")
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return result.data or []

    def update_batch(
        self,
        batch_id: ListingId,
        fields: Dict[str, Any],
        expected_updated_at: Optional[str] = None,
        check_version: bool = False,
    ) -> Optional[Batch]:
        """
        Update a batch row, optionally as a compare-and-set on ``updated_at``.

        Args:
            batch_id: Batch primary key
            fields: Column values to set (``updated_at`` is always stamped)
            expected_updated_at: The ``updated_at`` value read before computing ``fields``
            check_version: If True, only update when ``updated_at`` still matches

        Returns:
            The updated batch, or None if the row changed underneath (or is gone)
        """
        payload = {**fields, "updated_at": get_current_timestamp()}
        query = self._table(self.config.batches_table).update(payload).eq("id", batch_id)
        if check_version:
            if expected_updated_at is None:
                query = query.is_("updated_at", "null")
            else:
                query = query.eq("updated_at", expected_updated_at)
        result = query.execute()
        rows = result.data or []
        return Batch.model_validate(rows[0]) if rows else None

    def modify_batch(
        self,
        batch: Batch,
        plan: Callable[[Batch], Optional[Dict[str, Any]]],
        attempts: int = 3,
    ) -> Optional[Batch]:
        """
        Read-modify-write a batch with compare-and-set on ``updated_at``.

        ``plan`` receives the latest row and returns the fields to set (or
        None to leave the row alone). On conflict the row is re-read and
        ``plan`` runs again.

        Returns:
            The updated (or unchanged, if plan returned None) batch, or None
            if every attempt lost the race
        """
        current = batch
        for attempt in range(attempts):
            fields = plan(current)
            if not fields:
                return current
            updated = self.update_batch(current.id, fields, expected_updated_at=current.updated_at, check_version=True)
            if updated is not None:
                return updated
            logger.debug(f"[Store] batch {current.id} changed underneath (attempt {attempt + 1}/{attempts})")
            latest = self.get_batch(current.id)
            if latest is None:
                return None
            current = latest
        return None

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def insert_run(self, run: RunRecord) -> None:
        self._table(self.config.runs_table).insert(run.model_dump()).execute()

    def recent_runs(self, page: int = 0, page_size: int = 50) -> List[Dict[str, Any]]:
        start = max(page, 0) * page_size
        result = (
            self._table(self.config.runs_table)
            .select(RUN_COLUMNS)
            .order("processed_at", desc=True)
            .range(start, start + page_size - 1)
            .execute()
        )
        return result.data or []

    def count_runs(self, filters: Optional[List[Filter]] = None) -> int:
        return self._count(self.config.runs_table, filters or [])

    def saved_runs_for_reclassify(self, offset: int, limit: int) -> List[Dict[str, Any]]:
        """Runs that kept their page text but produced no verdict, oldest first."""
        query = _apply_filters(
            self._table(self.config.runs_table).select("id, listing_id, batch_id, raw_markdown, processed_at"),
            self.RECLASSIFY_FILTERS,
        )
        result = query.order("processed_at").range(offset, offset + limit - 1).execute()
        return result.data or []

    # ------------------------------------------------------------------
    # Filters (search facets)
    # ------------------------------------------------------------------

    def get_filter_map(self) -> Dict[str, Any]:
        result = self._table(self.config.filters_table).select("id, slug").execute()
        return {row["slug"]: row["id"] for row in result.data or [] if row.get("slug")}

    def upsert_listing_filters(self, rows: List[Dict[str, Any]]) -> None:
        if not rows:
            return
        self._table(self.config.listing_filters_table).upsert(rows, on_conflict="listing_id,filter_id").execute()

    # ------------------------------------------------------------------
    # Sibling task-table jobs (watchdog)
    # ------------------------------------------------------------------

    def running_task_jobs(self, jobs_table: str) -> List[Dict[str, Any]]:
        result = self._table(jobs_table).select("id, status").eq("status", "running").execute()
        return result.data or []

    def finish_stuck_tasks(self, tasks_table: str, job_id: Any, cutoff: str, max_attempts: int, reason: str) -> int:
        """Force stuck in-progress tasks that used up their attempts to done."""
        now = get_current_timestamp()
        result = (
            self._table(tasks_table)
            .update({"task_status": "done", "finished_at": now, "updated_at": now, "fallback_reason": reason})
            .eq("job_id", job_id)
            .eq("task_status", "in_progress")
            .is_("finished_at", "null")
            .lt("updated_at", cutoff)
            .gte("attempt_count", max_attempts)
            .execute()
        )
        return len(result.data or [])

    def reset_stuck_tasks(self, tasks_table: str, job_id: Any, cutoff: str, max_attempts: int) -> int:
        """Return stuck in-progress tasks with attempts left to pending."""
        result = (
            self._table(tasks_table)
            .update({"task_status": "pending", "updated_at": get_current_timestamp()})
            .eq("job_id", job_id)
            .eq("task_status", "in_progress")
            .is_("finished_at", "null")
            .lt("updated_at", cutoff)
            .lt("attempt_count", max_attempts)
            .execute()
        )
        return len(result.data or [])

    def count_tasks(self, tasks_table: str, job_id: Any, task_status: str) -> int:
        return self._count(tasks_table, [("eq", "job_id", job_id), ("eq", "task_status", task_status)])

    def complete_task_job(self, jobs_table: str, job_id: Any) -> None:
        (
            self._table(jobs_table)
            .update({"status": "done", "finished_at": get_current_timestamp()})
            .eq("id", job_id)
            .eq("status", "running")
            .execute()
        )

    # ------------------------------------------------------------------

    def _count(self, table: str, filters: List[Filter]) -> int:
        query = _apply_filters(self._table(table).select("id", count="exact"), filters)
        result = query.limit(1).execute()
        return result.count or 0
