"""
Pytest Configuration and Shared Fixtures

This file contains pytest configuration and fixtures that are available
to all tests in the test suite: an in-memory Supabase double, a scripted
crawl provider and a scripted LLM.
"""

import copy
import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

from washpipe.core.config import Config
from washpipe.core.error_logger import ErrorLogger
from washpipe.core.event_logger import PipelineEventLogger
from washpipe.core.exceptions import ProviderError
from washpipe.crawl.models import BatchScrapePage, SubmitResult
from washpipe.db.store import PipelineStore
from washpipe.llm.classifier import PageClassifier
from washpipe.pipeline.service import PipelineService


# ============================================================================
# In-memory Supabase
# ============================================================================

class FakeResult:
    def __init__(self, data: List[Dict[str, Any]], count: Optional[int] = None):
        self.data = data
        self.count = count


def _matches(row: Dict[str, Any], op: str, column: str, value: Any) -> bool:
    current = row.get(column)
    if op == "eq":
        return current is not None and current == value
    if op == "neq":
        return current is not None and current != value
    if op == "is":
        if value == "null":
            return current is None
        return current is (value in (True, "true"))
    if op == "in":
        return current in value
    if current is None:
        return False
    if op == "lt":
        return current < value
    if op == "gt":
        return current > value
    if op == "gte":
        return current >= value
    raise ValueError(f"unsupported op {op}")


class FakeQuery:
    """The subset of the postgrest query builder the store uses."""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.action = "select"
        self.payload: Any = None
        self.on_conflict: Optional[str] = None
        self.filters: List[tuple] = []
        self.order_by: List[tuple] = []
        self.start: Optional[int] = None
        self.end: Optional[int] = None
        self.max_rows: Optional[int] = None
        self.want_count = False
        self._negate = False

    # -- actions -----------------------------------------------------------

    def select(self, columns: str = "*", count: Optional[str] = None):
        self.action = "select"
        self.want_count = count == "exact"
        return self

    def insert(self, rows):
        self.action, self.payload = "insert", rows
        return self

    def update(self, fields: Dict[str, Any]):
        self.action, self.payload = "update", fields
        return self

    def upsert(self, rows, on_conflict: Optional[str] = None):
        self.action, self.payload, self.on_conflict = "upsert", rows, on_conflict
        return self

    def delete(self):
        self.action = "delete"
        return self

    # -- filters -----------------------------------------------------------

    @property
    def not_(self):
        self._negate = True
        return self

    def _add(self, op: str, column: str, value: Any):
        self.filters.append((op, column, value, self._negate))
        self._negate = False
        return self

    def eq(self, column, value):
        return self._add("eq", column, value)

    def neq(self, column, value):
        return self._add("neq", column, value)

    def is_(self, column, value):
        return self._add("is", column, value)

    def in_(self, column, values):
        return self._add("in", column, list(values))

    def lt(self, column, value):
        return self._add("lt", column, value)

    def gt(self, column, value):
        return self._add("gt", column, value)

    def gte(self, column, value):
        return self._add("gte", column, value)

    def order(self, column: str, desc: bool = False):
        self.order_by.append((column, desc))
        return self

    def range(self, start: int, end: int):
        self.start, self.end = start, end
        return self

    def limit(self, n: int):
        self.max_rows = n
        return self

    # -- execution ---------------------------------------------------------

    def _selected(self) -> List[Dict[str, Any]]:
        rows = [
            r for r in self.db.rows(self.table_name)
            if all(_matches(r, op, col, val) != neg for op, col, val, neg in self.filters)
        ]
        for column, desc in reversed(self.order_by):
            present = [r for r in rows if r.get(column) is not None]
            missing = [r for r in rows if r.get(column) is None]
            rows = sorted(present, key=lambda r: r[column], reverse=desc) + missing
        return rows

    def execute(self) -> FakeResult:
        self.db.calls.append((self.table_name, self.action))
        if self.table_name in self.db.failing_tables:
            raise RuntimeError(f"simulated failure on {self.table_name}")

        if self.action == "insert":
            rows = self.payload if isinstance(self.payload, list) else [self.payload]
            return FakeResult([copy.deepcopy(self.db.add(self.table_name, r)) for r in rows])

        if self.action == "upsert":
            rows = self.payload if isinstance(self.payload, list) else [self.payload]
            keys = [k.strip() for k in (self.on_conflict or "id").split(",")]
            out = []
            for row in rows:
                existing = next(
                    (r for r in self.db.rows(self.table_name) if all(r.get(k) == row.get(k) for k in keys)),
                    None,
                )
                if existing is not None:
                    existing.update(copy.deepcopy(row))
                    out.append(copy.deepcopy(existing))
                else:
                    out.append(copy.deepcopy(self.db.add(self.table_name, row)))
            return FakeResult(out)

        matched = self._selected()

        if self.action == "update":
            for row in matched:
                row.update(copy.deepcopy(self.payload))
            return FakeResult([copy.deepcopy(r) for r in matched])

        if self.action == "delete":
            table = self.db.tables.get(self.table_name, [])
            self.db.tables[self.table_name] = [r for r in table if r not in matched]
            return FakeResult([copy.deepcopy(r) for r in matched])

        count = len(matched) if self.want_count else None
        if self.start is not None:
            matched = matched[self.start:self.end + 1]
        if self.max_rows is not None:
            matched = matched[:self.max_rows]
        return FakeResult([copy.deepcopy(r) for r in matched], count)


class FakeSupabase:
    """In-memory stand-in for a supabase-py client."""

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.next_ids: Dict[str, int] = {}
        self.failing_tables: set = set()
        self.calls: List[tuple] = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rows(self, name: str) -> List[Dict[str, Any]]:
        return self.tables.setdefault(name, [])

    def add(self, name: str, row: Dict[str, Any]) -> Dict[str, Any]:
        row = copy.deepcopy(row)
        if row.get("id") is None:
            self.next_ids[name] = self.next_ids.get(name, 0) + 1
            row["id"] = self.next_ids[name]
        self.rows(name).append(row)
        return row

    def seed(self, name: str, rows: List[Dict[str, Any]]) -> None:
        for row in rows:
            self.add(name, row)
            if isinstance(row.get("id"), int):
                self.next_ids[name] = max(self.next_ids.get(name, 0), row["id"])

    def get(self, name: str, row_id: Any) -> Optional[Dict[str, Any]]:
        return next((r for r in self.rows(name) if r.get("id") == row_id), None)


# ============================================================================
# Crawl provider and LLM doubles
# ============================================================================

class FakeCrawlProvider:
    """
    Scripted crawl provider.

    ``pages`` maps a cursor (None for the first page) to a page body in the
    provider's wire format.
    """

    def __init__(self, job_id: str = "job-1"):
        self.job_id = job_id
        self.pages: Dict[Optional[str], Dict[str, Any]] = {}
        self.submitted: List[List[str]] = []
        self.webhooks: List[Optional[str]] = []
        self.fetches: List[tuple] = []
        self.cancelled: List[str] = []
        self.submit_error: Optional[Exception] = None
        self.fetch_error: Optional[Exception] = None
        self.cancel_error: Optional[Exception] = None

    def submit_batch_scrape(self, urls, webhook_url=None) -> SubmitResult:
        if self.submit_error is not None:
            raise self.submit_error
        self.submitted.append(list(urls))
        self.webhooks.append(webhook_url)
        return SubmitResult(success=True, id=f"{self.job_id}" if len(self.submitted) == 1 else f"{self.job_id}-{len(self.submitted)}")

    def get_batch_scrape_page(self, job_id, cursor=None, limit=None) -> BatchScrapePage:
        self.fetches.append((job_id, cursor, limit))
        if self.fetch_error is not None:
            raise self.fetch_error
        body = self.pages.get(cursor, {"status": "scraping", "completed": 0, "total": 0, "data": []})
        return BatchScrapePage.model_validate(body)

    def get_progress(self, job_id) -> BatchScrapePage:
        return self.get_batch_scrape_page(job_id, limit=1)

    def cancel_batch_scrape(self, job_id) -> None:
        if self.cancel_error is not None:
            raise self.cancel_error
        self.cancelled.append(job_id)


class FakeLLM:
    """
    Scripted LLM: returns the response of the first rule whose keyword
    appears in the prompt, else ``default``.
    """

    def __init__(self, rules: Optional[List[tuple]] = None, default: str = '{"is_touchless": null}'):
        self.rules = list(rules or [])
        self.default = default
        self.prompts: List[str] = []

    def __call__(self, prompt: str) -> str:
        self.prompts.append(prompt)
        for keyword, response in self.rules:
            if keyword in prompt:
                if isinstance(response, Exception):
                    raise response
                return response
        return self.default


def verdict_json(is_touchless, evidence: str = "", amenities=None, description=None) -> str:
    return json.dumps({
        "is_touchless": is_touchless,
        "touchless_evidence": evidence,
        "amenities": amenities or [],
        "description": description,
    })


def scraped_item(url: str, markdown: str, status_code: int = 200, final_url: Optional[str] = None, images=None) -> Dict[str, Any]:
    return {
        "markdown": markdown,
        "images": images or [],
        "metadata": {"sourceURL": url, "url": final_url or url, "statusCode": status_code},
    }


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config(tmp_path: Path) -> Config:
    """Configuration with defaults only (no .env file)."""
    cfg = Config(env_path=tmp_path / "missing.env")
    cfg.firecrawl_api_key = "fc-test"
    cfg.gemini_api_key = "gm-test"
    cfg.supabase_url = "https://example.supabase.co"
    cfg.supabase_service_role_key = "service-role"
    cfg.pipeline_self_url = None
    cfg.task_processor_base_url = None
    cfg.min_content_chars = 20
    cfg.store_page_size = 2
    return cfg


@pytest.fixture
def fake_supabase() -> FakeSupabase:
    client = FakeSupabase()
    client.seed("filters", [
        {"id": 101, "slug": "touchless"},
        {"id": 102, "slug": "free-vacuum"},
        {"id": 103, "slug": "unlimited-wash-club"},
        {"id": 104, "slug": "self-serve-bays"},
        {"id": 105, "slug": "rv-oversized"},
    ])
    return client


@pytest.fixture
def store(fake_supabase: FakeSupabase, config: Config) -> PipelineStore:
    return PipelineStore(fake_supabase, config)


@pytest.fixture
def error_logger(fake_supabase: FakeSupabase, tmp_path: Path) -> ErrorLogger:
    return ErrorLogger(client=fake_supabase, fallback_dir=tmp_path / "errors")


@pytest.fixture
def event_logger(fake_supabase: FakeSupabase, tmp_path: Path) -> PipelineEventLogger:
    return PipelineEventLogger(client=fake_supabase, fallback_dir=tmp_path / "pipeline")


@pytest.fixture
def provider() -> FakeCrawlProvider:
    return FakeCrawlProvider()


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def classifier(fake_llm: FakeLLM, config: Config) -> PageClassifier:
    return PageClassifier(llm_call=fake_llm, max_chars=config.classify_max_chars, instructions="Classify this page:\n")


@pytest.fixture
def seed_listings(fake_supabase: FakeSupabase) -> Callable[..., None]:
    """Insert listing rows with the pipeline's columns defaulted."""
    def _seed(*rows: Dict[str, Any]) -> None:
        defaults = {
            "name": None,
            "website": None,
            "is_touchless": None,
            "crawl_status": None,
            "touchless_evidence": None,
            "amenities": [],
            "hero_image": None,
            "logo_image": None,
            "website_photos": None,
            "description": None,
            "last_crawled_at": None,
        }
        fake_supabase.seed("listings", [{**defaults, **row} for row in rows])
    return _seed


@pytest.fixture
def provider_error() -> ProviderError:
    return ProviderError("Firecrawl 401: Unauthorized", provider_status=401)


class FakeKicker:
    """Records kicks instead of POSTing them."""

    def __init__(self):
        self.polls: List[tuple] = []
        self.task_jobs: List[tuple] = []
        self.result = True

    def kick_poll(self, job_id, cursor=None) -> bool:
        self.polls.append((job_id, cursor))
        return self.result

    def kick_task_job(self, job_type, path, job_id) -> bool:
        self.task_jobs.append((job_type, path, job_id))
        return self.result


@pytest.fixture
def kicker() -> FakeKicker:
    return FakeKicker()


@pytest.fixture
def pipeline(store, provider, classifier, kicker, config, error_logger, event_logger) -> PipelineService:
    """PipelineService wired entirely to the in-memory doubles."""
    return PipelineService(
        store=store,
        provider=provider,
        classifier=classifier,
        kicker=kicker,
        config=config,
        error_logger=error_logger,
        event_logger=event_logger,
    )


# ============================================================================
# Test Markers
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "e2e: mark test as an end-to-end test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
    config.addinivalue_line(
        "markers", "expensive: mark test as expensive (costs money)"
    )
