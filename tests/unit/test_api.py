"""
Unit tests for the FastAPI entrypoints.

The pipeline dependency is overridden with one wired to in-memory doubles.
"""

import pytest
from fastapi.testclient import TestClient

from washpipe.api import main
from washpipe.api.main import app, get_pipeline
from tests.conftest import scraped_item, verdict_json


@pytest.fixture
def client(pipeline):
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def submitted(client, seed_listings, fake_llm):
    fake_llm.rules = [("laser", verdict_json(True, "laser"))]
    seed_listings(
        {"id": 1, "website": "https://wash1.com"},
        {"id": 2, "website": "https://wash2.com"},
    )
    response = client.post("/submit", json={})
    assert response.status_code == 200
    return response.json()


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestSubmitEndpoint:
    def test_submit(self, submitted):
        assert submitted["job_id"] == "job-1"
        assert submitted["urls_submitted"] == 2
        assert submitted["done"] is False

    def test_retry_while_running_conflicts(self, client, submitted):
        response = client.post("/submit", json={"retry_failed": True})
        assert response.status_code == 409
        assert "already running" in response.json()["error"]

    def test_provider_failure(self, client, provider, seed_listings, provider_error):
        seed_listings({"id": 1, "website": "https://wash1.com"})
        provider.submit_error = provider_error
        response = client.post("/submit", json={})
        assert response.status_code == 502
        assert "401" in response.json()["error"]

    def test_invalid_batch_type(self, client):
        assert client.post("/submit", json={"batch_type": "bogus"}).status_code == 422


class TestPollEndpoint:
    def test_auto_continue_kicks_next_page(self, client, provider, kicker, submitted):
        provider.pages[None] = {
            "status": "scraping", "total": 2, "completed": 1, "next": "cursor-2",
            "data": [scraped_item("https://wash1.com", "The laser wash bay is open all night.")],
        }
        response = client.post("/poll", json={"job_id": "job-1", "auto_continue": True})
        assert response.status_code == 200
        body = response.json()
        assert body["processed"] == 1
        assert body["next_cursor"] == "cursor-2"
        assert kicker.polls == [("job-1", "cursor-2")]

    def test_no_kick_without_auto_continue(self, client, provider, kicker, submitted):
        provider.pages[None] = {"status": "scraping", "total": 2, "completed": 1, "data": []}
        client.post("/poll", json={"job_id": "job-1"})
        assert kicker.polls == []

    def test_keeps_waiting_while_scraping(self, client, provider, kicker, submitted):
        provider.pages[None] = {"status": "scraping", "total": 2, "completed": 1, "data": []}
        client.post("/poll", json={"job_id": "job-1", "auto_continue": True})
        assert kicker.polls == [("job-1", None)]

    def test_no_kick_when_done(self, client, provider, kicker, submitted):
        provider.pages[None] = {
            "status": "completed", "total": 2, "completed": 2,
            "data": [
                scraped_item("https://wash1.com", "The laser wash bay is open all night."),
                scraped_item("https://wash2.com", "The laser wash bay is open all day."),
            ],
        }
        body = client.post("/poll", json={"job_id": "job-1", "auto_continue": True}).json()
        assert body["done"] is True
        assert kicker.polls == []

    def test_expired_is_gone(self, client, provider, kicker, submitted):
        provider.pages[None] = {"status": "completed", "total": 0, "completed": 0, "data": []}
        response = client.post("/poll", json={"job_id": "job-1", "auto_continue": True})
        assert response.status_code == 410
        body = response.json()
        assert body["expired"] is True and body["done"] is True
        assert body["job_id"] == "job-1"
        assert kicker.polls == []

    def test_unknown_job(self, client):
        response = client.post("/poll", json={"job_id": "nope"})
        assert response.status_code == 404


class TestAdminEndpoints:
    def test_status(self, client, submitted):
        body = client.get("/status").json()
        assert body["stats"]["total_with_websites"] == 2
        job = client.get("/status", params={"job_id": "job-1"}).json()
        assert job["batch"]["firecrawl_job_id"] == "job-1"

    def test_watchdog(self, client, submitted):
        body = client.post("/watchdog").json()
        assert body["jobs_checked"] == 1

    def test_reclassify(self, client):
        body = client.post("/reclassify", json={"offset": 0, "page_size": 5}).json()
        assert body == {"processed": 0, "offset": 0, "done": True, "remaining_before": 0}

    def test_cancel(self, client, submitted):
        assert client.post("/cancel").json()["cancelled"] == 1

    def test_unexpected_error(self, pipeline, error_logger, fake_supabase, monkeypatch):
        def boom():
            raise RuntimeError("database unreachable")

        monkeypatch.setattr(pipeline.reporter, "status", lambda **kwargs: boom())
        monkeypatch.setattr(main, "get_error_logger", lambda: error_logger)
        app.dependency_overrides[get_pipeline] = lambda: pipeline
        try:
            response = TestClient(app, raise_server_exceptions=False).get("/status")
        finally:
            app.dependency_overrides.clear()
        assert response.status_code == 500
        assert response.json() == {"error": "database unreachable"}
        assert fake_supabase.rows("error_logs")[-1]["component"] == "api"
