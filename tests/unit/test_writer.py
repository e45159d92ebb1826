"""
Unit tests for the Result Writer.

Covers verdict precedence (an existing verdict is never overwritten by a
weaker one), additive enrichment and the run audit trail.
"""

import pytest
from washpipe.db.models import Batch, Listing
from washpipe.pipeline.writer import PageResult, ResultWriter, enrichment_fields, merge_amenities


@pytest.fixture
def writer(store, config, error_logger):
    return ResultWriter(store, config, error_logger)


@pytest.fixture
def batch():
    return Batch(id=9, firecrawl_job_id="job-1", status="running", url_to_ids={"https://wash1.com": [1]})


def classified(verdict, **kwargs):
    return PageResult("classified", verdict=verdict, evidence="Touch-free bay", markdown="# Page", **kwargs)


class TestMergeAmenities:
    """Tests for merge_amenities function."""

    def test_union_keeps_existing_first(self):
        assert merge_amenities(["Vacuum"], ["vacuum", "Towels"]) == ["Vacuum", "Towels"]

    def test_strips_and_drops_blanks(self):
        assert merge_amenities([" Wax "], ["", "  "]) == ["Wax"]

    def test_nones(self):
        assert merge_amenities(None, None) == []


class TestEnrichmentFields:
    """Tests for enrichment_fields function."""

    def test_fills_empty_fields(self):
        listing = Listing(id=1)
        result = classified(True, amenities=["Towels"], images=["a.jpg", "b.jpg"], description="A wash.")
        fields = enrichment_fields(listing, result)
        assert fields == {
            "amenities": ["Towels"],
            "hero_image": "a.jpg",
            "website_photos": ["a.jpg", "b.jpg"],
            "description": "A wash.",
        }

    def test_existing_values_win(self):
        listing = Listing(id=1, amenities=["Towels"], hero_image="h.jpg", website_photos=["p.jpg"], description="Old.")
        result = classified(True, amenities=["towels"], images=["a.jpg"], description="New.")
        assert enrichment_fields(listing, result) == {}

    def test_photo_cap(self):
        result = classified(True, images=[f"{i}.jpg" for i in range(5)])
        assert enrichment_fields(Listing(id=1), result, max_photos=2)["website_photos"] == ["0.jpg", "1.jpg"]


class TestResultWriter:
    """Tests for ResultWriter."""

    def test_sets_verdict_and_records_run(self, writer, batch, seed_listings, fake_supabase):
        seed_listings({"id": 1, "website": "https://wash1.com", "crawl_status": "queued"})
        written = writer.write([1], classified(True, amenities=["Free Vacuum"], images=["https://wash1.com/bay.jpg"]), batch)

        assert written == 1
        row = fake_supabase.get("listings", 1)
        assert row["is_touchless"] is True
        assert row["crawl_status"] == "classified"
        assert row["touchless_evidence"] == "Touch-free bay"
        assert row["hero_image"] == "https://wash1.com/bay.jpg"
        assert row["amenities"] == ["Free Vacuum"]
        assert row["last_crawled_at"]

        runs = fake_supabase.rows("pipeline_runs")
        assert len(runs) == 1
        assert runs[0]["batch_id"] == 9
        assert runs[0]["raw_markdown"] == "# Page"
        assert runs[0]["images_found"] == 1

        filter_ids = sorted(r["filter_id"] for r in fake_supabase.rows("listing_filters"))
        assert filter_ids == [101, 102]

    def test_null_verdict_keeps_unknown(self, writer, batch, seed_listings, fake_supabase):
        seed_listings({"id": 1, "website": "https://wash1.com"})
        writer.write([1], classified(None), batch)
        row = fake_supabase.get("listings", 1)
        assert row["is_touchless"] is None
        assert row["crawl_status"] == "classified"
        assert fake_supabase.rows("listing_filters") == []

    def test_false_verdict_no_enrichment(self, writer, batch, seed_listings, fake_supabase):
        seed_listings({"id": 1, "website": "https://wash1.com"})
        writer.write([1], classified(False, images=["a.jpg"], amenities=["Free Vacuum"]), batch)
        row = fake_supabase.get("listings", 1)
        assert row["is_touchless"] is False
        assert row["hero_image"] is None
        assert row["amenities"] == []

    def test_existing_false_is_never_touched(self, writer, batch, seed_listings, fake_supabase):
        seed_listings({"id": 1, "website": "https://wash1.com", "is_touchless": False, "crawl_status": "classified"})
        assert writer.write([1], classified(True), batch) == 0
        assert fake_supabase.get("listings", 1)["is_touchless"] is False
        assert fake_supabase.rows("pipeline_runs") == []

    def test_existing_true_only_enriched(self, writer, batch, seed_listings, fake_supabase):
        seed_listings({
            "id": 1, "website": "https://wash1.com", "is_touchless": True,
            "crawl_status": "classified", "touchless_evidence": "Laser wash", "amenities": ["Towels"],
        })
        writer.write([1], PageResult("fetch_failed", evidence="HTTP 500", amenities=["Wax"]), batch)
        row = fake_supabase.get("listings", 1)
        assert row["is_touchless"] is True
        assert row["crawl_status"] == "classified"
        assert row["touchless_evidence"] == "Laser wash"
        assert row["amenities"] == ["Towels", "Wax"]

    def test_failure_status_recorded_for_unclassified(self, writer, batch, seed_listings, fake_supabase):
        seed_listings({"id": 1, "website": "https://wash1.com", "crawl_status": "queued"})
        writer.write([1], PageResult("no_content", evidence="Page had too little text"), batch)
        row = fake_supabase.get("listings", 1)
        assert row["crawl_status"] == "no_content"
        assert row["is_touchless"] is None

    def test_enrich_batch_never_sets_verdict(self, writer, seed_listings, fake_supabase):
        seed_listings({"id": 1, "website": "https://wash1.com"})
        enrich = Batch(id=3, firecrawl_job_id="job-e", batch_type="enrich_touchless")
        assert writer.write([1], classified(True, images=["a.jpg"]), enrich) == 0
        assert fake_supabase.get("listings", 1)["is_touchless"] is None

    def test_second_page_does_not_replace_photos(self, writer, batch, seed_listings, fake_supabase):
        seed_listings({"id": 1, "website": "https://wash1.com"})
        writer.write([1], classified(True, images=["first.jpg"]), batch)
        writer.write([1], classified(True, images=["second.jpg"]), batch)
        row = fake_supabase.get("listings", 1)
        assert row["hero_image"] == "first.jpg"
        assert row["website_photos"] == ["first.jpg"]

    def test_missing_listing_skipped(self, writer, batch):
        assert writer.write([404], classified(True), batch) == 0

    def test_listing_failure_isolated(self, writer, batch, seed_listings, fake_supabase, monkeypatch):
        seed_listings({"id": 1, "website": "https://a.com"}, {"id": 2, "website": "https://a.com"})
        original = writer.store.update_listing

        def flaky(listing_id, fields):
            if listing_id == 1:
                raise RuntimeError("row locked")
            return original(listing_id, fields)

        monkeypatch.setattr(writer.store, "update_listing", flaky)
        assert writer.write([1, 2], classified(True), batch) == 1
        assert fake_supabase.get("listings", 2)["is_touchless"] is True
        errors = fake_supabase.rows("error_logs")
        assert errors[0]["stage"] == "write_listing"
        assert errors[0]["listing_id"] == "1"

    def test_filter_sync_failure_does_not_fail_write(self, writer, batch, seed_listings, fake_supabase):
        seed_listings({"id": 1, "website": "https://wash1.com"})
        fake_supabase.failing_tables.add("listing_filters")
        assert writer.write([1], classified(True), batch) == 1
        assert fake_supabase.get("listings", 1)["is_touchless"] is True
        assert [e["stage"] for e in fake_supabase.rows("error_logs")] == ["sync_filters"]

    def test_run_failure_does_not_fail_write(self, writer, batch, seed_listings, fake_supabase):
        seed_listings({"id": 1, "website": "https://wash1.com"})
        fake_supabase.failing_tables.add("pipeline_runs")
        assert writer.write([1], classified(None), batch) == 1
        assert [e["stage"] for e in fake_supabase.rows("error_logs")] == ["write_run"]
