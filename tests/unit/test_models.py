"""
Unit tests for Pydantic models.

Tests validation of stored rows and provider responses.
"""

import pytest
from pydantic import ValidationError
from washpipe.crawl.models import BatchScrapePage, ScrapedItem, SubmitResult
from washpipe.db.models import Batch, Listing, RunRecord


class TestListing:
    """Tests for Listing model."""

    def test_minimal_row(self):
        listing = Listing(id=1)
        assert listing.is_touchless is None
        assert listing.amenities == []
        assert listing.website_photos is None

    def test_ignores_unknown_columns(self):
        listing = Listing.model_validate({"id": 1, "website": "https://w.com", "rating": 4.5})
        assert listing.website == "https://w.com"
        assert not hasattr(listing, "rating")

    @pytest.mark.parametrize("raw,expected", [
        (None, []),
        ("Towels", ["Towels"]),
        ("  ", []),
        (["Towels", None, "Wax"], ["Towels", "Wax"]),
    ])
    def test_amenities_coercion(self, raw, expected):
        assert Listing(id=1, amenities=raw).amenities == expected

    def test_uuid_ids(self):
        assert Listing(id="3f1c2d4e-0000-4000-8000-000000000001").id.startswith("3f1c")


class TestBatch:
    """Tests for Batch model."""

    def test_requires_job_id(self):
        with pytest.raises(ValidationError):
            Batch(id=1, firecrawl_job_id="")

    def test_null_counters_become_zero(self):
        batch = Batch.model_validate({
            "id": 1,
            "firecrawl_job_id": "job-1",
            "completed_count": None,
            "classified_count": None,
            "stall_count": None,
        })
        assert batch.completed_count == 0
        assert batch.classified_count == 0
        assert batch.stall_count == 0

    def test_negative_counter_rejected(self):
        with pytest.raises(ValidationError):
            Batch(id=1, firecrawl_job_id="job-1", classified_count=-1)

    def test_url_map_lists(self):
        batch = Batch(id=1, firecrawl_job_id="job-1", url_to_ids={"https://wash1.com": [1, 2, 2]})
        assert batch.url_to_ids == {"https://wash1.com": [1, 2]}

    def test_legacy_single_id_map(self):
        """Older rows stored ``url_to_id`` with one id per URL."""
        batch = Batch.model_validate({
            "id": 1,
            "firecrawl_job_id": "job-1",
            "url_to_id": {"https://wash1.com": 7, "https://wash2.com": None, "": 9},
        })
        assert batch.url_to_ids == {"https://wash1.com": [7]}

    def test_listing_ids_deduped_in_order(self):
        batch = Batch(
            id=1,
            firecrawl_job_id="job-1",
            url_to_ids={"https://a.com": [3, 1], "https://b.com": [1, 2]},
        )
        assert batch.listing_ids == [3, 1, 2]

    def test_missing_map(self):
        batch = Batch.model_validate({"id": 1, "firecrawl_job_id": "job-1", "url_to_ids": None})
        assert batch.url_to_ids == {}
        assert batch.listing_ids == []


class TestRunRecord:
    """Tests for RunRecord model."""

    def test_build_truncates_markdown(self):
        run = RunRecord.build(1, 7, "classified", True, "Touchless bay", "x" * 10, 3, 5)
        assert run.raw_markdown == "xxxxx"
        assert run.touchless_evidence == "Touchless bay"
        assert run.images_found == 3
        assert run.processed_at

    def test_build_without_markdown(self):
        run = RunRecord.build(1, None, "no_content", None, None, "", 0, 100)
        assert run.raw_markdown is None
        assert run.touchless_evidence == ""

    def test_requires_status(self):
        with pytest.raises(ValidationError):
            RunRecord(listing_id=1, crawl_status="")


class TestBatchScrapePage:
    """Tests for provider page models."""

    def test_wire_format(self):
        page = BatchScrapePage.model_validate({
            "status": "completed",
            "total": 3,
            "completed": 3,
            "creditsUsed": 3,
            "next": "https://api.firecrawl.dev/v2/batch/scrape/job-1?skip=2",
            "data": [{
                "markdown": "# Wash",
                "images": ["https://w.com/a.jpg", None],
                "metadata": {"sourceURL": "https://w.com", "url": "https://www.w.com/", "statusCode": 200},
            }],
        })
        assert page.credits_used == 3
        assert page.next.endswith("skip=2")
        item = page.data[0]
        assert item.metadata.source_url == "https://w.com"
        assert item.metadata.status_code == 200
        assert item.images == ["https://w.com/a.jpg"]

    def test_nulls(self):
        page = BatchScrapePage.model_validate({"status": "scraping", "data": None, "next": "", "total": None})
        assert page.data == []
        assert page.next is None
        assert page.total == 0

    def test_item_nulls(self):
        item = ScrapedItem.model_validate({"markdown": None, "images": None, "metadata": None})
        assert item.markdown == ""
        assert item.metadata.status_code == 0

    def test_title_list(self):
        item = ScrapedItem.model_validate({"metadata": {"title": ["Sparkle", "Home"]}})
        assert item.metadata.title == "Sparkle"

    def test_submit_result(self):
        result = SubmitResult.model_validate({"success": True, "id": "job-1", "invalidURLs": ["bad"]})
        assert result.invalid_urls == ["bad"]
