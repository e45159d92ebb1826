"""
Unit tests for date utility functions.
"""

import pytest
from datetime import datetime, timezone, timedelta
from washpipe.utils.date_utils import (
    get_current_timestamp,
    is_older_than,
    minutes_ago,
    parse_timestamp,
)


class TestGetCurrentTimestamp:
    """Tests for get_current_timestamp function."""

    def test_returns_iso_format(self):
        """Test that timestamp is in ISO format."""
        ts = get_current_timestamp()
        dt = datetime.fromisoformat(ts.replace('Z', '+00:00'))
        assert isinstance(dt, datetime)

    def test_includes_timezone(self):
        """Test that timestamp includes timezone info."""
        assert get_current_timestamp().endswith('+00:00')


class TestMinutesAgo:
    """Tests for minutes_ago function."""

    def test_relative_to_reference(self):
        now = datetime(2026, 1, 8, 12, 0, tzinfo=timezone.utc)
        assert minutes_ago(4, now=now) == "2026-01-08T11:56:00+00:00"

    def test_fractional_minutes(self):
        now = datetime(2026, 1, 8, 12, 0, tzinfo=timezone.utc)
        assert minutes_ago(0.5, now=now) == "2026-01-08T11:59:30+00:00"


class TestParseTimestamp:
    """Tests for parse_timestamp function."""

    @pytest.mark.parametrize("value", [
        "2026-01-08T12:00:00Z",
        "2026-01-08T12:00:00+00:00",
        "2026-01-08T12:00:00.123456+00:00",
    ])
    def test_utc_forms(self, value):
        dt = parse_timestamp(value)
        assert dt.year == 2026
        assert dt.utcoffset() == timedelta(0)

    def test_naive_assumed_utc(self):
        dt = parse_timestamp("2026-01-08T12:00:00")
        assert dt.tzinfo == timezone.utc

    def test_offset_preserved(self):
        dt = parse_timestamp("2026-01-08T12:00:00-05:00")
        assert dt.utcoffset() == timedelta(hours=-5)

    @pytest.mark.parametrize("value, micro", [
        ("2026-10-17T20:51:00.12345+00:00", 123450),
        ("2026-10-17T20:51:00.1+00:00", 100000),
        ("2026-10-17 20:51:00.123456789+00:00", 123456),
    ])
    def test_uneven_fraction_digits(self, value, micro):
        dt = parse_timestamp(value)
        assert dt.microsecond == micro
        assert dt.utcoffset() == timedelta(0)

    @pytest.mark.parametrize("value", [None, "", "invalid", 12345])
    def test_invalid(self, value):
        assert parse_timestamp(value) is None


class TestIsOlderThan:
    """Tests for is_older_than function."""

    NOW = datetime(2026, 1, 8, 12, 0, tzinfo=timezone.utc)

    def test_old(self):
        assert is_older_than("2026-01-08T11:40:00+00:00", 15, now=self.NOW) is True

    def test_recent(self):
        assert is_older_than("2026-01-08T11:50:00+00:00", 15, now=self.NOW) is False

    def test_recent_with_trimmed_fraction(self):
        assert is_older_than("2026-01-08T11:50:00.12345+00:00", 15, now=self.NOW) is False

    def test_exact_boundary_is_not_older(self):
        assert is_older_than("2026-01-08T11:45:00+00:00", 15, now=self.NOW) is False

    @pytest.mark.parametrize("value", [None, "garbage"])
    def test_missing_counts_as_old(self, value):
        assert is_older_than(value, 15, now=self.NOW) is True
