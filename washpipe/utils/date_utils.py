"""
Timestamp helpers for the Washpipe pipeline.

All timestamps are stored as ISO 8601 strings in UTC.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional
from washpipe.core.logging import get_logger

logger = get_logger(__name__)

_FRACTION_RE = re.compile(r"(\d{2}:\d{2}:\d{2})\.(\d+)")


def get_current_timestamp() -> str:
    """
    Get current timestamp in ISO format with UTC timezone.

    Returns:
        ISO formatted timestamp string

    Example:
        >>> ts = get_current_timestamp()
        >>> '+00:00' in ts
        True
    """
    return datetime.now(timezone.utc).isoformat()


def minutes_ago(minutes: float, now: Optional[datetime] = None) -> str:
    """
    ISO timestamp for a moment ``minutes`` before now.

    Used as the staleness cutoff in watchdog queries.

    Args:
        minutes: How far back to go
        now: Reference time (default: current UTC time)

    Returns:
        ISO formatted timestamp string
    """
    now = now or datetime.now(timezone.utc)
    return (now - timedelta(minutes=minutes)).isoformat()


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO timestamp as stored by Postgres/Supabase.

    Accepts a trailing ``Z``, naive values (assumed UTC) and fractional
    seconds of any length (Postgres drops trailing zeros).

    Args:
        value: Timestamp string

    Returns:
        Timezone-aware datetime, or None if parsing fails

    Example:
        >>> parse_timestamp("2026-01-08T12:00:00Z").year
        2026

        >>> parse_timestamp("invalid") is None
        True
    """
    if not value or not isinstance(value, str):
        return None

    try:
        text = value.strip().replace("Z", "+00:00")
        # fromisoformat before 3.11 only takes 3 or 6 fraction digits
        text = _FRACTION_RE.sub(lambda m: f"{m.group(1)}.{m.group(2)[:6].ljust(6, '0')}", text)
        dt = datetime.fromisoformat(text)
    except ValueError:
        logger.debug(f"Could not parse timestamp: {value}")
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def is_older_than(value: Optional[str], minutes: float, now: Optional[datetime] = None) -> bool:
    """
    Check whether a stored timestamp is older than ``minutes``.

    Missing or unparseable timestamps count as old.

    Example:
        >>> is_older_than("2000-01-01T00:00:00Z", minutes=5)
        True
    """
    dt = parse_timestamp(value)
    if dt is None:
        return True
    now = now or datetime.now(timezone.utc)
    return now - dt > timedelta(minutes=minutes)
