"""
Shared utility functions for the Washpipe pipeline.

- URL normalization and the crawl skip-list
- Image URL filtering
- Timestamps
- Retry logic with exponential backoff
"""

from washpipe.utils.url_utils import (
    SKIP_DOMAINS,
    normalize_url,
    extract_domain,
    is_skip_listed,
    url_variants,
)
from washpipe.utils.images import filter_images
from washpipe.utils.date_utils import get_current_timestamp, minutes_ago, parse_timestamp, is_older_than
from washpipe.utils.retry import retry_with_backoff, RetryConfig

__all__ = [
    # URL utilities
    "SKIP_DOMAINS",
    "normalize_url",
    "extract_domain",
    "is_skip_listed",
    "url_variants",
    # Images
    "filter_images",
    # Date utilities
    "get_current_timestamp",
    "minutes_ago",
    "parse_timestamp",
    "is_older_than",
    # Retry utilities
    "retry_with_backoff",
    "RetryConfig",
]
