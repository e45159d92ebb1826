"""
Crawl provider integration (Firecrawl batch scrape).
"""

from washpipe.crawl.models import BatchScrapePage, ScrapedItem, ScrapeMetadata, SubmitResult
from washpipe.crawl.firecrawl_client import FirecrawlClient, RetryableProviderError, is_retryable_status

__all__ = [
    "BatchScrapePage",
    "ScrapedItem",
    "ScrapeMetadata",
    "SubmitResult",
    "FirecrawlClient",
    "RetryableProviderError",
    "is_retryable_status",
]
