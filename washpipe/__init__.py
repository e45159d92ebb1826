"""
Washpipe: batch scrape-and-classify pipeline for touchless car wash listings.

Subpackages:
- core: configuration, logging, error and pipeline event logging
- utils: URL normalization, skip-list, image filtering, retry helpers
- db: row models and Supabase-backed store
- crawl: Firecrawl batch scrape client
- llm: Gemini client and page classifier
- pipeline: submitter, poller, writer, state machine, watchdog
- api: FastAPI entrypoints
"""

__version__ = "0.1.0"
