"""
Washpipe Test Suite

This package contains all automated tests for the Washpipe pipeline.

Structure:
- unit/: Fast, isolated unit tests against in-memory doubles
  (see conftest.py for the Supabase, crawl provider and LLM fakes)
"""
