"""
Database module for the Washpipe pipeline.

- Pydantic models for listings, batches and runs
- Supabase client singleton
- PipelineStore, the single home of every query the pipeline issues
"""

from washpipe.db.models import (
    Batch,
    Listing,
    ListingId,
    RunRecord,
)

from washpipe.db.supabase_client import (
    get_supabase,
    is_supabase_enabled,
)

from washpipe.db.store import PipelineStore

__all__ = [
    # Models
    "Batch",
    "Listing",
    "ListingId",
    "RunRecord",
    # Client functions
    "get_supabase",
    "is_supabase_enabled",
    # Store
    "PipelineStore",
]
