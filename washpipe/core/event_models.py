"""
Pydantic models for structured pipeline event logging.

Each record marks one step of a batch's life (submission, a polled page,
completion, expiry, watchdog action) so operators can reconstruct what
happened to a batch without reading application logs.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator, ConfigDict


class PipelineStep(str, Enum):
    """Steps in the submit -> poll -> classify -> write flow."""
    BATCH_SUBMITTED = "batch_submitted"
    LISTINGS_SKIPPED = "listings_skipped"
    PAGE_POLLED = "page_polled"
    BATCH_COMPLETED = "batch_completed"
    BATCH_EXPIRED = "batch_expired"
    BATCH_CANCELLED = "batch_cancelled"
    WATCHDOG_SWEEP = "watchdog_sweep"
    RECLASSIFIED = "reclassified"


class PipelineStatus(str, Enum):
    """Step execution status."""
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILED = "failed"


class PipelineEventRecord(BaseModel):
    """
    Structured pipeline event for database insertion.
    """
    step: PipelineStep = Field(..., description="Pipeline step type")
    job_id: Optional[str] = Field(None, max_length=255, description="Crawl provider job id")
    batch_id: Optional[str] = Field(None, max_length=255, description="Internal batch id")

    status: PipelineStatus = Field(default=PipelineStatus.SUCCESS, description="Execution status")
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        description="Additional context (counts, cursors, actions)"
    )

    created_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(),
        description="Event timestamp"
    )

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        use_enum_values=True,
    )

    @field_validator("job_id", "batch_id", mode="before")
    @classmethod
    def stringify_ids(cls, v: Any) -> Optional[str]:
        return None if v is None else str(v)

    @field_validator("metadata")
    @classmethod
    def sanitize_metadata(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        """
        Sanitize metadata to ensure it's JSON-serializable.

        Converts non-serializable types to strings.
        """
        sanitized = {}
        for key, value in v.items():
            try:
                json.dumps(value)
                sanitized[key] = value
            except (TypeError, ValueError):
                sanitized[key] = str(value)
        return sanitized


# Human-readable step descriptions
STEP_DESCRIPTIONS = {
    PipelineStep.BATCH_SUBMITTED: "Submitted {urls_submitted} URLs for {listings_submitted} listings",
    PipelineStep.LISTINGS_SKIPPED: "Marked {listings_skipped} skip-listed listings as no_website",
    PipelineStep.PAGE_POLLED: "Polled page: {page_size} items, wrote {processed} listings",
    PipelineStep.BATCH_COMPLETED: "Batch complete, {classified_count} listing writes",
    PipelineStep.BATCH_EXPIRED: "Crawl job data expired",
    PipelineStep.BATCH_CANCELLED: "Batch cancelled",
    PipelineStep.WATCHDOG_SWEEP: "Watchdog checked {jobs_checked} jobs",
    PipelineStep.RECLASSIFIED: "Reclassified {processed} saved runs",
}


def get_step_description(step: PipelineStep, **kwargs) -> str:
    """
    Get human-readable description for a step.

    Args:
        step: Pipeline step
        **kwargs: Context for formatting (e.g., processed, page_size)

    Returns:
        Formatted description string
    """
    template = STEP_DESCRIPTIONS.get(step, str(step))
    try:
        return template.format(**kwargs)
    except (KeyError, ValueError):
        return template
