"""
Centralized pipeline event logging with Supabase integration.

This module provides a fail-safe event logger that:
- Logs pipeline steps to Supabase with structured schema
- Falls back to local file logging on database failures
- Follows singleton pattern for global access
"""

import os
import json
from pathlib import Path
from typing import Optional, Dict, Any
from datetime import datetime, timezone

from washpipe.core.logging import get_logger
from washpipe.core.event_models import (
    PipelineStep,
    PipelineStatus,
    PipelineEventRecord,
    get_step_description,
)

logger = get_logger(__name__)

PIPELINE_LOG_TABLE = os.getenv("PIPELINE_LOG_TABLE", "pipeline_logs")
PIPELINE_LOG_FALLBACK_DIR = Path(os.getenv("PIPELINE_LOG_FALLBACK_DIR", "logs/pipeline"))

# Singleton instance
_event_logger: Optional["PipelineEventLogger"] = None


class PipelineEventLogger:
    """
    Pipeline event logger with database and file fallback.

    Usage:
        >>> events = get_event_logger()
        >>> events.log_step(
        ...     step=PipelineStep.PAGE_POLLED,
        ...     job_id="fc-123",
        ...     metadata={"page_size": 25, "processed": 31},
        ... )
    """

    def __init__(self, client: Any = None, fallback_dir: Optional[Path] = None, table: str = PIPELINE_LOG_TABLE):
        self._client = client
        self._table = table
        self._fallback_dir = fallback_dir or PIPELINE_LOG_FALLBACK_DIR

    def _get_client(self):
        if self._client is not None:
            return self._client
        try:
            from washpipe.db.supabase_client import get_supabase
            return get_supabase()
        except Exception as e:
            logger.warning(f"Event logging: database init failed ({e}), using file fallback")
            return None

    def log_step(
        self,
        step: PipelineStep,
        job_id: Optional[str] = None,
        batch_id: Optional[Any] = None,
        status: PipelineStatus = PipelineStatus.SUCCESS,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Log a pipeline step.

        This method never raises exceptions - it will fall back to file logging
        if database write fails.

        Returns:
            True if logged successfully, False otherwise
        """
        try:
            record = PipelineEventRecord(
                step=step,
                job_id=job_id,
                batch_id=batch_id,
                status=status,
                metadata=metadata or {},
            )

            desc = get_step_description(step, **(metadata or {}))
            logger.info(f"[Pipeline] {job_id or '-'} | {record.step} | {desc}")

            client = self._get_client()
            if client is not None:
                return self._write_to_database(client, record)
            return self._write_to_file(record)

        except Exception as e:
            logger.error(f"Event logger failed: {e} - Step: {step}")
            return False

    def _write_to_database(self, client: Any, record: PipelineEventRecord) -> bool:
        try:
            client.table(self._table).insert(record.model_dump(exclude_none=False)).execute()
            return True
        except Exception as e:
            logger.warning(f"Database event write failed: {e}, falling back to file")
            return self._write_to_file(record)

    def _write_to_file(self, record: PipelineEventRecord) -> bool:
        try:
            self._fallback_dir.mkdir(exist_ok=True, parents=True)
            date_str = datetime.now(timezone.utc).strftime("%Y%m%d")
            file_path = self._fallback_dir / f"pipeline_{date_str}.jsonl"

            with open(file_path, "a", encoding="utf-8") as f:
                json.dump(record.model_dump(), f)
                f.write("\n")

            return True
        except Exception as e:
            logger.error(f"File event write failed: {e}")
            return False


def get_event_logger() -> PipelineEventLogger:
    """
    Get the global PipelineEventLogger instance.

    Returns:
        Global PipelineEventLogger singleton
    """
    global _event_logger
    if _event_logger is None:
        _event_logger = PipelineEventLogger()
    return _event_logger
