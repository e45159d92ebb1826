"""
Centralized error logging system with Supabase integration.

This module provides a fail-safe error logger that:
- Logs errors to Supabase with structured schema
- Falls back to local file logging on database failures
- Uses Pydantic validation for type safety
- Follows singleton pattern for global access
"""

import os
import json
from pathlib import Path
from typing import Optional, Dict, Any
from datetime import datetime, timezone

from washpipe.core.logging import get_logger
from washpipe.core.error_models import (
    ErrorRecord,
    ErrorComponent,
    ErrorSeverity,
    ErrorType,
)

logger = get_logger(__name__)

ERROR_LOG_TABLE = os.getenv("ERROR_LOG_TABLE", "error_logs")
ERROR_LOG_FALLBACK_DIR = Path(os.getenv("ERROR_LOG_FALLBACK_DIR", "logs/errors"))

# Singleton instance
_error_logger: Optional["ErrorLogger"] = None


class ErrorLogger:
    """
    Centralized error logger with database and file fallback.

    Best-effort pipeline steps report here instead of aborting the
    surrounding unit of work. Database failures fall back to JSONL files.

    Usage:
        >>> error_logger = get_error_logger()
        >>> error_logger.log_error(
        ...     component=ErrorComponent.CRAWL,
        ...     stage=ErrorStage.POLL_FETCH,
        ...     error_type=ErrorType.HTTP_ERROR,
        ...     message="Firecrawl 502: upstream error",
        ...     job_id="fc-123",
        ... )
    """

    def __init__(self, client: Any = None, fallback_dir: Optional[Path] = None, table: str = ERROR_LOG_TABLE):
        """
        Initialize error logger.

        Args:
            client: Supabase client; resolved lazily from the shared singleton if None
            fallback_dir: Directory for JSONL fallback files
            table: Error log table name
        """
        self._client = client
        self._table = table
        self._fallback_dir = fallback_dir or ERROR_LOG_FALLBACK_DIR

    def _get_client(self):
        if self._client is not None:
            return self._client
        try:
            from washpipe.db.supabase_client import get_supabase
            return get_supabase()
        except Exception as e:
            logger.warning(f"Error logging: database init failed ({e}), using file fallback")
            return None

    def log_error(
        self,
        component: ErrorComponent,
        stage: str,
        error_type: ErrorType,
        message: str,
        domain: Optional[str] = None,
        url: Optional[str] = None,
        job_id: Optional[str] = None,
        listing_id: Optional[Any] = None,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        exception_type: Optional[str] = None,
        stack_trace: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Log an error to the database.

        This method never raises exceptions - it will fall back to file logging
        if database write fails.

        Returns:
            True if logged successfully, False otherwise
        """
        try:
            record = ErrorRecord(
                component=component,
                stage=stage,
                error_type=error_type,
                severity=severity,
                domain=domain,
                url=url,
                job_id=job_id,
                listing_id=listing_id,
                message=message,
                exception_type=exception_type,
                stack_trace=stack_trace,
                metadata=metadata or {},
            )
            return self._write(record)

        except Exception as e:
            # If error logging itself fails, log to standard logger
            logger.error(f"Error logger failed: {e} - Original error: {message}")
            return False

    def log_exception(
        self,
        exc: Exception,
        component: ErrorComponent,
        stage: str,
        domain: Optional[str] = None,
        url: Optional[str] = None,
        job_id: Optional[str] = None,
        listing_id: Optional[Any] = None,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        error_type: Optional[ErrorType] = None,
        include_stack_trace: bool = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Log an exception with automatic classification.

        Uses ErrorRecord.from_exception() to extract error details.

        Returns:
            True if logged successfully, False otherwise
        """
        try:
            record = ErrorRecord.from_exception(
                exc=exc,
                component=component,
                stage=stage,
                domain=domain,
                url=url,
                job_id=job_id,
                listing_id=listing_id,
                severity=severity,
                error_type=error_type,
                include_stack_trace=include_stack_trace,
                metadata=metadata,
            )
            return self._write(record)

        except Exception as e:
            logger.error(f"Error logger failed: {e} - Original exception: {type(exc).__name__}")
            return False

    def _write(self, record: ErrorRecord) -> bool:
        logger.warning(
            f"[{record.component}] {record.stage}: {record.error_type} - {record.message}"
        )
        client = self._get_client()
        if client is not None:
            return self._write_to_database(client, record)
        return self._write_to_file(record)

    def _write_to_database(self, client: Any, record: ErrorRecord) -> bool:
        """Write error record to Supabase."""
        try:
            row = record.model_dump(exclude_none=False)
            client.table(self._table).insert(row).execute()
            return True
        except Exception as e:
            logger.warning(f"Database error write failed: {e}, falling back to file")
            return self._write_to_file(record)

    def _write_to_file(self, record: ErrorRecord) -> bool:
        """Write error record to local JSON file (fallback)."""
        try:
            self._fallback_dir.mkdir(exist_ok=True, parents=True)
            date_str = datetime.now(timezone.utc).strftime("%Y%m%d")
            file_path = self._fallback_dir / f"errors_{date_str}.jsonl"

            with open(file_path, "a", encoding="utf-8") as f:
                json.dump(record.model_dump(), f)
                f.write("\n")

            return True
        except Exception as e:
            logger.error(f"File error write failed: {e}")
            return False

    def get_errors_for_job(self, job_id: str, limit: int = 100) -> list:
        """
        Retrieve recent errors recorded against one crawl job.

        Args:
            job_id: Crawl provider job id
            limit: Maximum number of results

        Returns:
            List of error rows (empty if the database is unavailable)
        """
        client = self._get_client()
        if client is None:
            logger.warning("Database not available for error queries")
            return []

        try:
            result = (
                client.table(self._table)
                .select("*")
                .eq("job_id", job_id)
                .order("created_at", desc=True)
                .limit(limit)
                .execute()
            )
            return result.data or []
        except Exception as e:
            logger.error(f"Error query failed: {e}")
            return []


def get_error_logger() -> ErrorLogger:
    """
    Get the global ErrorLogger instance.

    Returns:
        Global ErrorLogger singleton
    """
    global _error_logger
    if _error_logger is None:
        _error_logger = ErrorLogger()
    return _error_logger
