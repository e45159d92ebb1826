"""
Pydantic models for structured error logging.

This module defines type-safe error record models with automatic validation
and classification to ensure consistency across the error logging system.
"""

import json
import traceback
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator, ConfigDict


class ErrorComponent(str, Enum):
    """System components that can generate errors."""
    CRAWL = "crawl"
    LLM = "llm"
    DATABASE = "db"
    PIPELINE = "pipeline"
    WATCHDOG = "watchdog"
    API = "api"
    CONFIG = "config"
    UTILS = "utils"
    UNKNOWN = "unknown"


class ErrorSeverity(str, Enum):
    """Error severity levels matching logging standards."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorType(str, Enum):
    """
    Categorized error types for classification.

    New error types should be added here to keep the taxonomy consistent.
    """
    # Validation errors
    VALIDATION_ERROR = "validation_error"

    # Network/API errors
    TIMEOUT = "timeout"
    CONNECTION_ERROR = "connection_error"
    HTTP_ERROR = "http_error"
    RATE_LIMIT = "rate_limit"
    API_ERROR = "api_error"

    # Parsing errors
    PARSE_ERROR = "parse_error"
    JSON_ERROR = "json_error"

    # Database errors
    DB_CONNECTION_ERROR = "db_connection_error"
    DB_QUERY_ERROR = "db_query_error"
    DB_WRITE_ERROR = "db_write_error"

    # Job lifecycle
    EXPIRED = "expired"
    STALLED = "stalled"

    # Configuration errors
    CONFIG_ERROR = "config_error"

    UNKNOWN = "unknown"


class ErrorStage:
    """
    Standardized stage names for error logging.

    Use these constants to ensure consistency across the codebase.
    """
    # Submission
    SUBMIT_SELECT = "submit_select"
    SUBMIT_BATCH = "submit_batch"
    PERSIST_BATCH = "persist_batch"

    # Polling
    POLL_FETCH = "poll_fetch"
    RESOLVE_URLS = "resolve_urls"
    CLASSIFY_PAGE = "classify_page"
    WRITE_LISTING = "write_listing"
    WRITE_RUN = "write_run"
    SYNC_FILTERS = "sync_filters"
    UPDATE_BATCH = "update_batch"

    # Maintenance
    WATCHDOG_SWEEP = "watchdog_sweep"
    KICK = "kick"
    RECLASSIFY = "reclassify"
    CANCEL_BATCH = "cancel_batch"

    # Config stages
    LOAD_CONFIG = "load_config"


class ErrorRecord(BaseModel):
    """
    Structured error record for database insertion.

    This model validates all error data before logging to ensure consistency
    and prevent logging errors from causing additional failures.
    """
    # Required fields
    component: ErrorComponent = Field(..., description="System component")
    stage: str = Field(..., min_length=1, max_length=100, description="Processing stage")
    error_type: ErrorType = Field(..., description="Error category")
    severity: ErrorSeverity = Field(default=ErrorSeverity.ERROR, description="Severity level")
    message: str = Field(..., min_length=1, description="Human-readable error message")

    # Optional context
    domain: str = Field(default="unknown", max_length=255, description="Website domain if applicable")
    url: Optional[str] = Field(None, max_length=2048, description="Specific URL if applicable")
    job_id: Optional[str] = Field(None, max_length=255, description="Crawl provider job id")
    listing_id: Optional[str] = Field(None, max_length=255, description="Listing id")
    exception_type: Optional[str] = Field(None, max_length=255, description="Exception class name")
    stack_trace: Optional[str] = Field(None, description="Stack trace for unexpected errors")

    metadata: Dict[str, Any] = Field(default_factory=dict, description="Additional context")

    created_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(),
        description="Error timestamp"
    )

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        use_enum_values=True,  # Store enum values, not enum objects
    )

    @field_validator("stage")
    @classmethod
    def validate_stage(cls, v: str) -> str:
        """Ensure stage is not empty and normalized."""
        if not v or not v.strip():
            return "unknown"
        return v.strip().lower().replace(" ", "_")

    @field_validator("domain", mode="before")
    @classmethod
    def validate_domain(cls, v: Any) -> str:
        if not v or not str(v).strip():
            return "unknown"
        return str(v).strip().lower()[:255]

    @field_validator("listing_id", "job_id", mode="before")
    @classmethod
    def stringify_ids(cls, v: Any) -> Optional[str]:
        return None if v is None else str(v)

    @field_validator("message")
    @classmethod
    def validate_message(cls, v: str) -> str:
        """Ensure message is not empty."""
        if not v or not v.strip():
            return "No error message provided"
        return v.strip()[:5000]

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

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        component: ErrorComponent,
        stage: str,
        domain: Optional[str] = None,
        url: Optional[str] = None,
        job_id: Optional[str] = None,
        listing_id: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        error_type: Optional[ErrorType] = None,
        include_stack_trace: bool = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "ErrorRecord":
        """
        Create ErrorRecord from an exception with automatic classification.

        Args:
            exc: The exception that occurred
            component: System component where error occurred
            stage: Processing stage
            domain: Website domain if applicable
            url: Optional specific URL
            job_id: Crawl provider job id if applicable
            listing_id: Listing id if applicable
            severity: Error severity (default: ERROR)
            error_type: Optional explicit error type (auto-detected if None)
            include_stack_trace: Whether to include full stack trace (auto if None)
            metadata: Additional context

        Returns:
            ErrorRecord instance ready for logging

        Example:
            >>> try:
            ...     classifier.classify(markdown)
            ... except ClassificationError as e:
            ...     record = ErrorRecord.from_exception(
            ...         e,
            ...         component=ErrorComponent.LLM,
            ...         stage=ErrorStage.CLASSIFY_PAGE,
            ...         domain="wash1.com",
            ...     )
        """
        if error_type is None:
            error_type = cls._classify_exception(exc)

        message = str(exc) or f"{type(exc).__name__} occurred"
        exception_type = f"{type(exc).__module__}.{type(exc).__name__}"

        if include_stack_trace is None:
            include_stack_trace = cls._should_include_stack(exc, severity)

        stack_trace = None
        if include_stack_trace:
            try:
                stack_trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
                # Truncate to 10KB
                if len(stack_trace) > 10000:
                    stack_trace = stack_trace[:10000] + "\n... (truncated)"
            except Exception:
                stack_trace = None

        return cls(
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

    @staticmethod
    def _classify_exception(exc: Exception) -> ErrorType:
        """
        Automatically classify exception into ErrorType.

        Uses exception type and message patterns to determine category.
        """
        exc_name = type(exc).__name__.lower()
        exc_msg = str(exc).lower()

        if "validation" in exc_name:
            return ErrorType.VALIDATION_ERROR

        if "timeout" in exc_name or "timeout" in exc_msg:
            return ErrorType.TIMEOUT
        if "429" in exc_msg or "rate limit" in exc_msg:
            return ErrorType.RATE_LIMIT
        if "connect" in exc_name or "network" in exc_name:
            return ErrorType.CONNECTION_ERROR
        if "http" in exc_name or "provider" in exc_name or "status" in exc_msg:
            return ErrorType.HTTP_ERROR

        if "json" in exc_name or "json" in exc_msg:
            return ErrorType.JSON_ERROR
        if "parse" in exc_name or "classification" in exc_name:
            return ErrorType.PARSE_ERROR

        if "api" in exc_name or "api" in exc_msg:
            return ErrorType.API_ERROR

        if "postgrest" in exc_name or "apierror" in exc_name or "sql" in exc_name:
            return ErrorType.DB_QUERY_ERROR

        return ErrorType.UNKNOWN

    @staticmethod
    def _should_include_stack(exc: Exception, severity: ErrorSeverity) -> bool:
        """
        Determine if stack trace should be included based on exception type and severity.

        Expected errors (validation, provider rejections) don't need stacks.
        Unexpected errors (system crashes, bugs) do.
        """
        if severity == ErrorSeverity.CRITICAL:
            return True

        if severity in (ErrorSeverity.WARNING, ErrorSeverity.INFO, ErrorSeverity.DEBUG):
            return False

        EXPECTED_ERRORS = (
            'ValidationError',
            'ValueError',
            'TimeoutError',
            'ClassificationError',
            'ProviderError',
        )

        return type(exc).__name__ not in EXPECTED_ERRORS
