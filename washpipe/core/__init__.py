"""
Core utilities for the Washpipe pipeline.

This module contains shared utilities used across all components:
- Configuration management
- Structured logging
- Error logging and tracking
- Pipeline event logging
"""

from washpipe.core.logging import get_logger, setup_logging, init_pipeline_logging
from washpipe.core.config import get_config, validate_config, Config
from washpipe.core.error_logger import get_error_logger, ErrorLogger
from washpipe.core.error_models import (
    ErrorComponent,
    ErrorSeverity,
    ErrorType,
    ErrorStage,
    ErrorRecord,
)
from washpipe.core.event_logger import get_event_logger, PipelineEventLogger
from washpipe.core.event_models import PipelineStep, PipelineStatus

__all__ = [
    "get_logger",
    "setup_logging",
    "init_pipeline_logging",
    "get_config",
    "validate_config",
    "Config",
    "get_error_logger",
    "ErrorLogger",
    "ErrorComponent",
    "ErrorSeverity",
    "ErrorType",
    "ErrorStage",
    "ErrorRecord",
    "get_event_logger",
    "PipelineEventLogger",
    "PipelineStep",
    "PipelineStatus",
]
