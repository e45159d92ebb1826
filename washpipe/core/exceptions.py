"""
Exceptions raised by the pipeline and mapped to HTTP responses by the API.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for pipeline errors. ``status_code`` is the HTTP mapping."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ProviderError(PipelineError):
    """The crawl provider rejected or failed a request."""

    status_code = 502

    def __init__(self, message: str, provider_status: Optional[int] = None):
        super().__init__(message)
        self.provider_status = provider_status


class SubmissionError(ProviderError):
    """The crawl provider accepted the request but returned no job id."""


class BatchAlreadyRunningError(PipelineError):
    """A batch is already running and the caller did not force a new one."""

    status_code = 409


class BatchNotFoundError(PipelineError):
    """No batch is registered for the given crawl job id."""

    status_code = 404


class PollInProgressError(PipelineError):
    """Another poll for the same job is running in this process."""

    status_code = 409


class ClassificationError(PipelineError):
    """The classifier call failed or returned no usable JSON verdict."""


class InvalidTransitionError(PipelineError):
    """A batch state change not allowed by the state machine."""
