"""
Fire-and-forget HTTP kicks that schedule the next unit of work.

Each invocation does one bounded step; the next step is triggered by
POSTing to the relevant entrypoint instead of looping in-process. A failed
kick is logged and dropped: the watchdog notices the stall and kicks again.
"""

from typing import Any, Dict, Optional

import httpx

from washpipe.core.config import Config, get_config
from washpipe.core.error_logger import ErrorLogger, get_error_logger
from washpipe.core.error_models import ErrorComponent, ErrorSeverity, ErrorStage
from washpipe.core.logging import get_logger

logger = get_logger(__name__)


class HttpKicker:
    """
    Args:
        config: Provides PIPELINE_SELF_URL, TASK_PROCESSOR_BASE_URL and KICK_TIMEOUT_S
        transport: Optional httpx transport (tests)
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        error_logger: Optional[ErrorLogger] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.config = config or get_config()
        self.error_logger = error_logger or get_error_logger()
        self._transport = transport

    def kick_poll(self, job_id: str, cursor: Optional[str] = None) -> bool:
        """Ask this service to poll ``job_id`` from ``cursor`` and keep going."""
        base = self.config.pipeline_self_url
        if not base:
            logger.warning("[Kick] PIPELINE_SELF_URL is not set; poll kick skipped")
            return False
        payload = {"job_id": job_id, "next_cursor": cursor, "auto_continue": True}
        return self._post(f"{base}/poll", payload, job_id=job_id)

    def kick_task_job(self, job_type: str, path: str, job_id: Any) -> bool:
        """Wake a sibling job processor for one of its jobs."""
        base = self.config.task_processor_base_url
        if not base:
            logger.warning(f"[Kick] TASK_PROCESSOR_BASE_URL is not set; {job_type} kick skipped")
            return False
        payload = {"action": "process_batch", "job_id": job_id}
        return self._post(f"{base}/{path.lstrip('/')}", payload, job_id=str(job_id))

    def _post(self, url: str, payload: Dict[str, Any], job_id: Optional[str] = None) -> bool:
        try:
            with httpx.Client(timeout=self.config.kick_timeout_s, transport=self._transport) as client:
                response = client.post(url, json=payload)
            if response.status_code >= 400:
                logger.warning(f"[Kick] {url} answered {response.status_code}")
                return False
            logger.info(f"[Kick] {url} ok for {job_id}")
            return True
        except httpx.TimeoutException:
            # the target keeps running after we stop waiting for its answer
            logger.info(f"[Kick] {url} timed out waiting for a response (job {job_id})")
            return True
        except httpx.HTTPError as e:
            self.error_logger.log_exception(
                e,
                component=ErrorComponent.PIPELINE,
                stage=ErrorStage.KICK,
                url=url,
                job_id=job_id,
                severity=ErrorSeverity.WARNING,
            )
            return False
