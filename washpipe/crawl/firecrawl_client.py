"""HTTP client for the Firecrawl batch scrape API, with retries and error handling."""

from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
from tenacity import (
    Retrying,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from washpipe.core.config import Config
from washpipe.core.exceptions import ProviderError, SubmissionError
from washpipe.core.logging import get_logger
from washpipe.crawl.models import BatchScrapePage, SubmitResult

logger = get_logger(__name__)


class RetryableProviderError(ProviderError):
    """Provider answered with a status worth retrying (429 / 5xx)."""


def is_retryable_status(response: httpx.Response) -> bool:
    """Check if status code is retryable."""
    return response.status_code in (429, 500, 502, 503, 504)


class FirecrawlClient:
    """
    Firecrawl v2 batch scrape client.

    Transport errors and retryable statuses are retried with exponential
    backoff; any other 4xx is raised immediately as ProviderError carrying
    the provider's own message.
    """

    def __init__(
        self,
        api_key: str,
        api_url: str = "https://api.firecrawl.dev/v2",
        timeout_s: float = 60.0,
        max_concurrency: int = 50,
        page_timeout_ms: int = 30000,
        max_attempts: int = 5,
        retry_wait_min: float = 2.0,
        retry_wait_max: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not api_key:
            raise ValueError("FIRECRAWL_API_KEY is required")

        self.api_url = api_url.rstrip("/")
        self.max_concurrency = max_concurrency
        self.page_timeout_ms = page_timeout_ms

        self.client = httpx.Client(
            timeout=httpx.Timeout(timeout_s),
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            transport=transport,
        )
        self._retrying = Retrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=1, min=retry_wait_min, max=retry_wait_max),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError, RetryableProviderError)),
            reraise=True,
        )

    @classmethod
    def from_config(cls, config: Config, **kwargs) -> "FirecrawlClient":
        return cls(
            api_key=config.firecrawl_api_key,
            api_url=config.firecrawl_api_url,
            timeout_s=config.firecrawl_timeout_s,
            max_concurrency=config.firecrawl_max_concurrency,
            page_timeout_ms=config.firecrawl_page_timeout_ms,
            **kwargs,
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self) -> None:
        self.client.close()

    def scrape_options(self) -> Dict[str, Any]:
        """Content extraction options sent with every batch."""
        return {
            "formats": ["markdown", "images"],
            "onlyMainContent": True,
            "ignoreInvalidURLs": True,
            "maxConcurrency": self.max_concurrency,
            "timeout": self.page_timeout_ms,
            "blockAds": True,
            "skipTlsVerification": True,
            "removeBase64Images": True,
            "location": {"country": "US", "languages": ["en-US"]},
            "proxy": "auto",
            "storeInCache": True,
        }

    def submit_batch_scrape(self, urls: List[str], webhook_url: Optional[str] = None) -> SubmitResult:
        """
        Submit a set of URLs as one asynchronous batch scrape job.

        ``webhook_url`` is passed through for an external receiver; nothing in
        washpipe consumes webhook events.

        Raises:
            ProviderError: The provider rejected the request
            SubmissionError: No success flag or job id in the response
        """
        payload: Dict[str, Any] = {"urls": list(urls), **self.scrape_options()}
        if webhook_url:
            payload["webhook"] = {"url": webhook_url, "events": ["page", "completed"]}

        logger.info(f"[Firecrawl] submitting batch of {len(urls)} URLs")
        body = self._request("POST", f"{self.api_url}/batch/scrape", json=payload)
        result = SubmitResult.model_validate(body)

        if not result.success or not result.id:
            error = body.get("error") if isinstance(body, dict) else None
            raise SubmissionError(f"Firecrawl did not return a job id: {error or body}")

        if result.invalid_urls:
            logger.warning(f"[Firecrawl] {len(result.invalid_urls)} URLs rejected as invalid")
        logger.info(f"[Firecrawl] batch accepted: job {result.id}")
        return result

    def get_batch_scrape_page(self, job_id: str, cursor: Optional[str] = None, limit: Optional[int] = None) -> BatchScrapePage:
        """
        Fetch one page of batch results.

        Args:
            job_id: Provider job id
            cursor: Opaque cursor from the previous page (None for the first page)
            limit: Page size hint for the first page

        Returns:
            Parsed page, including the next cursor if more pages exist
        """
        if cursor:
            body = self._request("GET", cursor)
        else:
            params = {"limit": limit} if limit else None
            body = self._request("GET", self._job_url(job_id), params=params)
        return BatchScrapePage.model_validate(body)

    def get_progress(self, job_id: str) -> BatchScrapePage:
        """Cheap progress probe (status and counts, at most one item)."""
        return self.get_batch_scrape_page(job_id, limit=1)

    def cancel_batch_scrape(self, job_id: str) -> None:
        """Ask the provider to stop a running job."""
        self._request("DELETE", self._job_url(job_id))
        logger.info(f"[Firecrawl] cancelled job {job_id}")

    def _job_url(self, job_id: str) -> str:
        return f"{self.api_url}/batch/scrape/{quote(job_id, safe='')}"

    def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            return self._retrying(self._send, method, url, **kwargs)
        except (httpx.TimeoutException, httpx.NetworkError) as e:
            raise ProviderError(f"Firecrawl request failed after retries: {e}") from e

    def _send(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            response = self.client.request(method, url, **kwargs)
        except (httpx.TimeoutException, httpx.NetworkError) as e:
            logger.warning(f"[Firecrawl] network error on {method} {url}: {e}")
            raise

        if is_retryable_status(response):
            logger.warning(f"[Firecrawl] {response.status_code} on {method} {url}, retrying")
            raise RetryableProviderError(
                f"Firecrawl {response.status_code}: {response.text[:500]}",
                provider_status=response.status_code,
            )
        if response.status_code >= 400:
            raise ProviderError(
                f"Firecrawl {response.status_code}: {response.text[:500]}",
                provider_status=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise ProviderError(f"Firecrawl returned invalid JSON: {e}", provider_status=response.status_code) from e
        return body if isinstance(body, dict) else {"data": body}
