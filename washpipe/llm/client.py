"""
Gemini API client for page classification.

This module handles all interactions with the Google Gemini API,
including initialization, retries, and error handling.
"""

from typing import Dict, Any, Optional

from washpipe.core.config import get_config
from washpipe.core.logging import get_logger
from washpipe.utils.retry import RetryConfig, retry_with_backoff

logger = get_logger(__name__)

try:
    import google.generativeai as genai
except ImportError as e:
    raise RuntimeError(
        "google-generativeai not installed. "
        "pip install google-generativeai>=0.8.0"
    ) from e


_configured_key: Optional[str] = None


def _log(msg: str):
    logger.info(f"[LLM Client] {msg}")


def get_gemini_client(api_key: str = None, model_name: str = None):
    """
    Initialize and configure the Gemini API client.

    Args:
        api_key: Optional API key (defaults to GEMINI_API_KEY)
        model_name: Optional model name (defaults to GEMINI_MODEL)

    Returns:
        Configured GenerativeModel instance

    Raises:
        RuntimeError: If API key is missing
    """
    global _configured_key
    config = get_config()
    key = api_key or config.gemini_api_key
    if not key:
        raise RuntimeError(
            "GEMINI_API_KEY missing. "
            "Set it in configs/.env (e.g., GEMINI_API_KEY=...)"
        )

    if key != _configured_key:
        genai.configure(api_key=key)
        _configured_key = key

    model = model_name or config.gemini_model
    return genai.GenerativeModel(model)


def call_gemini_with_retries(
    prompt: str,
    model_name: str = None,
    generation_config: Dict[str, Any] = None,
    max_retries: int = None,
    base_sleep: float = None
):
    """
    Call Gemini API with exponential backoff retry logic.

    Args:
        prompt: The prompt text to send to the model
        model_name: Optional model name (defaults to GEMINI_MODEL)
        generation_config: Optional generation configuration dict
        max_retries: Optional max retry count (defaults to LLM_MAX_RETRIES)
        base_sleep: Optional base sleep duration in seconds

    Returns:
        GenerateContentResponse from Gemini API

    Raises:
        Last exception if all retries exhausted
    """
    config = get_config()
    max_retries = max_retries if max_retries is not None else config.llm_max_retries
    base_sleep = base_sleep if base_sleep is not None else config.llm_retry_base_sleep

    if generation_config is None:
        generation_config = {
            "temperature": 0.0,
            "candidate_count": 1,
            "max_output_tokens": 400,
            "response_mime_type": "application/json",
        }

    model = get_gemini_client(model_name=model_name)

    def _attempt():
        return model.generate_content(prompt, generation_config=generation_config)

    return retry_with_backoff(
        _attempt,
        config=RetryConfig(max_retries=max_retries, base_delay=base_sleep, max_delay=max(base_sleep, 30.0)),
        on_retry=lambda attempt, e: _log(f"API call failed (attempt {attempt}/{max_retries}): {e}"),
    )


def call_gemini(
    prompt: str,
    model_name: str = None,
    temperature: float = 0.0,
    response_mime_type: str = "application/json"
) -> str:
    """
    Simplified Gemini API call with default retry logic.

    Args:
        prompt: The prompt text
        model_name: Optional model name
        temperature: Generation temperature (0.0 = deterministic)
        response_mime_type: Expected response format

    Returns:
        Response text content (empty if the response was blocked)
    """
    gen_config = {
        "temperature": temperature,
        "candidate_count": 1,
        "max_output_tokens": 400,
        "response_mime_type": response_mime_type,
    }

    response = call_gemini_with_retries(
        prompt=prompt,
        model_name=model_name,
        generation_config=gen_config
    )

    try:
        return (response.text or "").strip()
    except ValueError as e:
        # .text raises when the candidate was blocked or empty
        _log(f"No text in response: {e}")
        return ""
