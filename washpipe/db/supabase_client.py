"""
Lazy singleton Supabase client shared by the store and the loggers.
"""

from typing import Any, Optional

from washpipe.core.config import get_config
from washpipe.core.logging import get_logger

logger = get_logger(__name__)

_client: Optional[Any] = None


def _log(msg: str):
    logger.info(f"[SUPABASE] {msg}")


def _init_client():
    """
    Lazily create a singleton Supabase client.

    Returns:
        client instance or None if disabled / misconfigured.
    """
    global _client
    if _client is not None:
        return _client

    config = get_config()
    if not config.supabase_enabled:
        _log("disabled via SUPABASE_ENABLED")
        return None

    if not config.supabase_url or not config.supabase_service_role_key:
        _log("disabled: SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY missing")
        return None

    try:
        # pip package name is `supabase`
        from supabase import create_client
    except ImportError:
        _log("supabase client not installed. Run: pip install supabase")
        return None

    _client = create_client(config.supabase_url, config.supabase_service_role_key)
    _log(f"client initialized for {config.supabase_url}")
    return _client


def get_supabase():
    """Convenience wrapper used by other modules."""
    return _init_client()


def is_supabase_enabled() -> bool:
    """True if a client can be created and used."""
    return _init_client() is not None
