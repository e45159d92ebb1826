"""
Configuration Management for the Washpipe pipeline

This module provides centralized configuration management with:
- Environment variable loading
- Type validation
- Sensible defaults
- Configuration documentation
"""

import os
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default) not in {"0", "false", "False", ""}


class Config:
    """
    Application configuration loaded from environment variables.

    All configuration is read from configs/.env file or environment variables.
    See configs/.env.example for documentation of all settings.
    """

    def __init__(self, env_path: Optional[Path] = None):
        """
        Initialize configuration from environment.

        Args:
            env_path: Path to .env file (default: configs/.env)
        """
        if env_path is None:
            env_path = Path("configs/.env")

        # Load environment variables
        load_dotenv(dotenv_path=env_path, override=True)

        # === Supabase Configuration ===
        self.supabase_enabled: bool = _env_bool("SUPABASE_ENABLED", "1")
        self.supabase_url: Optional[str] = os.getenv("SUPABASE_URL")
        self.supabase_service_role_key: Optional[str] = os.getenv("SUPABASE_SERVICE_ROLE_KEY")

        # === Tables ===
        self.listings_table: str = os.getenv("LISTINGS_TABLE", "listings")
        self.batches_table: str = os.getenv("BATCHES_TABLE", "pipeline_batches")
        self.runs_table: str = os.getenv("RUNS_TABLE", "pipeline_runs")
        self.filters_table: str = os.getenv("FILTERS_TABLE", "filters")
        self.listing_filters_table: str = os.getenv("LISTING_FILTERS_TABLE", "listing_filters")

        # === Crawl Provider (Firecrawl) ===
        self.firecrawl_api_key: str = os.getenv("FIRECRAWL_API_KEY", "")
        self.firecrawl_api_url: str = os.getenv("FIRECRAWL_API_URL", "https://api.firecrawl.dev/v2").rstrip("/")
        self.firecrawl_timeout_s: float = float(os.getenv("FIRECRAWL_TIMEOUT_S", "60"))
        self.firecrawl_max_concurrency: int = int(os.getenv("FIRECRAWL_MAX_CONCURRENCY", "50"))
        self.firecrawl_page_timeout_ms: int = int(os.getenv("FIRECRAWL_PAGE_TIMEOUT_MS", "30000"))
        # external receiver only; results are always collected by polling
        self.firecrawl_webhook_url: Optional[str] = os.getenv("FIRECRAWL_WEBHOOK_URL") or None

        # === Classifier (Gemini) ===
        self.gemini_api_key: str = os.getenv("GEMINI_API_KEY", "")
        self.gemini_model: str = os.getenv("GEMINI_MODEL", "models/gemini-2.0-flash")
        self.llm_max_retries: int = int(os.getenv("LLM_MAX_RETRIES", "2"))
        self.llm_retry_base_sleep: float = float(os.getenv("LLM_RETRY_BASE_SLEEP", "1.6"))
        self.classify_max_chars: int = int(os.getenv("CLASSIFY_MAX_CHARS", "8000"))

        # === Pipeline ===
        self.chunk_size: int = int(os.getenv("CHUNK_SIZE", "2000"))
        self.store_page_size: int = int(os.getenv("STORE_PAGE_SIZE", "1000"))
        self.poll_page_size: int = int(os.getenv("POLL_PAGE_SIZE", "25"))
        self.min_content_chars: int = int(os.getenv("MIN_CONTENT_CHARS", "50"))
        self.raw_markdown_max_chars: int = int(os.getenv("RAW_MARKDOWN_MAX_CHARS", "50000"))
        self.classify_concurrency: int = int(os.getenv("CLASSIFY_CONCURRENCY", "8"))
        self.max_photos: int = int(os.getenv("MAX_PHOTOS", "10"))

        # === Watchdog ===
        self.watchdog_stuck_minutes: float = float(os.getenv("WATCHDOG_STUCK_MINUTES", "4"))
        self.watchdog_max_attempts: int = int(os.getenv("WATCHDOG_MAX_ATTEMPTS", "3"))
        self.watchdog_kick_chains: int = int(os.getenv("WATCHDOG_KICK_CHAINS", "6"))
        self.watchdog_kick_stagger_s: float = float(os.getenv("WATCHDOG_KICK_STAGGER_S", "0.5"))
        self.batch_stall_minutes: float = float(os.getenv("BATCH_STALL_MINUTES", "15"))

        # === Self-continuation ===
        self.pipeline_self_url: Optional[str] = (os.getenv("PIPELINE_SELF_URL") or "").rstrip("/") or None
        self.task_processor_base_url: Optional[str] = (os.getenv("TASK_PROCESSOR_BASE_URL") or "").rstrip("/") or None
        self.kick_timeout_s: float = float(os.getenv("KICK_TIMEOUT_S", "5"))

        # === Logging Configuration ===
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO")
        self.log_dir: Path = Path(os.getenv("LOG_DIR", "logs"))

    def validate(self) -> None:
        """
        Validate required configuration is present.

        Raises:
            ValueError: If required configuration is missing or invalid
        """
        errors = []

        # Check required API keys
        if not self.firecrawl_api_key:
            errors.append("FIRECRAWL_API_KEY is required")
        if not self.gemini_api_key:
            errors.append("GEMINI_API_KEY is required")

        # Check Supabase config if enabled
        if self.supabase_enabled:
            if not self.supabase_url:
                errors.append("SUPABASE_URL is required when Supabase is enabled")
            if not self.supabase_service_role_key:
                errors.append("SUPABASE_SERVICE_ROLE_KEY is required when Supabase is enabled")

        # Validate numeric ranges
        for name in (
            "chunk_size",
            "store_page_size",
            "poll_page_size",
            "classify_max_chars",
            "classify_concurrency",
            "firecrawl_timeout_s",
            "firecrawl_page_timeout_ms",
            "watchdog_stuck_minutes",
            "batch_stall_minutes",
            "watchdog_kick_chains",
        ):
            value = getattr(self, name)
            if value <= 0:
                errors.append(f"{name.upper()} must be positive, got {value}")

        if self.llm_max_retries < 0:
            errors.append(f"LLM_MAX_RETRIES must be non-negative, got {self.llm_max_retries}")

        if self.watchdog_max_attempts < 1:
            errors.append(f"WATCHDOG_MAX_ATTEMPTS must be at least 1, got {self.watchdog_max_attempts}")

        if errors:
            raise ValueError(f"Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors))

    def __repr__(self) -> str:
        """Return string representation of config (without secrets)."""
        return (
            f"Config(\n"
            f"  firecrawl_api_url={self.firecrawl_api_url},\n"
            f"  firecrawl_api_key={'***' if self.firecrawl_api_key else 'NOT SET'},\n"
            f"  gemini_model={self.gemini_model},\n"
            f"  gemini_api_key={'***' if self.gemini_api_key else 'NOT SET'},\n"
            f"  supabase_enabled={self.supabase_enabled},\n"
            f"  supabase_url={self.supabase_url or 'NOT SET'},\n"
            f"  chunk_size={self.chunk_size},\n"
            f"  log_level={self.log_level}\n"
            f")"
        )


# Global configuration instance (lazy-loaded)
_config: Optional[Config] = None


def get_config(env_path: Optional[Path] = None) -> Config:
    """
    Get the global configuration instance.

    Args:
        env_path: Optional path to .env file (only used on first call)

    Returns:
        Global Config instance

    Example:
        >>> config = get_config()
        >>> print(config.chunk_size)
    """
    global _config
    if _config is None:
        _config = Config(env_path=env_path)
    return _config


def validate_config(env_path: Optional[Path] = None) -> None:
    """
    Validate configuration and raise error if invalid.

    This should be called at application startup to fail fast
    if configuration is incorrect.

    Args:
        env_path: Optional path to .env file

    Raises:
        ValueError: If configuration is invalid
    """
    config = get_config(env_path=env_path)
    config.validate()
