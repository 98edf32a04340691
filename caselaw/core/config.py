"""Application configuration via environment variables.

All settings are loaded from environment variables (or .env file) using
Pydantic BaseSettings. Source URLs, credentials, quota tiers and cache
tuning all live here.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the unified case-law search engine."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- API ---
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_prefix: str = "/api/v1"
    debug: bool = False

    # --- Local archive (CAP static bulk layout) ---
    local_archive_root: Path | None = None

    # --- CourtListener ---
    courtlistener_api_url: str = "https://www.courtlistener.com/api/rest/v4"
    courtlistener_api_key: str = ""
    courtlistener_timeout: float = 15.0
    courtlistener_window_seconds: float = 3600.0
    courtlistener_anonymous_limit: int = 100
    courtlistener_authenticated_limit: int = 5000

    # --- Caselaw Access Project ---
    caselaw_access_api_url: str = "https://api.case.law/v1"
    caselaw_access_api_key: str = ""
    caselaw_access_timeout: float = 15.0
    caselaw_access_window_seconds: float = 86400.0
    caselaw_access_anonymous_limit: int = 500
    caselaw_access_authenticated_limit: int = 500

    # --- Remote request behaviour ---
    remote_page_size: int = 20  # CAP per-page size, capped at 100; CourtListener fixes its own
    remote_retry_attempts: int = 2
    source_auth_failure_threshold: int = 2
    source_recheck_seconds: float | None = None

    # --- Search ---
    default_search_limit: int = 20
    search_timeout_seconds: float = 30.0
    search_cache_ttl_seconds: float = 1800.0
    search_cache_max_entries: int = 512

    # --- Logging ---
    log_level: str = "INFO"
    log_format: str = "json"
