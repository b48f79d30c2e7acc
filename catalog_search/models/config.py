"""Configuration data models."""

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class SearchConfig:
    """Search and enrichment settings."""
    catalog_path: Path
    scan_window: int = 500  # Most-recent entries considered by a cached lookup
    default_limit: int = 20
    max_limit: int = 100
    min_cached_results: int = 10  # Fewer cached hits than this triggers enrichment
    debounce_delay: float = 0.5  # Seconds of quiet before the provider is called
    provider_limit: int = 20
    request_timeout: float = 30.0
    max_retries: int = 3
    rate_limit_delay: float = 0.25  # IGDB allows 4 requests per second
    log_level: str = "INFO"
