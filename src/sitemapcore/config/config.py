"""
Configuration management for sitemapcore using Pydantic.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

log = logging.getLogger(__name__)

DEFAULT_WORKERS = 15

# --- Nested Configuration Models ---


class ExtractionServiceConfig(BaseModel):
    """Firecrawl metadata extraction service."""

    name: str = Field(default="firecrawl", description="Dependency name used for rate limiting and breaking.")
    api_url: str = Field(default="https://api.firecrawl.dev", description="Base URL of the Firecrawl API.")
    api_key: Optional[str] = Field(default=None, description="Firecrawl API key (FIRECRAWL_API_KEY).")
    request_timeout: float = Field(default=10.0, gt=0, description="HTTP timeout for a single scrape call.")
    wait_for_ms: int = Field(default=0, ge=0, description="Milliseconds Firecrawl waits for dynamic content.")


class SitemapConfig(BaseModel):
    """Retrieval of the sitemap document itself."""

    fetch_timeout: float = Field(default=15.0, gt=0, description="Timeout for downloading a sitemap.")
    user_agent: str = Field(default="Mozilla/5.0 (compatible; SitemapCoreBot/1.0)")


class BatchConfig(BaseModel):
    """Adaptive batch crawler settings."""

    initial_workers: int = Field(default=DEFAULT_WORKERS, description="Concurrent workers for the first batch.")
    item_timeout: float = Field(default=8.0, gt=0, description="Upper bound for one extraction attempt.")
    chunk_max_urls: int = Field(default=20, ge=1, description="Maximum URLs accepted by one scrape-chunk call.")
    chunk_workers: int = Field(default=5, ge=1, description="Workers used for scrape-chunk calls.")
    session_ttl: float = Field(default=3600.0, gt=0, description="Seconds a chunked sitemap session is kept.")

    @field_validator("initial_workers", mode="before")
    @classmethod
    def default_on_invalid(cls, v: Any) -> int:
        try:
            workers = int(v)
        except (TypeError, ValueError):
            log.warning("Invalid initial worker count %r, using default %d", v, DEFAULT_WORKERS)
            return DEFAULT_WORKERS
        if workers < 1:
            log.warning("Initial worker count must be positive, got %d; using default %d", workers, DEFAULT_WORKERS)
            return DEFAULT_WORKERS
        return workers


class RetryConfig(BaseModel):
    """Exponential backoff with jitter."""

    max_retries: int = Field(default=3, ge=0)
    base_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=10.0, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    jitter: float = Field(default=0.5, ge=0)


class CircuitBreakerConfig(BaseModel):
    failure_threshold: int = Field(default=5, ge=1)
    reset_timeout: float = Field(default=60.0, gt=0)


def _default_rate_limits() -> Dict[str, float]:
    return {
        "firecrawl": 1.0,
        "openai": 15.0,
        "claude": 1.5,
        "mcp": 1.0,
    }


def _default_circuit_breakers() -> Dict[str, CircuitBreakerConfig]:
    return {
        "firecrawl": CircuitBreakerConfig(failure_threshold=5, reset_timeout=60.0),
        "openai": CircuitBreakerConfig(failure_threshold=3, reset_timeout=120.0),
        "claude": CircuitBreakerConfig(failure_threshold=4, reset_timeout=90.0),
        "mcp": CircuitBreakerConfig(failure_threshold=3, reset_timeout=60.0),
    }


def _default_retries() -> Dict[str, RetryConfig]:
    # firecrawl uses the top-level retry settings
    return {
        "openai": RetryConfig(max_retries=5, base_delay=10.0, max_delay=120.0, backoff_multiplier=2.5, jitter=2.0),
        "claude": RetryConfig(max_retries=2, base_delay=2.0, max_delay=20.0, backoff_multiplier=2.0, jitter=1.0),
        "mcp": RetryConfig(max_retries=3, base_delay=1.0, max_delay=15.0, backoff_multiplier=2.0, jitter=0.5),
    }


class ResilienceConfig(BaseModel):
    """Per-dependency pacing and circuit breaking."""

    rate_limits: Dict[str, float] = Field(
        default_factory=_default_rate_limits,
        description="Minimum seconds between call starts, per dependency.",
    )
    circuit_breakers: Dict[str, CircuitBreakerConfig] = Field(default_factory=_default_circuit_breakers)
    retries: Dict[str, RetryConfig] = Field(default_factory=_default_retries)
    default_rate_limit: float = Field(default=1.0, ge=0)
    default_circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)

    @field_validator("rate_limits")
    @classmethod
    def non_negative_intervals(cls, v: Dict[str, float]) -> Dict[str, float]:
        for name, interval in v.items():
            if interval < 0:
                raise ValueError(f"rate limit interval for {name} must be >= 0")
        return v

    def rate_limit_for(self, dependency: str) -> float:
        return self.rate_limits.get(dependency, self.default_rate_limit)

    def circuit_breaker_for(self, dependency: str) -> CircuitBreakerConfig:
        return self.circuit_breakers.get(dependency, self.default_circuit_breaker)

    def retry_for(self, dependency: str, default: RetryConfig) -> RetryConfig:
        return self.retries.get(dependency, default)


class WebConfig(BaseModel):
    host: str = Field(default="127.0.0.1", description="Host for the API server.")
    port: int = Field(default=8000, description="Port for the API server.")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], description="Origins allowed to call the API.")


class MonitoringConfig(BaseModel):
    """Logging configuration."""

    log_level: str = Field(default="INFO", description="Logging level (e.g., DEBUG, INFO, WARNING).")
    log_file: Optional[str] = Field(default=None, description="Path to log file. If None, logs to console.")
    json_logs: bool = Field(default=False, description="Render console logs as JSON.")

    @field_validator("log_file", mode="before")
    @classmethod
    def create_parent_dir(cls, v: str | Path | None) -> str | None:
        if v is None:
            return None
        path = Path(v)
        path.parent.mkdir(parents=True, exist_ok=True)
        return str(path)


# --- Main Configuration Class ---


class Config(BaseSettings):
    project_name: str = "SitemapCore"
    version: str = "0.1.0"
    extraction: ExtractionServiceConfig = Field(default_factory=ExtractionServiceConfig)
    sitemap: SitemapConfig = Field(default_factory=SitemapConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    retry: RetryConfig = Field(
        default_factory=RetryConfig,
        description="Retry settings for dependencies without an entry in resilience.retries.",
    )
    resilience: ResilienceConfig = Field(default_factory=ResilienceConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    web: WebConfig = Field(default_factory=WebConfig)

    # Variables read without the SITEMAPCORE_ prefix, kept for existing deployments.
    sitemap_workers: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("SITEMAP_WORKERS", "sitemap_workers"),
        exclude=True,
    )
    firecrawl_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("FIRECRAWL_API_KEY", "firecrawl_api_key"),
        exclude=True,
    )

    model_config = SettingsConfigDict(
        env_prefix="SITEMAPCORE_",
        env_nested_delimiter="__",
        case_sensitive=False,
        populate_by_name=True,
    )

    @field_validator("sitemap_workers", mode="before")
    @classmethod
    def ignore_invalid_workers(cls, v: Any) -> Optional[int]:
        if v is None or v == "":
            return None
        try:
            workers = int(v)
        except (TypeError, ValueError):
            log.warning("Ignoring invalid SITEMAP_WORKERS=%r", v)
            return None
        return workers if workers >= 1 else None

    @model_validator(mode="after")
    def apply_legacy_variables(self) -> "Config":
        if self.sitemap_workers is not None:
            self.batch.initial_workers = self.sitemap_workers
        if self.firecrawl_api_key and not self.extraction.api_key:
            self.extraction.api_key = self.firecrawl_api_key
        return self

    @classmethod
    def from_yaml(cls, path: Path) -> Config:
        log.debug("Loading configuration from YAML file: %s", path)
        if not path.is_file():
            raise FileNotFoundError(f"Configuration file not found or is not a file: {path}")
        with open(path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f)
        if not yaml_data:
            log.warning("Configuration file is empty: %s. Using default settings.", path)
            return cls.model_validate({})
        return cls.model_validate(yaml_data)

    def retry_for(self, dependency: str) -> RetryConfig:
        """Retry settings for ``dependency``, falling back to ``retry``."""
        return self.resilience.retry_for(dependency, self.retry)


def find_config_file() -> Path | None:
    current_dir = Path.cwd()
    for path in (current_dir / "sitemapcore.yaml", current_dir / "sitemapcore.yml"):
        if path.exists():
            return path
    return None


def load_config(path: Optional[Path] = None) -> Config:
    """Load configuration from an explicit path, a discovered file, or the environment."""
    config_path = path or find_config_file()
    if config_path:
        log.info("Loading configuration from: %s", config_path)
        return Config.from_yaml(config_path)
    return Config()
