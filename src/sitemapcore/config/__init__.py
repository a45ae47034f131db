from .config import (
    DEFAULT_WORKERS,
    BatchConfig,
    CircuitBreakerConfig,
    Config,
    ExtractionServiceConfig,
    MonitoringConfig,
    ResilienceConfig,
    RetryConfig,
    SitemapConfig,
    WebConfig,
    find_config_file,
    load_config,
)

__all__ = [
    "DEFAULT_WORKERS",
    "BatchConfig",
    "CircuitBreakerConfig",
    "Config",
    "ExtractionServiceConfig",
    "MonitoringConfig",
    "ResilienceConfig",
    "RetryConfig",
    "SitemapConfig",
    "WebConfig",
    "find_config_file",
    "load_config",
]
