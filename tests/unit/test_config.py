"""
Tests for configuration loading.
"""

from pathlib import Path

import pytest
import yaml
from sitemapcore.config import DEFAULT_WORKERS, BatchConfig, Config, ResilienceConfig, load_config
from sitemapcore.service import SitemapService

from tests.helpers import FakeExtractor


@pytest.mark.unit
class TestConfig:
    def test_defaults(self):
        config = Config()
        assert config.batch.initial_workers == 15
        assert config.retry.max_retries == 3
        assert config.retry.max_delay == 10.0
        assert config.sitemap.fetch_timeout == 15.0
        assert config.extraction.name == "firecrawl"

    def test_sitemap_workers_variable(self, monkeypatch):
        monkeypatch.setenv("SITEMAP_WORKERS", "25")
        assert Config().batch.initial_workers == 25

    @pytest.mark.parametrize("value", ["abc", "0", "-3", ""])
    def test_invalid_sitemap_workers_falls_back_to_default(self, monkeypatch, value):
        monkeypatch.setenv("SITEMAP_WORKERS", value)
        assert Config().batch.initial_workers == DEFAULT_WORKERS

    def test_prefixed_nested_variable(self, monkeypatch):
        monkeypatch.setenv("SITEMAPCORE_BATCH__INITIAL_WORKERS", "8")
        monkeypatch.setenv("SITEMAPCORE_RETRY__MAX_RETRIES", "5")
        config = Config()
        assert config.batch.initial_workers == 8
        assert config.retry.max_retries == 5

    def test_invalid_nested_workers_falls_back(self):
        assert BatchConfig(initial_workers="many").initial_workers == DEFAULT_WORKERS
        assert BatchConfig(initial_workers=-1).initial_workers == DEFAULT_WORKERS

    def test_firecrawl_api_key_variable(self, monkeypatch):
        monkeypatch.setenv("FIRECRAWL_API_KEY", "fc-123")
        assert Config().extraction.api_key == "fc-123"

    def test_per_dependency_resilience_defaults(self):
        resilience = ResilienceConfig()
        assert resilience.rate_limit_for("firecrawl") == 1.0
        assert resilience.rate_limit_for("openai") == 15.0
        assert resilience.rate_limit_for("claude") == 1.5
        assert resilience.circuit_breaker_for("openai").failure_threshold == 3
        assert resilience.circuit_breaker_for("claude").reset_timeout == 90.0
        assert resilience.circuit_breaker_for("unknown").failure_threshold == 5
        assert resilience.rate_limit_for("unknown") == 1.0

    def test_per_dependency_retry_settings(self):
        config = Config()
        assert config.retry_for("firecrawl") is config.retry
        assert config.retry_for("openai").max_retries == 5
        assert config.retry_for("openai").backoff_multiplier == 2.5
        assert config.retry_for("claude").max_retries == 2
        assert config.retry_for("mcp").max_delay == 15.0
        assert config.retry_for("unknown") is config.retry

    def test_retry_settings_from_yaml(self, tmp_path: Path):
        path = tmp_path / "sitemapcore.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "retry": {"max_retries": 1},
                    "resilience": {"retries": {"firecrawl": {"max_retries": 6, "base_delay": 0.5}}},
                }
            )
        )
        config = Config.from_yaml(path)
        assert config.retry_for("firecrawl").max_retries == 6
        assert config.retry_for("firecrawl").base_delay == 0.5
        assert config.retry_for("other").max_retries == 1

    def test_service_retries_with_dependency_settings(self):
        service = SitemapService(Config(), extractor=FakeExtractor(name="claude"))
        assert service.retry_policy.config.max_retries == 2
        assert service.retry_policy.config.max_delay == 20.0

    def test_negative_rate_limit_rejected(self):
        with pytest.raises(ValueError):
            ResilienceConfig(rate_limits={"firecrawl": -1.0})

    def test_from_yaml(self, tmp_path: Path):
        path = tmp_path / "sitemapcore.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "batch": {"initial_workers": 30},
                    "resilience": {"rate_limits": {"firecrawl": 0.5}},
                    "extraction": {"api_url": "https://firecrawl.internal"},
                }
            )
        )
        config = Config.from_yaml(path)
        assert config.batch.initial_workers == 30
        assert config.resilience.rate_limit_for("firecrawl") == 0.5
        assert config.extraction.api_url == "https://firecrawl.internal"

    def test_empty_yaml_uses_defaults(self, tmp_path: Path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert Config.from_yaml(path).batch.initial_workers == 15

    def test_missing_yaml(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            Config.from_yaml(tmp_path / "nope.yaml")

    def test_load_config_discovers_file(self, tmp_path: Path, monkeypatch):
        (tmp_path / "sitemapcore.yml").write_text("batch:\n  chunk_workers: 3\n")
        monkeypatch.chdir(tmp_path)
        assert load_config().batch.chunk_workers == 3

    def test_load_config_without_file(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert load_config().batch.chunk_max_urls == 20
