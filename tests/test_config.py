import pytest

from bookmarkr_news.config import ServiceConfig

ENV_VARS = [
    "GNEWS_API_KEY", "CACHE_BASE_TTL_MINUTES", "LOW_TRAFFIC_START_HOUR", "LOW_TRAFFIC_END_HOUR",
    "REQUEST_TIMEOUT_SECONDS", "SOCIAL_TIMEOUT_SECONDS", "MAX_RETRIES", "FEED_BATCH_SIZE",
    "CRAWL_BATCH_SIZE", "FEED_BATCH_DELAY_SECONDS", "CRAWL_BATCH_DELAY_SECONDS",
    "STORAGE_SEED_PATH", "LOG_LEVEL", "LOG_DIR", "LOG_TO_FILE", "STRUCTURED_LOGS", "HOST", "PORT",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestServiceConfig:
    def test_defaults_without_environment(self):
        config = ServiceConfig.from_environment(dotenv=False)
        assert config.gnews_api_key is None
        assert config.cache_base_ttl_minutes == 15
        assert config.feed_batch_size == 5
        assert config.feed_category_batch_size == 3
        assert config.crawl_batch_size == 3
        assert config.crawl_category_batch_size == 2
        assert config.feed_batch_delay_seconds == 1.0
        assert config.crawl_batch_delay_seconds == 2.0
        assert config.port == 5000

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("GNEWS_API_KEY", "secret")
        monkeypatch.setenv("CACHE_BASE_TTL_MINUTES", "30")
        monkeypatch.setenv("LOG_TO_FILE", "true")
        monkeypatch.setenv("PORT", "8080")

        config = ServiceConfig.from_environment(dotenv=False)

        assert config.gnews_api_key == "secret"
        assert config.cache_base_ttl_minutes == 30
        assert config.log_to_file is True
        assert config.port == 8080

    def test_blank_api_key_is_treated_as_missing(self, monkeypatch):
        monkeypatch.setenv("GNEWS_API_KEY", "")
        assert ServiceConfig.from_environment(dotenv=False).gnews_api_key is None

    def test_category_batch_never_exceeds_global_batch(self, monkeypatch):
        monkeypatch.setenv("FEED_BATCH_SIZE", "2")
        config = ServiceConfig.from_environment(dotenv=False)
        assert config.feed_batch_size == 2
        assert config.feed_category_batch_size == 2

    def test_non_numeric_value_fails_fast(self, monkeypatch):
        monkeypatch.setenv("MAX_RETRIES", "many")
        with pytest.raises(ValueError, match="MAX_RETRIES"):
            ServiceConfig.from_environment(dotenv=False)

    def test_invalid_values_rejected(self):
        with pytest.raises(ValueError):
            ServiceConfig(cache_base_ttl_minutes=0)
        with pytest.raises(ValueError):
            ServiceConfig(feed_batch_size=0)
        with pytest.raises(ValueError):
            ServiceConfig(low_traffic_end_hour=25)

    @pytest.mark.parametrize("hour", [-1, 24])
    def test_low_traffic_hour_must_be_clock_hour(self, hour):
        with pytest.raises(ValueError, match="LOW_TRAFFIC_START_HOUR"):
            ServiceConfig(low_traffic_start_hour=hour)
        assert ServiceConfig(low_traffic_start_hour=23).low_traffic_start_hour == 23
