"""
Service configuration loaded from the environment (and a local .env file).
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


def _env_bool(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


@dataclass
class ServiceConfig:
    """Runtime configuration"""
    # API keys
    gnews_api_key: Optional[str] = None

    # Cache
    cache_base_ttl_minutes: int = 15
    low_traffic_start_hour: int = 0
    low_traffic_end_hour: int = 6

    # Outbound requests
    request_timeout_seconds: float = 15.0
    social_timeout_seconds: float = 10.0
    max_retries: int = 2

    # Batching: (global scope, single category scope)
    feed_batch_size: int = 5
    feed_category_batch_size: int = 3
    crawl_batch_size: int = 3
    crawl_category_batch_size: int = 2
    feed_batch_delay_seconds: float = 1.0
    crawl_batch_delay_seconds: float = 2.0

    # Bookmark store seed (JSON list of bookmarks)
    storage_seed_path: Optional[str] = None

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"
    log_to_file: bool = False
    structured_logs: bool = False

    # HTTP server
    host: str = "127.0.0.1"
    port: int = 5000

    def __post_init__(self):
        if self.cache_base_ttl_minutes <= 0:
            raise ValueError("CACHE_BASE_TTL_MINUTES must be positive")
        for name in ('low_traffic_start_hour', 'low_traffic_end_hour'):
            if not 0 <= getattr(self, name) <= 23:
                raise ValueError(f"{name.upper()} must be between 0 and 23")
        for name in ('feed_batch_size', 'feed_category_batch_size',
                     'crawl_batch_size', 'crawl_category_batch_size'):
            if getattr(self, name) < 1:
                raise ValueError(f"{name.upper()} must be at least 1")
        if self.max_retries < 0:
            raise ValueError("MAX_RETRIES cannot be negative")

    @classmethod
    def from_environment(cls, dotenv: bool = True) -> "ServiceConfig":
        """Build the config from environment variables, loading .env first."""
        if dotenv:
            load_dotenv()

        feed_batch = _env_int('FEED_BATCH_SIZE', 5)
        crawl_batch = _env_int('CRAWL_BATCH_SIZE', 3)

        return cls(
            gnews_api_key=os.getenv('GNEWS_API_KEY') or None,
            cache_base_ttl_minutes=_env_int('CACHE_BASE_TTL_MINUTES', 15),
            low_traffic_start_hour=_env_int('LOW_TRAFFIC_START_HOUR', 0),
            low_traffic_end_hour=_env_int('LOW_TRAFFIC_END_HOUR', 6),
            request_timeout_seconds=_env_float('REQUEST_TIMEOUT_SECONDS', 15.0),
            social_timeout_seconds=_env_float('SOCIAL_TIMEOUT_SECONDS', 10.0),
            max_retries=_env_int('MAX_RETRIES', 2),
            feed_batch_size=feed_batch,
            feed_category_batch_size=min(3, feed_batch),
            crawl_batch_size=crawl_batch,
            crawl_category_batch_size=min(2, crawl_batch),
            feed_batch_delay_seconds=_env_float('FEED_BATCH_DELAY_SECONDS', 1.0),
            crawl_batch_delay_seconds=_env_float('CRAWL_BATCH_DELAY_SECONDS', 2.0),
            storage_seed_path=os.getenv('STORAGE_SEED_PATH') or None,
            log_level=os.getenv('LOG_LEVEL', 'INFO'),
            log_dir=os.getenv('LOG_DIR', 'logs'),
            log_to_file=_env_bool('LOG_TO_FILE'),
            structured_logs=_env_bool('STRUCTURED_LOGS'),
            host=os.getenv('HOST', '127.0.0.1'),
            port=_env_int('PORT', 5000),
        )
