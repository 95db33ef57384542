"""Application configuration helpers."""

from __future__ import annotations

from .env import require_env_vars
from .errors import ConfigurationError, InvalidConfigurationError, MissingConfigurationError
from .feeds import DEFAULT_FEED_PATHS, FeedConfig, get_feed_config
from .http_resilience import CacheConfig, RateLimit, ResilienceConfig, RetryPolicy
from .logging import configure_logging
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config
from .sync import DEFAULT_INTERVALS, SyncConfig, get_sync_config

__all__ = [
    "DEFAULT_FEED_PATHS",
    "DEFAULT_INTERVALS",
    "CacheConfig",
    "ConfigurationError",
    "DatabaseConfig",
    "FeedConfig",
    "InvalidConfigurationError",
    "MissingConfigurationError",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "StorageConfig",
    "SyncConfig",
    "configure_logging",
    "get_database_config",
    "get_feed_config",
    "get_storage_config",
    "get_sync_config",
    "require_env_vars",
]
