"""Upstream wiki feed configuration values."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final

from raidsync.domain.model import ContentType

from .env import env_choice, env_positive_float, require_env_vars
from .http_resilience import CacheConfig, RateLimit, ResilienceConfig, ShouldCacheHook

if TYPE_CHECKING:
    from collections.abc import Mapping

FEED_BASE_URL_ENV: Final[str] = "RAIDSYNC_FEED_BASE_URL"
FEED_HTTP_TIMEOUT_ENV: Final[str] = "RAIDSYNC_HTTP_TIMEOUT"
FEED_HTTP_TIMEOUT_SECONDS: Final[float] = 20.0
FEED_HTTP_CACHE_ENV: Final[str] = "RAIDSYNC_HTTP_CACHE"

DEFAULT_FEED_PATHS: Final[Mapping[ContentType, str]] = {
    ContentType.CHARACTER: "/characters.json",
    ContentType.CODE: "/codes.json",
    ContentType.TIER_ENTRY: "/tier-list.json",
}


def _default_paths() -> dict[ContentType, str]:
    return dict(DEFAULT_FEED_PATHS)


@dataclass(frozen=True, slots=True)
class FeedConfig:
    """Where each content type's feed document lives and how to reach it."""

    base_url: str
    resilience: ResilienceConfig
    paths: Mapping[ContentType, str] = field(default_factory=_default_paths)

    def path_for(self, content_type: ContentType) -> str:
        return self.paths[content_type]


def _cache_config(cache_predicate: ShouldCacheHook | None) -> CacheConfig | None:
    backend = env_choice(FEED_HTTP_CACHE_ENV, ("sqlite", "memory", "off"), "sqlite")
    if backend == "off":
        return None
    return CacheConfig(
        backend="memory" if backend == "memory" else "sqlite",
        should_cache=cache_predicate,
    )


def get_feed_config(
    *,
    resilience: ResilienceConfig | None = None,
    cache_predicate: ShouldCacheHook | None = None,
) -> FeedConfig:
    values = require_env_vars((FEED_BASE_URL_ENV,))
    base_url = values[FEED_BASE_URL_ENV].rstrip("/")
    return FeedConfig(
        base_url=base_url,
        resilience=resilience
        or ResilienceConfig(
            name="wiki-feed",
            base_url=base_url,
            timeout_seconds=env_positive_float(FEED_HTTP_TIMEOUT_ENV, FEED_HTTP_TIMEOUT_SECONDS),
            ratelimit=RateLimit(max_calls=2, per_seconds=1.0),
            cache=_cache_config(cache_predicate),
        ),
    )
