"""Retry, throttling and caching settings for the feed HTTP client."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final, Literal

if TYPE_CHECKING:
    from collections.abc import Mapping

type ShouldCacheHook = Callable[[object], bool]
type CacheBackend = Literal["sqlite", "memory"]

RETRYABLE_STATUSES: Final[frozenset[int]] = frozenset({429, 500, 502, 503, 504})


def _json_headers() -> dict[str, str]:
    return {"Accept": "application/json"}


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """Transport-level retries for idempotent feed downloads."""

    attempts: int = 3
    backoff_factor: float = 0.5
    max_wait_seconds: float = 30.0
    retry_statuses: frozenset[int] = RETRYABLE_STATUSES


@dataclass(slots=True, frozen=True)
class RateLimit:
    max_calls: int
    per_seconds: float


@dataclass(slots=True, frozen=True)
class CacheConfig:
    backend: CacheBackend = "sqlite"
    ttl_seconds: float | None = None
    # decoded JSON body -> whether the response may be stored
    should_cache: ShouldCacheHook | None = None


@dataclass(slots=True, frozen=True)
class ResilienceConfig:
    name: str
    base_url: str | None = None
    timeout_seconds: float = 20.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    ratelimit: RateLimit | None = None
    cache: CacheConfig | None = None
    headers: Mapping[str, str] = field(default_factory=_json_headers)
