"""GET-only HTTP client used by the feed adapter.

Requests go through an ``httpx_retries`` transport, are throttled by an
``aiolimiter`` limiter when a rate limit is configured, and are served from a
``hishel`` cache when caching is enabled. Only JSON bodies accepted by the
configured predicate are written to the cache.
"""

from __future__ import annotations

import json
from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from aiolimiter import AsyncLimiter
from hishel import AsyncSqliteStorage, FilterPolicy
from hishel import Response as HishelCacheResponse
from hishel._policies import BaseFilter
from hishel.httpx import AsyncCacheClient
from httpx_retries import Retry, RetryTransport

from raidsync.config.http_resilience import (
    CacheConfig,
    RateLimit,
    ResilienceConfig,
    RetryPolicy,
    ShouldCacheHook,
)
from raidsync.config.storage import get_storage_config

if TYPE_CHECKING:
    from types import TracebackType

__all__ = [
    "CacheConfig",
    "RateLimit",
    "ResilienceConfig",
    "ResilientClient",
    "RetryPolicy",
]

log = getLogger(__name__)


class ResilientClient:
    """Async client for one upstream, closed after use via ``async with``."""

    def __init__(self, config: ResilienceConfig) -> None:
        self.config = config
        self._limiter = (
            AsyncLimiter(config.ratelimit.max_calls, config.ratelimit.per_seconds)
            if config.ratelimit is not None
            else None
        )
        transport = RetryTransport(retry=_build_retry(config.retry))
        base_url = config.base_url or ""
        headers = dict(config.headers)
        if config.cache is None:
            self._client = httpx.AsyncClient(
                base_url=base_url,
                timeout=config.timeout_seconds,
                headers=headers,
                transport=transport,
            )
        else:
            self._client = AsyncCacheClient(
                base_url=base_url,
                timeout=config.timeout_seconds,
                headers=headers,
                transport=transport,
                storage=_build_cache_storage(config.cache),
                policy=_build_cache_policy(config.cache),
            )
        log.debug(
            "Built %s client (cache=%s, ratelimit=%s)",
            config.name,
            config.cache.backend if config.cache else "off",
            config.ratelimit,
        )

    async def __aenter__(self) -> ResilientClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get(self, path: str) -> httpx.Response:
        if self._limiter is None:
            return await self._client.get(path)
        async with self._limiter:
            return await self._client.get(path)


class JsonPayloadFilter(BaseFilter[HishelCacheResponse]):
    """Cache only bodies that decode as JSON and satisfy ``predicate``."""

    def __init__(self, predicate: ShouldCacheHook) -> None:
        self._predicate = predicate

    def needs_body(self) -> bool:
        return True

    def apply(self, item: HishelCacheResponse, body: bytes | None) -> bool:  # noqa: ARG002
        if not body:
            return False
        try:
            payload = json.loads(body)
        except (UnicodeDecodeError, json.JSONDecodeError):
            return False
        return bool(self._predicate(payload))


def _build_retry(policy: RetryPolicy) -> Retry:
    return Retry(
        total=policy.attempts,
        backoff_factor=policy.backoff_factor,
        max_backoff_wait=policy.max_wait_seconds,
        allowed_methods=("GET",),
        status_forcelist=tuple(policy.retry_statuses),
    )


def _build_cache_storage(config: CacheConfig) -> AsyncSqliteStorage:
    if config.backend == "sqlite":
        database_path = str(get_storage_config().http_cache_path())
    else:
        database_path = ":memory:"
    return AsyncSqliteStorage(database_path=database_path, default_ttl=config.ttl_seconds)


def _build_cache_policy(config: CacheConfig) -> FilterPolicy | None:
    if config.should_cache is None:
        return None
    return FilterPolicy(response_filters=[JsonPayloadFilter(config.should_cache)])
