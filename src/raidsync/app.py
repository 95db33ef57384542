"""Application orchestration entry points."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from raidsync.adapters.feed import HttpContentSource, should_cache_payload
from raidsync.adapters.sqlalchemy import SqlAlchemyStoreBackend, startup
from raidsync.config import get_feed_config, get_sync_config
from raidsync.domain.model import ContentType
from raidsync.domain.reconciliation import (
    ConflictResolver,
    EmptyFeedGuard,
    ReconciliationCoordinator,
    ReconciliationScheduler,
    VersionedStore,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from datetime import datetime

    from raidsync.config import FeedConfig, SyncConfig
    from raidsync.domain.ports import ContentSource, StoreBackend
    from raidsync.domain.reconciliation import CycleResult

log = getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ContentOverview:
    content_type: ContentType
    version: int
    entity_count: int
    last_applied_at: datetime | None


def build_http_sources(feed_config: FeedConfig | None = None) -> dict[ContentType, ContentSource]:
    config = feed_config or get_feed_config(cache_predicate=should_cache_payload)
    source = HttpContentSource(config=config)
    return dict.fromkeys(ContentType, source)


def build_store(backend: StoreBackend | None = None) -> VersionedStore:
    if backend is None:
        startup()
        backend = SqlAlchemyStoreBackend()
    return VersionedStore(backend)


def build_coordinator(
    *,
    sources: Mapping[ContentType, ContentSource] | None = None,
    store: VersionedStore | None = None,
    sync_config: SyncConfig | None = None,
) -> ReconciliationCoordinator:
    """Wire config, the persistent store and the HTTP feed sources into a coordinator."""

    config = sync_config or get_sync_config()
    return ReconciliationCoordinator(
        store=store or build_store(),
        sources=sources if sources is not None else build_http_sources(),
        resolver=ConflictResolver(tier_strategy=config.tier_conflict_strategy),
        empty_feed_guard=EmptyFeedGuard(never_empty=config.never_empty),
        fetch_timeout_seconds=config.fetch_timeout_seconds,
        backoff_base_seconds=config.backoff_base_seconds,
        backoff_cap_seconds=config.backoff_cap_seconds,
        max_recent_failures=config.max_recent_failures,
    )


def _selected(
    coordinator: ReconciliationCoordinator,
    content_types: Iterable[ContentType] | None,
) -> tuple[ContentType, ...]:
    if content_types is None:
        return coordinator.content_types
    return tuple(dict.fromkeys(content_types))


async def _gather_cycles(
    coordinator: ReconciliationCoordinator,
    content_types: tuple[ContentType, ...],
    *,
    resync: bool,
) -> dict[ContentType, CycleResult]:
    run = coordinator.resync if resync else coordinator.reconcile
    results = await asyncio.gather(*(run(ct) for ct in content_types))
    return dict(zip(content_types, results, strict=True))


def reconcile_content(
    content_types: Iterable[ContentType] | None = None,
    *,
    coordinator: ReconciliationCoordinator | None = None,
) -> dict[ContentType, CycleResult]:
    """Run one reconciliation cycle for each selected content type."""

    active = coordinator or build_coordinator()
    selected = _selected(active, content_types)
    log.info("Reconciling %s", ", ".join(selected))
    results = asyncio.run(_gather_cycles(active, selected, resync=False))
    for content_type, result in results.items():
        log.info(
            "Finished %s: outcome=%s, changes=%s, version=%s",
            content_type,
            result.outcome,
            len(result.changes),
            result.version,
        )
    return results


def resync_content(
    content_types: Iterable[ContentType] | None = None,
    *,
    coordinator: ReconciliationCoordinator | None = None,
) -> dict[ContentType, CycleResult]:
    """Clear the selected content types and re-baseline them from their feeds."""

    active = coordinator or build_coordinator()
    selected = _selected(active, content_types)
    if set(selected) == set(ContentType):
        results = asyncio.run(active.resync_all())
    else:
        results = asyncio.run(_gather_cycles(active, selected, resync=True))
    for content_type, result in results.items():
        log.info("Resynced %s: outcome=%s, version=%s", content_type, result.outcome, result.version)
    return results


def watch_content(
    *,
    coordinator: ReconciliationCoordinator | None = None,
    sync_config: SyncConfig | None = None,
    max_cycles: int | None = None,
) -> None:
    """Keep reconciling on the configured schedule until interrupted."""

    config = sync_config or get_sync_config()
    active = coordinator or build_coordinator(sync_config=config)
    intervals = {ct: config.intervals[ct] for ct in active.content_types if ct in config.intervals}
    scheduler = ReconciliationScheduler(active, intervals)
    asyncio.run(scheduler.run(max_cycles=max_cycles))


def store_overview(store: VersionedStore | None = None) -> list[ContentOverview]:
    active = store or build_store()
    overview: list[ContentOverview] = []
    for content_type in ContentType:
        snapshot = active.get(content_type)
        overview.append(
            ContentOverview(
                content_type=content_type,
                version=snapshot.version,
                entity_count=len(snapshot),
                last_applied_at=active.last_applied_at(content_type),
            )
        )
    return overview
