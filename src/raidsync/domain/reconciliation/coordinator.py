"""Orchestrator for the reconciliation cycle.

One cycle per content type runs ``fetch -> diff -> conflict check -> apply ->
notify``. Cycles for different content types interleave freely on the event
loop; a second request for a content type whose cycle is still in flight is
coalesced into a no-op rather than queued.

Only the fetch suspends. Diffing, conflict resolution and the store apply run
synchronously, and the conflict check, the apply and the clearing of the
resolved pending local edits share one critical section per content type.

Remote changes are the diff between the feed snapshot applied by the previous
cycle and the fresh one, not between the store and the feed. A pending local
edit therefore only meets the resolver when upstream changed the same id.
"""

from __future__ import annotations

import asyncio
import threading
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from raidsync.domain.model import ContentType

from .backoff import ExponentialBackoff
from .changes import Add, Delete, FieldPatch, Update
from .diff import diff
from .errors import (
    ConflictError,
    FetchTimeoutError,
    NetworkError,
    ParseError,
    StaleEntityWarning,
    StoreError,
)
from .guard import EmptyFeedGuard
from .resolve import ConflictResolver
from .status import (
    ChangeNotification,
    CycleOutcome,
    CycleResult,
    CycleState,
    SyncFailure,
    SyncStatus,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from raidsync.domain.model import Snapshot
    from raidsync.domain.ports.fetching import ContentSource

    from .changes import Change
    from .store import VersionedStore

log = getLogger(__name__)

type ChangeHandler = Callable[[ChangeNotification], None]

DEFAULT_FETCH_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_RECENT_FAILURES = 50


def _utcnow() -> datetime:
    return datetime.now(UTC)


class _CycleCancelled(Exception):
    pass


@dataclass(slots=True)
class _Lane:
    """Per-content-type cycle bookkeeping."""

    backoff: ExponentialBackoff
    recent_failures: deque[SyncFailure]
    lock: threading.RLock = field(default_factory=threading.RLock)
    state: CycleState = CycleState.IDLE
    in_flight: bool = False
    cancel_requested: bool = False
    pending: dict[str, Change] = field(default_factory=dict["str", "Change"])
    handlers: list[ChangeHandler] = field(default_factory=list["ChangeHandler"])
    last_synced_at: datetime | None = None
    last_attempt_at: datetime | None = None
    last_outcome: CycleOutcome | None = None
    stale: bool = True
    total_cycles: int = 0
    successful_cycles: int = 0
    failed_cycles: int = 0
    unapplied_changes: tuple[Change, ...] = ()
    # remote view after the last applied cycle; pending local edits are not in it
    remote_base: Snapshot | None = None


class ReconciliationCoordinator:
    """Reconcile the local store against one upstream source per content type."""

    def __init__(
        self,
        *,
        store: VersionedStore,
        sources: Mapping[ContentType, ContentSource],
        resolver: ConflictResolver | None = None,
        empty_feed_guard: EmptyFeedGuard | None = None,
        fetch_timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
        backoff_base_seconds: float = 5.0,
        backoff_cap_seconds: float = 900.0,
        max_recent_failures: int = DEFAULT_MAX_RECENT_FAILURES,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if fetch_timeout_seconds <= 0:
            raise ValueError("Fetch timeout must be positive")
        self._store = store
        self._sources = dict(sources)
        self._resolver = resolver or ConflictResolver()
        self._guard = empty_feed_guard or EmptyFeedGuard()
        self._fetch_timeout = fetch_timeout_seconds
        self._clock = clock
        self._lanes: dict[ContentType, _Lane] = {
            content_type: _Lane(
                backoff=ExponentialBackoff(
                    base_seconds=backoff_base_seconds,
                    cap_seconds=backoff_cap_seconds,
                ),
                recent_failures=deque(maxlen=max_recent_failures),
            )
            for content_type in ContentType
        }

    @property
    def content_types(self) -> tuple[ContentType, ...]:
        """Content types that have a configured source."""

        return tuple(content_type for content_type in ContentType if content_type in self._sources)

    # Subscriptions -------------------------------------------------------------

    def subscribe(self, content_type: ContentType, handler: ChangeHandler) -> Callable[[], None]:
        """Register ``handler`` for applied changes; returns an unsubscribe callable."""

        lane = self._lanes[content_type]
        lane.handlers.append(handler)

        def unsubscribe() -> None:
            if handler in lane.handlers:
                lane.handlers.remove(handler)

        return unsubscribe

    # Local mutations -------------------------------------------------------------

    def record_local_edit(self, content_type: ContentType, change: Change) -> int:
        """Apply a local edit immediately and remember it as unsynced.

        The pending edit takes part in conflict resolution when a remote change
        for the same id arrives. Store errors propagate to the caller.
        """

        lane = self._lanes[content_type]
        if not change.timestamp:
            change = replace(change, timestamp=self._clock().timestamp())
        with lane.lock:
            if lane.remote_base is None:
                lane.remote_base = self._store.get(content_type)
            version = self._store.apply(content_type, [change], strict=True)
            entity_id = change.entity_id
            lane.pending[entity_id] = _fold_pending(lane.pending.get(entity_id), change)
            applied_at = self._store.last_applied_at(content_type) or self._clock()
        self._notify(content_type, (change,), version=version, applied_at=applied_at)
        return version

    def pending_local_edits(self, content_type: ContentType) -> dict[str, Change]:
        lane = self._lanes[content_type]
        with lane.lock:
            return dict(lane.pending)

    # Cycles ----------------------------------------------------------------------

    async def reconcile(self, content_type: ContentType) -> CycleResult:
        """Run one reconciliation cycle; failures are reported, never raised."""

        source = self._sources.get(content_type)
        if source is None:
            raise ValueError(f"No content source configured for {content_type}")

        lane = self._lanes[content_type]
        if lane.in_flight:
            log.info("Reconciliation of %s already in flight; coalescing request", content_type)
            return CycleResult(content_type=content_type, outcome=CycleOutcome.COALESCED)

        lane.in_flight = True
        lane.cancel_requested = False
        lane.last_attempt_at = self._clock()
        try:
            result = await self._run_cycle(content_type, source, lane)
        finally:
            lane.in_flight = False
            lane.cancel_requested = False
            lane.state = CycleState.IDLE

        self._record(lane, result)
        return result

    async def reconcile_all(self) -> dict[ContentType, CycleResult]:
        """Run one cycle for every configured content type concurrently."""

        content_types = self.content_types
        results = await asyncio.gather(*(self.reconcile(ct) for ct in content_types))
        return dict(zip(content_types, results, strict=True))

    def cancel(self, content_type: ContentType) -> bool:
        """Request cooperative cancellation of an in-flight cycle.

        Honoured at the next state transition. Once applying has started the
        cycle runs to completion, so a batch is never partially applied.
        """

        lane = self._lanes[content_type]
        if not lane.in_flight or lane.state is CycleState.APPLYING:
            return False
        lane.cancel_requested = True
        return True

    async def resync(self, content_type: ContentType) -> CycleResult:
        """Clear the store for ``content_type`` and re-baseline it from its source."""

        lane = self._lanes[content_type]
        with lane.lock:
            self._store.reset(content_type)
            lane.pending.clear()
            lane.remote_base = None
        return await self.reconcile(content_type)

    async def resync_all(self) -> dict[ContentType, CycleResult]:
        """Reset every content type atomically, then re-baseline all sources."""

        for lane in self._lanes.values():
            lane.lock.acquire()
        try:
            self._store.reset_all()
            for lane in self._lanes.values():
                lane.pending.clear()
                lane.remote_base = None
        finally:
            for lane in self._lanes.values():
                lane.lock.release()
        return await self.reconcile_all()

    # Status ----------------------------------------------------------------------

    def status(self, content_type: ContentType) -> SyncStatus:
        lane = self._lanes[content_type]
        with lane.lock:
            failures = lane.backoff.failures
            return SyncStatus(
                content_type=content_type,
                state=lane.state,
                version=self._store.version(content_type),
                last_synced_at=lane.last_synced_at,
                last_attempt_at=lane.last_attempt_at,
                stale=lane.stale,
                consecutive_failures=failures,
                next_retry_in=lane.backoff.delay if failures else None,
                total_cycles=lane.total_cycles,
                successful_cycles=lane.successful_cycles,
                failed_cycles=lane.failed_cycles,
                pending_local_edits=len(lane.pending),
                recent_failures=tuple(lane.recent_failures),
                unapplied_changes=lane.unapplied_changes,
            )

    def next_delay(self, content_type: ContentType, interval: float) -> float:
        """Seconds until the next scheduled cycle: backoff after fetch failures, else ``interval``."""

        backoff = self._lanes[content_type].backoff
        if backoff.failures:
            return min(backoff.delay, interval)
        return interval

    # Internals -------------------------------------------------------------------

    async def _run_cycle(
        self,
        content_type: ContentType,
        source: ContentSource,
        lane: _Lane,
    ) -> CycleResult:
        # data moving under us gets one re-fetch before the batch is surfaced
        for attempt in (1, 2):
            try:
                outcome = await self._attempt(content_type, source, lane)
            except _CycleCancelled:
                log.info("Reconciliation of %s cancelled in state %s", content_type, lane.state)
                return CycleResult(content_type=content_type, outcome=CycleOutcome.CANCELLED)
            if isinstance(outcome, CycleResult):
                return outcome
            if attempt == 1:
                log.warning(
                    "Store rejected %s batch (%s); re-fetching once",
                    content_type,
                    outcome,
                )
                continue
            log.error(
                "Giving up on %s batch after retry: %s (%s changes left for the next cycle)",
                content_type,
                outcome,
                len(outcome.changes),
            )
            lane.state = CycleState.FAILED
            return CycleResult(
                content_type=content_type,
                outcome=CycleOutcome.APPLY_FAILED,
                failed_changes=outcome.changes,
                error=str(outcome),
            )
        raise AssertionError("unreachable")

    async def _attempt(
        self,
        content_type: ContentType,
        source: ContentSource,
        lane: _Lane,
    ) -> CycleResult | StoreError:
        lane.state = CycleState.FETCHING
        try:
            snapshot = await self._fetch(content_type, source)
        except ParseError as exc:
            lane.state = CycleState.FAILED
            log.error(
                "Malformed %s feed (payload fingerprint %s): %s",
                content_type,
                exc.fingerprint or "n/a",
                exc,
            )
            return CycleResult(
                content_type=content_type,
                outcome=CycleOutcome.PARSE_FAILED,
                error=str(exc),
            )
        except (FetchTimeoutError, NetworkError) as exc:
            return self._fetch_failed(content_type, lane, exc)
        except Exception as exc:
            log.exception("Content source for %s raised unexpectedly", content_type)
            return self._fetch_failed(content_type, lane, exc)

        self._checkpoint(lane)
        lane.state = CycleState.DIFFING
        old = self._store.get(content_type)
        if self._guard.is_suspect(content_type, old, snapshot):
            log.warning(
                "Feed for %s returned no entities while %s are stored; "
                "suspecting an upstream outage and skipping apply",
                content_type,
                len(old),
            )
            return CycleResult(
                content_type=content_type,
                outcome=CycleOutcome.EMPTY_FEED_SKIPPED,
                version=old.version,
                error="empty feed",
            )
        with lane.lock:
            base = lane.remote_base if lane.remote_base is not None else old
        remote_changes = diff(base, snapshot, content_type)

        self._checkpoint(lane)
        with lane.lock:
            lane.state = CycleState.CONFLICT_CHECK
            changes, resolved_ids = self._resolve_conflicts(
                content_type, lane, remote_changes, snapshot
            )
            current_version = self._store.version(content_type)
            if not changes:
                lane.remote_base = snapshot
                log.info("%s is up to date at version %s", content_type, current_version)
                return CycleResult(
                    content_type=content_type,
                    outcome=CycleOutcome.UNCHANGED,
                    version=current_version,
                )

            self._checkpoint(lane)
            lane.state = CycleState.APPLYING
            try:
                version = self._store.apply(content_type, changes, strict=True)
            except (ConflictError, StaleEntityWarning) as exc:
                return exc
            for entity_id in resolved_ids:
                lane.pending.pop(entity_id, None)
            lane.remote_base = snapshot
            applied_at = self._store.last_applied_at(content_type) or self._clock()

        if version == current_version:
            # every change was already reflected locally
            log.info(
                "%s is up to date at version %s (%s conflicts resolved)",
                content_type,
                version,
                len(resolved_ids),
            )
            return CycleResult(
                content_type=content_type,
                outcome=CycleOutcome.UNCHANGED,
                version=version,
                conflicts_resolved=len(resolved_ids),
            )

        log.info(
            "Applied %s %s changes (%s conflicts resolved) -> version %s",
            len(changes),
            content_type,
            len(resolved_ids),
            version,
        )
        self._notify(content_type, changes, version=version, applied_at=applied_at)
        return CycleResult(
            content_type=content_type,
            outcome=CycleOutcome.APPLIED,
            changes=changes,
            version=version,
            conflicts_resolved=len(resolved_ids),
        )

    def _fetch_failed(
        self,
        content_type: ContentType,
        lane: _Lane,
        exc: Exception,
    ) -> CycleResult:
        lane.state = CycleState.FAILED
        delay = lane.backoff.record_failure()
        log.warning("Fetching %s failed: %s; retrying in %.1fs", content_type, exc, delay)
        return CycleResult(
            content_type=content_type,
            outcome=CycleOutcome.FETCH_FAILED,
            error=str(exc) or type(exc).__name__,
        )

    async def _fetch(self, content_type: ContentType, source: ContentSource) -> Snapshot:
        try:
            async with asyncio.timeout(self._fetch_timeout):
                snapshot = await source.fetch(content_type)
        except FetchTimeoutError:
            raise
        except TimeoutError as exc:
            raise FetchTimeoutError(
                f"Fetching {content_type} exceeded {self._fetch_timeout:.1f}s"
            ) from exc
        if snapshot.content_type != content_type:
            raise ParseError(
                f"Source returned a {snapshot.content_type} snapshot for {content_type}"
            )
        return snapshot

    def _checkpoint(self, lane: _Lane) -> None:
        if lane.cancel_requested:
            raise _CycleCancelled

    def _resolve_conflicts(
        self,
        content_type: ContentType,
        lane: _Lane,
        remote_changes: Iterable[Change],
        snapshot: Snapshot,
    ) -> tuple[tuple[Change, ...], tuple[str, ...]]:
        """Pair remote changes with pending local edits on the same id.

        Pending edits whose id the remote side did not touch stay pending.
        """

        fetched = snapshot.by_id()
        changes: list[Change] = []
        resolved_ids: list[str] = []
        for remote in remote_changes:
            entity_id = remote.entity_id
            local = lane.pending.get(entity_id)
            if local is None:
                changes.append(remote)
                continue
            resolved = self._resolver.resolve(content_type, local, remote)
            if isinstance(local, Delete) and resolved is not local and entity_id in fetched:
                # deleted locally: a winning remote edit restores the whole entity
                resolved = Add(entity=fetched[entity_id], timestamp=remote.timestamp)
            log.debug(
                "Resolved %s conflict on %s: local %s vs remote %s -> %s",
                content_type,
                entity_id,
                type(local).__name__,
                type(remote).__name__,
                type(resolved).__name__,
            )
            if entity_id not in resolved_ids:
                resolved_ids.append(entity_id)
            # several remote changes for one id may all resolve to the same change
            if resolved not in changes:
                changes.append(resolved)
        return tuple(changes), tuple(resolved_ids)

    def _notify(
        self,
        content_type: ContentType,
        changes: Iterable[Change],
        *,
        version: int,
        applied_at: datetime,
    ) -> None:
        handlers = tuple(self._lanes[content_type].handlers)
        if not handlers:
            return
        for change in changes:
            notification = ChangeNotification(
                content_type=content_type,
                change=change,
                new_version=version,
                applied_at=applied_at,
            )
            for handler in handlers:
                try:
                    handler(notification)
                except Exception:
                    log.exception("Change handler failed for %s", content_type)

    def _record(self, lane: _Lane, result: CycleResult) -> None:
        if result.outcome is CycleOutcome.COALESCED:
            return
        now = self._clock()
        with lane.lock:
            lane.total_cycles += 1
            lane.last_outcome = result.outcome
            if result.outcome.succeeded:
                lane.successful_cycles += 1
                lane.last_synced_at = now
                lane.stale = False
                lane.unapplied_changes = ()
                lane.backoff.record_success()
            elif result.outcome.failed:
                lane.failed_cycles += 1
                lane.stale = True
                if result.failed_changes:
                    lane.unapplied_changes = result.failed_changes
                lane.recent_failures.append(
                    SyncFailure(
                        content_type=result.content_type,
                        outcome=result.outcome,
                        message=result.error or result.outcome.value,
                        occurred_at=now,
                    )
                )


def _fold_pending(existing: Change | None, change: Change) -> Change:
    """Combine successive local updates to one id into a single pending edit."""

    if not isinstance(existing, Update) or not isinstance(change, Update):
        return change
    merged: dict[str, FieldPatch] = {patch.field: patch for patch in existing.field_patches}
    for patch in change.field_patches:
        previous = merged.get(patch.field)
        old_value = previous.old_value if previous is not None else patch.old_value
        merged[patch.field] = FieldPatch(
            field=patch.field,
            old_value=old_value,
            new_value=patch.new_value,
        )
    return Update(id=change.id, field_patches=tuple(merged.values()), timestamp=change.timestamp)
