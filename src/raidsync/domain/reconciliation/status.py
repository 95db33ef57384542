"""Cycle results, sync status and change notifications exposed to host applications."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from raidsync.domain.model import ContentType

    from .changes import Change


class CycleState(StrEnum):
    IDLE = "idle"
    FETCHING = "fetching"
    DIFFING = "diffing"
    CONFLICT_CHECK = "conflict_check"
    APPLYING = "applying"
    FAILED = "failed"


class CycleOutcome(StrEnum):
    APPLIED = "applied"
    UNCHANGED = "unchanged"
    COALESCED = "coalesced"
    CANCELLED = "cancelled"
    EMPTY_FEED_SKIPPED = "empty_feed_skipped"
    FETCH_FAILED = "fetch_failed"
    PARSE_FAILED = "parse_failed"
    APPLY_FAILED = "apply_failed"

    @property
    def succeeded(self) -> bool:
        return self in {CycleOutcome.APPLIED, CycleOutcome.UNCHANGED}

    @property
    def failed(self) -> bool:
        return self in {
            CycleOutcome.EMPTY_FEED_SKIPPED,
            CycleOutcome.FETCH_FAILED,
            CycleOutcome.PARSE_FAILED,
            CycleOutcome.APPLY_FAILED,
        }


@dataclass(frozen=True, slots=True, kw_only=True)
class CycleResult:
    """Outcome of one reconciliation cycle for one content type."""

    content_type: ContentType
    outcome: CycleOutcome
    changes: tuple[Change, ...] = ()
    version: int | None = None
    conflicts_resolved: int = 0
    failed_changes: tuple[Change, ...] = ()
    error: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class ChangeNotification:
    """Emitted once per applied change; delivery is at-least-once."""

    content_type: ContentType
    change: Change
    new_version: int
    applied_at: datetime


@dataclass(frozen=True, slots=True, kw_only=True)
class SyncFailure:
    content_type: ContentType
    outcome: CycleOutcome
    message: str
    occurred_at: datetime


@dataclass(frozen=True, slots=True, kw_only=True)
class SyncStatus:
    """What a host application sees: last sync time, staleness and recent failures."""

    content_type: ContentType
    state: CycleState
    version: int
    last_synced_at: datetime | None
    last_attempt_at: datetime | None
    stale: bool
    consecutive_failures: int
    next_retry_in: float | None
    total_cycles: int
    successful_cycles: int
    failed_cycles: int
    pending_local_edits: int
    recent_failures: tuple[SyncFailure, ...] = ()
    unapplied_changes: tuple[Change, ...] = ()
