"""Reconciliation core: keep the local content store in step with upstream feeds.

Layered flow of one cycle:
1) fetch a snapshot from the content source
2) diff it against the store's current snapshot
3) resolve conflicts against pending local edits
4) apply the batch atomically to the versioned store
5) notify subscribers of every applied change
"""

from __future__ import annotations

from .backoff import ExponentialBackoff
from .changes import Add, Change, Delete, FieldPatch, StatusChange, TierChange, Update
from .coordinator import ChangeHandler, ReconciliationCoordinator
from .diff import diff
from .errors import (
    ConflictError,
    FetchError,
    FetchTimeoutError,
    NetworkError,
    ParseError,
    ReconciliationError,
    StaleEntityWarning,
    StoreError,
)
from .guard import EmptyFeedGuard
from .resolve import ConflictResolver, TierConflictStrategy
from .scheduler import ReconciliationScheduler
from .status import (
    ChangeNotification,
    CycleOutcome,
    CycleResult,
    CycleState,
    SyncFailure,
    SyncStatus,
)
from .store import ContentState, VersionedStore

__all__ = [
    "Add",
    "Change",
    "ChangeHandler",
    "ChangeNotification",
    "ConflictError",
    "ConflictResolver",
    "ContentState",
    "CycleOutcome",
    "CycleResult",
    "CycleState",
    "Delete",
    "EmptyFeedGuard",
    "ExponentialBackoff",
    "FetchError",
    "FetchTimeoutError",
    "FieldPatch",
    "NetworkError",
    "ParseError",
    "ReconciliationCoordinator",
    "ReconciliationError",
    "ReconciliationScheduler",
    "StaleEntityWarning",
    "StatusChange",
    "StoreError",
    "SyncFailure",
    "SyncStatus",
    "TierChange",
    "TierConflictStrategy",
    "Update",
    "VersionedStore",
    "diff",
]
