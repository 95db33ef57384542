"""Error taxonomy for fetching, storing and reconciling content."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .changes import Change


class ReconciliationError(RuntimeError):
    """Base class for reconciliation failures."""


class FetchError(ReconciliationError):
    """Raised by content sources when a snapshot cannot be obtained."""


class NetworkError(FetchError):
    """Transport-level failure talking to an upstream feed."""


class FetchTimeoutError(FetchError, TimeoutError):
    """A fetch exceeded its caller-specified timeout."""


class ParseError(FetchError):
    """Upstream returned a payload that cannot be turned into a snapshot."""

    def __init__(self, message: str, *, fingerprint: str | None = None) -> None:
        super().__init__(message)
        self.fingerprint = fingerprint


class StoreError(ReconciliationError):
    """Raised by the versioned store when a batch cannot be applied."""

    def __init__(self, message: str, *, changes: Sequence[Change] = ()) -> None:
        super().__init__(message)
        self.changes = tuple(changes)


class ConflictError(StoreError):
    """An ``Add`` targeted an id that already holds a different entity."""


class StaleEntityWarning(StoreError, UserWarning):
    """A change referenced an id that no longer exists in the store.

    Emitted as a warning by lenient applies and raised by strict ones.
    """
