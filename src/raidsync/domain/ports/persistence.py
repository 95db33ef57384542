"""Persistence port for the versioned content store."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from datetime import datetime

    from raidsync.domain.model import ContentType, Entity
    from raidsync.domain.reconciliation.store import ContentState


@runtime_checkable
class StoreBackend(Protocol):
    """Durable layout: one record per ``(content_type, id)`` plus one version per type."""

    def load(self) -> Mapping[ContentType, ContentState]:
        """Return persisted state for every content type that has any."""
        ...

    def save(
        self,
        content_type: ContentType,
        *,
        version: int,
        applied_at: datetime,
        upserts: Sequence[Entity],
        deletes: Sequence[str],
    ) -> None:
        """Persist one applied batch atomically."""
        ...

    def clear(self, content_types: Sequence[ContentType]) -> None:
        """Drop all records and version counters for ``content_types`` atomically."""
        ...


__all__ = ["StoreBackend"]
