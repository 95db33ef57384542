"""Sanity guards applied to fetched snapshots before diffing."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from raidsync.domain.model import ContentType

if TYPE_CHECKING:
    from raidsync.domain.model import Snapshot


@dataclass(frozen=True, slots=True)
class EmptyFeedGuard:
    """Treat an empty feed as an upstream outage for types that are never empty."""

    never_empty: frozenset[ContentType] = field(default_factory=lambda: frozenset(ContentType))

    def is_suspect(self, content_type: ContentType, old: Snapshot, new: Snapshot) -> bool:
        return content_type in self.never_empty and not new.entities and bool(old.entities)
