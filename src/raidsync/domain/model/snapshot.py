"""Versioned, complete views of one content type."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from .entities import ENTITY_CLASS_BY_CONTENT_TYPE

if TYPE_CHECKING:
    from .entities import Entity
    from .enums import ContentType


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Immutable set of entities of one content type at a point in time.

    Produced either by a content source fetch or by exporting the local store.
    """

    content_type: ContentType
    entities: tuple[Entity, ...]
    version: int
    captured_at: datetime

    def __post_init__(self) -> None:
        expected_cls = ENTITY_CLASS_BY_CONTENT_TYPE[self.content_type]
        seen: set[str] = set()
        for entity in self.entities:
            if not isinstance(entity, expected_cls):
                raise ValueError(
                    f"{type(entity).__name__} does not belong to a {self.content_type} snapshot"
                )
            if entity.entity_id in seen:
                raise ValueError(f"Duplicate {self.content_type} id in snapshot: {entity.entity_id}")
            seen.add(entity.entity_id)

    @classmethod
    def empty(cls, content_type: ContentType, *, captured_at: datetime | None = None) -> Snapshot:
        return cls(
            content_type=content_type,
            entities=(),
            version=0,
            captured_at=captured_at or datetime.now(UTC),
        )

    def by_id(self) -> dict[str, Entity]:
        return {entity.entity_id: entity for entity in self.entities}

    def __len__(self) -> int:
        return len(self.entities)
