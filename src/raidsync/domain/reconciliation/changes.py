"""Change records describing how one entity differs between two snapshots.

Every change carries the ``timestamp`` (epoch seconds) of the writer that
produced it and an ``audit`` mapping that stays empty unless a merge policy
rewrote the change.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Literal

from raidsync.domain.model import CodeStatus

if TYPE_CHECKING:
    from raidsync.domain.model import Entity, Tier


def _no_audit() -> Mapping[str, object]:
    return MappingProxyType({})


@dataclass(frozen=True, slots=True)
class FieldPatch:
    field: str
    old_value: object
    new_value: object


@dataclass(frozen=True, slots=True, kw_only=True)
class Add:
    entity: Entity
    timestamp: float = 0.0
    audit: Mapping[str, object] = field(default_factory=_no_audit)

    @property
    def entity_id(self) -> str:
        return self.entity.entity_id


@dataclass(frozen=True, slots=True, kw_only=True)
class Update:
    """Patch of the changed fields only, never the whole record."""

    id: str
    field_patches: tuple[FieldPatch, ...]
    timestamp: float = 0.0
    audit: Mapping[str, object] = field(default_factory=_no_audit)

    @property
    def entity_id(self) -> str:
        return self.id

    def patch_for(self, field_name: str) -> FieldPatch | None:
        for patch in self.field_patches:
            if patch.field == field_name:
                return patch
        return None


@dataclass(frozen=True, slots=True, kw_only=True)
class Delete:
    id: str
    timestamp: float = 0.0
    audit: Mapping[str, object] = field(default_factory=_no_audit)

    @property
    def entity_id(self) -> str:
        return self.id


@dataclass(frozen=True, slots=True, kw_only=True)
class TierChange:
    character_id: str
    old_tier: Tier | None
    new_tier: Tier
    rating: float
    timestamp: float = 0.0
    audit: Mapping[str, object] = field(default_factory=_no_audit)

    @property
    def entity_id(self) -> str:
        return self.character_id


@dataclass(frozen=True, slots=True, kw_only=True)
class StatusChange:
    code: str
    old_status: CodeStatus
    new_status: CodeStatus
    timestamp: float = 0.0
    audit: Mapping[str, object] = field(default_factory=_no_audit)

    @property
    def entity_id(self) -> str:
        return self.code

    @property
    def kind(self) -> Literal["expire", "reactivate"]:
        return "expire" if self.new_status is CodeStatus.EXPIRED else "reactivate"


type Change = Add | Update | Delete | TierChange | StatusChange
