"""Per-content-type reconciliation policies.

Content-type specific behaviour is a lookup table rather than branching in
the diff engine:

- which fields are meaningful for change detection
- which field transitions become domain-specific changes instead of an
  ``Update`` (code status, tier membership)
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, cast

from raidsync.domain.model import Code, CodeStatus, ContentType, Tier, TierEntry

from .changes import FieldPatch, StatusChange, TierChange

if TYPE_CHECKING:
    from raidsync.domain.model import Entity

    from .changes import Change


@dataclass(frozen=True, slots=True)
class TransitionResult:
    """Domain change extracted from a set of field patches plus the leftovers."""

    change: Change
    remaining: tuple[FieldPatch, ...]


type TransitionRule = Callable[
    [Entity, Entity, tuple[FieldPatch, ...], float],
    TransitionResult | None,
]


@dataclass(frozen=True, slots=True)
class ContentPolicy:
    content_type: ContentType
    fields: tuple[str, ...]
    transition: TransitionRule | None = None

    def field_patches(self, old: Entity, new: Entity) -> tuple[FieldPatch, ...]:
        """Compare meaningful fields one by one using deep equality."""

        patches: list[FieldPatch] = []
        for name in self.fields:
            old_value = getattr(old, name)
            new_value = getattr(new, name)
            if old_value != new_value:
                patches.append(FieldPatch(field=name, old_value=old_value, new_value=new_value))
        return tuple(patches)


def _code_status_transition(
    old: Entity,
    new: Entity,
    patches: tuple[FieldPatch, ...],
    timestamp: float,
) -> TransitionResult | None:
    status_patch = next((patch for patch in patches if patch.field == "status"), None)
    if status_patch is None:
        return None
    old_code = cast(Code, old)
    new_code = cast(Code, new)
    change = StatusChange(
        code=new_code.code,
        old_status=CodeStatus(old_code.status),
        new_status=CodeStatus(new_code.status),
        timestamp=timestamp,
    )
    remaining = tuple(patch for patch in patches if patch.field != "status")
    return TransitionResult(change=change, remaining=remaining)


def _tier_membership_transition(
    old: Entity,
    new: Entity,
    patches: tuple[FieldPatch, ...],
    timestamp: float,
) -> TransitionResult | None:
    if not any(patch.field == "tier" for patch in patches):
        return None
    old_entry = cast(TierEntry, old)
    new_entry = cast(TierEntry, new)
    change = TierChange(
        character_id=new_entry.character_id,
        old_tier=Tier(old_entry.tier),
        new_tier=Tier(new_entry.tier),
        rating=new_entry.rating,
        timestamp=timestamp,
    )
    # the tier change carries the rating, so nothing is left over
    remaining = tuple(patch for patch in patches if patch.field not in {"tier", "rating"})
    return TransitionResult(change=change, remaining=remaining)


CONTENT_POLICIES: dict[ContentType, ContentPolicy] = {
    ContentType.CHARACTER: ContentPolicy(
        content_type=ContentType.CHARACTER,
        fields=("name", "tier", "rating", "stats", "description"),
    ),
    ContentType.CODE: ContentPolicy(
        content_type=ContentType.CODE,
        fields=("status", "rewards", "expires", "uses"),
        transition=_code_status_transition,
    ),
    ContentType.TIER_ENTRY: ContentPolicy(
        content_type=ContentType.TIER_ENTRY,
        fields=("tier", "rating"),
        transition=_tier_membership_transition,
    ),
}


def policy_for(content_type: ContentType) -> ContentPolicy:
    return CONTENT_POLICIES[content_type]
