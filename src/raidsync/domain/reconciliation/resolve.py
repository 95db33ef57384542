"""Conflict resolution between a pending local edit and an incoming remote change.

Policies per content type:
- character: ratings proposed by both sides are averaged; pairs without two
  ratings take the fallback below
- code: last writer wins on timestamp, ties go to the remote side
- tier entry: tier disagreements pick a side by the configured
  ``TierConflictStrategy``
- anything else: remote wins unless the local edit is strictly newer; this
  fallback is logged as a policy gap

The resolver is total. It never raises for a well-formed pair and never
mutates its inputs.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import StrEnum
from logging import getLogger
from types import MappingProxyType
from typing import TYPE_CHECKING

from raidsync.domain.model import Character, ContentType, Tier, TierEntry

from .changes import Add, FieldPatch, TierChange, Update

if TYPE_CHECKING:
    from .changes import Change

log = getLogger(__name__)


class TierConflictStrategy(StrEnum):
    """Which proposed tier survives a local/remote disagreement."""

    CONSERVATIVE = "conservative"  # lower tier wins
    PROMOTE = "promote"  # higher tier wins


type PolicyFn = Callable[[Change, Change], Change | None]


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


@dataclass(slots=True)
class ConflictResolver:
    tier_strategy: TierConflictStrategy = TierConflictStrategy.CONSERVATIVE

    def resolve(self, content_type: ContentType, local: Change, remote: Change) -> Change:
        """Return the single change to apply for a conflicting ``local``/``remote`` pair."""

        policy = self._policies().get(content_type)
        if policy is not None:
            resolved = policy(local, remote)
            if resolved is not None:
                return resolved
        log.warning(
            "No merge policy for %s %s vs %s on %s; falling back to remote-wins",
            content_type,
            type(local).__name__,
            type(remote).__name__,
            remote.entity_id,
        )
        return _latest_writer(local, remote)

    def _policies(self) -> dict[ContentType, PolicyFn]:
        return {
            ContentType.CHARACTER: _resolve_character,
            ContentType.CODE: _latest_writer,
            ContentType.TIER_ENTRY: self._resolve_tier_entry,
        }

    def _resolve_tier_entry(self, local: Change, remote: Change) -> Change | None:
        local_tier = _proposed_tier(local)
        remote_tier = _proposed_tier(remote)
        if local_tier is None or remote_tier is None:
            return None
        if local_tier.rank == remote_tier.rank:
            return remote
        if self.tier_strategy is TierConflictStrategy.CONSERVATIVE:
            return local if local_tier.rank < remote_tier.rank else remote
        return local if local_tier.rank > remote_tier.rank else remote


def _latest_writer(local: Change, remote: Change) -> Change:
    return local if local.timestamp > remote.timestamp else remote


def _resolve_character(local: Change, remote: Change) -> Change | None:
    local_rating = _proposed_rating(local)
    remote_rating = _proposed_rating(remote)
    if local_rating is None or remote_rating is None:
        return None

    merged = round_half_up((local_rating + remote_rating) / 2)
    audit = MappingProxyType(
        {
            "strategy": "average",
            "original_local_rating": local_rating,
            "original_remote_rating": remote_rating,
        }
    )
    if isinstance(remote, Add) and isinstance(remote.entity, Character):
        return replace(remote, entity=replace(remote.entity, rating=merged), audit=audit)
    if isinstance(remote, Update):
        patches = tuple(
            FieldPatch(field=patch.field, old_value=patch.old_value, new_value=merged)
            if patch.field == "rating"
            else patch
            for patch in remote.field_patches
        )
        return replace(remote, field_patches=patches, audit=audit)
    return None


def _proposed_rating(change: Change) -> float | None:
    match change:
        case Update():
            patch = change.patch_for("rating")
            if patch is None or not isinstance(patch.new_value, int | float):
                return None
            return patch.new_value
        case Add(entity=Character(rating=rating)):
            return rating
        case _:
            return None


def _proposed_tier(change: Change) -> Tier | None:
    match change:
        case TierChange(new_tier=new_tier):
            return Tier(new_tier)
        case Update():
            patch = change.patch_for("tier")
            if patch is None or patch.new_value not in set(Tier):
                return None
            return Tier(str(patch.new_value))
        case Add(entity=TierEntry(tier=tier)):
            return Tier(tier)
        case _:
            return None
