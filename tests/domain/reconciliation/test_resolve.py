from __future__ import annotations

import itertools
import logging

import pytest

from raidsync.domain.model import CodeStatus, ContentType, Tier
from raidsync.domain.reconciliation import (
    Add,
    ConflictResolver,
    Delete,
    FieldPatch,
    StatusChange,
    TierChange,
    TierConflictStrategy,
    Update,
)
from raidsync.domain.reconciliation.changes import Change
from raidsync.domain.reconciliation.resolve import round_half_up
from tests.helpers.content import make_character, make_tier_entry


def _rating_update(old: float, new: float, *, timestamp: float = 0.0) -> Update:
    return Update(
        id="shadow-assassin",
        field_patches=(FieldPatch(field="rating", old_value=old, new_value=new),),
        timestamp=timestamp,
    )


def test_character_ratings_are_averaged_with_audit() -> None:
    resolver = ConflictResolver()
    local = _rating_update(80, 90)
    remote = _rating_update(80, 96)

    resolved = resolver.resolve(ContentType.CHARACTER, local, remote)

    assert isinstance(resolved, Update)
    patch = resolved.patch_for("rating")
    assert patch is not None
    assert patch.new_value == 93
    assert resolved.audit["original_local_rating"] == 90
    assert resolved.audit["original_remote_rating"] == 96
    assert resolved.audit["strategy"] == "average"


def test_character_rating_average_rounds_half_up() -> None:
    resolved = ConflictResolver().resolve(
        ContentType.CHARACTER,
        _rating_update(80, 90),
        _rating_update(80, 95),
    )

    assert isinstance(resolved, Update)
    patch = resolved.patch_for("rating")
    assert patch is not None
    assert patch.new_value == 93


def test_character_rating_merge_applies_to_remote_add() -> None:
    local = _rating_update(80, 90)
    remote = Add(entity=make_character(rating=96))

    resolved = ConflictResolver().resolve(ContentType.CHARACTER, local, remote)

    assert isinstance(resolved, Add)
    assert resolved.entity.rating == 93  # type: ignore[union-attr]


def _description_update(value: str, *, timestamp: float) -> Update:
    return Update(
        id="shadow-assassin",
        field_patches=(FieldPatch(field="description", old_value="", new_value=value),),
        timestamp=timestamp,
    )


def test_character_metadata_conflict_keeps_remote_on_tie(
    caplog: pytest.LogCaptureFixture,
) -> None:
    local = _description_update("local", timestamp=100)
    remote = _description_update("remote", timestamp=100)

    with caplog.at_level(logging.WARNING):
        resolved = ConflictResolver().resolve(ContentType.CHARACTER, local, remote)

    assert resolved is remote
    assert "No merge policy for character" in caplog.text


def test_character_metadata_conflict_keeps_strictly_newer_local_edit() -> None:
    local = _description_update("local", timestamp=300)
    remote = _description_update("remote", timestamp=200)

    assert ConflictResolver().resolve(ContentType.CHARACTER, local, remote) is local


def test_code_conflict_is_last_writer_wins() -> None:
    local = StatusChange(
        code="RAID2024",
        old_status=CodeStatus.EXPIRED,
        new_status=CodeStatus.ACTIVE,
        timestamp=100,
    )
    remote = StatusChange(
        code="RAID2024",
        old_status=CodeStatus.ACTIVE,
        new_status=CodeStatus.EXPIRED,
        timestamp=200,
    )

    resolved = ConflictResolver().resolve(ContentType.CODE, local, remote)

    assert resolved is remote
    assert isinstance(resolved, StatusChange)
    assert resolved.new_status is CodeStatus.EXPIRED


def test_code_conflict_prefers_newer_local_edit() -> None:
    local = StatusChange(
        code="RAID2024",
        old_status=CodeStatus.ACTIVE,
        new_status=CodeStatus.EXPIRED,
        timestamp=300,
    )
    remote = StatusChange(
        code="RAID2024",
        old_status=CodeStatus.EXPIRED,
        new_status=CodeStatus.ACTIVE,
        timestamp=200,
    )

    assert ConflictResolver().resolve(ContentType.CODE, local, remote) is local


def test_code_conflict_tie_goes_to_remote() -> None:
    local = Delete(id="RAID2024", timestamp=100)
    remote = Delete(id="RAID2024", timestamp=100)

    assert ConflictResolver().resolve(ContentType.CODE, local, remote) is remote


def test_tier_conflict_conservative_keeps_lower_tier() -> None:
    local = TierChange(character_id="shadow-assassin", old_tier=Tier.B, new_tier=Tier.S, rating=95)
    remote = TierChange(character_id="shadow-assassin", old_tier=Tier.B, new_tier=Tier.A, rating=90)

    resolved = ConflictResolver().resolve(ContentType.TIER_ENTRY, local, remote)

    assert resolved is remote
    assert isinstance(resolved, TierChange)
    assert resolved.new_tier is Tier.A


def test_tier_conflict_promote_keeps_higher_tier() -> None:
    resolver = ConflictResolver(tier_strategy=TierConflictStrategy.PROMOTE)
    local = TierChange(character_id="shadow-assassin", old_tier=Tier.B, new_tier=Tier.S, rating=95)
    remote = TierChange(character_id="shadow-assassin", old_tier=Tier.B, new_tier=Tier.A, rating=90)

    assert resolver.resolve(ContentType.TIER_ENTRY, local, remote) is local


def test_tier_conflict_against_add_uses_added_tier() -> None:
    local = TierChange(character_id="shadow-assassin", old_tier=None, new_tier=Tier.C, rating=60)
    remote = Add(entity=make_tier_entry(tier=Tier.B))

    assert ConflictResolver().resolve(ContentType.TIER_ENTRY, local, remote) is local


def test_unhandled_pair_falls_back_to_remote_with_warning(
    caplog: pytest.LogCaptureFixture,
) -> None:
    local = Delete(id="shadow-assassin", timestamp=100)
    remote = TierChange(
        character_id="shadow-assassin",
        old_tier=Tier.B,
        new_tier=Tier.A,
        rating=90,
        timestamp=200,
    )

    with caplog.at_level(logging.WARNING):
        resolved = ConflictResolver().resolve(ContentType.TIER_ENTRY, local, remote)

    assert resolved is remote
    assert "No merge policy" in caplog.text


def _sample_changes() -> list[Change]:
    return [
        Add(entity=make_character(rating=70), timestamp=1),
        _rating_update(70, 75, timestamp=2),
        Update(id="shadow-assassin", field_patches=(), timestamp=3),
        Delete(id="shadow-assassin", timestamp=4),
        TierChange(character_id="shadow-assassin", old_tier=None, new_tier=Tier.S, rating=99),
        StatusChange(code="X", old_status=CodeStatus.ACTIVE, new_status=CodeStatus.EXPIRED),
    ]


@pytest.mark.parametrize("content_type", list(ContentType))
def test_resolver_is_total_and_pure(content_type: ContentType) -> None:
    resolver = ConflictResolver()
    for local, remote in itertools.product(_sample_changes(), repeat=2):
        before = (repr(local), repr(remote))
        resolved = resolver.resolve(content_type, local, remote)
        assert resolved is not None
        assert (repr(local), repr(remote)) == before


def test_round_half_up() -> None:
    assert round_half_up(92.5) == 93
    assert round_half_up(93.0) == 93
    assert round_half_up(92.49) == 92
