from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta

import pytest

from raidsync.domain.model import CodeStatus, ContentType, Tier
from raidsync.domain.reconciliation import (
    Add,
    ConflictError,
    Delete,
    FieldPatch,
    StaleEntityWarning,
    StatusChange,
    TierChange,
    Update,
    VersionedStore,
)
from tests.helpers.content import make_character, make_code, make_tier_entry


def _rating_update(character_id: str, old: float, new: float) -> Update:
    return Update(
        id=character_id,
        field_patches=(FieldPatch(field="rating", old_value=old, new_value=new),),
    )


def test_new_store_is_empty_at_version_zero(store: VersionedStore) -> None:
    for content_type in ContentType:
        snapshot = store.get(content_type)
        assert snapshot.version == 0
        assert snapshot.entities == ()
        assert store.last_applied_at(content_type) is None


def test_apply_increments_version_by_exactly_one_per_batch(store: VersionedStore) -> None:
    versions = [
        store.apply(ContentType.CHARACTER, [Add(entity=make_character("a"))]),
        store.apply(
            ContentType.CHARACTER,
            [Add(entity=make_character("b")), Add(entity=make_character("c"))],
        ),
        store.apply(ContentType.CHARACTER, [_rating_update("a", 90, 91), Delete(id="b")]),
    ]

    assert versions == [1, 2, 3]
    assert store.version(ContentType.CHARACTER) == 3
    assert store.version(ContentType.CODE) == 0


def test_duplicate_delivery_is_idempotent(store: VersionedStore) -> None:
    store.apply(ContentType.CHARACTER, [Add(entity=make_character("a", rating=80))])
    batch = [Add(entity=make_character("b")), _rating_update("a", 80, 85)]

    first = store.apply(ContentType.CHARACTER, batch)
    state_after_first = store.get(ContentType.CHARACTER)
    second = store.apply(ContentType.CHARACTER, batch)

    assert first == 2
    assert second == 2
    assert store.get(ContentType.CHARACTER).entities == state_after_first.entities


def test_empty_batch_keeps_version(store: VersionedStore) -> None:
    store.apply(ContentType.CODE, [Add(entity=make_code())])

    assert store.apply(ContentType.CODE, []) == 1


def test_add_of_different_entity_rejects_whole_batch(store: VersionedStore) -> None:
    store.apply(ContentType.CHARACTER, [Add(entity=make_character("a", rating=80))])

    with pytest.raises(ConflictError) as excinfo:
        store.apply(
            ContentType.CHARACTER,
            [Add(entity=make_character("b")), Add(entity=make_character("a", rating=99))],
        )

    assert [change.entity_id for change in excinfo.value.changes] == ["a"]
    snapshot = store.get(ContentType.CHARACTER)
    assert snapshot.version == 1
    assert [entity.entity_id for entity in snapshot.entities] == ["a"]


def test_stale_update_is_skipped_with_warning(store: VersionedStore) -> None:
    store.apply(ContentType.CHARACTER, [Add(entity=make_character("a"))])

    with pytest.warns(StaleEntityWarning, match="missing ids: ghost"):
        version = store.apply(
            ContentType.CHARACTER,
            [_rating_update("ghost", 1, 2), _rating_update("a", 90, 91)],
        )

    assert version == 2
    (entity,) = store.get(ContentType.CHARACTER).entities
    assert entity.rating == 91  # type: ignore[union-attr]


def test_strict_apply_raises_on_stale_change(store: VersionedStore) -> None:
    store.apply(ContentType.CHARACTER, [Add(entity=make_character("a"))])

    with pytest.raises(StaleEntityWarning):
        store.apply(
            ContentType.CHARACTER,
            [_rating_update("a", 90, 91), _rating_update("ghost", 1, 2)],
            strict=True,
        )

    assert store.version(ContentType.CHARACTER) == 1


def test_status_and_tier_changes_apply_to_their_entities(store: VersionedStore) -> None:
    store.apply(ContentType.CODE, [Add(entity=make_code("RAID2024"))])
    store.apply(ContentType.TIER_ENTRY, [Add(entity=make_tier_entry(tier=Tier.B, rating=70))])

    store.apply(
        ContentType.CODE,
        [
            StatusChange(
                code="RAID2024",
                old_status=CodeStatus.ACTIVE,
                new_status=CodeStatus.EXPIRED,
            )
        ],
    )
    store.apply(
        ContentType.TIER_ENTRY,
        [TierChange(character_id="shadow-assassin", old_tier=Tier.B, new_tier=Tier.A, rating=88)],
    )

    (code,) = store.get(ContentType.CODE).entities
    (entry,) = store.get(ContentType.TIER_ENTRY).entities
    assert code.status is CodeStatus.EXPIRED  # type: ignore[union-attr]
    assert (entry.tier, entry.rating) == (Tier.A, 88)  # type: ignore[union-attr]


def test_update_of_unknown_field_is_rejected(store: VersionedStore) -> None:
    store.apply(ContentType.CHARACTER, [Add(entity=make_character("a"))])

    with pytest.raises(ValueError, match="no field 'luck'"):
        store.apply(
            ContentType.CHARACTER,
            [Update(id="a", field_patches=(FieldPatch(field="luck", old_value=1, new_value=2),))],
        )


def test_get_returns_defensive_copies(store: VersionedStore) -> None:
    store.apply(ContentType.CHARACTER, [Add(entity=make_character("a"))])

    (copy,) = store.get(ContentType.CHARACTER).entities
    copy.stats["attack"] = 1.0  # type: ignore[union-attr]

    (fresh,) = store.get(ContentType.CHARACTER).entities
    assert fresh.stats["attack"] == 80.0  # type: ignore[union-attr]


def test_reset_clears_one_content_type(store: VersionedStore) -> None:
    store.apply(ContentType.CHARACTER, [Add(entity=make_character("a"))])
    store.apply(ContentType.CODE, [Add(entity=make_code())])

    store.reset(ContentType.CHARACTER)

    assert store.get(ContentType.CHARACTER).version == 0
    assert store.get(ContentType.CHARACTER).entities == ()
    assert store.version(ContentType.CODE) == 1


def test_reset_all_clears_everything(store: VersionedStore) -> None:
    store.apply(ContentType.CHARACTER, [Add(entity=make_character("a"))])
    store.apply(ContentType.CODE, [Add(entity=make_code())])

    store.reset_all()

    assert all(store.version(ct) == 0 for ct in ContentType)


def test_last_applied_at_uses_clock() -> None:
    ticks = iter(datetime(2025, 1, 1, tzinfo=UTC) + timedelta(minutes=n) for n in range(10))
    store = VersionedStore(clock=lambda: next(ticks))

    store.apply(ContentType.CODE, [Add(entity=make_code())])

    assert store.last_applied_at(ContentType.CODE) == datetime(2025, 1, 1, tzinfo=UTC)


def test_concurrent_batches_serialise_per_content_type(store: VersionedStore) -> None:
    def worker(offset: int) -> None:
        for index in range(20):
            store.apply(ContentType.CODE, [Add(entity=make_code(f"C{offset}-{index}"))])

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert store.version(ContentType.CODE) == 80
    assert len(store.get(ContentType.CODE)) == 80
