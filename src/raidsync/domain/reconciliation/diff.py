"""Snapshot diffing.

``diff`` is a pure function: it never consults the store and makes no
judgment about suspicious input. An empty ``new`` snapshot against a populated
``old`` one yields a delete for every entity; callers that distrust empty
feeds must guard before diffing.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .changes import Add, Delete, Update
from .policy import policy_for

if TYPE_CHECKING:
    from raidsync.domain.model import ContentType, Snapshot

    from .changes import Change


def diff(old: Snapshot, new: Snapshot, content_type: ContentType | None = None) -> tuple[Change, ...]:
    """Compute the ordered change list turning ``old`` into ``new``.

    Output order is adds, then updates and domain transitions, then deletes,
    so consumers never see an id removed before related updates.
    """

    effective_type = content_type or new.content_type
    if old.content_type != effective_type or new.content_type != effective_type:
        raise ValueError(
            f"Cannot diff {old.content_type} against {new.content_type} as {effective_type}"
        )

    policy = policy_for(effective_type)
    timestamp = new.captured_at.timestamp()
    old_by_id = old.by_id()
    new_ids: set[str] = set()

    adds: list[Change] = []
    modifications: list[Change] = []
    for entity in new.entities:
        entity_id = entity.entity_id
        new_ids.add(entity_id)
        previous = old_by_id.get(entity_id)
        if previous is None:
            adds.append(Add(entity=entity, timestamp=timestamp))
            continue

        patches = policy.field_patches(previous, entity)
        if not patches:
            continue
        if policy.transition is not None:
            transition = policy.transition(previous, entity, patches, timestamp)
            if transition is not None:
                modifications.append(transition.change)
                patches = transition.remaining
        if patches:
            modifications.append(Update(id=entity_id, field_patches=patches, timestamp=timestamp))

    deletes: list[Change] = [
        Delete(id=entity.entity_id, timestamp=timestamp)
        for entity in old.entities
        if entity.entity_id not in new_ids
    ]
    return (*adds, *modifications, *deletes)
