"""Versioned local content store.

The store holds, per content type, the current entities keyed by id and a
monotonic version counter. It is mutated only through ``apply`` (and the
``reset`` recovery paths). A batch is all-or-nothing: it is applied to a
working copy, persisted through the optional backend and only then swapped
in, all while holding the content type's lock.
"""

from __future__ import annotations

import copy
import threading
import warnings
from contextlib import ExitStack
from dataclasses import dataclass, field, fields, replace
from datetime import UTC, datetime
from enum import Enum
from logging import getLogger
from typing import TYPE_CHECKING

from raidsync.domain.model import Code, CodeStatus, ContentType, Snapshot, Tier, TierEntry

from .changes import Add, Delete, StatusChange, TierChange, Update
from .errors import ConflictError, StaleEntityWarning

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from raidsync.domain.model import Entity
    from raidsync.domain.ports.persistence import StoreBackend

    from .changes import Change

log = getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class ContentState:
    version: int = 0
    entities: dict[str, Entity] = field(default_factory=dict["str", "Entity"])
    last_applied_at: datetime | None = None


class _Outcome(Enum):
    CHANGED = "changed"
    UNCHANGED = "unchanged"
    CONFLICT = "conflict"
    STALE = "stale"


class VersionedStore:
    """Typed local cache keyed by ``(content_type, entity_id)``."""

    def __init__(
        self,
        backend: StoreBackend | None = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._backend = backend
        self._clock = clock
        self._states: dict[ContentType, ContentState] = {ct: ContentState() for ct in ContentType}
        self._locks: dict[ContentType, threading.RLock] = {
            ct: threading.RLock() for ct in ContentType
        }
        if backend is not None:
            for content_type, state in backend.load().items():
                self._states[content_type] = ContentState(
                    version=state.version,
                    entities=dict(state.entities),
                    last_applied_at=state.last_applied_at,
                )

    def get(self, content_type: ContentType) -> Snapshot:
        """Return a defensive copy of the current entities and version."""

        with self._locks[content_type]:
            state = self._states[content_type]
            return Snapshot(
                content_type=content_type,
                entities=tuple(copy.deepcopy(entity) for entity in state.entities.values()),
                version=state.version,
                captured_at=state.last_applied_at or self._clock(),
            )

    def version(self, content_type: ContentType) -> int:
        with self._locks[content_type]:
            return self._states[content_type].version

    def last_applied_at(self, content_type: ContentType) -> datetime | None:
        with self._locks[content_type]:
            return self._states[content_type].last_applied_at

    def apply(
        self,
        content_type: ContentType,
        changes: Iterable[Change],
        *,
        strict: bool = False,
    ) -> int:
        """Apply ``changes`` in order and return the resulting version.

        The version advances by exactly one when the batch changed anything.
        A batch without effect (empty, or a duplicate delivery) keeps the
        current version. ``ConflictError`` rejects the whole batch; stale
        changes are skipped with a ``StaleEntityWarning`` unless ``strict``,
        in which case the warning is raised and nothing is applied.
        """

        batch = tuple(changes)
        with self._locks[content_type]:
            state = self._states[content_type]
            working = dict(state.entities)
            conflicts: list[Change] = []
            stale: list[Change] = []
            for change in batch:
                outcome = _apply_change(content_type, working, change)
                if outcome is _Outcome.CONFLICT:
                    conflicts.append(change)
                elif outcome is _Outcome.STALE:
                    stale.append(change)

            if conflicts:
                ids = ", ".join(change.entity_id for change in conflicts)
                raise ConflictError(
                    f"{content_type} ids already hold different entities: {ids}",
                    changes=conflicts,
                )
            if stale:
                ids = ", ".join(change.entity_id for change in stale)
                message = f"{content_type} changes reference missing ids: {ids}"
                if strict:
                    raise StaleEntityWarning(message, changes=stale)
                log.warning("Skipping stale changes: %s", message)
                warnings.warn(StaleEntityWarning(message, changes=stale), stacklevel=2)

            upserts = [
                entity
                for entity_id, entity in working.items()
                if state.entities.get(entity_id) != entity
            ]
            deletes = [entity_id for entity_id in state.entities if entity_id not in working]
            if not upserts and not deletes:
                log.debug("Batch of %s %s changes had no effect", len(batch), content_type)
                return state.version

            new_version = state.version + 1
            applied_at = self._clock()
            if self._backend is not None:
                self._backend.save(
                    content_type,
                    version=new_version,
                    applied_at=applied_at,
                    upserts=upserts,
                    deletes=deletes,
                )
            self._states[content_type] = ContentState(
                version=new_version,
                entities=working,
                last_applied_at=applied_at,
            )
            log.debug(
                "Applied %s %s changes (%s upserts, %s deletes) -> version %s",
                len(batch),
                content_type,
                len(upserts),
                len(deletes),
                new_version,
            )
            return new_version

    def reset(self, content_type: ContentType) -> None:
        """Clear entities and set the version back to 0 (full-resync recovery)."""

        with self._locks[content_type]:
            if self._backend is not None:
                self._backend.clear([content_type])
            self._states[content_type] = ContentState()
        log.info("Reset %s store", content_type)

    def reset_all(self) -> None:
        """Clear every content type atomically."""

        with ExitStack() as stack:
            for content_type in ContentType:
                stack.enter_context(self._locks[content_type])
            if self._backend is not None:
                self._backend.clear(list(ContentType))
            for content_type in ContentType:
                self._states[content_type] = ContentState()
        log.info("Reset all content stores")


def _apply_change(
    content_type: ContentType,
    working: dict[str, Entity],
    change: Change,
) -> _Outcome:
    entity_id = change.entity_id
    existing = working.get(entity_id)

    if isinstance(change, Add):
        if change.entity.content_type != content_type:
            raise ValueError(f"Cannot add {type(change.entity).__name__} to {content_type}")
        if existing is None:
            working[entity_id] = copy.deepcopy(change.entity)
            return _Outcome.CHANGED
        return _Outcome.UNCHANGED if existing == change.entity else _Outcome.CONFLICT

    if isinstance(change, Delete):
        if existing is None:
            return _Outcome.UNCHANGED
        del working[entity_id]
        return _Outcome.CHANGED

    if existing is None:
        return _Outcome.STALE

    updated = _patched(content_type, existing, change)
    if updated == existing:
        return _Outcome.UNCHANGED
    working[entity_id] = updated
    return _Outcome.CHANGED


def _patched(content_type: ContentType, existing: Entity, change: Change) -> Entity:
    match change:
        case Update(field_patches=patches):
            known = {f.name for f in fields(existing)}
            values: dict[str, object] = {}
            for patch in patches:
                if patch.field not in known:
                    raise ValueError(f"{content_type} has no field {patch.field!r}")
                values[patch.field] = copy.deepcopy(patch.new_value)
            return replace(existing, **values)
        case TierChange(new_tier=new_tier, rating=rating) if isinstance(existing, TierEntry):
            return replace(existing, tier=Tier(new_tier), rating=rating)
        case StatusChange(new_status=new_status) if isinstance(existing, Code):
            return replace(existing, status=CodeStatus(new_status))
        case _:
            raise ValueError(f"{type(change).__name__} does not apply to {content_type}")
