"""Store backend persisting content snapshots through SQLAlchemy Core."""

from __future__ import annotations

from collections import defaultdict
from logging import getLogger
from typing import TYPE_CHECKING

from sqlalchemy import delete, insert, select, update

from raidsync.domain.model import ContentType
from raidsync.domain.reconciliation.store import ContentState

from .mappings import content_entity_table, content_version_table, decode_entity, encode_entity
from .unit_of_work import SqlAlchemyStoreUnitOfWork

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from datetime import datetime

    from raidsync.domain.model import Entity
    from raidsync.domain.ports.persistence import StoreBackend

log = getLogger(__name__)


class SqlAlchemyStoreBackend:
    """One row per ``(content_type, entity_id)`` plus one version row per content type.

    Every ``save``/``clear`` runs in its own unit of work, so a batch is either
    fully committed or not at all.
    """

    def __init__(
        self,
        uow_factory: Callable[[], SqlAlchemyStoreUnitOfWork] = SqlAlchemyStoreUnitOfWork,
    ) -> None:
        self._uow_factory = uow_factory

    def load(self) -> dict[ContentType, ContentState]:
        with self._uow_factory() as uow:
            entity_rows = uow.session.execute(
                select(
                    content_entity_table.c.content_type,
                    content_entity_table.c.payload,
                ).order_by(content_entity_table.c.content_type, content_entity_table.c.entity_id)
            ).all()
            version_rows = uow.session.execute(select(content_version_table)).all()

        entities: defaultdict[ContentType, dict[str, Entity]] = defaultdict(dict)
        for content_type, payload in entity_rows:
            entity = decode_entity(ContentType(content_type), payload)
            entities[ContentType(content_type)][entity.entity_id] = entity

        states: dict[ContentType, ContentState] = {}
        for row in version_rows:
            content_type = ContentType(row.content_type)
            states[content_type] = ContentState(
                version=row.version,
                entities=entities.pop(content_type, {}),
                last_applied_at=row.last_applied_at,
            )
        for content_type, orphaned in entities.items():
            log.warning(
                "Found %s stored %s rows without a version record; loading at version 0",
                len(orphaned),
                content_type,
            )
            states[content_type] = ContentState(entities=orphaned)
        log.debug(
            "Loaded persisted store: %s",
            ", ".join(f"{ct}@v{state.version}" for ct, state in states.items()) or "empty",
        )
        return states

    def save(
        self,
        content_type: ContentType,
        *,
        version: int,
        applied_at: datetime,
        upserts: Sequence[Entity],
        deletes: Sequence[str],
    ) -> None:
        entity_table = content_entity_table
        with self._uow_factory() as uow:
            session = uow.session
            stale_ids = [*deletes, *(entity.entity_id for entity in upserts)]
            if stale_ids:
                session.execute(
                    delete(entity_table)
                    .where(entity_table.c.content_type == content_type)
                    .where(entity_table.c.entity_id.in_(stale_ids))
                )
            if upserts:
                session.execute(
                    insert(entity_table),
                    [
                        {
                            "content_type": content_type,
                            "entity_id": entity.entity_id,
                            "payload": encode_entity(entity),
                        }
                        for entity in upserts
                    ],
                )
            self._write_version(uow, content_type, version=version, applied_at=applied_at)
            uow.commit()

    def clear(self, content_types: Sequence[ContentType]) -> None:
        if not content_types:
            return
        with self._uow_factory() as uow:
            uow.session.execute(
                delete(content_entity_table).where(
                    content_entity_table.c.content_type.in_(list(content_types))
                )
            )
            uow.session.execute(
                delete(content_version_table).where(
                    content_version_table.c.content_type.in_(list(content_types))
                )
            )
            uow.commit()

    def _write_version(
        self,
        uow: SqlAlchemyStoreUnitOfWork,
        content_type: ContentType,
        *,
        version: int,
        applied_at: datetime,
    ) -> None:
        table = content_version_table
        result = uow.session.execute(
            update(table)
            .where(table.c.content_type == content_type)
            .values(version=version, last_applied_at=applied_at)
        )
        if result.rowcount == 0:
            uow.session.execute(
                insert(table).values(
                    content_type=content_type,
                    version=version,
                    last_applied_at=applied_at,
                )
            )


if TYPE_CHECKING:
    _backend_check: StoreBackend = SqlAlchemyStoreBackend()
