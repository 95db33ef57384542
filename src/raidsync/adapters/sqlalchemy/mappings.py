"""SQLAlchemy table metadata for the versioned content store."""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Any, Final

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Dialect,
    Enum,
    Integer,
    MetaData,
    String,
    Table,
    TypeDecorator,
)

from raidsync.domain.model import (
    ENTITY_CLASS_BY_CONTENT_TYPE,
    Character,
    Code,
    CodeStatus,
    ContentType,
    Tier,
    TierEntry,
)

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from raidsync.domain.model import Entity

log = logging.getLogger(__name__)


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


metadata = MetaData(
    naming_convention={
        "ix": "ix_%(column_0_label)s",
        "uq": "uq_%(table_name)s_%(column_0_label)s",
        "ck": "ck_%(table_name)s_%(constraint_name)s",
        "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
        "pk": "pk_%(table_name)s",
    }
)

CONTENT_TYPE_COLUMN: Final = Enum(
    ContentType,
    native_enum=False,
    values_callable=lambda enum: [member.value for member in enum],
    length=32,
)

# Core tables -----------------------------------------------------------------

content_entity_table = Table(
    "content_entity",
    metadata,
    Column("content_type", CONTENT_TYPE_COLUMN, primary_key=True),
    Column("entity_id", String(255), primary_key=True),
    Column("payload", JSON, nullable=False),
)

content_version_table = Table(
    "content_version",
    metadata,
    Column("content_type", CONTENT_TYPE_COLUMN, primary_key=True),
    Column("version", Integer, nullable=False, default=0),
    Column("last_applied_at", UTCDateTime(), nullable=True),
)


# Payload encoding --------------------------------------------------------------


def encode_entity(entity: Entity) -> dict[str, Any]:
    """JSON-compatible payload for one entity row."""

    payload = asdict(entity)
    if isinstance(entity, Code) and entity.expires is not None:
        payload["expires"] = entity.expires.isoformat()
    return payload


def decode_entity(content_type: ContentType, payload: dict[str, Any]) -> Entity:
    entity_cls = ENTITY_CLASS_BY_CONTENT_TYPE[content_type]
    if entity_cls is Character:
        return Character(
            id=payload["id"],
            name=payload["name"],
            tier=Tier(payload["tier"]),
            rating=payload["rating"],
            stats=dict(payload.get("stats") or {}),
            description=payload.get("description") or "",
        )
    if entity_cls is Code:
        expires = payload.get("expires")
        return Code(
            code=payload["code"],
            status=CodeStatus(payload["status"]),
            rewards=payload["rewards"],
            expires=date.fromisoformat(expires) if expires else None,
            uses=payload.get("uses", 0),
        )
    return TierEntry(
        character_id=payload["character_id"],
        tier=Tier(payload["tier"]),
        rating=payload["rating"],
    )


def create_all_tables(engine: Engine) -> None:
    """Create database tables for the content store metadata."""

    log.info("Creating content store tables")
    metadata.create_all(engine)
