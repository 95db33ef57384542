"""SQLAlchemy adapter package for raidsync."""

from __future__ import annotations

from .backend import SqlAlchemyStoreBackend
from .mappings import (
    content_entity_table,
    content_version_table,
    create_all_tables,
    decode_entity,
    encode_entity,
    metadata,
)
from .unit_of_work import (
    SqlAlchemyStoreUnitOfWork,
    StartupError,
    configured_engine,
    is_started,
    shutdown,
    startup,
)

__all__ = [
    "SqlAlchemyStoreBackend",
    "SqlAlchemyStoreUnitOfWork",
    "StartupError",
    "configured_engine",
    "content_entity_table",
    "content_version_table",
    "create_all_tables",
    "decode_entity",
    "encode_entity",
    "is_started",
    "metadata",
    "shutdown",
    "startup",
]
