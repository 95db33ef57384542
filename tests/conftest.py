from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine  # noqa: TC002
from sqlalchemy.pool import StaticPool

from raidsync.adapters.sqlalchemy import (
    SqlAlchemyStoreBackend,
    SqlAlchemyStoreUnitOfWork,
    create_all_tables,
    shutdown,
    startup,
)
from raidsync.domain.reconciliation import VersionedStore

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    create_all_tables(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def sqlite_unit_of_work(
    sqlite_engine: Engine,
) -> Iterator[Callable[[], SqlAlchemyStoreUnitOfWork]]:
    startup(engine=sqlite_engine, force=True)

    def factory() -> SqlAlchemyStoreUnitOfWork:
        return SqlAlchemyStoreUnitOfWork()

    try:
        yield factory
    finally:
        shutdown()


@pytest.fixture
def sqlite_backend(
    sqlite_unit_of_work: Callable[[], SqlAlchemyStoreUnitOfWork],
) -> SqlAlchemyStoreBackend:
    return SqlAlchemyStoreBackend(uow_factory=sqlite_unit_of_work)


@pytest.fixture
def store() -> VersionedStore:
    return VersionedStore()
