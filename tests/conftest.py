from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine  # noqa: TC002
from sqlalchemy.pool import StaticPool

from suggestkit.adapters.sqlalchemy import SqlAlchemyEntityStore
from tests.helpers.stores import RecordingStore

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def sqlite_store(sqlite_engine: Engine) -> SqlAlchemyEntityStore:
    return SqlAlchemyEntityStore.from_engine(sqlite_engine)


@pytest.fixture
def recording_store() -> RecordingStore:
    return RecordingStore()
