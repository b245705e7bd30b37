"""``EntityStore`` persisting artifacts in a local SQL database."""

from __future__ import annotations

import asyncio
import threading
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import create_engine, delete, func, insert, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from suggestkit.config.storage import get_database_config
from suggestkit.domain.errors import BackingStoreError
from suggestkit.domain.model import EntityType
from suggestkit.domain.ports import EntityStore

from .mappings import create_all_tables, entity_link_table, entity_table

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.engine import Engine

    from suggestkit.domain.model import RelationKind
    from suggestkit.domain.ports import EntityFields

log = getLogger(__name__)

type _Work[T] = Callable[[Session], T]

# fields that must name an existing entity of the given type
_REFERENCE_FIELDS: dict[str, EntityType] = {
    "parent": EntityType.MODULE,
    "module": EntityType.MODULE,
    "use_case": EntityType.USE_CASE,
}


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass(slots=True)
class SqlAlchemyEntityStore:
    """Entity store over a SQLAlchemy session factory; every call is one transaction.

    Session work runs on a worker thread so the event loop stays free and
    per-call timeouts can fire. Calls are serialized, as SQLite allows one
    writer at a time.
    """

    session_factory: sessionmaker[Session]
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    @classmethod
    def from_engine(cls, engine: Engine, *, create_tables: bool = True) -> SqlAlchemyEntityStore:
        if create_tables:
            create_all_tables(engine)
        return cls(sessionmaker(bind=engine, expire_on_commit=False))

    @classmethod
    def from_uri(cls, database_uri: str | None = None) -> SqlAlchemyEntityStore:
        uri = get_database_config(uri=database_uri).uri
        return cls.from_engine(create_engine(uri, future=True))

    async def _run[T](self, operation: str, work: _Work[T]) -> T:
        return await asyncio.to_thread(self._run_locked, operation, work)

    def _run_locked[T](self, operation: str, work: _Work[T]) -> T:
        try:
            with self._lock, self.session_factory() as session, session.begin():
                return work(session)
        except SQLAlchemyError as exc:
            log.warning("Local store %s failed: %s", operation, exc)
            raise BackingStoreError(f"{operation} failed: {exc}", transient=False) from exc

    async def create_entity(self, entity_type: EntityType, fields: EntityFields) -> str:
        def work(session: Session) -> str:
            _check_references(session, fields)
            real_id = _new_id()
            now = _utcnow()
            session.execute(
                insert(entity_table).values(
                    id=real_id,
                    entity_type=entity_type,
                    fields=dict(fields),
                    created_at=now,
                    updated_at=now,
                )
            )
            return real_id

        real_id = await self._run(f"create {entity_type}", work)
        log.debug("Created %s %s", entity_type, real_id)
        return real_id

    async def update_entity(
        self, entity_type: EntityType, real_id: str, fields: EntityFields
    ) -> None:
        def work(session: Session) -> None:
            current = _load(session, entity_type, real_id)
            _check_references(session, fields)
            # None clears a field
            merged = {
                name: value
                for name, value in {**current, **fields}.items()
                if value is not None
            }
            session.execute(
                update(entity_table)
                .where(entity_table.c.id == real_id)
                .values(fields=merged, updated_at=_utcnow())
            )

        await self._run(f"update {entity_type} {real_id}", work)

    async def delete_entity(self, entity_type: EntityType, real_id: str) -> None:
        def work(session: Session) -> None:
            _load(session, entity_type, real_id)
            session.execute(
                delete(entity_link_table).where(
                    or_(
                        entity_link_table.c.source_id == real_id,
                        entity_link_table.c.target_id == real_id,
                    )
                )
            )
            session.execute(delete(entity_table).where(entity_table.c.id == real_id))

        await self._run(f"delete {entity_type} {real_id}", work)

    async def get_entity(self, entity_type: EntityType, real_id: str) -> dict[str, object]:
        return await self._run(
            f"get {entity_type} {real_id}",
            lambda session: _load(session, entity_type, real_id),
        )

    async def connect_entities(self, source: str, target: str, kind: RelationKind) -> None:
        def work(session: Session) -> None:
            for endpoint in (source, target):
                if _entity_type_of(session, endpoint) is None:
                    raise BackingStoreError(f"Cannot connect unknown entity {endpoint}")
            if _find_link(session, source, target, kind) is not None:
                raise BackingStoreError(f"{kind} link {source} -> {target} already exists")
            session.execute(
                insert(entity_link_table).values(
                    id=_new_id(),
                    source_id=source,
                    target_id=target,
                    kind=kind,
                    created_at=_utcnow(),
                )
            )

        await self._run(f"connect {source} -> {target}", work)

    async def disconnect_entities(self, source: str, target: str, kind: RelationKind) -> None:
        def work(session: Session) -> None:
            link_id = _find_link(session, source, target, kind)
            if link_id is None:
                raise BackingStoreError(f"No {kind} link {source} -> {target}")
            session.execute(delete(entity_link_table).where(entity_link_table.c.id == link_id))

        await self._run(f"disconnect {source} -> {target}", work)

    def count_entities(self, entity_type: EntityType | None = None) -> int:
        statement = select(func.count()).select_from(entity_table)
        if entity_type is not None:
            statement = statement.where(entity_table.c.entity_type == entity_type)
        with self.session_factory() as session:
            return int(session.execute(statement).scalar_one())

    def count_links(self) -> int:
        with self.session_factory() as session:
            statement = select(func.count()).select_from(entity_link_table)
            return int(session.execute(statement).scalar_one())


def _entity_type_of(session: Session, real_id: str) -> EntityType | None:
    row = session.execute(
        select(entity_table.c.entity_type).where(entity_table.c.id == real_id)
    ).scalar_one_or_none()
    return None if row is None else EntityType(row)


def _load(session: Session, entity_type: EntityType, real_id: str) -> dict[str, object]:
    row = session.execute(
        select(entity_table.c.entity_type, entity_table.c.fields).where(
            entity_table.c.id == real_id
        )
    ).one_or_none()
    if row is None or EntityType(row.entity_type) is not entity_type:
        raise BackingStoreError(f"{entity_type} {real_id} not found")
    return dict(cast(dict[str, Any], row.fields))


def _check_references(session: Session, fields: EntityFields) -> None:
    for name, expected in _REFERENCE_FIELDS.items():
        value = fields.get(name)
        if value is None:
            continue
        if not isinstance(value, str) or _entity_type_of(session, value) is not expected:
            raise BackingStoreError(f"{name} must reference an existing {expected}: {value!r}")


def _find_link(session: Session, source: str, target: str, kind: RelationKind) -> str | None:
    return session.execute(
        select(entity_link_table.c.id).where(
            entity_link_table.c.source_id == source,
            entity_link_table.c.target_id == target,
            entity_link_table.c.kind == kind,
        )
    ).scalar_one_or_none()


if TYPE_CHECKING:
    _store_check: EntityStore = SqlAlchemyEntityStore(sessionmaker())
