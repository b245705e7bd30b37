"""SQLAlchemy table metadata for the local entity store."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Dialect,
    Enum,
    ForeignKey,
    Index,
    MetaData,
    String,
    Table,
    TypeDecorator,
    UniqueConstraint,
)

from suggestkit.domain.model import EntityType, RelationKind

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

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

entity_table = Table(
    "entity",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("entity_type", Enum(EntityType, native_enum=False, length=32), nullable=False),
    Column("fields", JSON, nullable=False, default=dict),
    Column("created_at", UTCDateTime, nullable=False),
    Column("updated_at", UTCDateTime, nullable=False),
)

Index("ix_entity_entity_type", entity_table.c.entity_type)

entity_link_table = Table(
    "entity_link",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("source_id", String(36), ForeignKey("entity.id", ondelete="CASCADE"), nullable=False),
    Column("target_id", String(36), ForeignKey("entity.id", ondelete="CASCADE"), nullable=False),
    Column("kind", Enum(RelationKind, native_enum=False, length=32), nullable=False),
    Column("created_at", UTCDateTime, nullable=False),
    UniqueConstraint("source_id", "target_id", "kind", name="uq_entity_link_endpoints"),
)


def create_all_tables(engine: Engine) -> None:
    """Create database tables for the entity store."""

    log.info("Creating all tables")
    metadata.create_all(engine)
