"""SQLAlchemy adapter: a local ``EntityStore`` for offline use and tests."""

from __future__ import annotations

from .mappings import create_all_tables, entity_link_table, entity_table, metadata
from .store import SqlAlchemyEntityStore

__all__ = [
    "SqlAlchemyEntityStore",
    "create_all_tables",
    "entity_link_table",
    "entity_table",
    "metadata",
]
