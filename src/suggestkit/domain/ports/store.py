"""Port for the backing store that persists analysis artifacts.

These calls are the engine's only touchpoints with persistence. Retry and
backoff are the adapter's concern; adapters signal failures by raising
``BackingStoreError`` (``transient=True`` for timeouts, network trouble and
server-side errors).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping

    from suggestkit.domain.model import EntityType, RelationKind


type EntityFields = Mapping[str, object]


@runtime_checkable
class EntityStore(Protocol):
    """Async persistence contract used by the applier and rollback manager.

    ``fields`` mappings are fully resolved: every reference is a real id.
    ``update_entity`` is a partial update; a ``None`` value clears that field.
    """

    async def create_entity(self, entity_type: EntityType, fields: EntityFields) -> str: ...

    async def update_entity(
        self, entity_type: EntityType, real_id: str, fields: EntityFields
    ) -> None: ...

    async def delete_entity(self, entity_type: EntityType, real_id: str) -> None: ...

    async def connect_entities(
        self, source_real_id: str, target_real_id: str, kind: RelationKind
    ) -> None: ...

    async def disconnect_entities(
        self, source_real_id: str, target_real_id: str, kind: RelationKind
    ) -> None: ...

    async def get_entity(self, entity_type: EntityType, real_id: str) -> dict[str, object]: ...
