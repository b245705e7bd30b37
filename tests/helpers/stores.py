"""In-memory entity store that records every call, for engine tests."""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from suggestkit.domain.errors import BackingStoreError

if TYPE_CHECKING:
    from suggestkit.domain.model import EntityType, RelationKind
    from suggestkit.domain.ports import EntityFields, EntityStore


@dataclass
class RecordingStore:
    """Fake ``EntityStore``.

    ``failures`` maps ``(operation, key)`` to the exception to raise, where the
    key is the ``title`` field for ``create`` and the real id otherwise.
    ``delays`` maps the same keys to a sleep before the call completes.
    """

    entities: dict[str, tuple[EntityType, dict[str, object]]] = field(default_factory=dict)
    links: list[tuple[str, str, RelationKind]] = field(default_factory=list)
    calls: list[tuple[str, str]] = field(default_factory=list)
    failures: dict[tuple[str, str], Exception] = field(default_factory=dict)
    delays: dict[tuple[str, str], float] = field(default_factory=dict)
    default_delay: float = 0.0
    in_flight: int = 0
    max_in_flight: int = 0
    _ids: itertools.count[int] = field(default_factory=lambda: itertools.count(1))

    def entity_count(self, entity_type: EntityType | None = None) -> int:
        return sum(
            1 for kind, _ in self.entities.values() if entity_type is None or kind is entity_type
        )

    async def _enter(self, operation: str, key: str) -> None:
        self.calls.append((operation, key))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            delay = self.delays.get((operation, key), self.default_delay)
            if delay:
                await asyncio.sleep(delay)
            failure = self.failures.get((operation, key))
            if failure is not None:
                raise failure
        finally:
            self.in_flight -= 1

    async def create_entity(self, entity_type: EntityType, fields: EntityFields) -> str:
        await self._enter("create", str(fields.get("title")))
        real_id = f"{entity_type}-{next(self._ids)}"
        self.entities[real_id] = (entity_type, dict(fields))
        return real_id

    async def update_entity(
        self, entity_type: EntityType, real_id: str, fields: EntityFields
    ) -> None:
        await self._enter("update", real_id)
        current = self._require(entity_type, real_id)
        current.update(fields)
        for name in [name for name, value in current.items() if value is None]:
            del current[name]

    async def delete_entity(self, entity_type: EntityType, real_id: str) -> None:
        await self._enter("delete", real_id)
        self._require(entity_type, real_id)
        del self.entities[real_id]

    async def connect_entities(
        self, source_real_id: str, target_real_id: str, kind: RelationKind
    ) -> None:
        await self._enter("connect", source_real_id)
        self.links.append((source_real_id, target_real_id, kind))

    async def disconnect_entities(
        self, source_real_id: str, target_real_id: str, kind: RelationKind
    ) -> None:
        await self._enter("disconnect", source_real_id)
        self.links.remove((source_real_id, target_real_id, kind))

    async def get_entity(self, entity_type: EntityType, real_id: str) -> dict[str, object]:
        await self._enter("get", real_id)
        return dict(self._require(entity_type, real_id))

    def _require(self, entity_type: EntityType, real_id: str) -> dict[str, object]:
        found = self.entities.get(real_id)
        if found is None or found[0] is not entity_type:
            raise BackingStoreError(f"{entity_type} {real_id} not found")
        return found[1]

    def seed(self, entity_type: EntityType, real_id: str, **fields: object) -> str:
        self.entities[real_id] = (entity_type, dict(fields))
        return real_id

    def mutating_calls(self) -> list[tuple[str, str]]:
        return [call for call in self.calls if call[0] != "get"]


if TYPE_CHECKING:
    _check: EntityStore = RecordingStore()
