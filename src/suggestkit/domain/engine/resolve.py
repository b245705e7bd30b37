"""Temp-to-real identifier mapping and reference rewriting.

The applier never sees a temp reference: before dispatch the resolver returns a
``DispatchView`` whose target and payload carry real ids only. A temp
reference that cannot be resolved at that point means the schedule was
violated, which is an internal error rather than a user-facing one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from suggestkit.domain.errors import InternalOrderError
from suggestkit.domain.model import Reference, SuggestionAction

if TYPE_CHECKING:
    from collections.abc import Iterator

    from suggestkit.domain.model import EntityType, Suggestion, SuggestionPayload


@dataclass(frozen=True, slots=True)
class IdentifierMapping:
    temp_id: str
    real_id: str
    entity_type: EntityType


@dataclass(slots=True)
class IdentifierTable:
    """``temp_id -> real_id`` entries in the order suggestions were applied."""

    _entries: dict[str, IdentifierMapping] = field(
        default_factory=dict["str", "IdentifierMapping"], repr=False
    )

    def __iter__(self) -> Iterator[IdentifierMapping]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def record(self, temp_id: str, real_id: str, entity_type: EntityType) -> None:
        existing = self._entries.get(temp_id)
        if existing is not None and existing.real_id != real_id:
            raise ValueError(
                f"temp id {temp_id} already mapped to {existing.real_id}, refusing {real_id}"
            )
        self._entries[temp_id] = IdentifierMapping(temp_id, real_id, entity_type)

    def real_id_for(self, temp_id: str) -> str | None:
        entry = self._entries.get(temp_id)
        return None if entry is None else entry.real_id

    def clear(self) -> None:
        self._entries.clear()


@dataclass(frozen=True, slots=True)
class DispatchView:
    """Suggestion content with every reference resolved to a real id."""

    suggestion: Suggestion
    target_id: str | None
    payload: SuggestionPayload | None


@dataclass(slots=True)
class IdentifierResolver:
    table: IdentifierTable

    def resolve(self, suggestion: Suggestion) -> DispatchView:
        def to_real(reference: Reference) -> Reference:
            if not reference.is_temp:
                return reference
            real_id = self.table.real_id_for(reference.value)
            if real_id is None:
                raise InternalOrderError(suggestion.id, reference.value)
            return Reference.real(real_id)

        target_id = None
        if suggestion.target is not None:
            target_id = to_real(suggestion.target).value
        payload = None
        if suggestion.payload is not None:
            payload = suggestion.payload.map_references(to_real)
        return DispatchView(suggestion=suggestion, target_id=target_id, payload=payload)

    def record(self, suggestion: Suggestion, real_id: str) -> None:
        """Remember the real id of an applied create; other actions add nothing."""

        if suggestion.action is not SuggestionAction.CREATE or suggestion.temp_id is None:
            return
        self.table.record(suggestion.temp_id, real_id, suggestion.entity_type)
