"""Undo records and the rollback sweep.

Every applied mutating suggestion leaves one ``UndoRecord``. Rollback replays
the records in strict reverse order and always runs to completion: a failing
undo step is reported and the sweep moves on to the next record.

Inverse operations:
- create  -> delete the created entity
- update  -> write the captured prior value back, clearing fields the
             update added
- delete  -> re-create the entity from the captured prior value
- connect -> disconnect the two endpoints
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from suggestkit.domain.model import SuggestionAction

from .failures import classify_failure

if TYPE_CHECKING:
    from collections.abc import Awaitable

    from suggestkit.domain.model import EntityType, RelationKind
    from suggestkit.domain.ports import EntityStore

log = getLogger(__name__)


@dataclass(frozen=True, slots=True, kw_only=True)
class UndoRecord:
    suggestion_id: str
    action: SuggestionAction
    entity_type: EntityType
    real_id: str
    prior: dict[str, object] | None = None
    connection: tuple[str, str, RelationKind] | None = None
    # keys an update wrote; the inverse clears those missing from ``prior``
    written: frozenset[str] = frozenset()

    def restore_fields(self) -> dict[str, object]:
        prior = self.prior or {}
        cleared = dict.fromkeys(sorted(self.written.difference(prior)))
        return {**prior, **cleared}


@dataclass(frozen=True, slots=True, kw_only=True)
class RollbackStep:
    """Outcome of undoing one record."""

    suggestion_id: str
    action: SuggestionAction
    entity_type: EntityType
    real_id: str
    succeeded: bool
    reason: str | None = None
    restored_id: str | None = None


@dataclass(slots=True)
class RollbackManager:
    """Ordered undo log for one batch."""

    records: list[UndoRecord] = field(default_factory=list["UndoRecord"])

    def record(self, undo: UndoRecord) -> None:
        self.records.append(undo)

    def __len__(self) -> int:
        return len(self.records)

    def suffix_from(self, suggestion_id: str | None) -> list[UndoRecord]:
        """Records produced by ``suggestion_id`` and everything recorded after it."""

        if suggestion_id is None:
            return list(self.records)
        for index, undo in enumerate(self.records):
            if undo.suggestion_id == suggestion_id:
                return self.records[index:]
        raise KeyError(f"No undo record for suggestion {suggestion_id}")

    def discard(self) -> None:
        self.records.clear()

    async def rollback(
        self,
        store: EntityStore,
        *,
        from_suggestion_id: str | None = None,
        call_timeout: float | None = None,
    ) -> list[RollbackStep]:
        """Undo the selected records newest-first; successful ones leave the log."""

        selected = self.suffix_from(from_suggestion_id)
        steps: list[RollbackStep] = []
        for undo in reversed(selected):
            try:
                restored_id = await _with_timeout(_invert(store, undo), call_timeout)
            except Exception as exc:  # noqa: BLE001
                reason, _can_retry = classify_failure(exc, timeout=call_timeout)
                log.error(
                    "Rollback of %s %s (%s) failed: %s",
                    undo.action,
                    undo.real_id,
                    undo.suggestion_id,
                    reason,
                )
                steps.append(_step(undo, succeeded=False, reason=reason))
                continue
            self.records.remove(undo)
            steps.append(_step(undo, succeeded=True, restored_id=restored_id))
        return steps


def _step(
    undo: UndoRecord,
    *,
    succeeded: bool,
    reason: str | None = None,
    restored_id: str | None = None,
) -> RollbackStep:
    return RollbackStep(
        suggestion_id=undo.suggestion_id,
        action=undo.action,
        entity_type=undo.entity_type,
        real_id=undo.real_id,
        succeeded=succeeded,
        reason=reason,
        restored_id=restored_id,
    )


async def _with_timeout[T](awaitable: Awaitable[T], seconds: float | None) -> T:
    async with asyncio.timeout(seconds):
        return await awaitable


async def _invert(store: EntityStore, undo: UndoRecord) -> str | None:
    match undo.action:
        case SuggestionAction.CREATE:
            await store.delete_entity(undo.entity_type, undo.real_id)
            return None
        case SuggestionAction.UPDATE:
            await store.update_entity(undo.entity_type, undo.real_id, undo.restore_fields())
            return undo.real_id
        case SuggestionAction.DELETE:
            return await store.create_entity(undo.entity_type, undo.prior or {})
        case SuggestionAction.CONNECT:
            if undo.connection is None:
                raise ValueError(f"Undo record for {undo.suggestion_id} lacks connection data")
            source, target, kind = undo.connection
            await store.disconnect_entities(source, target, kind)
            return None
