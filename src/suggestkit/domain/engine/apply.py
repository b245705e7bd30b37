"""Wave-by-wave execution of accepted suggestions.

Responsibilities of this stage:
- resolve references, then dispatch each suggestion to the store
- run suggestions of one wave concurrently, bounded by ``fan_out``
- record outcomes, identifier mappings and undo records on the context
- honour the error policy and cancellation between waves

Per-suggestion failures are recorded as outcomes and never raised. Wave k+1
starts only after every suggestion of wave k is terminal.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from suggestkit.domain.errors import InternalOrderError
from suggestkit.domain.model import (
    ConnectPayload,
    ErrorPolicy,
    SuggestionAction,
    SuggestionStatus,
)

from .failures import classify_failure
from .progress import ProgressStage
from .results import AppliedItem, FailedItem
from .rollback import UndoRecord

if TYPE_CHECKING:
    from collections.abc import Awaitable

    from suggestkit.domain.model import Suggestion, SuggestionPayload
    from suggestkit.domain.ports import EntityStore

    from .batch import BatchContext
    from .resolve import DispatchView

log = getLogger(__name__)

DEFAULT_FAN_OUT = 4
DRY_RUN_ID_PREFIX = "dry-run:"


@dataclass(slots=True)
class _CallOutcome:
    real_id: str
    undo: UndoRecord | None


@dataclass(slots=True)
class BatchApplier:
    """Execute a scheduled batch against an ``EntityStore``."""

    store: EntityStore
    fan_out: int = DEFAULT_FAN_OUT
    call_timeout: float | None = None

    def __post_init__(self) -> None:
        if self.fan_out < 1:
            raise ValueError("fan_out must be at least 1")

    async def run(self, context: BatchContext) -> None:
        for suggestion_id in context.schedule.blocked:
            self._skip(context, suggestion_id, "prerequisite suggestion was not accepted")

        for index, wave in enumerate(context.schedule.waves, start=1):
            if context.cancel_token.cancelled:
                context.cancelled = True
                log.info("Batch %s cancelled before wave %s", context.batch_id, index)
                break
            if context.halted:
                break
            ready = [
                context.suggestions.get(suggestion_id)
                for suggestion_id in wave
                if context.suggestions.get(suggestion_id).status is SuggestionStatus.ACCEPTED
            ]
            log.debug("Batch %s wave %s: %s", context.batch_id, index, [s.id for s in ready])
            limiter = asyncio.Semaphore(self.fan_out)
            async with asyncio.TaskGroup() as group:
                for suggestion in ready:
                    group.create_task(self._dispatch_bounded(context, suggestion, limiter))

        reason = "batch cancelled" if context.cancelled else "batch halted after a failure"
        for suggestion_id in context.schedule.order:
            if context.suggestions.get(suggestion_id).status is SuggestionStatus.ACCEPTED:
                self._skip(context, suggestion_id, reason)

    async def _dispatch_bounded(
        self, context: BatchContext, suggestion: Suggestion, limiter: asyncio.Semaphore
    ) -> None:
        async with limiter:
            if context.halted:
                self._skip(context, suggestion.id, "batch halted after a failure")
                return
            await self._dispatch(context, suggestion)

    async def _dispatch(self, context: BatchContext, suggestion: Suggestion) -> None:
        suggestion.transition(SuggestionStatus.APPLYING)
        context.progress.emit(suggestion.id, ProgressStage.APPLYING, f"{suggestion.action}")
        try:
            view = context.resolver.resolve(suggestion)
        except InternalOrderError as exc:
            log.error("Refusing to dispatch %s: %s", suggestion.id, exc)
            self._fail(context, suggestion, f"{exc.code}: {exc}", can_retry=False)
            return

        try:
            if context.options.dry_run:
                outcome = self._simulate(view)
            else:
                outcome = await self._execute(view)
        except Exception as exc:  # noqa: BLE001
            reason, can_retry = classify_failure(exc, timeout=self.call_timeout)
            self._fail(context, suggestion, reason, can_retry=can_retry)
            return

        suggestion.transition(SuggestionStatus.APPLIED)
        context.resolver.record(suggestion, outcome.real_id)
        if outcome.undo is not None:
            context.undo.record(outcome.undo)
        context.applied.append(
            AppliedItem(
                suggestion_id=suggestion.id,
                real_id=outcome.real_id,
                entity_type=suggestion.entity_type,
                temp_id=suggestion.temp_id,
            )
        )
        context.progress.emit(suggestion.id, ProgressStage.APPLIED, outcome.real_id)

    def _simulate(self, view: DispatchView) -> _CallOutcome:
        suggestion = view.suggestion
        if suggestion.action is SuggestionAction.CREATE:
            return _CallOutcome(f"{DRY_RUN_ID_PREFIX}{suggestion.temp_id or suggestion.id}", None)
        if suggestion.action is SuggestionAction.CONNECT:
            return _CallOutcome(_connection_id(view), None)
        # payload serialization still runs so unresolved references surface in dry runs
        if view.payload is not None:
            view.payload.to_fields()
        return _CallOutcome(view.target_id or suggestion.id, None)

    async def _execute(self, view: DispatchView) -> _CallOutcome:
        suggestion = view.suggestion
        entity_type = suggestion.entity_type
        match suggestion.action:
            case SuggestionAction.CREATE:
                fields = _require_payload(view).to_fields()
                real_id = await self._call(self.store.create_entity(entity_type, fields))
                undo = UndoRecord(
                    suggestion_id=suggestion.id,
                    action=SuggestionAction.CREATE,
                    entity_type=entity_type,
                    real_id=real_id,
                )
                return _CallOutcome(real_id, undo)
            case SuggestionAction.UPDATE:
                target_id = _require_target(view)
                fields = _require_payload(view).to_fields()
                prior = await self._call(self.store.get_entity(entity_type, target_id))
                await self._call(self.store.update_entity(entity_type, target_id, fields))
                undo = UndoRecord(
                    suggestion_id=suggestion.id,
                    action=SuggestionAction.UPDATE,
                    entity_type=entity_type,
                    real_id=target_id,
                    prior=prior,
                    written=frozenset(fields),
                )
                return _CallOutcome(target_id, undo)
            case SuggestionAction.DELETE:
                target_id = _require_target(view)
                prior = await self._call(self.store.get_entity(entity_type, target_id))
                await self._call(self.store.delete_entity(entity_type, target_id))
                undo = UndoRecord(
                    suggestion_id=suggestion.id,
                    action=SuggestionAction.DELETE,
                    entity_type=entity_type,
                    real_id=target_id,
                    prior=prior,
                )
                return _CallOutcome(target_id, undo)
            case SuggestionAction.CONNECT:
                connection = _require_connection(view)
                source = connection.source.require_real()
                target = connection.target.require_real()
                await self._call(self.store.connect_entities(source, target, connection.kind))
                undo = UndoRecord(
                    suggestion_id=suggestion.id,
                    action=SuggestionAction.CONNECT,
                    entity_type=entity_type,
                    real_id=_connection_id(view),
                    connection=(source, target, connection.kind),
                )
                return _CallOutcome(undo.real_id, undo)

    async def _call[T](self, awaitable: Awaitable[T]) -> T:
        async with asyncio.timeout(self.call_timeout):
            return await awaitable

    def _fail(
        self, context: BatchContext, suggestion: Suggestion, reason: str, *, can_retry: bool
    ) -> None:
        suggestion.transition(SuggestionStatus.FAILED)
        context.failed.append(
            FailedItem(suggestion_id=suggestion.id, reason=reason, can_retry=can_retry)
        )
        context.progress.emit(suggestion.id, ProgressStage.FAILED, reason)
        log.warning(
            "Suggestion %s (%s %s) failed: %s [can_retry=%s]",
            suggestion.id,
            suggestion.action,
            suggestion.entity_type,
            reason,
            can_retry,
        )

        if context.options.error_policy is ErrorPolicy.STOP_ON_ERROR:
            context.halted = True
            return
        for dependent in context.graph.transitive_dependents(suggestion.id):
            candidate = context.suggestions.find(dependent)
            if candidate is not None and candidate.status is SuggestionStatus.ACCEPTED:
                self._skip(context, dependent, f"dependency {suggestion.id} failed")

    def _skip(self, context: BatchContext, suggestion_id: str, reason: str) -> None:
        suggestion = context.suggestions.get(suggestion_id)
        suggestion.transition(SuggestionStatus.SKIPPED)
        context.skipped.append(suggestion_id)
        context.progress.emit(suggestion_id, ProgressStage.SKIPPED, reason)


def _require_payload(view: DispatchView) -> SuggestionPayload:
    if view.payload is None:
        raise ValueError(f"Suggestion {view.suggestion.id} has no payload")
    return view.payload


def _require_target(view: DispatchView) -> str:
    if view.target_id is None:
        raise ValueError(f"Suggestion {view.suggestion.id} has no target")
    return view.target_id


def _require_connection(view: DispatchView) -> ConnectPayload:
    if not isinstance(view.payload, ConnectPayload):
        raise TypeError(f"Suggestion {view.suggestion.id} has no connection payload")
    return view.payload


def _connection_id(view: DispatchView) -> str:
    connection = _require_connection(view)
    return f"{connection.source.value}:{connection.kind}:{connection.target.value}"
