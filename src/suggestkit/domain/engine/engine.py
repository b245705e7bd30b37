"""Entry point tying together validation, scheduling, application and rollback."""

from __future__ import annotations

import asyncio
import time
from contextlib import AbstractAsyncContextManager, nullcontext
from dataclasses import dataclass, field, replace
from logging import getLogger
from typing import TYPE_CHECKING

from suggestkit.domain.errors import ErrorCode, RollbackUnavailableError
from suggestkit.domain.model import ErrorPolicy, SuggestionStatus

from .apply import DEFAULT_FAN_OUT, BatchApplier
from .batch import BatchContext, CancelToken
from .graph import build_graph
from .progress import BatchSummaryEvent, ProgressFeed
from .results import ApplyResult, RollbackResult
from .schedule import schedule_batch
from .store import SuggestionStore

if TYPE_CHECKING:
    from collections.abc import Callable

    from suggestkit.domain.ports import EntityStore

    from .batch import BatchSubmission
    from .progress import ProgressListener

log = getLogger(__name__)

DEFAULT_CALL_TIMEOUT_SECONDS = 30.0
DEFAULT_ROLLBACK_WINDOW_SECONDS = 900.0


def _store_session(store: EntityStore) -> AbstractAsyncContextManager[object]:
    # stores holding network clients open them for the duration of one run
    if isinstance(store, AbstractAsyncContextManager):
        return store
    return nullcontext()


def batch_result_code(context: BatchContext) -> ErrorCode | None:
    accepted = len(context.accepted_ids)
    applied = len(context.applied)
    if applied == accepted:
        return None
    if applied == 0:
        return ErrorCode.APPLY_FAILED
    if context.options.error_policy is ErrorPolicy.STOP_ON_ERROR and context.failed:
        return ErrorCode.APPLY_FAILED
    return ErrorCode.PARTIAL_SUCCESS


def prepare_batch(submission: BatchSubmission) -> BatchContext:
    """Validate the submission and plan its waves; no store calls are made.

    Suggestions are copied, so one submission can be prepared any number of
    times. Raises ``StructuralError``, ``DependencyCycleError`` or
    ``ConflictDetectedError`` when the accepted set cannot be applied.
    """

    suggestions = SuggestionStore.from_suggestions(
        replace(suggestion) for suggestion in submission.suggestions
    )
    suggestions.mark_decisions(
        accepted=submission.accepted_ids,
        rejected=submission.rejected_ids,
    )
    graph = build_graph(suggestions)
    schedule = schedule_batch(suggestions, graph)
    return BatchContext(
        batch_id=submission.batch_id,
        options=submission.options,
        suggestions=suggestions,
        graph=graph,
        schedule=schedule,
        progress=ProgressFeed(submission.batch_id),
    )


@dataclass(slots=True)
class SuggestionEngine:
    """Apply accepted AI suggestions to an ``EntityStore`` in dependency order."""

    store: EntityStore
    fan_out: int = DEFAULT_FAN_OUT
    call_timeout: float | None = DEFAULT_CALL_TIMEOUT_SECONDS
    rollback_window: float | None = DEFAULT_ROLLBACK_WINDOW_SECONDS
    clock: Callable[[], float] = field(default=time.monotonic)

    def prepare(self, submission: BatchSubmission) -> BatchContext:
        return prepare_batch(submission)

    def apply(
        self,
        submission: BatchSubmission,
        *,
        listener: ProgressListener | None = None,
        cancel_token: CancelToken | None = None,
    ) -> BatchSession:
        return asyncio.run(
            self.apply_async(submission, listener=listener, cancel_token=cancel_token)
        )

    async def apply_async(
        self,
        submission: BatchSubmission,
        *,
        listener: ProgressListener | None = None,
        cancel_token: CancelToken | None = None,
    ) -> BatchSession:
        context = self.prepare(submission)
        if cancel_token is not None:
            context.cancel_token = cancel_token
        if listener is not None:
            context.progress.subscribe(listener)

        log.info(
            "Applying batch %s: %s accepted in %s waves (dry_run=%s, error_policy=%s)",
            context.batch_id,
            len(context.accepted_ids),
            len(context.schedule.waves),
            context.options.dry_run,
            context.options.error_policy,
        )
        applier = BatchApplier(self.store, fan_out=self.fan_out, call_timeout=self.call_timeout)
        if context.options.dry_run:
            await applier.run(context)
        else:
            async with _store_session(self.store):
                await applier.run(context)
        context.finished_at = self.clock()

        session = BatchSession(
            context=context,
            store=self.store,
            call_timeout=self.call_timeout,
            rollback_window=self.rollback_window,
            clock=self.clock,
        )
        code = batch_result_code(context)
        context.progress.summarize(
            BatchSummaryEvent(
                batch_id=context.batch_id,
                code=code,
                applied=len(context.applied),
                failed=len(context.failed),
                skipped=len(context.skipped),
                cancelled=context.cancelled,
            )
        )
        session.result = session.build_result(code)
        log.info(
            "Batch %s finished: applied=%s failed=%s skipped=%s code=%s",
            context.batch_id,
            len(context.applied),
            len(context.failed),
            len(context.skipped),
            code,
        )
        return session


@dataclass(slots=True, kw_only=True)
class BatchSession:
    """Handle on an applied batch: its result and, while it lasts, its undo log."""

    context: BatchContext
    store: EntityStore
    call_timeout: float | None = DEFAULT_CALL_TIMEOUT_SECONDS
    rollback_window: float | None = DEFAULT_ROLLBACK_WINDOW_SECONDS
    clock: Callable[[], float] = field(default=time.monotonic)
    result: ApplyResult | None = None

    @property
    def batch_id(self) -> str:
        return self.context.batch_id

    @property
    def rollback_available(self) -> bool:
        context = self.context
        if context.retired or context.options.dry_run or self._window_expired():
            return False
        return len(context.undo) > 0

    def check_expiry(self) -> bool:
        """Retire the batch once its rollback window has elapsed; report whether it did."""
        if self.context.retired or not self._window_expired():
            return False
        log.info("Rollback window for batch %s expired, retiring", self.context.batch_id)
        self.context.retire()
        return True

    def _window_expired(self) -> bool:
        finished_at = self.context.finished_at
        if self.rollback_window is None or finished_at is None:
            return False
        return self.clock() - finished_at > self.rollback_window

    def retire(self) -> None:
        self.context.retire()

    def build_result(self, code: ErrorCode | None) -> ApplyResult:
        context = self.context
        position = context.schedule.position()
        return ApplyResult(
            batch_id=context.batch_id,
            code=code,
            applied=tuple(sorted(context.applied, key=lambda item: position[item.suggestion_id])),
            failed=tuple(sorted(context.failed, key=lambda item: position[item.suggestion_id])),
            skipped=tuple(sorted(context.skipped, key=position.__getitem__)),
            rollback_available=self.rollback_available,
            mappings=tuple(context.identifiers),
            waves=context.schedule.waves,
            warnings=context.schedule.warnings,
            dry_run=context.options.dry_run,
            cancelled=context.cancelled,
        )

    def rollback(self, from_suggestion_id: str | None = None) -> RollbackResult:
        return asyncio.run(self.rollback_async(from_suggestion_id))

    async def rollback_async(self, from_suggestion_id: str | None = None) -> RollbackResult:
        """Undo the whole batch, or ``from_suggestion_id`` and everything applied after it."""

        context = self.context
        self.check_expiry()
        if not self.rollback_available:
            reason = "batch retired" if context.retired else "nothing to roll back"
            if context.options.dry_run:
                reason = "dry run applied nothing"
            raise RollbackUnavailableError(context.batch_id, reason)
        try:
            context.undo.suffix_from(from_suggestion_id)
        except KeyError:
            raise RollbackUnavailableError(
                context.batch_id, f"no undo record for suggestion {from_suggestion_id}"
            ) from None

        log.info(
            "Rolling back batch %s%s",
            context.batch_id,
            "" if from_suggestion_id is None else f" from {from_suggestion_id}",
        )
        async with _store_session(self.store):
            steps = await context.undo.rollback(
                self.store,
                from_suggestion_id=from_suggestion_id,
                call_timeout=self.call_timeout,
            )

        for step in steps:
            if step.succeeded:
                context.suggestions.get(step.suggestion_id).transition(
                    SuggestionStatus.ROLLED_BACK
                )
        failures = [step for step in steps if not step.succeeded]
        if from_suggestion_id is None and not failures:
            context.retire()
        if failures:
            log.error(
                "Rollback of batch %s left %s record(s) in place", context.batch_id, len(failures)
            )
        return RollbackResult(
            batch_id=context.batch_id,
            code=ErrorCode.ROLLBACK_FAILED if failures else None,
            steps=tuple(steps),
            rollback_available=self.rollback_available,
        )
