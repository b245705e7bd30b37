"""Batch submission and the per-batch context threaded through every stage.

The context owns all mutable batch state (identifier table, undo log, outcome
lists). It is passed explicitly from scheduler to applier to rollback manager
so two batches never share state.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from suggestkit.domain.model import ErrorPolicy

from .progress import ProgressFeed
from .resolve import IdentifierResolver, IdentifierTable
from .rollback import RollbackManager

if TYPE_CHECKING:
    from suggestkit.domain.model import Suggestion

    from .graph import SuggestionGraph
    from .results import AppliedItem, FailedItem
    from .schedule import Schedule
    from .store import SuggestionStore


@dataclass(frozen=True, slots=True)
class BatchOptions:
    dry_run: bool = False
    error_policy: ErrorPolicy = ErrorPolicy.CONTINUE


@dataclass(frozen=True, slots=True, kw_only=True)
class BatchSubmission:
    """Inbound request: the raw batch plus the caller's accept/reject choice."""

    batch_id: str
    suggestions: tuple[Suggestion, ...]
    accepted_ids: tuple[str, ...]
    rejected_ids: tuple[str, ...] = ()
    options: BatchOptions = field(default_factory=BatchOptions)


class CancelToken:
    """Thread-safe cancellation flag, honoured at wave boundaries."""

    __slots__ = ("_event",)

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(slots=True, kw_only=True)
class BatchContext:
    batch_id: str
    options: BatchOptions
    suggestions: SuggestionStore
    graph: SuggestionGraph
    schedule: Schedule
    progress: ProgressFeed
    cancel_token: CancelToken = field(default_factory=CancelToken)
    identifiers: IdentifierTable = field(default_factory=IdentifierTable)
    undo: RollbackManager = field(default_factory=RollbackManager)
    applied: list[AppliedItem] = field(default_factory=list["AppliedItem"])
    failed: list[FailedItem] = field(default_factory=list["FailedItem"])
    skipped: list[str] = field(default_factory=list["str"])
    halted: bool = False
    cancelled: bool = False
    finished_at: float | None = None
    retired: bool = False

    @property
    def resolver(self) -> IdentifierResolver:
        return IdentifierResolver(self.identifiers)

    @property
    def accepted_ids(self) -> tuple[str, ...]:
        return (*self.schedule.order, *self.schedule.blocked)

    def retire(self) -> None:
        """Drop undo records and identifier mappings; rollback is gone for good."""

        self.undo.discard()
        self.identifiers.clear()
        self.retired = True
