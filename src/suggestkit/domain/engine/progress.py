"""Progress events emitted while a batch is applied.

One event per suggestion transition (``applying``, ``applied``, ``failed``,
``skipped``), followed by exactly one summary event when the batch finishes.
Events for one suggestion are emitted in transition order; events of
independent suggestions in the same wave may interleave.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from suggestkit.domain.errors import ErrorCode

log = getLogger(__name__)


class ProgressStage(StrEnum):
    APPLYING = "applying"
    APPLIED = "applied"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    batch_id: str
    suggestion_id: str
    stage: ProgressStage
    message: str = ""


@dataclass(frozen=True, slots=True)
class BatchSummaryEvent:
    batch_id: str
    code: ErrorCode | None
    applied: int
    failed: int
    skipped: int
    cancelled: bool = False


type BatchEvent = ProgressEvent | BatchSummaryEvent
type ProgressListener = Callable[[BatchEvent], None]


@dataclass(slots=True)
class ProgressFeed:
    """Fan events out to subscribers and keep the full history for replay."""

    batch_id: str
    _listeners: list[ProgressListener] = field(
        default_factory=list["ProgressListener"], repr=False
    )
    _history: list[BatchEvent] = field(default_factory=list["BatchEvent"], repr=False)

    def subscribe(self, listener: ProgressListener) -> None:
        self._listeners.append(listener)

    def __iter__(self) -> Iterator[BatchEvent]:
        return iter(tuple(self._history))

    @property
    def finished(self) -> bool:
        return bool(self._history) and isinstance(self._history[-1], BatchSummaryEvent)

    def emit(self, suggestion_id: str, stage: ProgressStage, message: str = "") -> None:
        self._publish(ProgressEvent(self.batch_id, suggestion_id, stage, message))

    def summarize(self, summary: BatchSummaryEvent) -> None:
        self._publish(summary)

    def _publish(self, event: BatchEvent) -> None:
        self._history.append(event)
        for listener in self._listeners:
            try:
                listener(event)
            except Exception:
                log.exception("Progress listener failed for %s", event)
