"""Suggestion entity and its status lifecycle."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final

from .enums import EntityType, SuggestionAction, SuggestionStatus
from .payloads import ConnectPayload

if TYPE_CHECKING:
    from .payloads import SuggestionPayload
    from .references import Reference


_ALLOWED_TRANSITIONS: Final[dict[SuggestionStatus, frozenset[SuggestionStatus]]] = {
    SuggestionStatus.PENDING: frozenset({SuggestionStatus.ACCEPTED, SuggestionStatus.REJECTED}),
    SuggestionStatus.ACCEPTED: frozenset({SuggestionStatus.APPLYING, SuggestionStatus.SKIPPED}),
    SuggestionStatus.APPLYING: frozenset({SuggestionStatus.APPLIED, SuggestionStatus.FAILED}),
    SuggestionStatus.APPLIED: frozenset({SuggestionStatus.ROLLED_BACK}),
    SuggestionStatus.REJECTED: frozenset(),
    SuggestionStatus.FAILED: frozenset(),
    SuggestionStatus.SKIPPED: frozenset(),
    SuggestionStatus.ROLLED_BACK: frozenset(),
}

TERMINAL_STATUSES: Final[frozenset[SuggestionStatus]] = frozenset(
    {
        SuggestionStatus.APPLIED,
        SuggestionStatus.FAILED,
        SuggestionStatus.REJECTED,
        SuggestionStatus.SKIPPED,
        SuggestionStatus.ROLLED_BACK,
    }
)


class InvalidTransitionError(ValueError):
    """Raised when a suggestion is moved to a status its lifecycle does not allow."""

    def __init__(
        self, suggestion_id: str, current: SuggestionStatus, requested: SuggestionStatus
    ) -> None:
        super().__init__(f"Suggestion {suggestion_id}: cannot move from {current} to {requested}")
        self.suggestion_id = suggestion_id
        self.current = current
        self.requested = requested


@dataclass(slots=True, kw_only=True)
class Suggestion:
    """One proposed graph mutation.

    Everything except ``status`` is fixed at submission. Reference rewriting
    never touches the suggestion itself; the resolver produces a separate
    dispatch view.
    """

    id: str
    action: SuggestionAction
    entity_type: EntityType
    payload: SuggestionPayload | None = None
    temp_id: str | None = None
    target: Reference | None = None
    dependencies: tuple[str, ...] = ()
    conflicts: tuple[str, ...] = ()
    priority: int = 0
    reason: str | None = None
    confidence: float | None = None
    status: SuggestionStatus = field(default=SuggestionStatus.PENDING)

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Suggestion id must not be empty")
        if self.temp_id is not None and self.action is not SuggestionAction.CREATE:
            raise ValueError(f"Suggestion {self.id}: temp_id is only valid for create")
        if self.confidence is not None and not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Suggestion {self.id}: confidence must be within [0, 1]")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def connection(self) -> ConnectPayload | None:
        return self.payload if isinstance(self.payload, ConnectPayload) else None

    def references(self) -> tuple[Reference, ...]:
        """All references the suggestion needs resolved before dispatch."""

        refs: list[Reference] = []
        if self.target is not None:
            refs.append(self.target)
        if self.payload is not None:
            refs.extend(self.payload.references())
        return tuple(refs)

    def transition(self, status: SuggestionStatus) -> None:
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(self.id, self.status, status)
        self.status = status
