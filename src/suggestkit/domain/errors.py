"""Engine error taxonomy.

Structural and conflict errors are raised synchronously before any external
call. Per-suggestion failures are never raised out of an apply; they are
recorded as outcomes instead.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence


class ErrorCode(StrEnum):
    DEPENDENCY_ERROR = "DEPENDENCY_ERROR"
    CONFLICT_DETECTED = "CONFLICT_DETECTED"
    STRUCTURAL_ERROR = "STRUCTURAL_ERROR"
    APPLY_FAILED = "APPLY_FAILED"
    ROLLBACK_FAILED = "ROLLBACK_FAILED"
    PARTIAL_SUCCESS = "PARTIAL_SUCCESS"
    INTERNAL_ORDER_ERROR = "INTERNAL_ORDER_ERROR"


class EngineError(RuntimeError):
    """Base class for errors surfaced by the suggestion engine."""

    code: ErrorCode = ErrorCode.APPLY_FAILED

    def __init__(self, message: str, *, details: Mapping[str, object] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, object] = dict(details or {})

    def to_dict(self) -> dict[str, object]:
        return {"code": self.code.value, "message": str(self), "details": self.details}


class DependencyCycleError(EngineError):
    code = ErrorCode.DEPENDENCY_ERROR

    def __init__(self, cycle: Sequence[str]) -> None:
        path = " -> ".join(cycle)
        super().__init__(f"Dependency cycle detected: {path}", details={"cycle": list(cycle)})
        self.cycle = tuple(cycle)


class ConflictDetectedError(EngineError):
    code = ErrorCode.CONFLICT_DETECTED

    def __init__(self, first: str, second: str) -> None:
        super().__init__(
            f"Accepted suggestions {first} and {second} are mutually exclusive",
            details={"suggestion_ids": [first, second]},
        )
        self.suggestion_ids = (first, second)


class StructuralError(EngineError):
    """Batch shape is invalid (unknown ids, bad payloads, dangling references)."""

    code = ErrorCode.STRUCTURAL_ERROR

    def __init__(self, problems: Sequence[str]) -> None:
        summary = "; ".join(problems)
        super().__init__(f"Invalid suggestion batch: {summary}", details={"problems": list(problems)})
        self.problems = tuple(problems)


class InternalOrderError(EngineError):
    """A suggestion reached dispatch with a reference whose source is not applied."""

    code = ErrorCode.INTERNAL_ORDER_ERROR

    def __init__(self, suggestion_id: str, temp_id: str) -> None:
        super().__init__(
            f"Suggestion {suggestion_id} dispatched before temp id {temp_id} was applied",
            details={"suggestion_id": suggestion_id, "temp_id": temp_id},
        )
        self.suggestion_id = suggestion_id
        self.temp_id = temp_id


class RollbackUnavailableError(EngineError):
    code = ErrorCode.ROLLBACK_FAILED

    def __init__(self, batch_id: str, reason: str) -> None:
        super().__init__(
            f"Rollback unavailable for batch {batch_id}: {reason}",
            details={"batch_id": batch_id, "reason": reason},
        )


class BackingStoreError(RuntimeError):
    """Raised by store adapters; ``transient`` marks failures worth retrying."""

    def __init__(self, message: str, *, transient: bool = False) -> None:
        super().__init__(message)
        self.transient = transient
