"""Result payloads returned to callers of the engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from suggestkit.domain.errors import ErrorCode
    from suggestkit.domain.model import EntityType

    from .resolve import IdentifierMapping
    from .rollback import RollbackStep


@dataclass(frozen=True, slots=True)
class AppliedItem:
    suggestion_id: str
    real_id: str
    entity_type: EntityType
    temp_id: str | None = None

    def to_dict(self) -> dict[str, object]:
        item: dict[str, object] = {
            "suggestionId": self.suggestion_id,
            "realId": self.real_id,
            "entityType": self.entity_type.value,
        }
        if self.temp_id is not None:
            item["tempId"] = self.temp_id
        return item


@dataclass(frozen=True, slots=True)
class FailedItem:
    suggestion_id: str
    reason: str
    can_retry: bool

    def to_dict(self) -> dict[str, object]:
        return {
            "suggestionId": self.suggestion_id,
            "reason": self.reason,
            "canRetry": self.can_retry,
        }


@dataclass(frozen=True, slots=True, kw_only=True)
class ApplyResult:
    """Final outcome of one apply request."""

    batch_id: str
    code: ErrorCode | None
    applied: tuple[AppliedItem, ...]
    failed: tuple[FailedItem, ...]
    skipped: tuple[str, ...]
    rollback_available: bool
    mappings: tuple[IdentifierMapping, ...]
    waves: tuple[tuple[str, ...], ...]
    warnings: tuple[str, ...] = ()
    dry_run: bool = False
    cancelled: bool = False

    @property
    def succeeded(self) -> bool:
        return self.code is None

    def to_dict(self) -> dict[str, object]:
        return {
            "batchId": self.batch_id,
            "code": None if self.code is None else self.code.value,
            "applied": [item.to_dict() for item in self.applied],
            "failed": [item.to_dict() for item in self.failed],
            "skipped": list(self.skipped),
            "rollbackAvailable": self.rollback_available,
            "mappings": [
                {
                    "tempId": mapping.temp_id,
                    "realId": mapping.real_id,
                    "entityType": mapping.entity_type.value,
                }
                for mapping in self.mappings
            ],
            "waves": [list(wave) for wave in self.waves],
            "warnings": list(self.warnings),
            "dryRun": self.dry_run,
            "cancelled": self.cancelled,
        }


@dataclass(frozen=True, slots=True, kw_only=True)
class RollbackResult:
    batch_id: str
    code: ErrorCode | None
    steps: tuple[RollbackStep, ...]
    rollback_available: bool

    @property
    def failed_steps(self) -> tuple[RollbackStep, ...]:
        return tuple(step for step in self.steps if not step.succeeded)

    def to_dict(self) -> dict[str, object]:
        return {
            "batchId": self.batch_id,
            "code": None if self.code is None else self.code.value,
            "steps": [
                {
                    "suggestionId": step.suggestion_id,
                    "action": step.action.value,
                    "entityType": step.entity_type.value,
                    "realId": step.real_id,
                    "succeeded": step.succeeded,
                    "reason": step.reason,
                    "restoredId": step.restored_id,
                }
                for step in self.steps
            ],
            "rollbackAvailable": self.rollback_available,
        }
