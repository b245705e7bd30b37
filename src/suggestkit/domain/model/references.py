"""Typed references to entities that may not exist yet."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class ReferenceKind(StrEnum):
    TEMP = "temp"
    REAL = "real"


@dataclass(frozen=True, slots=True)
class Reference:
    """Pointer to an entity either by placeholder (``temp``) or by store id (``real``).

    Payload fields that may point at a not-yet-created entity are typed as
    ``Reference`` so resolution never has to scan free-form strings.
    """

    kind: ReferenceKind
    value: str

    def __post_init__(self) -> None:
        if not self.value or not self.value.strip():
            raise ValueError("Reference value must be a non-empty string")

    @classmethod
    def temp(cls, value: str) -> Reference:
        return cls(kind=ReferenceKind.TEMP, value=value)

    @classmethod
    def real(cls, value: str) -> Reference:
        return cls(kind=ReferenceKind.REAL, value=value)

    @property
    def is_temp(self) -> bool:
        return self.kind is ReferenceKind.TEMP

    def require_real(self) -> str:
        """Return the real id or raise if this is still a placeholder."""

        if self.is_temp:
            raise UnresolvedReferenceError(self)
        return self.value

    def __str__(self) -> str:
        return f"{self.kind}:{self.value}"


class UnresolvedReferenceError(ValueError):
    """Raised when a temp reference reaches code that needs a real id."""

    def __init__(self, reference: Reference) -> None:
        super().__init__(f"Reference {reference} has not been resolved to a real id")
        self.reference = reference
