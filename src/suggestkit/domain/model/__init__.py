"""Domain model for AI suggestion batches."""

from __future__ import annotations

from .enums import (
    DtoKind,
    EntityType,
    ErrorPolicy,
    HttpMethod,
    RelationKind,
    SuggestionAction,
    SuggestionStatus,
)
from .payloads import (
    PAYLOAD_TYPE_BY_ENTITY_TYPE,
    ApiPayload,
    ConnectPayload,
    DtoPayload,
    EntityPayload,
    ModulePayload,
    SequencePayload,
    SuggestionPayload,
    UseCasePayload,
)
from .references import Reference, ReferenceKind, UnresolvedReferenceError
from .suggestion import TERMINAL_STATUSES, InvalidTransitionError, Suggestion

__all__ = [
    "PAYLOAD_TYPE_BY_ENTITY_TYPE",
    "TERMINAL_STATUSES",
    "ApiPayload",
    "ConnectPayload",
    "DtoKind",
    "DtoPayload",
    "EntityPayload",
    "EntityType",
    "ErrorPolicy",
    "HttpMethod",
    "InvalidTransitionError",
    "ModulePayload",
    "Reference",
    "ReferenceKind",
    "RelationKind",
    "SequencePayload",
    "Suggestion",
    "SuggestionAction",
    "SuggestionPayload",
    "SuggestionStatus",
    "UnresolvedReferenceError",
    "UseCasePayload",
]
