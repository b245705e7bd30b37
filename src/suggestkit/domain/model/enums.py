"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class EntityType(StrEnum):
    """Kind of system-analysis artifact a suggestion mutates."""

    MODULE = "module"
    USE_CASE = "use_case"
    SEQUENCE = "sequence"
    API = "api"
    DTO = "dto"


class SuggestionAction(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    CONNECT = "connect"


class SuggestionStatus(StrEnum):
    """Lifecycle of one suggestion within a batch.

    ``pending -> accepted|rejected -> applying -> applied|failed``. ``skipped``
    is reachable from ``accepted`` only and ``rolled_back`` from ``applied`` only.
    """

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    APPLYING = "applying"
    APPLIED = "applied"
    FAILED = "failed"
    SKIPPED = "skipped"
    ROLLED_BACK = "rolled_back"


class RelationKind(StrEnum):
    PARENT_CHILD = "parent-child"
    API_SEQUENCE = "api-sequence"
    API_DTO = "api-dto"
    SEQUENCE_DTO = "sequence-dto"


class ErrorPolicy(StrEnum):
    CONTINUE = "continue"
    STOP_ON_ERROR = "stop-on-error"


class DtoKind(StrEnum):
    REQUEST = "request"
    RESPONSE = "response"
    COMMON = "common"


class HttpMethod(StrEnum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
