"""Entity payload variants carried by suggestions.

Payloads form a tagged union keyed by ``entity_type``: one variant per artifact
kind plus ``ConnectPayload`` for relationship suggestions. Every field that may
point at another entity is a ``Reference`` so the resolver can rewrite it
without string scanning.

``to_fields`` is the only way payload content leaves the domain; it refuses to
serialize a payload that still carries a temp reference.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import TYPE_CHECKING, Literal, Self

from .enums import DtoKind, EntityType, HttpMethod, RelationKind
from .references import Reference

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

type ReferenceMapper = Callable[[Reference], Reference]


class _PayloadMixin:
    """Reference traversal shared by all payload variants."""

    __slots__ = ()

    def references(self) -> tuple[Reference, ...]:
        found: list[Reference] = []
        for value in _field_values(self):
            if isinstance(value, Reference):
                found.append(value)
            elif isinstance(value, tuple):
                found.extend(item for item in value if isinstance(item, Reference))
        return tuple(found)

    def map_references(self, mapper: ReferenceMapper) -> Self:
        """Return a copy with every reference passed through ``mapper``."""

        changes: dict[str, object] = {}
        for payload_field in fields(self):  # pyright: ignore[reportArgumentType]
            value = getattr(self, payload_field.name)
            if isinstance(value, Reference):
                changes[payload_field.name] = mapper(value)
            elif isinstance(value, tuple) and any(isinstance(item, Reference) for item in value):
                changes[payload_field.name] = tuple(
                    mapper(item) if isinstance(item, Reference) else item for item in value
                )
        if not changes:
            return self
        return replace(self, **changes)  # pyright: ignore[reportArgumentType]

    def to_fields(self) -> dict[str, object]:
        """Serialize to a plain mapping with references replaced by real ids."""

        result: dict[str, object] = {}
        for payload_field in fields(self):  # pyright: ignore[reportArgumentType]
            if payload_field.name == "entity_type":
                continue
            value = getattr(self, payload_field.name)
            if value is None or value == ():
                continue
            result[payload_field.name] = _serialize(value)
        return result

    def missing_create_fields(self) -> tuple[str, ...]:
        return ()


def _field_values(payload: object) -> list[object]:
    return [getattr(payload, f.name) for f in fields(payload)]  # pyright: ignore[reportArgumentType]


def _serialize(value: object) -> object:
    if isinstance(value, Reference):
        return value.require_real()
    if isinstance(value, tuple):
        return [_serialize(item) for item in value]
    if isinstance(value, DtoKind | HttpMethod | RelationKind):
        return value.value
    return value


def _missing(payload: object, *names: str) -> tuple[str, ...]:
    return tuple(name for name in names if getattr(payload, name) in (None, "", ()))


@dataclass(frozen=True, slots=True, kw_only=True)
class ModulePayload(_PayloadMixin):
    title: str | None = None
    description: str | None = None
    module_code: str | None = None
    parent: Reference | None = None
    entity_type: Literal[EntityType.MODULE] = EntityType.MODULE

    def missing_create_fields(self) -> tuple[str, ...]:
        return _missing(self, "title")


@dataclass(frozen=True, slots=True, kw_only=True)
class UseCasePayload(_PayloadMixin):
    title: str | None = None
    summary: str | None = None
    module: Reference | None = None
    preconditions: tuple[str, ...] = ()
    postconditions: tuple[str, ...] = ()
    business_rules: tuple[str, ...] = ()
    acceptance_criteria: tuple[str, ...] = ()
    entity_type: Literal[EntityType.USE_CASE] = EntityType.USE_CASE

    def missing_create_fields(self) -> tuple[str, ...]:
        return _missing(self, "title", "module")


@dataclass(frozen=True, slots=True, kw_only=True)
class SequencePayload(_PayloadMixin):
    title: str | None = None
    description: str | None = None
    use_case: Reference | None = None
    mermaid_src: str | None = None
    category: str | None = None
    entity_type: Literal[EntityType.SEQUENCE] = EntityType.SEQUENCE

    def missing_create_fields(self) -> tuple[str, ...]:
        return _missing(self, "title", "use_case", "mermaid_src")


@dataclass(frozen=True, slots=True, kw_only=True)
class ApiPayload(_PayloadMixin):
    title: str | None = None
    description: str | None = None
    method: HttpMethod | None = None
    domain: str | None = None
    endpoint: str | None = None
    sequences: tuple[Reference, ...] = ()
    request_spec: Mapping[str, object] | None = None
    response_spec: Mapping[str, object] | None = None
    entity_type: Literal[EntityType.API] = EntityType.API

    def missing_create_fields(self) -> tuple[str, ...]:
        return _missing(self, "title", "method", "endpoint")


@dataclass(frozen=True, slots=True, kw_only=True)
class DtoPayload(_PayloadMixin):
    title: str | None = None
    description: str | None = None
    kind: DtoKind | None = None
    schema_json: Mapping[str, object] | None = None
    apis: tuple[Reference, ...] = ()
    version: str | None = None
    tags: tuple[str, ...] = ()
    entity_type: Literal[EntityType.DTO] = EntityType.DTO

    def missing_create_fields(self) -> tuple[str, ...]:
        return _missing(self, "title", "kind")


@dataclass(frozen=True, slots=True, kw_only=True)
class ConnectPayload(_PayloadMixin):
    """Relationship between two entities, either of which may be pending."""

    source: Reference
    target: Reference
    kind: RelationKind = RelationKind.PARENT_CHILD
    description: str | None = field(default=None, compare=False)


type EntityPayload = ModulePayload | UseCasePayload | SequencePayload | ApiPayload | DtoPayload
type SuggestionPayload = EntityPayload | ConnectPayload

PAYLOAD_TYPE_BY_ENTITY_TYPE: dict[EntityType, type[EntityPayload]] = {
    EntityType.MODULE: ModulePayload,
    EntityType.USE_CASE: UseCasePayload,
    EntityType.SEQUENCE: SequencePayload,
    EntityType.API: ApiPayload,
    EntityType.DTO: DtoPayload,
}
