"""Translate domain entity fields to and from the backend's wire format.

Domain fields are snake_case and name referenced entities by role
(``module``, ``use_case``); the backend speaks camelCase with ``...Id``
suffixes and nests child collections under their parent's route.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import TYPE_CHECKING

from suggestkit.domain.model import PAYLOAD_TYPE_BY_ENTITY_TYPE, EntityType

if TYPE_CHECKING:
    from collections.abc import Mapping


@dataclass(frozen=True, slots=True)
class EntityRoutes:
    collection: str
    item: str
    parent_field: str | None = None


ROUTES: dict[EntityType, EntityRoutes] = {
    EntityType.MODULE: EntityRoutes("/projects/{parent}/modules", "/modules/{id}"),
    EntityType.USE_CASE: EntityRoutes("/modules/{parent}/use-cases", "/use-cases/{id}", "module"),
    EntityType.SEQUENCE: EntityRoutes(
        "/use-cases/{parent}/sequences", "/sequences/{id}", "use_case"
    ),
    EntityType.API: EntityRoutes("/projects/{parent}/apis", "/apis/{id}"),
    EntityType.DTO: EntityRoutes("/projects/{parent}/dtos", "/dtos/{id}"),
}

_WIRE_NAMES: dict[str, str] = {
    "parent": "parentId",
    "module": "moduleId",
    "use_case": "useCaseId",
    "sequences": "sequenceIds",
    "apis": "apiIds",
}
_FIELD_NAMES: dict[str, str] = {wire: name for name, wire in _WIRE_NAMES.items()}


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def wire_name(field_name: str) -> str:
    return _WIRE_NAMES.get(field_name) or _camel(field_name)


def _payload_field_names(entity_type: EntityType) -> frozenset[str]:
    payload_type = PAYLOAD_TYPE_BY_ENTITY_TYPE[entity_type]
    return frozenset(f.name for f in fields(payload_type) if f.name != "entity_type")


def collection_path(entity_type: EntityType, values: Mapping[str, object], project_id: str) -> str:
    routes = ROUTES[entity_type]
    if routes.parent_field is None:
        return routes.collection.format(parent=project_id)
    parent = values.get(routes.parent_field)
    if not isinstance(parent, str) or not parent:
        raise ValueError(f"{entity_type} create requires {routes.parent_field}")
    return routes.collection.format(parent=parent)


def item_path(entity_type: EntityType, real_id: str) -> str:
    return ROUTES[entity_type].item.format(id=real_id)


def to_request_body(
    entity_type: EntityType, values: Mapping[str, object], *, creating: bool = False
) -> dict[str, object]:
    """Body for a create or update; the route's parent id is not repeated on create."""

    parent_field = ROUTES[entity_type].parent_field
    body: dict[str, object] = {}
    for name, value in values.items():
        if creating and name == parent_field:
            continue
        body[wire_name(name)] = value
    return body


def fields_from_record(entity_type: EntityType, record: Mapping[str, object]) -> dict[str, object]:
    """Domain fields of a stored artifact, dropping server-managed attributes."""

    known = _payload_field_names(entity_type)
    values: dict[str, object] = {}
    for key, value in record.items():
        name = _FIELD_NAMES.get(key) or _snake(key)
        if name in known and value is not None:
            values[name] = value
    return values


def _snake(name: str) -> str:
    chars: list[str] = []
    for char in name:
        if char.isupper():
            chars.append("_")
            chars.append(char.lower())
        else:
            chars.append(char)
    return "".join(chars)
