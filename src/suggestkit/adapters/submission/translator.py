"""Translate submission payloads into a domain ``BatchSubmission``."""

from __future__ import annotations

import json
import uuid
from logging import getLogger
from typing import TYPE_CHECKING, Any, cast

from pydantic import ValidationError

from suggestkit.domain.engine import BatchOptions, BatchSubmission
from suggestkit.domain.model import (
    PAYLOAD_TYPE_BY_ENTITY_TYPE,
    ConnectPayload,
    EntityType,
    ErrorPolicy,
    RelationKind,
    Suggestion,
    SuggestionAction,
)

from .schema import (
    PAYLOAD_MODEL_BY_ENTITY_TYPE,
    ConnectPayloadModel,
    LegacySubmissionModel,
    LegacySuggestionModel,
    SubmissionModel,
    SuggestionModel,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from pathlib import Path

    from suggestkit.domain.model import SuggestionPayload

log = getLogger(__name__)

_LEGACY_ENTITY_TYPES: dict[str, EntityType] = {
    "MODULE": EntityType.MODULE,
    "USE_CASE": EntityType.USE_CASE,
    "SEQUENCE": EntityType.SEQUENCE,
    "API": EntityType.API,
    "DTO": EntityType.DTO,
}

# legacy node data names referenced entities by id; the native payload by role
_LEGACY_REFERENCE_FIELDS: dict[str, str] = {
    "moduleId": "module",
    "useCaseId": "useCase",
    "sequenceIds": "sequences",
    "apiIds": "apis",
}

# where a legacy ``parentId`` lands for each entity type
_LEGACY_PARENT_FIELD: dict[EntityType, str] = {
    EntityType.MODULE: "parent",
    EntityType.USE_CASE: "module",
    EntityType.SEQUENCE: "useCase",
}

_CONNECT_SOURCE_TYPE: dict[RelationKind, EntityType] = {
    RelationKind.PARENT_CHILD: EntityType.MODULE,
    RelationKind.API_SEQUENCE: EntityType.API,
    RelationKind.API_DTO: EntityType.API,
    RelationKind.SEQUENCE_DTO: EntityType.SEQUENCE,
}


class SubmissionError(ValueError):
    """Raised when a submission document cannot be parsed."""


def load_submission(
    path: Path, *, default_error_policy: ErrorPolicy = ErrorPolicy.CONTINUE
) -> BatchSubmission:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise SubmissionError(f"Cannot read submission {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise SubmissionError(f"Submission {path} must be a JSON object")
    return parse_submission(cast(dict[str, Any], raw), default_error_policy=default_error_policy)


def is_legacy_submission(raw: Mapping[str, Any]) -> bool:
    suggestions = raw.get("suggestions")
    if not isinstance(suggestions, list):
        return False
    for item in cast(list[object], suggestions):
        if isinstance(item, dict) and "entityType" not in item and "entity_type" not in item:
            return True
    return False


def parse_submission(
    raw: Mapping[str, Any], *, default_error_policy: ErrorPolicy = ErrorPolicy.CONTINUE
) -> BatchSubmission:
    """Validate a submission document in either wire shape."""

    try:
        if is_legacy_submission(raw):
            model = legacy_to_native(LegacySubmissionModel.model_validate(raw))
        else:
            model = SubmissionModel.model_validate(raw)
        suggestions = tuple(parse_suggestion(item) for item in model.suggestions)
    except ValidationError as exc:
        raise SubmissionError(f"Invalid submission: {exc}") from exc
    except ValueError as exc:
        raise SubmissionError(str(exc)) from exc

    options = BatchOptions(
        dry_run=model.options.dry_run,
        error_policy=model.options.error_policy or default_error_policy,
    )
    return BatchSubmission(
        batch_id=model.batch_id,
        suggestions=suggestions,
        accepted_ids=tuple(model.accepted_ids),
        rejected_ids=tuple(model.rejected_ids),
        options=options,
    )


def parse_suggestion(model: SuggestionModel) -> Suggestion:
    return Suggestion(
        id=model.id,
        action=model.action,
        entity_type=model.entity_type,
        payload=_parse_payload(model),
        temp_id=model.temp_id,
        target=model.target,
        dependencies=tuple(model.dependencies),
        conflicts=tuple(model.conflicts),
        priority=model.priority,
        reason=model.reason,
        confidence=model.confidence,
    )


def _parse_payload(model: SuggestionModel) -> SuggestionPayload | None:
    if model.payload is None:
        return None
    if model.action is SuggestionAction.CONNECT:
        connect = ConnectPayloadModel.model_validate(model.payload)
        return ConnectPayload(
            source=connect.source,
            target=connect.target,
            kind=connect.kind,
            description=connect.description,
        )
    if model.action is SuggestionAction.DELETE:
        return None
    payload_model = PAYLOAD_MODEL_BY_ENTITY_TYPE[model.entity_type].model_validate(model.payload)
    # read attributes directly so ``Reference`` values stay objects
    values: dict[str, Any] = {}
    for name in type(payload_model).model_fields:
        value = getattr(payload_model, name)
        values[name] = tuple(cast(list[object], value)) if isinstance(value, list) else value
    return PAYLOAD_TYPE_BY_ENTITY_TYPE[model.entity_type](**values)


def legacy_to_native(legacy: LegacySubmissionModel) -> SubmissionModel:
    """Rewrite a legacy AI suggestion batch into the native shape.

    A create's ``data.id`` becomes its temp id; any id elsewhere in the batch
    that matches one of those temp ids is read as a temp reference.
    """

    temp_ids = {
        item.data.id
        for item in legacy.suggestions
        if item.action is SuggestionAction.CREATE and item.data is not None and item.data.id
    }
    created_types = {
        item.data.id: _LEGACY_ENTITY_TYPES[item.data.type]
        for item in legacy.suggestions
        if item.action is SuggestionAction.CREATE and item.data is not None and item.data.id
    }

    def ref(value: str) -> str:
        return f"temp:{value}" if value in temp_ids else f"real:{value}"

    suggestions = [_legacy_suggestion(item, ref, created_types) for item in legacy.suggestions]
    ids = [item.id for item in suggestions]
    rejected = set(legacy.rejected_ids)
    accepted = (
        legacy.accepted_ids
        if legacy.accepted_ids is not None
        else [suggestion_id for suggestion_id in ids if suggestion_id not in rejected]
    )
    batch_id = legacy.batch_id or legacy.project_id or uuid.uuid4().hex
    log.debug("Read legacy submission %s with %s suggestions", batch_id, len(suggestions))
    return SubmissionModel(
        batch_id=batch_id,
        suggestions=suggestions,
        accepted_ids=accepted,
        rejected_ids=legacy.rejected_ids,
        options=legacy.options,
    )


def _legacy_suggestion(
    item: LegacySuggestionModel,
    ref: Callable[[str], str],
    created_types: Mapping[str, EntityType],
) -> SuggestionModel:
    common: dict[str, Any] = {
        "id": item.id,
        "action": item.action,
        "reason": item.reason,
        "confidence": item.confidence,
    }
    if item.action is SuggestionAction.CONNECT:
        connection = item.connection
        if connection is None:
            raise ValueError(f"Suggestion {item.id}: connect requires a connection")
        source_type = created_types.get(connection.source_id) or _CONNECT_SOURCE_TYPE[
            connection.relation_type
        ]
        return SuggestionModel(
            **common,
            entity_type=source_type,
            payload={
                "source": ref(connection.source_id),
                "target": ref(connection.target_id),
                "kind": connection.relation_type,
                "description": connection.description,
            },
        )

    data = item.data
    if data is None:
        raise ValueError(f"Suggestion {item.id}: {item.action} requires node data")
    entity_type = _LEGACY_ENTITY_TYPES[data.type]
    target_id = item.node_id or (data.id if item.action is not SuggestionAction.CREATE else None)
    return SuggestionModel(
        **common,
        entity_type=entity_type,
        temp_id=data.id if item.action is SuggestionAction.CREATE else None,
        target=ref(target_id) if target_id else None,
        payload=_legacy_payload(entity_type, data.model_extra or {}, ref),
    )


def _legacy_payload(
    entity_type: EntityType, extra: Mapping[str, Any], ref: Callable[[str], str]
) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    parent_field = _LEGACY_PARENT_FIELD.get(entity_type)
    for key, value in extra.items():
        if key == "position":
            continue
        if key == "parentId":
            if parent_field is not None and isinstance(value, str):
                payload.setdefault(parent_field, ref(value))
            continue
        name = _LEGACY_REFERENCE_FIELDS.get(key)
        if name is None:
            payload[key] = value
        elif isinstance(value, list):
            payload[name] = [ref(entry) for entry in cast(list[str], value)]
        elif isinstance(value, str):
            payload[name] = ref(value)
    if entity_type is EntityType.USE_CASE and "summary" not in payload:
        description = payload.pop("description", None)
        if description is not None:
            payload["summary"] = description
    return payload
