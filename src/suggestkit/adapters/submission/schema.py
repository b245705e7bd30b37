"""Pydantic models describing suggestion batch submissions.

Two wire shapes are accepted:

* the native shape, ``{batchId, suggestions, acceptedIds, rejectedIds, options}``
  where each suggestion names its ``entityType`` and carries a typed payload;
* the legacy AI suggestion shape, where node data sits under ``data`` with an
  upper-case ``type`` and relationships under ``connection``.

References are written as ``"temp:<id>"`` or ``"real:<id>"`` strings or as
``{"kind": ..., "value": ...}`` objects; a bare string names a real entity.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any, Literal, cast

from pydantic import BaseModel, ConfigDict, Field, PlainValidator, field_validator
from pydantic.alias_generators import to_camel

from suggestkit.domain.model import (
    DtoKind,
    EntityType,
    ErrorPolicy,
    HttpMethod,
    Reference,
    ReferenceKind,
    RelationKind,
    SuggestionAction,
)

_PREFIXES = {f"{kind.value}:": kind for kind in ReferenceKind}


def parse_reference(value: object) -> Reference:
    if isinstance(value, Reference):
        return value
    if isinstance(value, str):
        for prefix, kind in _PREFIXES.items():
            if value.startswith(prefix):
                return Reference(kind, value.removeprefix(prefix))
        return Reference.real(value)
    if isinstance(value, Mapping):
        mapping = cast(Mapping[str, object], value)
        kind = mapping.get("kind")
        raw = mapping.get("value")
        if isinstance(kind, str) and isinstance(raw, str):
            return Reference(ReferenceKind(kind), raw)
    raise ValueError(f"Invalid reference: {value!r}")


type ReferenceField = Annotated[Reference, PlainValidator(parse_reference)]


class SubmissionBaseModel(BaseModel):
    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
        arbitrary_types_allowed=True,
    )


class ModulePayloadModel(SubmissionBaseModel):
    title: str | None = None
    description: str | None = None
    module_code: str | None = None
    parent: ReferenceField | None = None


class UseCasePayloadModel(SubmissionBaseModel):
    title: str | None = None
    summary: str | None = None
    module: ReferenceField | None = None
    preconditions: list[str] = Field(default_factory=list["str"])
    postconditions: list[str] = Field(default_factory=list["str"])
    business_rules: list[str] = Field(default_factory=list["str"])
    acceptance_criteria: list[str] = Field(default_factory=list["str"])


class SequencePayloadModel(SubmissionBaseModel):
    title: str | None = None
    description: str | None = None
    use_case: ReferenceField | None = None
    mermaid_src: str | None = None
    category: str | None = None


class ApiPayloadModel(SubmissionBaseModel):
    title: str | None = None
    description: str | None = None
    method: HttpMethod | None = None
    domain: str | None = None
    endpoint: str | None = None
    sequences: list[ReferenceField] = Field(default_factory=list["Reference"])
    request_spec: dict[str, Any] | None = None
    response_spec: dict[str, Any] | None = None

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, value: object) -> object:
        return value.upper() if isinstance(value, str) else value


class DtoPayloadModel(SubmissionBaseModel):
    title: str | None = None
    description: str | None = None
    kind: DtoKind | None = None
    schema_json: dict[str, Any] | None = None
    apis: list[ReferenceField] = Field(default_factory=list["Reference"])
    version: str | None = None
    tags: list[str] = Field(default_factory=list["str"])


class ConnectPayloadModel(SubmissionBaseModel):
    source: ReferenceField
    target: ReferenceField
    kind: RelationKind = RelationKind.PARENT_CHILD
    description: str | None = None


type EntityPayloadModel = (
    ModulePayloadModel
    | UseCasePayloadModel
    | SequencePayloadModel
    | ApiPayloadModel
    | DtoPayloadModel
)

PAYLOAD_MODEL_BY_ENTITY_TYPE: dict[EntityType, type[EntityPayloadModel]] = {
    EntityType.MODULE: ModulePayloadModel,
    EntityType.USE_CASE: UseCasePayloadModel,
    EntityType.SEQUENCE: SequencePayloadModel,
    EntityType.API: ApiPayloadModel,
    EntityType.DTO: DtoPayloadModel,
}


class SuggestionModel(SubmissionBaseModel):
    id: str
    action: SuggestionAction
    entity_type: EntityType
    temp_id: str | None = None
    target: ReferenceField | None = None
    payload: dict[str, Any] | None = None
    dependencies: list[str] = Field(default_factory=list["str"])
    conflicts: list[str] = Field(default_factory=list["str"])
    priority: int = 0
    reason: str | None = None
    confidence: float | None = None


class OptionsModel(SubmissionBaseModel):
    dry_run: bool = False
    error_policy: ErrorPolicy | None = None


class SubmissionModel(SubmissionBaseModel):
    batch_id: str
    suggestions: list[SuggestionModel]
    accepted_ids: list[str]
    rejected_ids: list[str] = Field(default_factory=list["str"])
    options: OptionsModel = Field(default_factory=OptionsModel)


LegacyNodeType = Literal["MODULE", "USE_CASE", "SEQUENCE", "API", "DTO"]


class LegacyConnectionModel(SubmissionBaseModel):
    source_id: str
    target_id: str
    relation_type: RelationKind = RelationKind.PARENT_CHILD
    description: str | None = None


class LegacyNodeDataModel(SubmissionBaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True, alias_generator=to_camel)

    type: LegacyNodeType
    id: str | None = None


class LegacySuggestionModel(SubmissionBaseModel):
    id: str
    action: SuggestionAction
    node_id: str | None = None
    data: LegacyNodeDataModel | None = None
    connection: LegacyConnectionModel | None = None
    reason: str | None = None
    confidence: float | None = None


class LegacySubmissionModel(SubmissionBaseModel):
    batch_id: str | None = None
    project_id: str | None = None
    suggestions: list[LegacySuggestionModel]
    accepted_ids: list[str] | None = None
    rejected_ids: list[str] = Field(default_factory=list["str"])
    options: OptionsModel = Field(default_factory=OptionsModel)
