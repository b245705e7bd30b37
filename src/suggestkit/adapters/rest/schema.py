"""Pydantic models describing the design backend's response envelopes."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class BackendBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ErrorDetail(BackendBaseModel):
    code: str
    message: str
    details: Any = None
    request_id: str | None = None


class ErrorEnvelope(BackendBaseModel):
    success: Literal[False] = False
    error: ErrorDetail


class EntityRecord(BackendBaseModel):
    """Any stored artifact; only the id is guaranteed, the rest is kept verbatim."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str


class EntityEnvelope(BackendBaseModel):
    success: bool = True
    data: EntityRecord


class LinkRecord(BackendBaseModel):
    id: str
    api_id: str = Field(alias="apiId")
    sequence_id: str | None = Field(default=None, alias="sequenceId")
    dto_id: str | None = Field(default=None, alias="dtoId")


class LinkEnvelope(BackendBaseModel):
    success: bool = True
    data: LinkRecord


class LinkListEnvelope(BackendBaseModel):
    success: bool = True
    data: list[LinkRecord] = Field(default_factory=list["LinkRecord"])
