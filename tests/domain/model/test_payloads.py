from __future__ import annotations

import pytest

from suggestkit.domain.model import (
    ApiPayload,
    ConnectPayload,
    DtoKind,
    DtoPayload,
    HttpMethod,
    ModulePayload,
    Reference,
    RelationKind,
    SequencePayload,
    UnresolvedReferenceError,
    UseCasePayload,
)


def test_to_fields_drops_empty_values_and_serializes_enums() -> None:
    payload = ApiPayload(
        title="List users",
        method=HttpMethod.GET,
        endpoint="/users",
        sequences=(Reference.real("seq-1"), Reference.real("seq-2")),
    )

    assert payload.to_fields() == {
        "title": "List users",
        "method": "GET",
        "endpoint": "/users",
        "sequences": ["seq-1", "seq-2"],
    }


def test_to_fields_refuses_temp_references() -> None:
    payload = UseCasePayload(title="Login", module=Reference.temp("m1"))

    with pytest.raises(UnresolvedReferenceError) as excinfo:
        payload.to_fields()

    assert excinfo.value.reference == Reference.temp("m1")


def test_references_cover_scalar_and_tuple_fields() -> None:
    payload = DtoPayload(
        title="UserDto",
        kind=DtoKind.RESPONSE,
        apis=(Reference.temp("a1"), Reference.real("api-9")),
    )

    assert payload.references() == (Reference.temp("a1"), Reference.real("api-9"))
    assert ModulePayload(title="Root").references() == ()


def test_map_references_returns_rewritten_copy() -> None:
    original = ConnectPayload(
        source=Reference.temp("m1"),
        target=Reference.real("m2"),
        kind=RelationKind.PARENT_CHILD,
    )

    rewritten = original.map_references(
        lambda ref: Reference.real(f"real-{ref.value}") if ref.is_temp else ref
    )

    assert rewritten.source == Reference.real("real-m1")
    assert rewritten.target == Reference.real("m2")
    assert original.source == Reference.temp("m1")


def test_map_references_without_references_is_identity() -> None:
    payload = ModulePayload(title="Root")

    assert payload.map_references(lambda ref: ref) is payload


def test_missing_create_fields_per_entity_type() -> None:
    assert ModulePayload().missing_create_fields() == ("title",)
    assert UseCasePayload(title="Login").missing_create_fields() == ("module",)
    assert SequencePayload(title="Flow", use_case=Reference.real("uc-1")).missing_create_fields() == (
        "mermaid_src",
    )
    assert ApiPayload(title="x", method=HttpMethod.POST, endpoint="/x").missing_create_fields() == ()
    assert DtoPayload(title="x").missing_create_fields() == ("kind",)
