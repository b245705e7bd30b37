from __future__ import annotations

import pytest

from suggestkit.domain.engine import IdentifierResolver, IdentifierTable
from suggestkit.domain.errors import ErrorCode, InternalOrderError
from suggestkit.domain.model import EntityType, ModulePayload, Reference, UseCasePayload
from tests.helpers.suggestions import create_module, create_use_case, update_entity


def test_resolve_rewrites_payload_and_target() -> None:
    table = IdentifierTable()
    table.record("m1", "module-42", EntityType.MODULE)
    resolver = IdentifierResolver(table)
    suggestion = update_entity(
        "B", Reference.temp("m1"), ModulePayload(title="Renamed", parent=Reference.temp("m1"))
    )

    view = resolver.resolve(suggestion)

    assert view.target_id == "module-42"
    assert isinstance(view.payload, ModulePayload)
    assert view.payload.parent == Reference.real("module-42")
    # the suggestion itself keeps its temp references
    assert suggestion.target == Reference.temp("m1")


def test_resolve_passes_real_references_through() -> None:
    resolver = IdentifierResolver(IdentifierTable())
    suggestion = create_use_case("B", module=Reference.real("module-7"))

    view = resolver.resolve(suggestion)

    assert isinstance(view.payload, UseCasePayload)
    assert view.payload.to_fields()["module"] == "module-7"


def test_unresolved_temp_reference_is_internal_order_error() -> None:
    resolver = IdentifierResolver(IdentifierTable())
    suggestion = create_use_case("B", module=Reference.temp("m1"))

    with pytest.raises(InternalOrderError) as excinfo:
        resolver.resolve(suggestion)

    assert excinfo.value.code is ErrorCode.INTERNAL_ORDER_ERROR
    assert excinfo.value.temp_id == "m1"


def test_record_only_tracks_creates_with_temp_ids() -> None:
    table = IdentifierTable()
    resolver = IdentifierResolver(table)

    resolver.record(create_module("A", temp_id="m1"), "module-1")
    resolver.record(create_module("B"), "module-2")
    resolver.record(
        update_entity("C", Reference.real("module-1"), ModulePayload(title="x")), "module-1"
    )

    assert [(m.temp_id, m.real_id) for m in table] == [("m1", "module-1")]


def test_table_refuses_remapping_a_temp_id() -> None:
    table = IdentifierTable()
    table.record("m1", "module-1", EntityType.MODULE)
    table.record("m1", "module-1", EntityType.MODULE)

    with pytest.raises(ValueError, match="already mapped"):
        table.record("m1", "module-2", EntityType.MODULE)

    assert len(table) == 1
