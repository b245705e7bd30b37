from __future__ import annotations

import asyncio
from dataclasses import replace

import pytest

from suggestkit.domain.engine import (
    BatchApplier,
    BatchEvent,
    BatchSummaryEvent,
    CancelToken,
    ProgressEvent,
    ProgressStage,
    SuggestionEngine,
    prepare_batch,
)
from suggestkit.domain.errors import (
    BackingStoreError,
    ConflictDetectedError,
    ErrorCode,
    StructuralError,
)
from suggestkit.domain.model import (
    EntityType,
    ErrorPolicy,
    ModulePayload,
    Reference,
    RelationKind,
    Suggestion,
    SuggestionStatus,
)
from tests.helpers.stores import RecordingStore
from tests.helpers.suggestions import (
    connect,
    create_module,
    create_use_case,
    delete_entity,
    make_submission,
    update_entity,
)


def _module_and_use_case() -> tuple[Suggestion, Suggestion]:
    return (
        create_module("A", temp_id="m1", title="Billing"),
        create_use_case("B", module=Reference.temp("m1"), title="Pay invoice"),
    )


def test_created_module_id_flows_into_dependent_use_case(recording_store: RecordingStore) -> None:
    engine = SuggestionEngine(recording_store)

    session = engine.apply(make_submission(*_module_and_use_case()))

    result = session.result
    assert result is not None
    assert result.code is None
    assert result.succeeded
    assert [item.suggestion_id for item in result.applied] == ["A", "B"]
    module_id = result.applied[0].real_id
    use_case_type, use_case_fields = recording_store.entities[result.applied[1].real_id]
    assert use_case_type is EntityType.USE_CASE
    assert use_case_fields["module"] == module_id
    assert [(m.temp_id, m.real_id) for m in result.mappings] == [("m1", module_id)]
    assert result.waves == (("A",), ("B",))
    assert result.rollback_available
    assert recording_store.mutating_calls() == [("create", "Billing"), ("create", "Pay invoice")]


def test_continue_policy_skips_dependents_of_failed_suggestion(
    recording_store: RecordingStore,
) -> None:
    recording_store.failures[("create", "Billing")] = BackingStoreError("rejected by backend")
    engine = SuggestionEngine(recording_store)

    session = engine.apply(
        make_submission(*_module_and_use_case(), create_module("C", title="Reporting"))
    )

    result = session.result
    assert result is not None
    assert result.code is ErrorCode.PARTIAL_SUCCESS
    assert [item.suggestion_id for item in result.applied] == ["C"]
    assert [(item.suggestion_id, item.can_retry) for item in result.failed] == [("A", False)]
    assert result.failed[0].reason == "rejected by backend"
    assert result.skipped == ("B",)
    assert ("create", "Pay invoice") not in recording_store.calls
    assert session.context.suggestions.get("B").status is SuggestionStatus.SKIPPED


def test_all_failed_is_apply_failed(recording_store: RecordingStore) -> None:
    recording_store.failures[("create", "Billing")] = BackingStoreError("down", transient=True)
    engine = SuggestionEngine(recording_store)

    session = engine.apply(make_submission(*_module_and_use_case()))

    assert session.result is not None
    assert session.result.code is ErrorCode.APPLY_FAILED
    assert session.result.failed[0].can_retry is True
    assert session.result.skipped == ("B",)
    assert not session.result.rollback_available


def test_stop_on_error_halts_remaining_work(recording_store: RecordingStore) -> None:
    recording_store.failures[("create", "Billing")] = BackingStoreError("rejected")
    engine = SuggestionEngine(recording_store, fan_out=1)

    session = engine.apply(
        make_submission(
            *_module_and_use_case(),
            create_module("C", title="Reporting"),
            error_policy=ErrorPolicy.STOP_ON_ERROR,
        )
    )

    result = session.result
    assert result is not None
    assert result.code is ErrorCode.APPLY_FAILED
    assert [item.suggestion_id for item in result.failed] == ["A"]
    assert result.skipped == ("C", "B")
    assert recording_store.mutating_calls() == [("create", "Billing")]


def test_stop_on_error_after_partial_progress_is_apply_failed(
    recording_store: RecordingStore,
) -> None:
    recording_store.failures[("create", "Pay invoice")] = BackingStoreError("rejected")
    engine = SuggestionEngine(recording_store)

    session = engine.apply(
        make_submission(
            *_module_and_use_case(),
            create_module("D", title="Later", dependencies=["B"]),
            error_policy=ErrorPolicy.STOP_ON_ERROR,
        )
    )

    result = session.result
    assert result is not None
    assert result.code is ErrorCode.APPLY_FAILED
    assert [item.suggestion_id for item in result.applied] == ["A"]
    assert result.skipped == ("D",)
    assert result.rollback_available


def test_call_timeout_is_retryable_failure(recording_store: RecordingStore) -> None:
    recording_store.delays[("create", "Billing")] = 1.0
    engine = SuggestionEngine(recording_store, call_timeout=0.01)

    session = engine.apply(make_submission(create_module("A", title="Billing")))

    assert session.result is not None
    failed = session.result.failed
    assert len(failed) == 1
    assert failed[0].can_retry is True
    assert failed[0].reason == "call timed out after 0.01s"
    assert recording_store.entity_count() == 0


def test_unexpected_exception_is_recorded_not_raised(recording_store: RecordingStore) -> None:
    recording_store.failures[("create", "Billing")] = RuntimeError("kaboom")
    engine = SuggestionEngine(recording_store)

    session = engine.apply(make_submission(create_module("A", title="Billing")))

    assert session.result is not None
    assert session.result.failed[0].reason == "kaboom"
    assert session.result.failed[0].can_retry is False


def test_dry_run_calls_nothing_and_is_repeatable(recording_store: RecordingStore) -> None:
    engine = SuggestionEngine(recording_store)
    submission = make_submission(*_module_and_use_case(), dry_run=True)

    first = engine.apply(submission)
    second = engine.apply(submission)

    assert recording_store.calls == []
    assert first.result is not None
    assert second.result is not None
    assert first.result.to_dict() == second.result.to_dict()
    assert first.result.dry_run
    assert [item.real_id for item in first.result.applied] == ["dry-run:m1", "dry-run:B"]
    assert not first.result.rollback_available


def test_dry_run_skips_blocked_suggestions(
    recording_store: RecordingStore,
) -> None:
    engine = SuggestionEngine(recording_store)

    session = engine.apply(make_submission(*_module_and_use_case(), accepted=["B"], dry_run=True))

    assert session.result is not None
    assert session.result.applied == ()
    assert session.result.skipped == ("B",)
    assert session.result.code is ErrorCode.APPLY_FAILED


def test_update_delete_and_connect_dispatch(recording_store: RecordingStore) -> None:
    recording_store.seed(EntityType.MODULE, "module-a", title="Old")
    recording_store.seed(EntityType.MODULE, "module-b", title="Other")
    recording_store.seed(EntityType.MODULE, "module-c", title="Doomed")
    engine = SuggestionEngine(recording_store)

    session = engine.apply(
        make_submission(
            update_entity("U", Reference.real("module-a"), ModulePayload(title="New")),
            delete_entity("D", EntityType.MODULE, Reference.real("module-c")),
            connect("C", Reference.real("module-a"), Reference.real("module-b")),
        )
    )

    assert session.result is not None
    assert session.result.succeeded
    assert recording_store.entities["module-a"][1]["title"] == "New"
    assert "module-c" not in recording_store.entities
    assert recording_store.links == [("module-a", "module-b", RelationKind.PARENT_CHILD)]
    applied = {item.suggestion_id: item.real_id for item in session.result.applied}
    assert applied == {
        "U": "module-a",
        "D": "module-c",
        "C": "module-a:parent-child:module-b",
    }
    priors = {record.suggestion_id: record.prior for record in session.context.undo.records}
    assert priors["U"] == {"title": "Old"}
    assert priors["D"] == {"title": "Doomed"}


def test_fan_out_bounds_concurrent_calls(recording_store: RecordingStore) -> None:
    recording_store.default_delay = 0.01
    engine = SuggestionEngine(recording_store, fan_out=2)

    session = engine.apply(make_submission(*(create_module(f"S{i}") for i in range(6))))

    assert session.result is not None
    assert len(session.result.applied) == 6
    assert recording_store.max_in_flight == 2


def test_fan_out_must_be_positive(recording_store: RecordingStore) -> None:
    engine = SuggestionEngine(recording_store, fan_out=0)

    with pytest.raises(ValueError, match="fan_out"):
        engine.apply(make_submission(create_module("A")))


def test_cancel_before_start_skips_everything(recording_store: RecordingStore) -> None:
    token = CancelToken()
    token.cancel()
    engine = SuggestionEngine(recording_store)

    session = engine.apply(make_submission(*_module_and_use_case()), cancel_token=token)

    assert session.result is not None
    assert session.result.cancelled
    assert session.result.skipped == ("A", "B")
    assert recording_store.calls == []


def test_cancel_takes_effect_at_wave_boundary(recording_store: RecordingStore) -> None:
    token = CancelToken()
    engine = SuggestionEngine(recording_store)

    def cancel_after_first_apply(event: BatchEvent) -> None:
        if isinstance(event, ProgressEvent) and event.stage is ProgressStage.APPLIED:
            token.cancel()

    session = engine.apply(
        make_submission(*_module_and_use_case()),
        listener=cancel_after_first_apply,
        cancel_token=token,
    )

    assert session.result is not None
    assert [item.suggestion_id for item in session.result.applied] == ["A"]
    assert session.result.skipped == ("B",)
    assert session.result.cancelled
    assert session.result.code is ErrorCode.PARTIAL_SUCCESS


def test_progress_events_follow_transitions(recording_store: RecordingStore) -> None:
    events: list[BatchEvent] = []
    engine = SuggestionEngine(recording_store)

    engine.apply(
        make_submission(*_module_and_use_case(), create_module("C"), accepted=["B", "C"]),
        listener=events.append,
    )

    progress = [
        (event.suggestion_id, event.stage) for event in events if isinstance(event, ProgressEvent)
    ]
    assert progress == [
        ("B", ProgressStage.SKIPPED),
        ("C", ProgressStage.APPLYING),
        ("C", ProgressStage.APPLIED),
    ]
    summaries = [event for event in events if isinstance(event, BatchSummaryEvent)]
    assert summaries == [events[-1]]
    assert summaries[0].applied == 1
    assert summaries[0].skipped == 1
    assert summaries[0].code is ErrorCode.PARTIAL_SUCCESS


def test_failing_listener_does_not_break_batch(recording_store: RecordingStore) -> None:
    def broken_listener(event: BatchEvent) -> None:
        raise RuntimeError("listener bug")

    engine = SuggestionEngine(recording_store)

    session = engine.apply(make_submission(create_module("A")), listener=broken_listener)

    assert session.result is not None
    assert session.result.succeeded
    assert session.context.progress.finished


def test_conflicting_batch_makes_no_calls(recording_store: RecordingStore) -> None:
    engine = SuggestionEngine(recording_store)

    with pytest.raises(ConflictDetectedError):
        engine.apply(
            make_submission(create_module("A", conflicts=["B"]), create_module("B"))
        )

    assert recording_store.calls == []


def test_structurally_invalid_batch_makes_no_calls(recording_store: RecordingStore) -> None:
    engine = SuggestionEngine(recording_store)

    with pytest.raises(StructuralError):
        engine.apply(make_submission(create_use_case("B", module=Reference.temp("m9"))))

    assert recording_store.calls == []


def test_out_of_order_dispatch_fails_after_applying_event(
    recording_store: RecordingStore,
) -> None:
    context = prepare_batch(make_submission(*_module_and_use_case()))
    # the use case runs before the module that mints its temp id
    context.schedule = replace(context.schedule, waves=(("B",), ("A",)))

    asyncio.run(BatchApplier(recording_store).run(context))

    stages = [
        event.stage
        for event in context.progress
        if isinstance(event, ProgressEvent) and event.suggestion_id == "B"
    ]
    assert stages == [ProgressStage.APPLYING, ProgressStage.FAILED]
    assert context.failed[0].reason.startswith("INTERNAL_ORDER_ERROR: ")
    assert context.failed[0].can_retry is False
    assert ("create", "Pay invoice") not in recording_store.calls
    assert [item.suggestion_id for item in context.applied] == ["A"]
