"""Application orchestration entry points."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, Literal

from suggestkit.adapters.rest import RestEntityStore
from suggestkit.adapters.sqlalchemy import SqlAlchemyEntityStore
from suggestkit.config import get_engine_config
from suggestkit.domain.engine import SuggestionEngine, prepare_batch

if TYPE_CHECKING:
    from suggestkit.config import EngineConfig
    from suggestkit.domain.engine import (
        BatchSession,
        BatchSubmission,
        CancelToken,
        Schedule,
    )
    from suggestkit.domain.engine.progress import ProgressListener
    from suggestkit.domain.ports import EntityStore

type StoreKind = Literal["rest", "sqlite"]

log = getLogger(__name__)


def build_entity_store(kind: StoreKind = "rest", *, database_uri: str | None = None) -> EntityStore:
    """Create the configured backing store adapter."""

    if kind == "rest":
        return RestEntityStore()
    if kind == "sqlite":
        return SqlAlchemyEntityStore.from_uri(database_uri)
    raise ValueError(f"Unsupported store: {kind}")


def build_engine(
    store: EntityStore,
    *,
    config: EngineConfig | None = None,
    fan_out: int | None = None,
) -> SuggestionEngine:
    effective = config or get_engine_config()
    return SuggestionEngine(
        store,
        fan_out=fan_out or effective.fan_out,
        call_timeout=effective.call_timeout_seconds,
        rollback_window=effective.rollback_window_seconds,
    )


def validate_suggestion_batch(submission: BatchSubmission) -> Schedule:
    """Check a batch and return its wave plan without touching any store."""

    schedule = prepare_batch(submission).schedule
    log.info(
        "Batch %s is valid: %s waves, %s blocked",
        submission.batch_id,
        len(schedule.waves),
        len(schedule.blocked),
    )
    return schedule


def apply_suggestion_batch(
    submission: BatchSubmission,
    *,
    store: EntityStore | None = None,
    store_kind: StoreKind = "rest",
    engine_config: EngineConfig | None = None,
    fan_out: int | None = None,
    listener: ProgressListener | None = None,
    cancel_token: CancelToken | None = None,
) -> BatchSession:
    """Apply the accepted suggestions of ``submission`` using the configured adapters."""

    effective_store = store or build_entity_store(store_kind)
    engine = build_engine(effective_store, config=engine_config, fan_out=fan_out)
    log.info(
        "Starting batch %s: %s suggestions, %s accepted, store=%s",
        submission.batch_id,
        len(submission.suggestions),
        len(submission.accepted_ids),
        type(effective_store).__name__,
    )
    return engine.apply(submission, listener=listener, cancel_token=cancel_token)
