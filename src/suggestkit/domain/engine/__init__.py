"""Suggestion application engine.

Layered flow for one batch:
1) index suggestions and apply the caller's accept/reject decisions
2) build the dependency/conflict graph
3) validate the accepted set and plan dependency waves
4) resolve temp references and dispatch each wave to the entity store
5) keep undo records until the batch retires
"""

from __future__ import annotations

from .apply import BatchApplier
from .batch import BatchContext, BatchOptions, BatchSubmission, CancelToken
from .engine import BatchSession, SuggestionEngine, batch_result_code, prepare_batch
from .graph import SuggestionGraph, build_graph
from .progress import BatchEvent, BatchSummaryEvent, ProgressEvent, ProgressStage
from .resolve import IdentifierMapping, IdentifierResolver, IdentifierTable
from .results import AppliedItem, ApplyResult, FailedItem, RollbackResult
from .rollback import RollbackManager, RollbackStep, UndoRecord
from .schedule import Schedule, schedule_batch
from .store import SuggestionStore

__all__ = [
    "AppliedItem",
    "ApplyResult",
    "BatchApplier",
    "BatchContext",
    "BatchEvent",
    "BatchOptions",
    "BatchSession",
    "BatchSubmission",
    "BatchSummaryEvent",
    "CancelToken",
    "FailedItem",
    "IdentifierMapping",
    "IdentifierResolver",
    "IdentifierTable",
    "ProgressEvent",
    "ProgressStage",
    "RollbackManager",
    "RollbackResult",
    "RollbackStep",
    "Schedule",
    "SuggestionEngine",
    "SuggestionGraph",
    "SuggestionStore",
    "UndoRecord",
    "batch_result_code",
    "build_graph",
    "prepare_batch",
    "schedule_batch",
]
