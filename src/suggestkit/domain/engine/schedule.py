"""Validation and wave scheduling for accepted suggestions.

Responsibilities of this stage:
- reject structurally invalid batches (``STRUCTURAL_ERROR``)
- reject dependency cycles among accepted suggestions (``DEPENDENCY_ERROR``)
- reject mutually conflicting accepted suggestions (``CONFLICT_DETECTED``)
- order the accepted set into dependency waves

All checks run before any external call. Ordering is deterministic: ready
suggestions are sorted by ascending priority, then by submission position.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING

from suggestkit.domain.errors import ConflictDetectedError, DependencyCycleError, StructuralError
from suggestkit.domain.model import (
    PAYLOAD_TYPE_BY_ENTITY_TYPE,
    ConnectPayload,
    SuggestionAction,
)

if TYPE_CHECKING:
    from collections.abc import Collection

    from suggestkit.domain.model import Suggestion

    from .graph import SuggestionGraph
    from .store import SuggestionStore


@dataclass(frozen=True, slots=True)
class Schedule:
    """Apply order for one batch.

    ``blocked`` holds accepted suggestions whose prerequisites can never be met
    because they depend, directly or not, on a suggestion that was not accepted.
    They are not part of any wave.
    """

    waves: tuple[tuple[str, ...], ...]
    blocked: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def order(self) -> tuple[str, ...]:
        return tuple(suggestion_id for wave in self.waves for suggestion_id in wave)

    def position(self) -> dict[str, int]:
        positions = {suggestion_id: index for index, suggestion_id in enumerate(self.order)}
        offset = len(positions)
        for index, suggestion_id in enumerate(self.blocked):
            positions[suggestion_id] = offset + index
        return positions


def schedule_batch(store: SuggestionStore, graph: SuggestionGraph) -> Schedule:
    """Validate the accepted set and return its wave schedule."""

    accepted = store.accepted_ids()
    validate_structure(store, accepted)
    detect_cycle(store, graph, accepted)
    detect_conflicts(store, graph, accepted)

    blocked = _blocked_suggestions(graph, accepted)
    schedulable = accepted - blocked
    waves = plan_waves(store, graph, schedulable)
    return Schedule(
        waves=waves,
        blocked=tuple(sorted(blocked, key=store.position)),
        warnings=graph.warnings,
    )


def validate_structure(store: SuggestionStore, accepted: Collection[str]) -> None:
    problems: list[str] = []
    for suggestion_id in sorted(accepted, key=store.position):
        problems.extend(_structural_problems(store, store.get(suggestion_id)))
    if problems:
        raise StructuralError(problems)


def _structural_problems(store: SuggestionStore, suggestion: Suggestion) -> list[str]:
    problems: list[str] = []
    sid = suggestion.id
    payload = suggestion.payload
    action = suggestion.action

    if action is SuggestionAction.CONNECT:
        if not isinstance(payload, ConnectPayload):
            problems.append(f"{sid}: connect requires a connection payload")
    else:
        expected = PAYLOAD_TYPE_BY_ENTITY_TYPE.get(suggestion.entity_type)
        if expected is None:
            problems.append(f"{sid}: unsupported entity type {suggestion.entity_type}")
        elif payload is not None and not isinstance(payload, expected):
            problems.append(
                f"{sid}: payload {type(payload).__name__} does not match entity type "
                f"{suggestion.entity_type}"
            )
        elif payload is None and action is not SuggestionAction.DELETE:
            problems.append(f"{sid}: {action} requires a payload")

    if action is SuggestionAction.CREATE:
        if suggestion.target is not None:
            problems.append(f"{sid}: create must not carry a target")
        if payload is not None:
            missing = payload.missing_create_fields()
            if missing:
                problems.append(f"{sid}: create is missing {', '.join(missing)}")
    elif action in (SuggestionAction.UPDATE, SuggestionAction.DELETE):
        if suggestion.target is None:
            problems.append(f"{sid}: {action} requires a target")
        elif suggestion.target.is_temp:
            owner = store.owner_of(suggestion.target.value)
            if owner is not None and owner.entity_type is not suggestion.entity_type:
                problems.append(
                    f"{sid}: target {suggestion.target.value} is a {owner.entity_type}, "
                    f"not a {suggestion.entity_type}"
                )

    for reference in suggestion.references():
        if not reference.is_temp:
            continue
        owner = store.owner_of(reference.value)
        if owner is None:
            problems.append(f"{sid}: temp id {reference.value} is not declared in the batch")
        elif owner.id == sid:
            problems.append(f"{sid}: references its own temp id {reference.value}")
    return problems


class _Mark(IntEnum):
    WHITE = 0
    GREY = 1
    BLACK = 2


def detect_cycle(
    store: SuggestionStore, graph: SuggestionGraph, accepted: Collection[str]
) -> None:
    """Depth-first search over accepted dependency edges; raise on the first back-edge."""

    marks = dict.fromkeys(accepted, _Mark.WHITE)
    for root in sorted(accepted, key=store.position):
        if marks[root] is not _Mark.WHITE:
            continue
        path: list[str] = [root]
        iterators = [iter(_accepted_edges(graph, root, accepted))]
        marks[root] = _Mark.GREY
        while iterators:
            child = next(iterators[-1], None)
            if child is None:
                marks[path.pop()] = _Mark.BLACK
                iterators.pop()
                continue
            if marks[child] is _Mark.GREY:
                cycle = [*path[path.index(child) :], child]
                raise DependencyCycleError(cycle)
            if marks[child] is _Mark.WHITE:
                marks[child] = _Mark.GREY
                path.append(child)
                iterators.append(iter(_accepted_edges(graph, child, accepted)))


def _accepted_edges(
    graph: SuggestionGraph, suggestion_id: str, accepted: Collection[str]
) -> tuple[str, ...]:
    return tuple(dep for dep in graph.dependencies_of(suggestion_id) if dep in accepted)


def detect_conflicts(
    store: SuggestionStore, graph: SuggestionGraph, accepted: Collection[str]
) -> None:
    """Raise for the first pair of accepted suggestions that exclude each other."""

    for suggestion_id in sorted(accepted, key=store.position):
        rivals = sorted(graph.conflicts_of(suggestion_id) & set(accepted), key=store.position)
        if rivals:
            raise ConflictDetectedError(suggestion_id, rivals[0])


def _blocked_suggestions(graph: SuggestionGraph, accepted: frozenset[str]) -> frozenset[str]:
    blocked: set[str] = set()
    for suggestion_id in graph.nodes:
        if suggestion_id in accepted:
            continue
        for dependent in graph.transitive_dependents(suggestion_id):
            if dependent in accepted:
                blocked.add(dependent)
    return frozenset(blocked)


def plan_waves(
    store: SuggestionStore, graph: SuggestionGraph, schedulable: Collection[str]
) -> tuple[tuple[str, ...], ...]:
    """Kahn's algorithm, emitting each generation of ready suggestions as one wave."""

    def sort_key(suggestion_id: str) -> tuple[int, int]:
        return store.get(suggestion_id).priority, store.position(suggestion_id)

    remaining = {
        suggestion_id: sum(1 for dep in graph.dependencies_of(suggestion_id) if dep in schedulable)
        for suggestion_id in schedulable
    }
    ready = sorted((sid for sid, degree in remaining.items() if degree == 0), key=sort_key)
    waves: list[tuple[str, ...]] = []
    while ready:
        wave = tuple(ready)
        waves.append(wave)
        next_ready: list[str] = []
        for suggestion_id in wave:
            del remaining[suggestion_id]
            for dependent in graph.dependents_of(suggestion_id):
                if dependent not in remaining:
                    continue
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    next_ready.append(dependent)
        ready = sorted(next_ready, key=sort_key)

    if remaining:
        # detect_cycle runs first, so leftovers mean the graph changed underneath us
        raise DependencyCycleError(sorted(remaining, key=store.position))
    return tuple(waves)
