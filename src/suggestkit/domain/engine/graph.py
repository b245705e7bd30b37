"""Dependency and conflict graph over suggestion ids.

Edges point from a suggestion to the suggestions it depends on. Three sources
feed them:
- declared ``dependencies`` naming another suggestion in the batch
- temp references (parent links included) to a batch suggestion's ``temp_id``

Dependencies naming ids outside the batch are assumed to be satisfied by
existing entities and do not become edges. Conflicts form a separate
symmetric edge set; one-sided declarations are kept but reported as warnings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from suggestkit.domain.model import Suggestion

log = getLogger(__name__)


@dataclass(slots=True)
class SuggestionGraph:
    """Adjacency view of one batch; immutable after ``build_graph`` returns."""

    nodes: tuple[str, ...] = ()
    dependencies: dict[str, tuple[str, ...]] = field(default_factory=dict["str", "tuple[str, ...]"])
    dependents: dict[str, tuple[str, ...]] = field(default_factory=dict["str", "tuple[str, ...]"])
    conflicts: dict[str, frozenset[str]] = field(default_factory=dict["str", "frozenset[str]"])
    warnings: tuple[str, ...] = ()

    def dependencies_of(self, suggestion_id: str) -> tuple[str, ...]:
        return self.dependencies.get(suggestion_id, ())

    def dependents_of(self, suggestion_id: str) -> tuple[str, ...]:
        return self.dependents.get(suggestion_id, ())

    def conflicts_of(self, suggestion_id: str) -> frozenset[str]:
        return self.conflicts.get(suggestion_id, frozenset())

    def transitive_dependents(self, suggestion_id: str) -> tuple[str, ...]:
        """Every suggestion that depends on ``suggestion_id``, directly or not."""

        seen: dict[str, None] = {}
        stack = list(self.dependents_of(suggestion_id))
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen[current] = None
            stack.extend(self.dependents_of(current))
        return tuple(seen)


def build_graph(suggestions: Iterable[Suggestion]) -> SuggestionGraph:
    """Build the dependency/conflict graph in O(n + e)."""

    ordered = tuple(suggestions)
    known = {suggestion.id for suggestion in ordered}
    owner_by_temp_id = {s.temp_id: s.id for s in ordered if s.temp_id is not None}

    dependencies: dict[str, tuple[str, ...]] = {}
    dependents: dict[str, list[str]] = {s.id: [] for s in ordered}
    for suggestion in ordered:
        edges: dict[str, None] = {}
        for dependency in suggestion.dependencies:
            if dependency in known and dependency != suggestion.id:
                edges[dependency] = None
        for reference in suggestion.references():
            if not reference.is_temp:
                continue
            owner = owner_by_temp_id.get(reference.value)
            if owner is not None and owner != suggestion.id:
                edges[owner] = None
        dependencies[suggestion.id] = tuple(edges)
        for dependency in edges:
            dependents[dependency].append(suggestion.id)

    declared = {s.id: {c for c in s.conflicts if c in known and c != s.id} for s in ordered}
    conflicts: dict[str, set[str]] = {s.id: set() for s in ordered}
    warnings: list[str] = []
    for suggestion in ordered:
        for other in sorted(declared[suggestion.id]):
            conflicts[suggestion.id].add(other)
            conflicts[other].add(suggestion.id)
            if suggestion.id not in declared[other]:
                message = (
                    f"conflict between {suggestion.id} and {other} is declared on "
                    f"{suggestion.id} only; treating it as mutual"
                )
                log.warning(message)
                warnings.append(message)

    return SuggestionGraph(
        nodes=tuple(s.id for s in ordered),
        dependencies=dependencies,
        dependents={key: tuple(value) for key, value in dependents.items()},
        conflicts={key: frozenset(value) for key, value in conflicts.items()},
        warnings=tuple(warnings),
    )
