"""Suggestion store: the batch's unit of truth for suggestions and statuses."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from suggestkit.domain.errors import StructuralError
from suggestkit.domain.model import Suggestion, SuggestionStatus

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator


@dataclass(slots=True)
class SuggestionStore:
    """Suggestions in submission order, indexed by id and by temp id."""

    _by_id: dict[str, Suggestion] = field(default_factory=dict["str", "Suggestion"], repr=False)
    _owner_by_temp_id: dict[str, str] = field(default_factory=dict["str", "str"], repr=False)
    _order: dict[str, int] = field(default_factory=dict["str", "int"], repr=False)

    @classmethod
    def from_suggestions(cls, suggestions: Iterable[Suggestion]) -> SuggestionStore:
        store = cls()
        problems: list[str] = []
        for suggestion in suggestions:
            if suggestion.id in store._by_id:
                problems.append(f"duplicate suggestion id {suggestion.id}")
                continue
            if suggestion.temp_id is not None:
                owner = store._owner_by_temp_id.get(suggestion.temp_id)
                if owner is not None:
                    problems.append(
                        f"temp id {suggestion.temp_id} declared by both {owner} and {suggestion.id}"
                    )
                    continue
                store._owner_by_temp_id[suggestion.temp_id] = suggestion.id
            store._order[suggestion.id] = len(store._by_id)
            store._by_id[suggestion.id] = suggestion
        if problems:
            raise StructuralError(problems)
        return store

    def __len__(self) -> int:
        return len(self._by_id)

    def __iter__(self) -> Iterator[Suggestion]:
        return iter(self._by_id.values())

    def __contains__(self, suggestion_id: object) -> bool:
        return suggestion_id in self._by_id

    def get(self, suggestion_id: str) -> Suggestion:
        return self._by_id[suggestion_id]

    def find(self, suggestion_id: str) -> Suggestion | None:
        return self._by_id.get(suggestion_id)

    def owner_of(self, temp_id: str) -> Suggestion | None:
        owner_id = self._owner_by_temp_id.get(temp_id)
        return None if owner_id is None else self._by_id[owner_id]

    def position(self, suggestion_id: str) -> int:
        """Submission index, used as the final ordering tie-break."""

        return self._order[suggestion_id]

    def mark_decisions(self, *, accepted: Iterable[str], rejected: Iterable[str]) -> None:
        """Apply the caller's accept/reject choice; unknown or overlapping ids are structural."""

        accepted_ids = list(dict.fromkeys(accepted))
        rejected_ids = list(dict.fromkeys(rejected))
        problems = [
            f"unknown suggestion id {suggestion_id}"
            for suggestion_id in (*accepted_ids, *rejected_ids)
            if suggestion_id not in self._by_id
        ]
        problems.extend(
            f"suggestion {suggestion_id} is both accepted and rejected"
            for suggestion_id in sorted(set(accepted_ids) & set(rejected_ids))
        )
        problems.extend(
            f"suggestion {suggestion_id} is already {self._by_id[suggestion_id].status}"
            for suggestion_id in (*accepted_ids, *rejected_ids)
            if suggestion_id in self._by_id
            and self._by_id[suggestion_id].status is not SuggestionStatus.PENDING
        )
        if problems:
            raise StructuralError(problems)

        for suggestion_id in accepted_ids:
            self._by_id[suggestion_id].transition(SuggestionStatus.ACCEPTED)
        for suggestion_id in rejected_ids:
            self._by_id[suggestion_id].transition(SuggestionStatus.REJECTED)

    def with_status(self, status: SuggestionStatus) -> tuple[Suggestion, ...]:
        return tuple(s for s in self._by_id.values() if s.status is status)

    def accepted_ids(self) -> frozenset[str]:
        return frozenset(s.id for s in self.with_status(SuggestionStatus.ACCEPTED))

    def all_terminal(self, suggestion_ids: Iterable[str]) -> bool:
        return all(self._by_id[suggestion_id].is_terminal for suggestion_id in suggestion_ids)
