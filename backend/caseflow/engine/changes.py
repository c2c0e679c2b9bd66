"""
Classification of a case diff into typed change variants.

Status, assignment, priority, category, escalation and resolution changes each
get their own variant. Everything else is folded into at most one
GenericUpdate. The history recorder and the notification dispatcher both
consume ClassifiedChanges, each with one handler per variant.
"""
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Union

from caseflow.engine.change_tracker import FieldChange


@dataclass(frozen=True)
class UpdateMetadata:
    """Free-text context supplied by the caller of an update."""

    comments: str | None = None
    status_reason: str | None = None
    assignment_comments: str | None = None
    resolution_summary: str | None = None
    escalation_reason: str | None = None


@dataclass(frozen=True)
class StatusChanged:
    old: int | None
    new: int


@dataclass(frozen=True)
class AssignmentChanged:
    old: int | None
    new: int


@dataclass(frozen=True)
class PriorityChanged:
    old: int | None
    new: int


@dataclass(frozen=True)
class CategoryChanged:
    old: int | None
    new: int


@dataclass(frozen=True)
class Escalated:
    old_level: int
    new_level: int


@dataclass(frozen=True)
class Resolved:
    resolved_at: datetime


@dataclass(frozen=True)
class GenericUpdate:
    changes: dict[str, FieldChange]

    @property
    def fields(self) -> list[str]:
        return list(self.changes)


SignificantChange = Union[
    StatusChanged,
    AssignmentChanged,
    PriorityChanged,
    CategoryChanged,
    Escalated,
    Resolved,
]
Change = Union[SignificantChange, GenericUpdate]


@dataclass(frozen=True)
class ClassifiedChanges:
    significant: tuple[SignificantChange, ...] = ()
    generic: GenericUpdate | None = None

    def __iter__(self) -> Iterator[Change]:
        yield from self.significant
        if self.generic is not None:
            yield self.generic

    def __len__(self) -> int:
        return len(self.significant) + (1 if self.generic is not None else 0)

    def first(self, kind: type) -> Any | None:
        return next((c for c in self.significant if isinstance(c, kind)), None)


# ---------------------------------------------------------------------------
# Per-field classifiers. Returning None sends the change to the generic bucket.
# ---------------------------------------------------------------------------

def _status(change: FieldChange) -> StatusChanged:
    return StatusChanged(old=change.from_, new=change.to)


def _assignment(change: FieldChange) -> AssignmentChanged:
    return AssignmentChanged(old=change.from_, new=change.to)


def _priority(change: FieldChange) -> PriorityChanged:
    return PriorityChanged(old=change.from_, new=change.to)


def _category(change: FieldChange) -> CategoryChanged:
    return CategoryChanged(old=change.from_, new=change.to)


def _escalation(change: FieldChange) -> Escalated | None:
    old_level = change.from_ or 0
    if change.to > old_level:
        return Escalated(old_level=old_level, new_level=change.to)
    return None


def _resolution(change: FieldChange) -> Resolved | None:
    if change.from_ is None and change.to is not None:
        return Resolved(resolved_at=change.to)
    return None


_CLASSIFIERS: dict[str, Callable[[FieldChange], SignificantChange | None]] = {
    "status_id": _status,
    "assigned_to": _assignment,
    "priority_id": _priority,
    "category_id": _category,
    "escalation_level": _escalation,
    "resolved_date": _resolution,
}


def classify(changes: dict[str, FieldChange]) -> ClassifiedChanges:
    significant: list[SignificantChange] = []
    remaining: dict[str, FieldChange] = {}
    for name, change in changes.items():
        classifier = _CLASSIFIERS.get(name)
        variant = classifier(change) if classifier is not None else None
        if variant is None:
            remaining[name] = change
        else:
            significant.append(variant)
    return ClassifiedChanges(
        significant=tuple(significant),
        generic=GenericUpdate(changes=remaining) if remaining else None,
    )
