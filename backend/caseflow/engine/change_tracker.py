"""
Field-level diff between a persisted case and a proposed partial update.

Date and datetime values are compared by calendar day only: a stored
``2026-03-14 09:30:00`` and an incoming ``"2026-03-14"`` are the same value,
so a same-day edit of a date field is not a change.
"""
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

EXCLUDED_FIELDS = frozenset({"id"})


@dataclass(frozen=True)
class FieldChange:
    from_: Any
    to: Any


def filter_update(proposed: Mapping[str, Any]) -> dict[str, Any]:
    """Drop null, empty-string and excluded entries from a proposed update."""
    return {
        name: value
        for name, value in proposed.items()
        if name not in EXCLUDED_FIELDS and value is not None and not _is_empty_string(value)
    }


def _is_empty_string(value: Any) -> bool:
    return isinstance(value, str) and value == ""


def _current(existing: Any, name: str) -> Any:
    if isinstance(existing, Mapping):
        return existing.get(name)
    return getattr(existing, name, None)


def _as_day(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
        except ValueError:
            return None
    return None


def _is_temporal(value: Any) -> bool:
    return isinstance(value, (date, datetime))


def differs(old: Any, new: Any) -> bool:
    if _is_temporal(old) or _is_temporal(new):
        old_day, new_day = _as_day(old), _as_day(new)
        if old_day is not None and new_day is not None:
            return old_day != new_day
    return old != new


def diff(existing: Any, proposed: Mapping[str, Any]) -> dict[str, FieldChange]:
    """
    Map of field → FieldChange for every filtered proposed field whose value
    differs from ``existing`` (a mapping or an ORM row).
    """
    changes: dict[str, FieldChange] = {}
    for name, new_value in filter_update(proposed).items():
        old_value = _current(existing, name)
        if differs(old_value, new_value):
            changes[name] = FieldChange(from_=old_value, to=new_value)
    return changes
