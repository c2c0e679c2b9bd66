"""
Append-only audit trail for cases.

Each classified change of an update becomes one ``case_history`` row:

  StatusChanged      → STATUS_CHANGE
  AssignmentChanged  → ASSIGNMENT_CHANGE
  PriorityChanged    → PRIORITY_CHANGE
  CategoryChanged    → CATEGORY_CHANGE
  Escalated          → ESCALATION
  Resolved           → RESOLUTION
  GenericUpdate      → UPDATE (one row, whatever the number of fields)

Rows for one update are written concurrently, each in its own session. A
failed row is logged and skipped; it never blocks the others and never
reaches the caller of the update.
"""
import asyncio
import json
import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from caseflow.core.db import utcnow
from caseflow.engine.changes import (
    AssignmentChanged,
    CategoryChanged,
    Change,
    ClassifiedChanges,
    Escalated,
    GenericUpdate,
    PriorityChanged,
    Resolved,
    StatusChanged,
    UpdateMetadata,
)
from caseflow.engine.query_builder import clamp_page
from caseflow.models.case import Case, CaseHistory
from caseflow.models.comment import CaseComment

logger = logging.getLogger(__name__)


class HistoryAction(str, Enum):
    CREATION = "CREATION"
    STATUS_CHANGE = "STATUS_CHANGE"
    ASSIGNMENT_CHANGE = "ASSIGNMENT_CHANGE"
    PRIORITY_CHANGE = "PRIORITY_CHANGE"
    CATEGORY_CHANGE = "CATEGORY_CHANGE"
    ESCALATION = "ESCALATION"
    RESOLUTION = "RESOLUTION"
    COMMENT_ADDED = "COMMENT_ADDED"
    UPDATE = "UPDATE"


@dataclass
class HistoryPage:
    items: list[CaseHistory]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0


@dataclass(frozen=True)
class HistorySummary:
    action_type: str
    count: int
    first_occurrence: datetime
    last_occurrence: datetime


# ---------------------------------------------------------------------------
# Value rendering
# ---------------------------------------------------------------------------

def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"{type(value).__name__} is not JSON serialisable")


def _text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _display(value: Any) -> str:
    rendered = _text(value)
    return "(empty)" if rendered is None else rendered


# ---------------------------------------------------------------------------
# One builder per change variant; each returns CaseHistory column values.
# ---------------------------------------------------------------------------

def _status_entry(change: StatusChanged, meta: UpdateMetadata) -> dict[str, Any]:
    return {
        "action_type": HistoryAction.STATUS_CHANGE.value,
        "field_name": "status_id",
        "old_value": _text(change.old),
        "new_value": _text(change.new),
        "change_description": f"Status changed from {_display(change.old)} to {change.new}",
        "comments": meta.comments,
        "status_id": change.new,
        "status_reason": meta.status_reason,
    }


def _assignment_entry(change: AssignmentChanged, meta: UpdateMetadata) -> dict[str, Any]:
    if change.old is None:
        description = f"Case assigned to user {change.new}"
    else:
        description = f"Case reassigned from user {change.old} to user {change.new}"
    return {
        "action_type": HistoryAction.ASSIGNMENT_CHANGE.value,
        "field_name": "assigned_to",
        "old_value": _text(change.old),
        "new_value": _text(change.new),
        "change_description": description,
        "comments": meta.comments,
        "assigned_to": change.new,
        "assignment_comments": meta.assignment_comments or meta.comments,
    }


def _priority_entry(change: PriorityChanged, meta: UpdateMetadata) -> dict[str, Any]:
    return {
        "action_type": HistoryAction.PRIORITY_CHANGE.value,
        "field_name": "priority_id",
        "old_value": _text(change.old),
        "new_value": _text(change.new),
        "change_description": f"Priority changed from {_display(change.old)} to {change.new}",
        "comments": meta.comments,
    }


def _category_entry(change: CategoryChanged, meta: UpdateMetadata) -> dict[str, Any]:
    return {
        "action_type": HistoryAction.CATEGORY_CHANGE.value,
        "field_name": "category_id",
        "old_value": _text(change.old),
        "new_value": _text(change.new),
        "change_description": f"Category changed from {_display(change.old)} to {change.new}",
        "comments": meta.comments,
    }


def _escalation_entry(change: Escalated, meta: UpdateMetadata) -> dict[str, Any]:
    return {
        "action_type": HistoryAction.ESCALATION.value,
        "field_name": "escalation_level",
        "old_value": _text(change.old_level),
        "new_value": _text(change.new_level),
        "change_description": f"Case escalated to level {change.new_level}",
        "comments": meta.escalation_reason or meta.comments,
    }


def _resolution_entry(change: Resolved, meta: UpdateMetadata) -> dict[str, Any]:
    return {
        "action_type": HistoryAction.RESOLUTION.value,
        "field_name": "resolved_date",
        "old_value": None,
        "new_value": _text(change.resolved_at),
        "change_description": "Case resolved",
        "comments": meta.resolution_summary or meta.comments,
    }


def _generic_entry(change: GenericUpdate, meta: UpdateMetadata) -> dict[str, Any]:
    old_values = {name: c.from_ for name, c in change.changes.items()}
    new_values = {name: c.to for name, c in change.changes.items()}
    details = "; ".join(
        f"{name}: {_display(c.from_)} → {_display(c.to)}" for name, c in change.changes.items()
    )
    return {
        "action_type": HistoryAction.UPDATE.value,
        "field_name": ", ".join(change.fields),
        "old_value": json.dumps(old_values, default=_json_default, ensure_ascii=False),
        "new_value": json.dumps(new_values, default=_json_default, ensure_ascii=False),
        "change_description": f"Updated fields: {details}",
        "comments": meta.comments or f"{len(change.changes)} field(s) updated",
    }


_BUILDERS: dict[type, Callable[[Any, UpdateMetadata], dict[str, Any]]] = {
    StatusChanged: _status_entry,
    AssignmentChanged: _assignment_entry,
    PriorityChanged: _priority_entry,
    CategoryChanged: _category_entry,
    Escalated: _escalation_entry,
    Resolved: _resolution_entry,
    GenericUpdate: _generic_entry,
}


class HistoryRecorder:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def build_entry(
        self, case_id: int, change: Change, actor_id: int, metadata: UpdateMetadata
    ) -> CaseHistory:
        values = _BUILDERS[type(change)](change, metadata)
        if isinstance(change, AssignmentChanged):
            values["assigned_by"] = actor_id
        return CaseHistory(
            case_id=case_id,
            created_by=actor_id,
            created_at=self._clock(),
            is_active=True,
            **values,
        )

    async def _persist(self, entry: CaseHistory) -> CaseHistory:
        async with self._session_factory() as session:
            session.add(entry)
            await session.commit()
        return entry

    # ------------------------------------------------------------------ #
    # Writers
    # ------------------------------------------------------------------ #

    async def record_changes(
        self,
        case_id: int,
        changes: ClassifiedChanges,
        actor_id: int,
        metadata: UpdateMetadata | None = None,
    ) -> list[CaseHistory]:
        """Write one entry per classified change; returns the entries that were saved."""
        metadata = metadata or UpdateMetadata()
        entries = [self.build_entry(case_id, change, actor_id, metadata) for change in changes]
        results = await asyncio.gather(
            *(self._persist(entry) for entry in entries), return_exceptions=True
        )

        saved: list[CaseHistory] = []
        for entry, result in zip(entries, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Failed to record %s history for case %s: %s",
                    entry.action_type,
                    case_id,
                    result,
                )
            else:
                saved.append(result)
        logger.debug("Recorded %d/%d history entries for case %s", len(saved), len(entries), case_id)
        return saved

    async def record_creation(
        self, case: Case, actor_id: int, comments: str | None = None
    ) -> CaseHistory:
        entry = CaseHistory(
            case_id=case.id,
            action_type=HistoryAction.CREATION.value,
            field_name="status_id",
            old_value=None,
            new_value=_text(case.status_id),
            change_description="Case created",
            comments=comments or "Case created in the system",
            status_id=case.status_id,
            assigned_to=case.assigned_to,
            assigned_by=case.assigned_by if case.assigned_to else None,
            created_by=actor_id,
            created_at=self._clock(),
            is_active=True,
        )
        return await self._persist(entry)

    async def record_comment_added(
        self, case_id: int, comment: CaseComment, actor_id: int
    ) -> CaseHistory:
        entry = CaseHistory(
            case_id=case_id,
            action_type=HistoryAction.COMMENT_ADDED.value,
            field_name="comment",
            old_value=None,
            new_value=_text(comment.id),
            change_description=f"{comment.comment_type} comment added",
            comments=comment.comment[:500],
            created_by=actor_id,
            created_at=self._clock(),
            is_active=True,
        )
        return await self._persist(entry)

    # ------------------------------------------------------------------ #
    # Readers
    # ------------------------------------------------------------------ #

    async def get_history(
        self,
        case_id: int,
        action_type: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> HistoryPage:
        """Newest-first history of a case with optional action-type and date filters."""
        window = clamp_page(page, limit, default_limit=50)
        conditions = [CaseHistory.case_id == case_id, CaseHistory.is_active.is_(True)]
        if action_type:
            conditions.append(CaseHistory.action_type == action_type.upper())
        if date_from is not None:
            conditions.append(CaseHistory.created_at >= date_from)
        if date_to is not None:
            conditions.append(CaseHistory.created_at <= date_to)

        async with self._session_factory() as session:
            total = await session.scalar(
                select(func.count(CaseHistory.id)).where(*conditions)
            )
            result = await session.execute(
                select(CaseHistory)
                .where(*conditions)
                .order_by(CaseHistory.created_at.desc(), CaseHistory.id.desc())
                .offset(window.offset)
                .limit(window.limit)
            )
            items = list(result.scalars().all())
        return HistoryPage(items=items, total=total or 0, page=window.page, limit=window.limit)

    async def get_summary(self, case_id: int) -> list[HistorySummary]:
        """Count and first/last occurrence per action type."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(
                    CaseHistory.action_type,
                    func.count(CaseHistory.id),
                    func.min(CaseHistory.created_at),
                    func.max(CaseHistory.created_at),
                )
                .where(CaseHistory.case_id == case_id, CaseHistory.is_active.is_(True))
                .group_by(CaseHistory.action_type)
                .order_by(func.count(CaseHistory.id).desc(), CaseHistory.action_type)
            )
            rows = result.all()
        return [
            HistorySummary(
                action_type=action_type,
                count=count,
                first_occurrence=first,
                last_occurrence=last,
            )
            for action_type, count, first, last in rows
        ]
