"""
Case repository — create / read / update / search / soft-delete.

The row write is the only synchronous part of a mutation. Once it commits,
history recording and notification fan-out are launched on the side-effect
supervisor, so a mutation is reported as successful even if every downstream
audit or notification write fails.

Case numbers have the form CS-YYYYMMDD-NNNN where NNNN is one more than the
number of cases created that day. Two concurrent creates can compute the same
number; the unique constraint on ``case_number`` rejects the second insert
and the create is retried with the number after the highest one already
issued that day, up to ``case_number_max_attempts`` times before a
ConflictError is raised.
"""
import logging
import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from caseflow.core.db import utcnow
from caseflow.core.errors import (
    ConflictError,
    MissingRequiredFields,
    NotFound,
    PersistenceError,
    ValidationError,
)
from caseflow.engine.change_tracker import FieldChange, diff, filter_update
from caseflow.engine.changes import UpdateMetadata, classify
from caseflow.engine.query_builder import (
    DEFAULT_LIMIT,
    MAX_LIMIT,
    SEARCHABLE_FIELDS,
    build_insert,
    build_search,
    build_update,
    clamp_page,
    coerce_fields,
)
from caseflow.models.case import Case
from caseflow.services.history_recorder import HistoryRecorder
from caseflow.services.notification_dispatcher import (
    CaseCreated,
    NotificationDispatcher,
    events_for_changes,
)
from caseflow.services.side_effects import SideEffectSupervisor

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("title", "description", "category_id", "priority_id", "status_id", "channel_id")

# Never written through update()
IMMUTABLE_FIELDS = frozenset({"case_number", "created_at", "created_by"})

NO_CHANGES_MESSAGE = "No changes were made"


@dataclass
class UpdateResult:
    case: Case
    changes: dict[str, FieldChange]
    message: str

    @property
    def changed(self) -> bool:
        return bool(self.changes)


@dataclass
class Pagination:
    page: int
    limit: int
    total: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1


@dataclass
class SearchResult:
    data: list[Case]
    pagination: Pagination
    filters: dict[str, Any] = field(default_factory=dict)
    search: dict[str, Any] = field(default_factory=dict)


def _searchable_names() -> list[str]:
    return [f"{column.class_.__tablename__}.{column.key}" for column in SEARCHABLE_FIELDS]


def _is_case_number_conflict(exc: IntegrityError) -> bool:
    return "case_number" in str(exc.orig)


def _sequence_of(case_number: str | None) -> int:
    suffix = (case_number or "").rsplit("-", 1)[-1]
    return int(suffix) if suffix.isdigit() else 0


class CaseRepository:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        side_effects: SideEffectSupervisor,
        history: HistoryRecorder,
        dispatcher: NotificationDispatcher,
        *,
        case_number_prefix: str = "CS",
        max_case_number_attempts: int = 5,
        default_limit: int = DEFAULT_LIMIT,
        max_limit: int = MAX_LIMIT,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._side_effects = side_effects
        self._history = history
        self._dispatcher = dispatcher
        self._prefix = case_number_prefix
        self._max_attempts = max(1, max_case_number_attempts)
        self._default_limit = default_limit
        self._max_limit = max_limit
        self._clock = clock

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    async def _fetch(
        self, session: AsyncSession, case_id: int, include_deleted: bool = False
    ) -> Case | None:
        stmt = select(Case).where(Case.id == case_id)
        if not include_deleted:
            stmt = stmt.where(Case.is_deleted.is_(False))
        result = await session.execute(stmt)
        return result.scalars().first()

    async def get(self, case_id: int | None = None, case_number: str | None = None) -> Case | None:
        """Active (not soft-deleted) case by id or case number."""
        if case_id is None and not case_number:
            raise ValidationError("Either case_id or case_number is required", field="case_id")

        stmt = select(Case).where(Case.is_deleted.is_(False))
        if case_id is not None:
            stmt = stmt.where(Case.id == case_id)
        else:
            stmt = stmt.where(Case.case_number == case_number)

        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return result.scalars().first()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load case: {exc}") from exc

    async def get_or_raise(
        self, case_id: int | None = None, case_number: str | None = None
    ) -> Case:
        case = await self.get(case_id=case_id, case_number=case_number)
        if case is None:
            raise NotFound("Case", case_id if case_id is not None else case_number)
        return case

    async def search(self, criteria: Mapping[str, Any]) -> SearchResult:
        if criteria.get("impossible"):
            page = clamp_page(criteria.get("page"), criteria.get("limit"), self._default_limit, self._max_limit)
            logger.warning("Permission filter indicates no access, returning empty result")
            return SearchResult(
                data=[],
                pagination=Pagination(page=page.page, limit=page.limit, total=0),
                filters={},
                search={
                    "query": criteria.get("search") or None,
                    "fields": _searchable_names(),
                    "results_count": 0,
                },
            )

        query = build_search(criteria, self._default_limit, self._max_limit)
        try:
            async with self._session_factory() as session:
                total = await session.scalar(query.count_statement)
                result = await session.execute(query.statement)
                cases = list(result.scalars().unique().all())
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Case search failed: {exc}") from exc

        return SearchResult(
            data=cases,
            pagination=Pagination(page=query.page.page, limit=query.page.limit, total=total or 0),
            filters=query.filters,
            search={
                "query": query.search_term,
                "fields": _searchable_names(),
                "results_count": len(cases),
            },
        )

    # ------------------------------------------------------------------ #
    # Create
    # ------------------------------------------------------------------ #

    async def _next_case_number(self, session: AsyncSession, now: datetime, attempt: int) -> str:
        day_start = datetime.combine(now.date(), time.min)
        day_prefix = f"{self._prefix}-{now:%Y%m%d}-"
        # count and highest issued number come from the same snapshot
        row = (
            await session.execute(
                select(
                    select(func.count(Case.id))
                    .where(
                        Case.created_at >= day_start,
                        Case.created_at < day_start + timedelta(days=1),
                    )
                    .scalar_subquery(),
                    select(func.max(Case.case_number))
                    .where(Case.case_number.like(f"{day_prefix}%"))
                    .scalar_subquery(),
                )
            )
        ).one()
        created_today = row[0] or 0
        sequence = created_today + 1
        if attempt:
            sequence = max(created_today, _sequence_of(row[1])) + 1
        return f"{day_prefix}{sequence:04d}"

    async def _insert_with_case_number(self, values: dict[str, Any], now: datetime) -> int:
        for attempt in range(self._max_attempts):
            async with self._session_factory() as session:
                case_number = await self._next_case_number(session, now, attempt)
                try:
                    result = await session.execute(
                        build_insert({**values, "case_number": case_number}).returning(Case.id)
                    )
                    case_id = result.scalar_one()
                    await session.commit()
                    return case_id
                except IntegrityError as exc:
                    await session.rollback()
                    if not _is_case_number_conflict(exc):
                        raise PersistenceError(f"Failed to create case: {exc.orig}") from exc
                    logger.warning(
                        "Case number %s already taken (attempt %d/%d), retrying",
                        case_number,
                        attempt + 1,
                        self._max_attempts,
                    )
                except SQLAlchemyError as exc:
                    await session.rollback()
                    raise PersistenceError(f"Failed to create case: {exc}") from exc

        raise ConflictError(
            f"Could not allocate a unique case number after {self._max_attempts} attempts"
        )

    async def create(
        self,
        fields: Mapping[str, Any],
        actor_id: int,
        comments: str | None = None,
    ) -> Case:
        now = self._clock()
        data = {k: v for k, v in fields.items() if v is not None and v != ""}
        data.pop("case_number", None)

        data.setdefault("submitted_by", actor_id)
        data.setdefault("submitted_at", now)
        data.setdefault("case_date", now)
        if data.get("assigned_to") is not None:
            data.setdefault("assigned_by", actor_id)
            data.setdefault("assigned_at", now)

        missing = [name for name in REQUIRED_FIELDS if name not in data]
        if missing:
            raise MissingRequiredFields(missing)

        values = coerce_fields(data)
        values.update(
            created_at=now,
            created_by=actor_id,
            updated_at=now,
            updated_by=actor_id,
            last_activity_date=now,
            is_active=True,
            is_deleted=False,
        )
        values.setdefault("escalation_level", 0)
        values.setdefault("confidentiality_level", "internal")

        case_id = await self._insert_with_case_number(values, now)
        case = await self.get_or_raise(case_id)
        logger.info("Case %s created by user %s", case.case_number, actor_id)

        self._side_effects.launch(
            f"case-{case.id}-creation-history",
            self._history.record_creation(case, actor_id, comments),
        )
        self._side_effects.launch(
            f"case-{case.id}-creation-notifications",
            self._dispatcher.dispatch(CaseCreated(), case, actor_id),
        )
        return case

    # ------------------------------------------------------------------ #
    # Update
    # ------------------------------------------------------------------ #

    async def update(
        self,
        case_id: int,
        fields: Mapping[str, Any],
        actor_id: int,
        metadata: UpdateMetadata | None = None,
    ) -> UpdateResult:
        metadata = metadata or UpdateMetadata()
        existing = await self.get_or_raise(case_id)

        proposed = filter_update(fields)
        for name in IMMUTABLE_FIELDS:
            proposed.pop(name, None)
        proposed = coerce_fields(proposed)

        changes = diff(existing, proposed)
        if not changes:
            logger.debug("Update of case %s by user %s changed nothing", case_id, actor_id)
            return UpdateResult(case=existing, changes={}, message=NO_CHANGES_MESSAGE)

        now = self._clock()
        values = dict(proposed)
        values.update(updated_at=now, updated_by=actor_id, last_activity_date=now)
        if "assigned_to" in changes and "assigned_at" not in proposed:
            values["assigned_at"] = now

        try:
            async with self._session_factory() as session:
                result = await session.execute(build_update(case_id, values))
                if result.rowcount == 0:
                    await session.rollback()
                    raise NotFound("Case", case_id)
                await session.commit()
                case = await self._fetch(session, case_id, include_deleted=True)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to update case {case_id}: {exc}") from exc

        logger.info(
            "Case %s updated by user %s (%s)", case.case_number, actor_id, ", ".join(changes)
        )
        self._launch_change_effects(case, changes, actor_id, metadata)
        return UpdateResult(
            case=case,
            changes=changes,
            message=f"Case updated successfully. {len(changes)} field(s) changed.",
        )

    def _launch_change_effects(
        self,
        case: Case,
        changes: dict[str, FieldChange],
        actor_id: int,
        metadata: UpdateMetadata,
    ) -> None:
        classified = classify(changes)
        self._side_effects.launch(
            f"case-{case.id}-history",
            self._history.record_changes(case.id, classified, actor_id, metadata),
        )
        for event in events_for_changes(classified, metadata):
            self._side_effects.launch(
                f"case-{case.id}-{type(event).__name__}-notifications",
                self._dispatcher.dispatch(event, case, actor_id),
            )

    async def touch(self, case_id: int, actor_id: int) -> None:
        """Refresh the last-activity marker without producing history."""
        now = self._clock()
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    update(Case)
                    .where(Case.id == case_id, Case.is_deleted.is_(False))
                    .values(last_activity_date=now, updated_at=now, updated_by=actor_id)
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to touch case {case_id}: {exc}") from exc
        if result.rowcount == 0:
            raise NotFound("Case", case_id)

    # ------------------------------------------------------------------ #
    # Convenience operations
    # ------------------------------------------------------------------ #

    async def soft_delete(self, case_id: int, actor_id: int) -> UpdateResult:
        now = self._clock()
        return await self.update(
            case_id,
            {
                "is_deleted": True,
                "is_active": False,
                "deleted_at": now,
                "deleted_by": actor_id,
            },
            actor_id,
            UpdateMetadata(comments="Case deleted"),
        )

    async def assign(
        self,
        case_id: int,
        assignee_id: int,
        actor_id: int,
        comments: str | None = None,
        due_date: datetime | str | None = None,
    ) -> UpdateResult:
        return await self.update(
            case_id,
            {
                "assigned_to": assignee_id,
                "assigned_by": actor_id,
                "assigned_at": self._clock(),
                "assignment_comments": comments,
                "due_date": due_date,
            },
            actor_id,
            UpdateMetadata(
                comments=comments or f"Case assigned to user {assignee_id}",
                assignment_comments=comments,
            ),
        )

    async def change_status(
        self,
        case_id: int,
        status_id: int,
        actor_id: int,
        reason: str | None = None,
        comments: str | None = None,
        resolved: bool = False,
        resolution_summary: str | None = None,
    ) -> UpdateResult:
        fields: dict[str, Any] = {"status_id": status_id}
        if resolved:
            fields["resolved_date"] = self._clock()
            fields["resolution_summary"] = resolution_summary
        return await self.update(
            case_id,
            fields,
            actor_id,
            UpdateMetadata(
                comments=comments,
                status_reason=reason,
                resolution_summary=resolution_summary,
            ),
        )

    async def escalate(
        self,
        case_id: int,
        actor_id: int,
        reason: str,
        escalated_to: int | None = None,
        priority_id: int | None = None,
    ) -> UpdateResult:
        if not reason or not reason.strip():
            raise ValidationError("Escalation reason is required", field="escalation_reason")

        existing = await self.get_or_raise(case_id)
        now = self._clock()
        fields: dict[str, Any] = {
            "escalation_level": (existing.escalation_level or 0) + 1,
            "escalated_at": now,
            "escalated_by": actor_id,
            "escalation_reason": reason,
            "priority_id": priority_id,
        }
        if escalated_to is not None:
            fields.update(assigned_to=escalated_to, assigned_by=actor_id, assigned_at=now)

        return await self.update(
            case_id,
            fields,
            actor_id,
            UpdateMetadata(comments=f"Case escalated: {reason}", escalation_reason=reason),
        )
