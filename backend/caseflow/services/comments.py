"""
Case comments.

Adding a comment behaves like a case mutation: the comment row is the primary
write, the COMMENT_ADDED history entry and the CommentAdded notifications are
launched as side effects, and the case's last-activity marker is refreshed.
"""
import logging
import math
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import case as sql_case
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from caseflow.core.db import utcnow
from caseflow.core.errors import NotFound, PersistenceError, ValidationError
from caseflow.engine.query_builder import clamp_page, coerce_value
from caseflow.engine.schema import CONFIDENTIALITY_LEVELS, FieldSpec, SemanticType
from caseflow.models.comment import CaseComment
from caseflow.services.case_repository import CaseRepository
from caseflow.services.history_recorder import HistoryRecorder
from caseflow.services.notification_dispatcher import CommentAdded, NotificationDispatcher
from caseflow.services.side_effects import SideEffectSupervisor

logger = logging.getLogger(__name__)

COMMENT_TYPES = (
    "internal",
    "external",
    "resolution",
    "escalation",
    "follow_up",
    "status_update",
    "assignment",
)

_FOLLOW_UP_DATE = FieldSpec(SemanticType.TIMESTAMP)
_USER_ID = FieldSpec(SemanticType.INTEGER, minimum=1)


@dataclass
class CommentOptions:
    comment_type: str = "internal"
    is_internal: bool = True
    is_public: bool = False
    confidentiality_level: str = "internal"
    mentioned_users: list[int] | None = None
    tags: str | None = None
    parent_comment_id: int | None = None
    requires_follow_up: bool = False
    follow_up_date: datetime | str | None = None


@dataclass
class CommentPage:
    items: list[CaseComment]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0


@dataclass
class CommentCount:
    total: int
    by_type: list[dict[str, Any]] = field(default_factory=list)


def _clean_text(text: str | None) -> str:
    cleaned = (text or "").strip()
    if not cleaned:
        raise ValidationError("Comment text is required", field="comment")
    return cleaned


def _check_type(comment_type: str) -> None:
    if comment_type not in COMMENT_TYPES:
        raise ValidationError(
            f"Invalid comment type {comment_type!r}; expected one of {', '.join(COMMENT_TYPES)}",
            field="comment_type",
        )


def _check_confidentiality(level: str) -> None:
    if level not in CONFIDENTIALITY_LEVELS:
        raise ValidationError(
            f"Invalid confidentiality level {level!r}", field="confidentiality_level"
        )


class CommentService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        repository: CaseRepository,
        history: HistoryRecorder,
        dispatcher: NotificationDispatcher,
        side_effects: SideEffectSupervisor,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._repository = repository
        self._history = history
        self._dispatcher = dispatcher
        self._side_effects = side_effects
        self._clock = clock

    async def get(self, comment_id: int) -> CaseComment:
        async with self._session_factory() as session:
            result = await session.execute(
                select(CaseComment).where(
                    CaseComment.id == comment_id,
                    CaseComment.is_deleted.is_(False),
                    CaseComment.is_active.is_(True),
                )
            )
            comment = result.scalars().first()
        if comment is None:
            raise NotFound("Comment", comment_id)
        return comment

    # ------------------------------------------------------------------ #
    # Add
    # ------------------------------------------------------------------ #

    async def add(
        self,
        case_id: int,
        actor_id: int,
        text: str,
        options: CommentOptions | None = None,
    ) -> CaseComment:
        options = options or CommentOptions()
        body = _clean_text(text)
        _check_type(options.comment_type)
        _check_confidentiality(options.confidentiality_level)

        case = await self._repository.get_or_raise(case_id)

        if options.parent_comment_id is not None:
            parent = await self.get(options.parent_comment_id)
            if parent.case_id != case.id:
                raise ValidationError(
                    "Parent comment belongs to a different case", field="parent_comment_id"
                )

        follow_up_date = (
            coerce_value("follow_up_date", options.follow_up_date, _FOLLOW_UP_DATE)
            if options.follow_up_date
            else None
        )
        mentioned = (
            [coerce_value("mentioned_users", u, _USER_ID) for u in options.mentioned_users]
            if options.mentioned_users
            else None
        )

        now = self._clock()
        comment = CaseComment(
            case_id=case.id,
            comment=body,
            comment_type=options.comment_type,
            is_internal=options.is_internal,
            is_public=options.is_public,
            confidentiality_level=options.confidentiality_level,
            mentioned_users=mentioned,
            tags=options.tags,
            parent_comment_id=options.parent_comment_id,
            is_response=options.parent_comment_id is not None,
            requires_follow_up=options.requires_follow_up,
            follow_up_date=follow_up_date,
            follow_up_completed=False,
            is_edited=False,
            created_at=now,
            created_by=actor_id,
            updated_at=now,
            updated_by=actor_id,
            is_active=True,
            is_deleted=False,
        )
        try:
            async with self._session_factory() as session:
                session.add(comment)
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to add comment to case {case_id}: {exc}") from exc

        logger.info("Comment %s added to case %s by user %s", comment.id, case.case_number, actor_id)

        self._side_effects.launch(
            f"comment-{comment.id}-history",
            self._history.record_comment_added(case.id, comment, actor_id),
        )
        self._side_effects.launch(
            f"comment-{comment.id}-notifications",
            self._dispatcher.dispatch(CommentAdded(comment=comment), case, actor_id),
        )
        await self._repository.touch(case.id, actor_id)
        return comment

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    async def list_for_case(
        self,
        case_id: int,
        include_internal: bool = True,
        comment_type: str | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> CommentPage:
        window = clamp_page(page, limit, default_limit=50)
        conditions = [
            CaseComment.case_id == case_id,
            CaseComment.is_deleted.is_(False),
            CaseComment.is_active.is_(True),
        ]
        if not include_internal:
            conditions.append(CaseComment.is_internal.is_(False))
        if comment_type:
            conditions.append(CaseComment.comment_type == comment_type)

        async with self._session_factory() as session:
            total = await session.scalar(select(func.count(CaseComment.id)).where(*conditions))
            result = await session.execute(
                select(CaseComment)
                .where(*conditions)
                .order_by(CaseComment.created_at.desc(), CaseComment.id.desc())
                .offset(window.offset)
                .limit(window.limit)
            )
            items = list(result.scalars().all())
        return CommentPage(items=items, total=total or 0, page=window.page, limit=window.limit)

    async def count(self, case_id: int) -> CommentCount:
        """Active comment count for a case, broken down by comment type."""
        conditions = [
            CaseComment.case_id == case_id,
            CaseComment.is_deleted.is_(False),
            CaseComment.is_active.is_(True),
        ]
        pending = sql_case(
            (
                CaseComment.requires_follow_up.is_(True)
                & CaseComment.follow_up_completed.is_(False),
                1,
            ),
            else_=0,
        )
        async with self._session_factory() as session:
            result = await session.execute(
                select(
                    CaseComment.comment_type,
                    func.count(CaseComment.id),
                    func.sum(pending),
                )
                .where(*conditions)
                .group_by(CaseComment.comment_type)
                .order_by(CaseComment.comment_type)
            )
            rows = result.all()
        by_type = [
            {"comment_type": comment_type, "count": count, "pending_follow_ups": int(open_ or 0)}
            for comment_type, count, open_ in rows
        ]
        return CommentCount(total=sum(row["count"] for row in by_type), by_type=by_type)

    async def pending_follow_ups(
        self,
        case_id: int | None = None,
        overdue: bool = False,
        page: int = 1,
        limit: int = 20,
    ) -> CommentPage:
        """Open follow-ups, earliest follow-up date first."""
        window = clamp_page(page, limit)
        conditions = [
            CaseComment.requires_follow_up.is_(True),
            CaseComment.follow_up_completed.is_(False),
            CaseComment.is_deleted.is_(False),
            CaseComment.is_active.is_(True),
        ]
        if case_id is not None:
            conditions.append(CaseComment.case_id == case_id)
        if overdue:
            conditions.append(CaseComment.follow_up_date < self._clock())

        async with self._session_factory() as session:
            total = await session.scalar(select(func.count(CaseComment.id)).where(*conditions))
            result = await session.execute(
                select(CaseComment)
                .where(*conditions)
                .order_by(
                    CaseComment.follow_up_date.is_(None),
                    CaseComment.follow_up_date.asc(),
                    CaseComment.id.asc(),
                )
                .offset(window.offset)
                .limit(window.limit)
            )
            items = list(result.scalars().all())
        return CommentPage(items=items, total=total or 0, page=window.page, limit=window.limit)

    # ------------------------------------------------------------------ #
    # Mutations
    # ------------------------------------------------------------------ #

    async def _apply(self, comment_id: int, values: dict[str, Any]) -> None:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    update(CaseComment)
                    .where(CaseComment.id == comment_id, CaseComment.is_deleted.is_(False))
                    .values(**values)
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to update comment {comment_id}: {exc}") from exc
        if result.rowcount == 0:
            raise NotFound("Comment", comment_id)

    async def edit(
        self,
        comment_id: int,
        text: str,
        actor_id: int,
        reason: str | None = None,
        comment_type: str | None = None,
        requires_follow_up: bool | None = None,
    ) -> CaseComment:
        """Replace the text; the first version is kept in ``original_comment``."""
        body = _clean_text(text)
        existing = await self.get(comment_id)

        now = self._clock()
        values: dict[str, Any] = {
            "comment": body,
            "is_edited": True,
            "edited_at": now,
            "edited_by": actor_id,
            "edit_reason": reason or "Comment updated",
            "original_comment": existing.original_comment or existing.comment,
            "updated_at": now,
            "updated_by": actor_id,
        }
        if comment_type is not None:
            _check_type(comment_type)
            values["comment_type"] = comment_type
        if requires_follow_up is not None:
            values["requires_follow_up"] = requires_follow_up

        await self._apply(comment_id, values)
        logger.info("Comment %s edited by user %s", comment_id, actor_id)
        return await self.get(comment_id)

    async def delete(self, comment_id: int, actor_id: int) -> None:
        await self.get(comment_id)
        now = self._clock()
        await self._apply(
            comment_id,
            {
                "is_deleted": True,
                "is_active": False,
                "deleted_at": now,
                "deleted_by": actor_id,
                "updated_at": now,
                "updated_by": actor_id,
            },
        )
        logger.info("Comment %s deleted by user %s", comment_id, actor_id)

    async def complete_follow_up(self, comment_id: int, actor_id: int) -> CaseComment:
        existing = await self.get(comment_id)
        if not existing.requires_follow_up:
            raise ValidationError(
                f"Comment {comment_id} does not require follow-up", field="requires_follow_up"
            )
        if existing.follow_up_completed:
            raise ValidationError(
                f"Follow-up for comment {comment_id} is already completed",
                field="follow_up_completed",
            )

        now = self._clock()
        await self._apply(
            comment_id,
            {
                "follow_up_completed": True,
                "follow_up_completed_at": now,
                "follow_up_completed_by": actor_id,
                "updated_at": now,
                "updated_by": actor_id,
            },
        )
        return await self.get(comment_id)
