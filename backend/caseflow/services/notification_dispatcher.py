"""
Notification fan-out for case events.

``dispatch(event, case, actor_id)`` picks the recipients for the event, drops
the acting user and duplicate recipients, inserts one ``notifications`` row
per remaining recipient, then schedules a side-channel delivery for each row
on the side-effect supervisor.

Recipients per event:
  CaseCreated        initial assignee + every active supervisor
  CaseAssigned       new assignee; previous assignee gets "assignment_transferred"
  CaseStatusChanged  submitter + assignee
  CaseEscalated      new assignee (if the escalation reassigned) + supervisors
  CaseResolved       submitter + assignee
  CommentAdded       submitter (unless internal) + assignee + mentioned users

The dispatcher also owns the read/delivery state of notifications.
"""
import logging
import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Union

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from caseflow.core.db import utcnow
from caseflow.core.errors import NotFound, ValidationError
from caseflow.engine.changes import (
    AssignmentChanged,
    ClassifiedChanges,
    Escalated,
    Resolved,
    StatusChanged,
    UpdateMetadata,
)
from caseflow.engine.query_builder import clamp_page
from caseflow.models.case import Case
from caseflow.models.comment import CaseComment
from caseflow.models.notification import Notification
from caseflow.services.delivery import DeliveryService, NotificationSender
from caseflow.services.directory import UserDirectory
from caseflow.services.lookups import LookupReader
from caseflow.services.side_effects import SideEffectSupervisor

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    CASE_ASSIGNED = "case_assigned"
    CASE_STATUS_CHANGED = "case_status_changed"
    ESCALATION = "escalation"
    COMMENT_ADDED = "comment_added"
    CASE_RESOLVED = "case_resolved"
    ASSIGNMENT_TRANSFERRED = "assignment_transferred"
    GENERIC = "generic"


class NotificationPriority(str, Enum):
    URGENT = "urgent"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


def derive_priority(value: Any) -> str:
    """Map a priority level (1 = most urgent) or an urgency keyword to a notification priority."""
    if value is None or value == "" or isinstance(value, bool):
        return NotificationPriority.NORMAL.value
    if isinstance(value, (int, float, Decimal)):
        if value <= 2:
            return NotificationPriority.URGENT.value
        if value <= 3:
            return NotificationPriority.HIGH.value
        if value >= 5:
            return NotificationPriority.LOW.value
        return NotificationPriority.NORMAL.value

    text = str(value).lower()
    if "urgent" in text or "critical" in text:
        return NotificationPriority.URGENT.value
    if "high" in text:
        return NotificationPriority.HIGH.value
    if "low" in text:
        return NotificationPriority.LOW.value
    return NotificationPriority.NORMAL.value


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CaseCreated:
    pass


@dataclass(frozen=True)
class CaseAssigned:
    previous_assignee: int | None
    new_assignee: int | None


@dataclass(frozen=True)
class CaseStatusChanged:
    old_status: int | None
    new_status: int


@dataclass(frozen=True)
class CaseEscalated:
    level: int
    reason: str | None = None
    reassigned_to: int | None = None


@dataclass(frozen=True)
class CaseResolved:
    summary: str | None = None


@dataclass(frozen=True)
class CommentAdded:
    comment: CaseComment


NotificationEvent = Union[
    CaseCreated, CaseAssigned, CaseStatusChanged, CaseEscalated, CaseResolved, CommentAdded
]


def events_for_changes(
    changes: ClassifiedChanges, metadata: UpdateMetadata | None = None
) -> list[NotificationEvent]:
    """
    Notification events implied by an update. Priority and category changes
    are audited but do not notify anyone.
    """
    metadata = metadata or UpdateMetadata()
    assignment = changes.first(AssignmentChanged)
    events: list[NotificationEvent] = []
    for change in changes.significant:
        if isinstance(change, StatusChanged):
            events.append(CaseStatusChanged(old_status=change.old, new_status=change.new))
        elif isinstance(change, AssignmentChanged):
            events.append(CaseAssigned(previous_assignee=change.old, new_assignee=change.new))
        elif isinstance(change, Escalated):
            events.append(
                CaseEscalated(
                    level=change.new_level,
                    reason=metadata.escalation_reason or metadata.comments,
                    reassigned_to=assignment.new if assignment else None,
                )
            )
        elif isinstance(change, Resolved):
            events.append(CaseResolved(summary=metadata.resolution_summary))
    return events


@dataclass
class NotificationDraft:
    user_id: int
    type: str
    title: str
    message: str
    priority: str
    action_text: str
    trigger_action: str
    action_url: str | None = None
    entity_type: str = "case"
    entity_id: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


def dedupe_recipients(drafts: Iterable[NotificationDraft], actor_id: int | None) -> list[NotificationDraft]:
    """First draft per recipient wins; the acting user never receives one."""
    seen: set[int] = set()
    kept: list[NotificationDraft] = []
    for draft in drafts:
        if draft.user_id is None or draft.user_id == actor_id or draft.user_id in seen:
            continue
        seen.add(draft.user_id)
        kept.append(draft)
    return kept


@dataclass
class NotificationPage:
    items: list[Notification]
    total: int
    unread: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0


# Delivery-state columns per side channel: (sent flag, sent at, error, attempts)
_CHANNEL_COLUMNS = {
    "email": ("is_email_sent", "email_sent_at", "email_error", "email_attempts"),
    "push": ("is_push_sent", "push_sent_at", "push_error", "push_attempts"),
}


def _case_url(case: Case) -> str:
    return f"/cases/view/{case.id}"


class NotificationDispatcher:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        directory: UserDirectory,
        lookups: LookupReader,
        side_effects: SideEffectSupervisor,
        sender: NotificationSender,
        *,
        delivery_attempts: int = 3,
        retry_delay: float = 2.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._directory = directory
        self._lookups = lookups
        self._side_effects = side_effects
        self._clock = clock
        self._delivery = DeliveryService(
            sender, self.record_delivery, max_attempts=delivery_attempts, retry_delay=retry_delay
        )
        self._handlers = {
            CaseCreated: self._on_created,
            CaseAssigned: self._on_assigned,
            CaseStatusChanged: self._on_status_changed,
            CaseEscalated: self._on_escalated,
            CaseResolved: self._on_resolved,
            CommentAdded: self._on_comment_added,
        }

    # ------------------------------------------------------------------ #
    # Fan-out
    # ------------------------------------------------------------------ #

    async def dispatch(
        self, event: NotificationEvent, case: Case, actor_id: int
    ) -> list[Notification]:
        handler = self._handlers.get(type(event))
        if handler is None:
            raise TypeError(f"No notification handler for {type(event).__name__}")

        drafts = dedupe_recipients(await handler(event, case, actor_id), actor_id)
        if not drafts:
            logger.debug("No recipients for %s on case %s", type(event).__name__, case.id)
            return []

        notifications = await self._persist(case, drafts, actor_id)
        for notification in notifications:
            self._side_effects.launch(
                f"deliver-notification-{notification.id}",
                self._delivery.deliver(notification.id),
            )
        logger.info(
            "Created %d notification(s) for %s on case %s",
            len(notifications),
            type(event).__name__,
            case.case_number,
        )
        return notifications

    async def _persist(
        self, case: Case, drafts: list[NotificationDraft], actor_id: int
    ) -> list[Notification]:
        now = self._clock()
        notifications = [
            Notification(
                user_id=d.user_id,
                case_id=case.id,
                entity_type=d.entity_type,
                entity_id=d.entity_id if d.entity_id is not None else case.id,
                type=d.type,
                title=d.title,
                message=d.message,
                priority=d.priority,
                action_url=d.action_url or _case_url(case),
                action_text=d.action_text,
                metadata_=d.metadata,
                trigger_user_id=actor_id,
                trigger_action=d.trigger_action,
                is_read=False,
                is_email_sent=False,
                email_attempts=0,
                is_push_sent=False,
                push_attempts=0,
                created_at=now,
                updated_at=now,
                is_active=True,
            )
            for d in drafts
        ]
        async with self._session_factory() as session:
            session.add_all(notifications)
            await session.commit()
        return notifications

    async def _case_priority(self, case: Case) -> str:
        level = await self._lookups.priority_level(case.priority_id)
        return derive_priority(level if level is not None else case.urgency_level)

    def _assigned_draft(self, case: Case, assignee: int, actor_id: int, priority: str) -> NotificationDraft:
        return NotificationDraft(
            user_id=assignee,
            type=NotificationType.CASE_ASSIGNED.value,
            title="Case Assigned to You",
            message=f'Case "{case.title}" has been assigned to you.',
            priority=priority,
            action_text="View Case",
            trigger_action="case_assignment",
            metadata={
                "case_number": case.case_number,
                "urgency_level": case.urgency_level,
                "assigned_by": actor_id,
            },
        )

    # ------------------------------------------------------------------ #
    # Per-event recipient rules
    # ------------------------------------------------------------------ #

    async def _on_created(
        self, event: CaseCreated, case: Case, actor_id: int
    ) -> list[NotificationDraft]:
        priority = await self._case_priority(case)
        category = await self._lookups.category(case.category_id)
        channel = await self._lookups.channel(case.channel_id)
        drafts = []
        if case.assigned_to is not None:
            drafts.append(self._assigned_draft(case, case.assigned_to, actor_id, priority))

        for supervisor in await self._directory.list_supervisors():
            drafts.append(
                NotificationDraft(
                    user_id=supervisor.id,
                    type=NotificationType.GENERIC.value,
                    title="New Case Submitted",
                    message=f'New case "{case.title}" has been submitted and requires attention.',
                    priority=priority,
                    action_text="Review Case",
                    trigger_action="case_creation",
                    metadata={
                        "case_number": case.case_number,
                        "category": category.name if category else None,
                        "channel": channel.name if channel else None,
                        "submitted_by": case.submitted_by,
                        "urgency_level": case.urgency_level,
                    },
                )
            )
        return drafts

    async def _on_assigned(
        self, event: CaseAssigned, case: Case, actor_id: int
    ) -> list[NotificationDraft]:
        drafts = []
        if event.new_assignee is not None:
            priority = await self._case_priority(case)
            drafts.append(self._assigned_draft(case, event.new_assignee, actor_id, priority))

        if event.previous_assignee is not None and event.previous_assignee != event.new_assignee:
            drafts.append(
                NotificationDraft(
                    user_id=event.previous_assignee,
                    type=NotificationType.ASSIGNMENT_TRANSFERRED.value,
                    title="Case Reassigned",
                    message=f'Case "{case.title}" has been reassigned to another user.',
                    priority=NotificationPriority.NORMAL.value,
                    action_text="View Case",
                    trigger_action="case_reassignment",
                    metadata={
                        "case_number": case.case_number,
                        "new_assignee": event.new_assignee,
                        "reassigned_by": actor_id,
                    },
                )
            )
        return drafts

    async def _on_status_changed(
        self, event: CaseStatusChanged, case: Case, actor_id: int
    ) -> list[NotificationDraft]:
        old_name = await self._lookups.status_name(event.old_status)
        new_name = await self._lookups.status_name(event.new_status)
        return [
            NotificationDraft(
                user_id=user_id,
                type=NotificationType.CASE_STATUS_CHANGED.value,
                title="Case Status Updated",
                message=f'Case "{case.title}" status changed from {old_name} to {new_name}.',
                priority=NotificationPriority.NORMAL.value,
                action_text="View Update",
                trigger_action="status_change",
                metadata={
                    "case_number": case.case_number,
                    "old_status": old_name,
                    "new_status": new_name,
                },
            )
            for user_id in (case.submitted_by, case.assigned_to)
            if user_id is not None
        ]

    async def _on_escalated(
        self, event: CaseEscalated, case: Case, actor_id: int
    ) -> list[NotificationDraft]:
        metadata = {
            "case_number": case.case_number,
            "escalation_level": event.level,
            "escalation_reason": event.reason,
        }
        drafts = []
        if event.reassigned_to is not None:
            drafts.append(
                NotificationDraft(
                    user_id=event.reassigned_to,
                    type=NotificationType.ESCALATION.value,
                    title="Escalated Case Assigned",
                    message=f'Escalated case "{case.title}" has been assigned to you.',
                    priority=NotificationPriority.HIGH.value,
                    action_text="Handle Escalation",
                    trigger_action="escalation_assignment",
                    metadata=dict(metadata),
                )
            )
        for supervisor in await self._directory.list_supervisors():
            drafts.append(
                NotificationDraft(
                    user_id=supervisor.id,
                    type=NotificationType.ESCALATION.value,
                    title="Case Escalated",
                    message=f'Case "{case.title}" has been escalated. Reason: {event.reason or "not given"}',
                    priority=NotificationPriority.HIGH.value,
                    action_text="Review Case",
                    trigger_action="escalation",
                    metadata=dict(metadata, escalated_by=actor_id),
                )
            )
        return drafts

    async def _on_resolved(
        self, event: CaseResolved, case: Case, actor_id: int
    ) -> list[NotificationDraft]:
        return [
            NotificationDraft(
                user_id=user_id,
                type=NotificationType.CASE_RESOLVED.value,
                title="Case Resolved",
                message=f'Case "{case.title}" has been resolved.',
                priority=NotificationPriority.NORMAL.value,
                action_text="View Resolution",
                trigger_action="case_resolution",
                metadata={
                    "case_number": case.case_number,
                    "resolution_summary": event.summary,
                    "resolved_by": actor_id,
                },
            )
            for user_id in (case.submitted_by, case.assigned_to)
            if user_id is not None
        ]

    async def _on_comment_added(
        self, event: CommentAdded, case: Case, actor_id: int
    ) -> list[NotificationDraft]:
        comment = event.comment
        recipients: list[int] = []
        if case.submitted_by is not None and not comment.is_internal:
            recipients.append(case.submitted_by)
        if case.assigned_to is not None:
            recipients.append(case.assigned_to)
        for mentioned in comment.mentioned_users or []:
            try:
                recipients.append(int(mentioned))
            except (TypeError, ValueError):
                logger.warning("Ignoring invalid mentioned user %r on comment %s", mentioned, comment.id)

        priority = (
            NotificationPriority.HIGH.value
            if comment.requires_follow_up
            else NotificationPriority.NORMAL.value
        )
        return [
            NotificationDraft(
                user_id=user_id,
                type=NotificationType.COMMENT_ADDED.value,
                title=f"New {comment.comment_type} Comment",
                message=(
                    f"A new {comment.comment_type} comment has been added to case "
                    f'"{case.title}".'
                ),
                priority=priority,
                action_text="View Comment",
                trigger_action="comment_added",
                action_url=f"{_case_url(case)}#comments",
                entity_type="comment",
                entity_id=comment.id,
                metadata={
                    "case_number": case.case_number,
                    "comment_id": comment.id,
                    "comment_type": comment.comment_type,
                    "requires_follow_up": comment.requires_follow_up,
                },
            )
            for user_id in recipients
        ]

    # ------------------------------------------------------------------ #
    # Delivery state
    # ------------------------------------------------------------------ #

    async def record_delivery(
        self,
        notification_id: int,
        channel: str,
        success: bool,
        error: str | None = None,
    ) -> bool:
        """
        Record the outcome of a delivery attempt. A channel already marked as
        sent is left untouched; returns False in that case.
        """
        if channel not in _CHANNEL_COLUMNS:
            raise ValidationError(f"Unknown delivery channel {channel}", field="channel")
        sent, sent_at, error_col, attempts = _CHANNEL_COLUMNS[channel]

        now = self._clock()
        values: dict[str, Any] = {
            attempts: getattr(Notification, attempts) + 1,
            "updated_at": now,
        }
        if success:
            values.update({sent: True, sent_at: now, error_col: None})
        else:
            values[error_col] = error

        async with self._session_factory() as session:
            result = await session.execute(
                update(Notification)
                .where(Notification.id == notification_id, getattr(Notification, sent).is_(False))
                .values(**values)
            )
            await session.commit()

        if result.rowcount == 0:
            logger.info(
                "Notification %s already delivered via %s (or missing); outcome not recorded",
                notification_id,
                channel,
            )
            return False
        return True

    # ------------------------------------------------------------------ #
    # Inbox
    # ------------------------------------------------------------------ #

    def _visible(self, user_id: int) -> list:
        return [
            Notification.user_id == user_id,
            Notification.is_active.is_(True),
            or_(Notification.expires_at.is_(None), Notification.expires_at > self._clock()),
        ]

    async def list_for_user(
        self,
        user_id: int,
        unread_only: bool = False,
        notification_type: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> NotificationPage:
        window = clamp_page(page, limit)
        conditions = self._visible(user_id)
        if unread_only:
            conditions.append(Notification.is_read.is_(False))
        if notification_type:
            conditions.append(Notification.type == notification_type)

        async with self._session_factory() as session:
            total = await session.scalar(select(func.count(Notification.id)).where(*conditions))
            unread = await session.scalar(
                select(func.count(Notification.id)).where(
                    *self._visible(user_id), Notification.is_read.is_(False)
                )
            )
            result = await session.execute(
                select(Notification)
                .where(*conditions)
                .order_by(Notification.created_at.desc(), Notification.id.desc())
                .offset(window.offset)
                .limit(window.limit)
            )
            items = list(result.scalars().all())
        return NotificationPage(
            items=items,
            total=total or 0,
            unread=unread or 0,
            page=window.page,
            limit=window.limit,
        )

    async def unread_summary(self, user_id: int) -> dict[str, int]:
        """Unread counts per priority plus a ``total`` key."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Notification.priority, func.count(Notification.id))
                .where(*self._visible(user_id), Notification.is_read.is_(False))
                .group_by(Notification.priority)
            )
            rows = result.all()
        summary = {p.value: 0 for p in NotificationPriority}
        for priority, count in rows:
            summary[priority] = count
        summary["total"] = sum(count for _, count in rows)
        return summary

    async def mark_as_read(self, notification_id: int, user_id: int) -> bool:
        """True if the notification flipped to read, False if it already was."""
        now = self._clock()
        async with self._session_factory() as session:
            result = await session.execute(
                update(Notification)
                .where(
                    Notification.id == notification_id,
                    Notification.user_id == user_id,
                    Notification.is_active.is_(True),
                    Notification.is_read.is_(False),
                )
                .values(is_read=True, read_at=now, updated_at=now)
            )
            await session.commit()
            if result.rowcount:
                return True
            exists = await session.scalar(
                select(Notification.id).where(
                    Notification.id == notification_id,
                    Notification.user_id == user_id,
                    Notification.is_active.is_(True),
                )
            )
        if exists is None:
            raise NotFound("Notification", notification_id)
        return False

    async def mark_all_as_read(
        self, user_id: int, notification_ids: list[int] | None = None
    ) -> int:
        now = self._clock()
        conditions = [
            Notification.user_id == user_id,
            Notification.is_active.is_(True),
            Notification.is_read.is_(False),
        ]
        if notification_ids is not None:
            if not notification_ids:
                return 0
            conditions.append(Notification.id.in_(notification_ids))
        async with self._session_factory() as session:
            result = await session.execute(
                update(Notification)
                .where(*conditions)
                .values(is_read=True, read_at=now, updated_at=now)
            )
            await session.commit()
        logger.info("Marked %d notification(s) read for user %s", result.rowcount, user_id)
        return result.rowcount

    async def deactivate(self, notification_id: int, user_id: int) -> None:
        async with self._session_factory() as session:
            result = await session.execute(
                update(Notification)
                .where(
                    Notification.id == notification_id,
                    Notification.user_id == user_id,
                    Notification.is_active.is_(True),
                )
                .values(is_active=False, updated_at=self._clock())
            )
            await session.commit()
        if result.rowcount == 0:
            raise NotFound("Notification", notification_id)
