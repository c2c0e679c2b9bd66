"""
Notification inbox of the acting user.

Users only ever see and change their own notifications; a notification that
belongs to someone else is reported as not found.
"""
from fastapi import APIRouter, Depends

from caseflow.api.v1.deps import get_actor_id, get_case_engine
from caseflow.schemas.common import CountResponse, MessageResponse
from caseflow.schemas.notification import (
    MarkReadRequest,
    NotificationListResponse,
    NotificationResponse,
    UnreadSummaryResponse,
)
from caseflow.services.container import CaseEngine

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    unread_only: bool = False,
    type: str | None = None,
    page: int = 1,
    limit: int = 20,
    case_engine: CaseEngine = Depends(get_case_engine),
    actor_id: int = Depends(get_actor_id),
) -> NotificationListResponse:
    result = await case_engine.notifications.list_for_user(
        actor_id,
        unread_only=unread_only,
        notification_type=type,
        page=page,
        limit=min(limit, 100),
    )
    return NotificationListResponse(
        items=[NotificationResponse.model_validate(n) for n in result.items],
        total=result.total,
        unread=result.unread,
        page=result.page,
        limit=result.limit,
        pages=result.pages,
    )


@router.get("/summary", response_model=UnreadSummaryResponse)
async def unread_summary(
    case_engine: CaseEngine = Depends(get_case_engine),
    actor_id: int = Depends(get_actor_id),
) -> UnreadSummaryResponse:
    summary = await case_engine.notifications.unread_summary(actor_id)
    return UnreadSummaryResponse(**summary)


@router.post("/read-all", response_model=CountResponse)
async def mark_all_read(
    payload: MarkReadRequest | None = None,
    case_engine: CaseEngine = Depends(get_case_engine),
    actor_id: int = Depends(get_actor_id),
) -> CountResponse:
    ids = payload.notification_ids if payload is not None else None
    count = await case_engine.notifications.mark_all_as_read(actor_id, ids)
    return CountResponse(message=f"{count} notification(s) marked as read", count=count)


@router.post("/{notification_id}/read", response_model=MessageResponse)
async def mark_read(
    notification_id: int,
    case_engine: CaseEngine = Depends(get_case_engine),
    actor_id: int = Depends(get_actor_id),
) -> MessageResponse:
    changed = await case_engine.notifications.mark_as_read(notification_id, actor_id)
    return MessageResponse(
        message="Notification marked as read" if changed else "Notification was already read"
    )


@router.delete("/{notification_id}", response_model=MessageResponse)
async def deactivate_notification(
    notification_id: int,
    case_engine: CaseEngine = Depends(get_case_engine),
    actor_id: int = Depends(get_actor_id),
) -> MessageResponse:
    await case_engine.notifications.deactivate(notification_id, actor_id)
    return MessageResponse(message="Notification deleted")
