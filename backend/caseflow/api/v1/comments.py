"""Case comment endpoints."""
import logging

from fastapi import APIRouter, Depends, status

from caseflow.api.v1.deps import get_actor_id, get_case_engine
from caseflow.schemas.comment import (
    CommentCountResponse,
    CommentCreate,
    CommentListResponse,
    CommentResponse,
    CommentTypeCount,
    CommentUpdate,
)
from caseflow.schemas.common import MessageResponse
from caseflow.services.comments import CommentOptions, CommentPage
from caseflow.services.container import CaseEngine

logger = logging.getLogger(__name__)
router = APIRouter(tags=["comments"])


def _page_response(page: CommentPage) -> CommentListResponse:
    return CommentListResponse(
        items=[CommentResponse.model_validate(c) for c in page.items],
        total=page.total,
        page=page.page,
        limit=page.limit,
        pages=page.pages,
    )


@router.get("/cases/{case_id}/comments", response_model=CommentListResponse)
async def list_comments(
    case_id: int,
    include_internal: bool = True,
    comment_type: str | None = None,
    page: int = 1,
    limit: int = 50,
    case_engine: CaseEngine = Depends(get_case_engine),
    _actor_id: int = Depends(get_actor_id),
) -> CommentListResponse:
    await case_engine.cases.get_or_raise(case_id)
    comments = await case_engine.comments.list_for_case(
        case_id,
        include_internal=include_internal,
        comment_type=comment_type,
        page=page,
        limit=min(limit, 100),
    )
    return _page_response(comments)


@router.post(
    "/cases/{case_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_comment(
    case_id: int,
    payload: CommentCreate,
    case_engine: CaseEngine = Depends(get_case_engine),
    actor_id: int = Depends(get_actor_id),
) -> CommentResponse:
    options = CommentOptions(**payload.model_dump(exclude={"comment"}))
    comment = await case_engine.comments.add(case_id, actor_id, payload.comment, options)
    return CommentResponse.model_validate(comment)


@router.get("/cases/{case_id}/comments/count", response_model=CommentCountResponse)
async def count_comments(
    case_id: int,
    case_engine: CaseEngine = Depends(get_case_engine),
    _actor_id: int = Depends(get_actor_id),
) -> CommentCountResponse:
    await case_engine.cases.get_or_raise(case_id)
    counts = await case_engine.comments.count(case_id)
    return CommentCountResponse(
        total=counts.total,
        by_type=[CommentTypeCount(**row) for row in counts.by_type],
    )


@router.get("/comments/follow-ups", response_model=CommentListResponse)
async def list_pending_follow_ups(
    case_id: int | None = None,
    overdue: bool = False,
    page: int = 1,
    limit: int = 20,
    case_engine: CaseEngine = Depends(get_case_engine),
    _actor_id: int = Depends(get_actor_id),
) -> CommentListResponse:
    """Comments whose follow-up is still open, earliest follow-up date first."""
    comments = await case_engine.comments.pending_follow_ups(
        case_id=case_id, overdue=overdue, page=page, limit=min(limit, 100)
    )
    return _page_response(comments)


@router.get("/comments/{comment_id}", response_model=CommentResponse)
async def get_comment(
    comment_id: int,
    case_engine: CaseEngine = Depends(get_case_engine),
    _actor_id: int = Depends(get_actor_id),
) -> CommentResponse:
    comment = await case_engine.comments.get(comment_id)
    return CommentResponse.model_validate(comment)


@router.patch("/comments/{comment_id}", response_model=CommentResponse)
async def edit_comment(
    comment_id: int,
    payload: CommentUpdate,
    case_engine: CaseEngine = Depends(get_case_engine),
    actor_id: int = Depends(get_actor_id),
) -> CommentResponse:
    comment = await case_engine.comments.edit(
        comment_id,
        payload.comment,
        actor_id,
        reason=payload.edit_reason,
        comment_type=payload.comment_type,
        requires_follow_up=payload.requires_follow_up,
    )
    return CommentResponse.model_validate(comment)


@router.delete("/comments/{comment_id}", response_model=MessageResponse)
async def delete_comment(
    comment_id: int,
    case_engine: CaseEngine = Depends(get_case_engine),
    actor_id: int = Depends(get_actor_id),
) -> MessageResponse:
    await case_engine.comments.delete(comment_id, actor_id)
    return MessageResponse(message="Comment deleted successfully")


@router.post("/comments/{comment_id}/follow-up/complete", response_model=CommentResponse)
async def complete_follow_up(
    comment_id: int,
    case_engine: CaseEngine = Depends(get_case_engine),
    actor_id: int = Depends(get_actor_id),
) -> CommentResponse:
    comment = await case_engine.comments.complete_follow_up(comment_id, actor_id)
    return CommentResponse.model_validate(comment)
