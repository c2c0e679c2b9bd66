"""
Case endpoints.

Every mutation returns as soon as the case row is committed; history and
notifications are written in the background by the side-effect supervisor.
Engine errors are translated to HTTP status codes by the handlers registered
in caseflow.main.
"""
import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Request, status

from caseflow.api.v1.deps import get_actor_id, get_case_engine
from caseflow.engine.changes import UpdateMetadata
from caseflow.schemas.case import (
    AssignRequest,
    CaseCreate,
    CaseListResponse,
    CaseResponse,
    CaseUpdate,
    CaseUpdateResponse,
    EscalateRequest,
    FieldChangeResponse,
    SearchInfo,
    SearchPagination,
    StatusChangeRequest,
)
from caseflow.schemas.common import MessageResponse
from caseflow.schemas.history import (
    HistoryEntryResponse,
    HistoryListResponse,
    HistorySummaryItem,
)
from caseflow.services.case_repository import UpdateResult
from caseflow.services.container import CaseEngine

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/cases", tags=["cases"])

# Set by the permission layer, never by the client
_SERVER_ONLY_CRITERIA = {"impossible"}


def _criteria_from_query(request: Request) -> dict[str, Any]:
    criteria: dict[str, Any] = {}
    for key in request.query_params.keys():
        if key in _SERVER_ONLY_CRITERIA:
            continue
        values = request.query_params.getlist(key)
        criteria[key] = values if len(values) > 1 else values[0]
    return criteria


def _update_response(result: UpdateResult) -> CaseUpdateResponse:
    return CaseUpdateResponse(
        case=CaseResponse.model_validate(result.case),
        changed=result.changed,
        changes={
            name: FieldChangeResponse(from_=change.from_, to=change.to)
            for name, change in result.changes.items()
        },
        message=result.message,
    )


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

@router.post("", response_model=CaseResponse, status_code=status.HTTP_201_CREATED)
async def create_case(
    payload: CaseCreate,
    case_engine: CaseEngine = Depends(get_case_engine),
    actor_id: int = Depends(get_actor_id),
) -> CaseResponse:
    fields = payload.model_dump(exclude_none=True)
    comments = fields.pop("comments", None)
    case = await case_engine.cases.create(fields, actor_id, comments=comments)
    return CaseResponse.model_validate(case)


@router.get("", response_model=CaseListResponse)
async def search_cases(
    request: Request,
    case_engine: CaseEngine = Depends(get_case_engine),
    _actor_id: int = Depends(get_actor_id),
) -> CaseListResponse:
    """
    Filtered, sorted, paginated case search. Accepts ``search``, any exact
    filter column, ``<date>_from`` / ``<date>_to`` ranges, comma-separated
    ``statuses`` / ``priorities`` / ``categories`` / ``channels`` (and the
    other list filters), ``sort_by``, ``sort_order``, ``page`` and ``limit``.
    """
    result = await case_engine.cases.search(_criteria_from_query(request))
    pagination = result.pagination
    return CaseListResponse(
        data=[CaseResponse.model_validate(c) for c in result.data],
        pagination=SearchPagination(
            page=pagination.page,
            limit=pagination.limit,
            offset=pagination.offset,
            total=pagination.total,
            total_pages=pagination.total_pages,
            has_next=pagination.has_next,
            has_prev=pagination.has_prev,
        ),
        filters=result.filters,
        search=SearchInfo(**result.search),
    )


@router.get("/by-number/{case_number}", response_model=CaseResponse)
async def get_case_by_number(
    case_number: str,
    case_engine: CaseEngine = Depends(get_case_engine),
    _actor_id: int = Depends(get_actor_id),
) -> CaseResponse:
    case = await case_engine.cases.get_or_raise(case_number=case_number)
    return CaseResponse.model_validate(case)


@router.get("/{case_id}", response_model=CaseResponse)
async def get_case(
    case_id: int,
    case_engine: CaseEngine = Depends(get_case_engine),
    _actor_id: int = Depends(get_actor_id),
) -> CaseResponse:
    case = await case_engine.cases.get_or_raise(case_id)
    return CaseResponse.model_validate(case)


@router.patch("/{case_id}", response_model=CaseUpdateResponse)
async def update_case(
    case_id: int,
    payload: CaseUpdate,
    case_engine: CaseEngine = Depends(get_case_engine),
    actor_id: int = Depends(get_actor_id),
) -> CaseUpdateResponse:
    fields = payload.model_dump(exclude_unset=True)
    metadata = UpdateMetadata(
        comments=fields.pop("comments", None),
        status_reason=fields.pop("status_reason", None),
        resolution_summary=fields.get("resolution_summary"),
    )
    result = await case_engine.cases.update(case_id, fields, actor_id, metadata)
    return _update_response(result)


@router.delete("/{case_id}", response_model=MessageResponse)
async def delete_case(
    case_id: int,
    case_engine: CaseEngine = Depends(get_case_engine),
    actor_id: int = Depends(get_actor_id),
) -> MessageResponse:
    """Soft delete: the case disappears from every read but is never removed."""
    result = await case_engine.cases.soft_delete(case_id, actor_id)
    logger.info("Case %s soft-deleted by user %s", result.case.case_number, actor_id)
    return MessageResponse(message="Case deleted successfully")


# ---------------------------------------------------------------------------
# Workflow operations
# ---------------------------------------------------------------------------

@router.post("/{case_id}/assign", response_model=CaseUpdateResponse)
async def assign_case(
    case_id: int,
    payload: AssignRequest,
    case_engine: CaseEngine = Depends(get_case_engine),
    actor_id: int = Depends(get_actor_id),
) -> CaseUpdateResponse:
    result = await case_engine.cases.assign(
        case_id,
        payload.assigned_to,
        actor_id,
        comments=payload.comments,
        due_date=payload.due_date,
    )
    return _update_response(result)


@router.post("/{case_id}/status", response_model=CaseUpdateResponse)
async def change_case_status(
    case_id: int,
    payload: StatusChangeRequest,
    case_engine: CaseEngine = Depends(get_case_engine),
    actor_id: int = Depends(get_actor_id),
) -> CaseUpdateResponse:
    result = await case_engine.cases.change_status(
        case_id,
        payload.status_id,
        actor_id,
        reason=payload.reason,
        comments=payload.comments,
        resolved=payload.resolved,
        resolution_summary=payload.resolution_summary,
    )
    return _update_response(result)


@router.post("/{case_id}/escalate", response_model=CaseUpdateResponse)
async def escalate_case(
    case_id: int,
    payload: EscalateRequest,
    case_engine: CaseEngine = Depends(get_case_engine),
    actor_id: int = Depends(get_actor_id),
) -> CaseUpdateResponse:
    result = await case_engine.cases.escalate(
        case_id,
        actor_id,
        payload.reason,
        escalated_to=payload.escalated_to,
        priority_id=payload.priority_id,
    )
    return _update_response(result)


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

@router.get("/{case_id}/history", response_model=HistoryListResponse)
async def get_case_history(
    case_id: int,
    action_type: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    page: int = 1,
    limit: int = 50,
    case_engine: CaseEngine = Depends(get_case_engine),
    _actor_id: int = Depends(get_actor_id),
) -> HistoryListResponse:
    await case_engine.cases.get_or_raise(case_id)
    history = await case_engine.history.get_history(
        case_id,
        action_type=action_type,
        date_from=date_from,
        date_to=date_to,
        page=page,
        limit=min(limit, 100),
    )
    return HistoryListResponse(
        items=[HistoryEntryResponse.model_validate(h) for h in history.items],
        total=history.total,
        page=history.page,
        limit=history.limit,
        pages=history.pages,
    )


@router.get("/{case_id}/history/summary", response_model=list[HistorySummaryItem])
async def get_case_history_summary(
    case_id: int,
    case_engine: CaseEngine = Depends(get_case_engine),
    _actor_id: int = Depends(get_actor_id),
) -> list[HistorySummaryItem]:
    await case_engine.cases.get_or_raise(case_id)
    summary = await case_engine.history.get_summary(case_id)
    return [HistorySummaryItem.model_validate(s) for s in summary]
