"""
GET /health — load balancer health check endpoint.

No authentication required. Returns DB connectivity status and the number of
side effects still in flight.
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from caseflow.api.v1.deps import get_case_engine
from caseflow.core.db import check_db_connection
from caseflow.services.container import CaseEngine

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    db: str
    pending_side_effects: int


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(case_engine: CaseEngine = Depends(get_case_engine)) -> HealthResponse:
    db_ok = await check_db_connection(case_engine.session_factory)
    return HealthResponse(
        status="ok",
        db="ok" if db_ok else "error",
        pending_side_effects=case_engine.side_effects.pending,
    )
