"""
Shared FastAPI dependencies.

The acting user is identified by the X-Actor-ID header, set by the
authenticating gateway in front of this service.
"""
from fastapi import Header, HTTPException, Request, status

from caseflow.services.container import CaseEngine


def get_case_engine(request: Request) -> CaseEngine:
    return request.app.state.case_engine


async def get_actor_id(x_actor_id: str | None = Header(default=None)) -> int:
    if not x_actor_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Actor-ID header",
        )
    try:
        actor_id = int(x_actor_id)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Actor-ID must be a numeric user id",
        ) from exc
    if actor_id <= 0:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Actor-ID must be a numeric user id",
        )
    return actor_id
