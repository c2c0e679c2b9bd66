"""
FastAPI application factory.

Startup sequence:
  1. Validate settings
  2. Build the CaseEngine (DB engine, side-effect supervisor, services)
     unless one was injected (tests)
  3. Check DB connectivity (warn on failure — do not crash, ALB will detect)
  4. Mount all API routers

Shutdown drains in-flight history / notification side effects before the
DB engine is disposed.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from caseflow.api.v1.cases import router as cases_router
from caseflow.api.v1.comments import router as comments_router
from caseflow.api.v1.health import router as health_router
from caseflow.api.v1.notifications import router as notifications_router
from caseflow.core.config import get_settings
from caseflow.core.db import check_db_connection
from caseflow.core.errors import (
    CaseEngineError,
    ConflictError,
    MissingRequiredFields,
    NotFound,
    PersistenceError,
    ValidationError,
)
from caseflow.services.container import CaseEngine

settings = get_settings()
logger = logging.getLogger(__name__)

logging.basicConfig(
    level=logging.DEBUG if settings.is_development else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s — %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting caseflow backend (env=%s)", settings.environment)
    owned = getattr(app.state, "case_engine", None) is None
    if owned:
        app.state.case_engine = CaseEngine(settings)

    db_ok = await check_db_connection(app.state.case_engine.session_factory)
    if db_ok:
        logger.info("Database connection: OK")
    else:
        logger.warning("Database connection: FAILED — check DB_HOST / credentials")

    if not settings.sqs_configured:
        logger.warning("SQS_NOTIFICATION_QUEUE_URL not set — notification delivery is log-only")

    yield

    logger.info("Shutting down caseflow backend")
    if owned:
        await app.state.case_engine.aclose()


def _status_for(exc: CaseEngineError) -> int:
    if isinstance(exc, ValidationError):
        return 422
    if isinstance(exc, NotFound):
        return 404
    if isinstance(exc, ConflictError):
        return 409
    if isinstance(exc, PersistenceError):
        return 503
    return 500


def create_app(case_engine: CaseEngine | None = None) -> FastAPI:
    app = FastAPI(
        title="Caseflow — Case Management API",
        version="0.1.0",
        description="Case mutation engine: cases, audit history, comments and notifications",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )
    if case_engine is not None:
        app.state.case_engine = case_engine

    # ------------------------------------------------------------------ #
    # CORS — restrict in production
    # ------------------------------------------------------------------ #
    origins = ["*"] if settings.is_development else []
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ------------------------------------------------------------------ #
    # Exception handlers
    # ------------------------------------------------------------------ #
    @app.exception_handler(CaseEngineError)
    async def case_engine_error_handler(request: Request, exc: CaseEngineError):
        status_code = _status_for(exc)
        if status_code >= 500:
            logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url, exc)
        content: dict = {"detail": str(exc)}
        if isinstance(exc, MissingRequiredFields):
            content["fields"] = exc.fields
        elif isinstance(exc, ValidationError) and exc.field:
            content["field"] = exc.field
        return JSONResponse(status_code=status_code, content=content)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s %s", request.method, request.url)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    # ------------------------------------------------------------------ #
    # Routers
    # ------------------------------------------------------------------ #
    app.include_router(health_router)
    app.include_router(cases_router, prefix="/api/v1")
    app.include_router(comments_router, prefix="/api/v1")
    app.include_router(notifications_router, prefix="/api/v1")

    return app


app = create_app()
