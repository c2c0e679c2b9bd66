"""
Async SQLAlchemy engine + session helpers.

The engine is built once per CaseEngine (see caseflow.services.container) and
disposed on shutdown. Endpoints reach the session factory through the
container (caseflow.api.v1.deps.get_case_engine).
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from caseflow.core.config import Settings

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the TIMESTAMP (without time zone) columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def build_engine(settings: Settings) -> AsyncEngine:
    return create_async_engine(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
        echo=settings.is_development,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        expire_on_commit=False,
        class_=AsyncSession,
    )


async def check_db_connection(session_factory: async_sessionmaker[AsyncSession]) -> bool:
    """Return True if the database is reachable."""
    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception as exc:
        logger.error("Database health check failed: %s", exc)
        return False
