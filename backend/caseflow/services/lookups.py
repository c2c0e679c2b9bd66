"""
Read-only access to the case lookup tables (statuses, priorities, categories,
channels).

Rows are cached in memory per table with a TTL (5 minutes by default); the
tables change rarely and are read on every notification fan-out.
"""
import logging
import time
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from caseflow.models.lookup import CaseCategory, CaseChannel, CasePriority, CaseStatus

logger = logging.getLogger(__name__)

_CACHE_TTL = 300  # 5 minutes


@dataclass(frozen=True)
class LookupRow:
    id: int
    name: str
    level: int | None = None


class LookupReader:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ttl: float = _CACHE_TTL,
    ) -> None:
        self._session_factory = session_factory
        self._ttl = ttl
        self._cache: dict[str, tuple[float, Any]] = {}

    # ------------------------------------------------------------------ #
    # Simple in-memory TTL cache
    # ------------------------------------------------------------------ #

    def _cache_get(self, key: str) -> Any | None:
        if key in self._cache:
            ts, value = self._cache[key]
            if time.monotonic() - ts < self._ttl:
                return value
            del self._cache[key]
        return None

    def _cache_set(self, key: str, value: Any) -> None:
        self._cache[key] = (time.monotonic(), value)

    def clear(self) -> None:
        self._cache.clear()

    # ------------------------------------------------------------------ #
    # Table loaders
    # ------------------------------------------------------------------ #

    async def _rows(self, model) -> dict[int, LookupRow]:
        key = model.__tablename__
        cached = self._cache_get(key)
        if cached is not None:
            return cached

        async with self._session_factory() as session:
            result = await session.execute(select(model))
            rows = {
                r.id: LookupRow(id=r.id, name=r.name, level=getattr(r, "level", None))
                for r in result.scalars().all()
            }
        self._cache_set(key, rows)
        return rows

    async def _get(self, model, row_id: int | None) -> LookupRow | None:
        if row_id is None:
            return None
        return (await self._rows(model)).get(row_id)

    async def status(self, status_id: int | None) -> LookupRow | None:
        return await self._get(CaseStatus, status_id)

    async def priority(self, priority_id: int | None) -> LookupRow | None:
        return await self._get(CasePriority, priority_id)

    async def category(self, category_id: int | None) -> LookupRow | None:
        return await self._get(CaseCategory, category_id)

    async def channel(self, channel_id: int | None) -> LookupRow | None:
        return await self._get(CaseChannel, channel_id)

    async def status_name(self, status_id: int | None) -> str:
        row = await self.status(status_id)
        return row.name if row else f"#{status_id}"

    async def priority_level(self, priority_id: int | None) -> int | None:
        row = await self.priority(priority_id)
        return row.level if row else None
