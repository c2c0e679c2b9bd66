"""
Supervised background work launched after a primary case mutation commits.

History entries, notifications and side-channel deliveries run as asyncio
tasks owned by a SideEffectSupervisor. Each task is bounded by a timeout; an
exception or timeout is logged, wrapped in a SideEffectError and kept in
``failures``. Nothing is re-raised to the code that launched the task.

Call ``drain()`` to wait for everything in flight (tests, shutdown).
"""
import asyncio
import logging
from collections import deque
from collections.abc import Coroutine
from typing import Any

from caseflow.core.errors import SideEffectError

logger = logging.getLogger(__name__)


class SideEffectSupervisor:
    def __init__(self, timeout: float, max_failures: int = 200) -> None:
        self._timeout = timeout
        self._tasks: set[asyncio.Task] = set()
        self.failures: deque[SideEffectError] = deque(maxlen=max_failures)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def launch(self, name: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(self._run(name, coro), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, name: str, coro: Coroutine[Any, Any, Any]) -> Any:
        try:
            return await asyncio.wait_for(coro, timeout=self._timeout)
        except asyncio.TimeoutError:
            error = SideEffectError(name, f"timed out after {self._timeout}s")
            logger.error("Side effect %s timed out after %ss", name, self._timeout)
        except asyncio.CancelledError:
            logger.warning("Side effect %s cancelled", name)
            raise
        except Exception as exc:
            error = SideEffectError(name, str(exc) or type(exc).__name__)
            error.__cause__ = exc
            logger.exception("Side effect %s failed", name)
        self.failures.append(error)
        return None

    async def drain(self) -> None:
        """Wait until no supervised task is pending, including ones launched meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self.drain()
