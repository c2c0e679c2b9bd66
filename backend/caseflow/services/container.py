"""
CaseEngine — wires the case mutation engine together.

Built once in the FastAPI lifespan (or directly by tests) and closed on
shutdown. Closing drains in-flight side effects before the database engine is
disposed.
"""
import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncEngine

from caseflow.core.config import Settings
from caseflow.core.db import build_engine, build_session_factory, utcnow
from caseflow.services.case_repository import CaseRepository
from caseflow.services.comments import CommentService
from caseflow.services.delivery import NotificationSender, build_sender
from caseflow.services.directory import UserDirectory
from caseflow.services.history_recorder import HistoryRecorder
from caseflow.services.lookups import LookupReader
from caseflow.services.notification_dispatcher import NotificationDispatcher
from caseflow.services.side_effects import SideEffectSupervisor

logger = logging.getLogger(__name__)


class CaseEngine:
    def __init__(
        self,
        settings: Settings,
        db_engine: AsyncEngine | None = None,
        sender: NotificationSender | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.settings = settings
        self._owns_db_engine = db_engine is None
        self.db_engine = db_engine if db_engine is not None else build_engine(settings)
        self.session_factory = build_session_factory(self.db_engine)

        self.side_effects = SideEffectSupervisor(timeout=settings.side_effect_timeout_seconds)
        self.lookups = LookupReader(self.session_factory, ttl=settings.lookup_cache_ttl)
        self.directory = UserDirectory(self.session_factory, settings.supervisor_roles)
        self.history = HistoryRecorder(self.session_factory, clock=clock)
        self.notifications = NotificationDispatcher(
            self.session_factory,
            self.directory,
            self.lookups,
            self.side_effects,
            sender if sender is not None else build_sender(settings),
            delivery_attempts=settings.delivery_max_attempts,
            retry_delay=settings.delivery_retry_delay_seconds,
            clock=clock,
        )
        self.cases = CaseRepository(
            self.session_factory,
            self.side_effects,
            self.history,
            self.notifications,
            case_number_prefix=settings.case_number_prefix,
            max_case_number_attempts=settings.case_number_max_attempts,
            default_limit=settings.search_default_limit,
            max_limit=settings.search_max_limit,
            clock=clock,
        )
        self.comments = CommentService(
            self.session_factory,
            self.cases,
            self.history,
            self.notifications,
            self.side_effects,
            clock=clock,
        )

    async def aclose(self) -> None:
        pending = self.side_effects.pending
        if pending:
            logger.info("Waiting for %d side effect(s) before shutdown", pending)
        await self.side_effects.drain()
        if self._owns_db_engine:
            await self.db_engine.dispose()
