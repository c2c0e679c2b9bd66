"""
Shared pytest fixtures.

Each test gets its own SQLite file database (via aiosqlite) so tests run
without a live Postgres instance. A file is used rather than ``:memory:``
because background side effects open their own connections and must see the
same data. The schema is created from the ORM metadata.

Environment overrides are applied before importing caseflow modules so that
Settings() does not try to reach a real database.
"""
import os
from datetime import datetime

# Set test environment BEFORE importing any caseflow module
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("SQS_NOTIFICATION_QUEUE_URL", "")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import create_async_engine

from caseflow.core.config import Settings
from caseflow.models import (
    Base,
    CaseCategory,
    CaseChannel,
    CasePriority,
    CaseStatus,
    Notification,
    User,
)
from caseflow.services.container import CaseEngine

NOW = datetime(2026, 3, 14, 9, 30)

# Seeded ids used throughout the tests
STATUS_NEW, STATUS_IN_PROGRESS, STATUS_RESOLVED = 1, 2, 3
PRIORITY_CRITICAL, PRIORITY_HIGH, PRIORITY_MEDIUM, PRIORITY_LOW = 1, 2, 3, 4
CATEGORY_SERVICE, CATEGORY_CONDUCT = 1, 2
CHANNEL_WEBSITE, CHANNEL_PHONE = 1, 2

SUBMITTER, ACTOR, STAFF_B, ASSIGNEE = 5, 7, 9, 11
MANAGER, ADMIN, INACTIVE_MANAGER = 20, 21, 22
SUPERVISORS = {MANAGER, ADMIN}


class RecordingSender:
    """NotificationSender test double; fails the first ``fail_times`` sends."""

    channel = "email"

    def __init__(self, fail_times: int = 0) -> None:
        self.fail_times = fail_times
        self.calls: list[int] = []
        self.sent: list[int] = []

    async def send(self, notification_id: int) -> None:
        self.calls.append(notification_id)
        if self.fail_times > 0:
            self.fail_times -= 1
            raise ConnectionError("mail relay unavailable")
        self.sent.append(notification_id)


async def stored_notifications(case_engine: CaseEngine, **filters) -> list[Notification]:
    """Every notification row matching ``filters`` (column=value), oldest first."""
    async with case_engine.session_factory() as session:
        result = await session.execute(
            select(Notification).filter_by(**filters).order_by(Notification.id)
        )
        return list(result.scalars().all())


def case_fields(**overrides) -> dict:
    fields = {
        "title": "Water point broken",
        "description": "The community water point has not worked for a week.",
        "category_id": CATEGORY_SERVICE,
        "priority_id": PRIORITY_MEDIUM,
        "status_id": STATUS_NEW,
        "channel_id": CHANNEL_WEBSITE,
        "submitted_by": SUBMITTER,
        "urgency_level": "medium",
    }
    fields.update(overrides)
    return fields


@pytest.fixture
def settings() -> Settings:
    return Settings(
        environment="development",
        sqs_notification_queue_url="",
        side_effect_timeout_seconds=5.0,
        delivery_max_attempts=3,
        delivery_retry_delay_seconds=0.0,
    )


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'caseflow.db'}",
        connect_args={"timeout": 30},
    )

    # SQLite doesn't enforce FK by default — enable it
    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


async def _seed(case_engine: CaseEngine) -> None:
    async with case_engine.session_factory() as session:
        session.add_all(
            [
                CaseStatus(id=STATUS_NEW, name="New", sort_order=1, is_initial=True),
                CaseStatus(id=STATUS_IN_PROGRESS, name="In Progress", sort_order=2),
                CaseStatus(id=STATUS_RESOLVED, name="Resolved", sort_order=3, is_final=True),
                CasePriority(id=PRIORITY_CRITICAL, name="Critical", level=1),
                CasePriority(id=PRIORITY_HIGH, name="High", level=2),
                CasePriority(id=PRIORITY_MEDIUM, name="Medium", level=3),
                CasePriority(id=PRIORITY_LOW, name="Low", level=5),
                CaseCategory(id=CATEGORY_SERVICE, name="Service Quality", sort_order=1),
                CaseCategory(id=CATEGORY_CONDUCT, name="Staff Conduct", sort_order=2),
                CaseChannel(id=CHANNEL_WEBSITE, name="Website", sort_order=1),
                CaseChannel(id=CHANNEL_PHONE, name="Phone", sort_order=2),
                User(id=SUBMITTER, username="submitter", first_name="Sam", role="USER"),
                User(id=ACTOR, username="actor", first_name="Alex", role="STAFF"),
                User(id=STAFF_B, username="staff.b", role="STAFF"),
                User(id=ASSIGNEE, username="assignee", first_name="Ana", role="STAFF"),
                User(id=MANAGER, username="manager", role="MANAGER"),
                User(id=ADMIN, username="admin", role="ADMIN"),
                User(id=INACTIVE_MANAGER, username="old.manager", role="MANAGER", is_active=False),
            ]
        )
        await session.commit()


@pytest_asyncio.fixture
async def case_engine(settings, db_engine, sender):
    """CaseEngine on the test database with lookups and users seeded."""
    engine = CaseEngine(settings, db_engine=db_engine, sender=sender, clock=lambda: NOW)
    await _seed(engine)
    yield engine
    await engine.aclose()


@pytest_asyncio.fixture
async def existing_case(case_engine):
    """A persisted case (submitted by SUBMITTER, unassigned) with its creation effects settled."""
    case = await case_engine.cases.create(case_fields(), ACTOR)
    await case_engine.side_effects.drain()
    return case


@pytest_asyncio.fixture
async def client(case_engine):
    """
    AsyncClient for the FastAPI app bound to the test CaseEngine. Requests
    act as ACTOR by default (override the X-Actor-ID header per request).
    """
    from caseflow.main import create_app

    app = create_app(case_engine=case_engine)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://testserver",
        headers={"X-Actor-ID": str(ACTOR)},
    ) as ac:
        yield ac
