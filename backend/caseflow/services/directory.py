"""User directory lookups used for notification fan-out."""
import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from caseflow.models.user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirectoryUser:
    id: int
    username: str
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None


class UserDirectory:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        supervisor_roles: list[str],
    ) -> None:
        self._session_factory = session_factory
        self._supervisor_roles = [r.upper() for r in supervisor_roles]

    async def list_supervisors(self) -> list[DirectoryUser]:
        """Active users holding one of the configured supervisory roles."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(User)
                .where(User.role.in_(self._supervisor_roles), User.is_active.is_(True))
                .order_by(User.id)
            )
            users = result.scalars().all()
        logger.debug("Found %d supervisors (roles=%s)", len(users), self._supervisor_roles)
        return [
            DirectoryUser(
                id=u.id,
                username=u.username,
                first_name=u.first_name,
                last_name=u.last_name,
                email=u.email,
            )
            for u in users
        ]
