"""User store with the recurrence (MM-DD) index lookup."""

import uuid
from datetime import date

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.logging import get_logger
from app.models.delivery import DeliveryMarker
from app.models.user import User
from app.schemas.user import UserCreate, UserUpdate
from app.services.events import EventKind

logger = get_logger(__name__)


def _parse_id(user_id: str | uuid.UUID) -> uuid.UUID | None:
    if isinstance(user_id, uuid.UUID):
        return user_id
    try:
        return uuid.UUID(str(user_id))
    except ValueError:
        return None


class UserStore:
    """Reads and writes user records. Each call runs in its own session."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def create(self, request: UserCreate) -> User:
        user = User(
            first_name=request.first_name,
            last_name=request.last_name,
            birthday=date.fromisoformat(request.birthday),
            timezone=request.timezone,
            location=request.location.model_dump(exclude_none=True),
        )
        async with self.session_factory() as session:
            session.add(user)
            await session.commit()
            await session.refresh(user)

        logger.bind(user_id=str(user.id), month_day=user.birthday_month_day).info("user_created")
        return user

    async def get(self, user_id: str | uuid.UUID) -> User | None:
        key = _parse_id(user_id)
        if key is None:
            return None
        async with self.session_factory() as session:
            return await session.get(User, key)

    async def update(self, user_id: str | uuid.UUID, request: UserUpdate) -> User | None:
        key = _parse_id(user_id)
        if key is None:
            return None

        async with self.session_factory() as session:
            user = await session.get(User, key)
            if user is None:
                return None

            if request.first_name is not None:
                user.first_name = request.first_name
            if request.last_name is not None:
                user.last_name = request.last_name
            if request.birthday is not None:
                # Also recomputes birthday_month_day
                user.birthday = date.fromisoformat(request.birthday)
            if request.timezone is not None:
                user.timezone = request.timezone
            if request.location is not None:
                user.location = request.location.model_dump(exclude_none=True)

            await session.commit()
            await session.refresh(user)

        logger.bind(user_id=str(user.id)).info("user_updated")
        return user

    async def delete(self, user_id: str | uuid.UUID) -> bool:
        key = _parse_id(user_id)
        if key is None:
            return False

        async with self.session_factory() as session:
            user = await session.get(User, key)
            if user is None:
                return False
            await session.execute(delete(DeliveryMarker).where(DeliveryMarker.user_id == key))
            await session.delete(user)
            await session.commit()

        logger.bind(user_id=str(key)).info("user_deleted")
        return True

    async def query_by_month_day(
        self,
        kind: EventKind,
        month_day: str,
        exclude_delivered_on: date | None = None,
    ) -> list[User]:
        """
        Find users whose recurring date for an event kind has this MM-DD key.

        Args:
            kind: Event kind whose index attribute is queried
            month_day: Index key in MM-DD format
            exclude_delivered_on: If given, drop users whose marker for this
                kind already records delivery of the occurrence on this date

        Returns:
            Matching users
        """
        index_column = getattr(User, kind.index_attribute)
        stmt = select(User).where(index_column == month_day)

        if exclude_delivered_on is not None:
            stmt = stmt.outerjoin(
                DeliveryMarker,
                and_(
                    DeliveryMarker.user_id == User.id,
                    DeliveryMarker.event_type == kind.event_type,
                ),
            ).where(
                or_(
                    DeliveryMarker.id.is_(None),
                    DeliveryMarker.last_delivered_date.is_(None),
                    DeliveryMarker.last_delivered_at.is_(None),
                    DeliveryMarker.last_delivered_date != exclude_delivered_on,
                )
            )

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())
