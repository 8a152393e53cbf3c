"""Delivery status ledger.

The ledger records, per user and event kind, which occurrence was last
delivered and when. Its conditional write is the only synchronization point
between concurrent consumers: a marker for an occurrence can be committed
once, and a rejected write means another consumer already recorded it.

A marker witnesses an occurrence when its date equals the occurrence date and
its timestamp falls inside that occurrence's cycle, i.e. at or after the start
of the occurrence's local calendar day in the user's timezone.
"""

import uuid
from datetime import date, datetime

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.datetime_utils import start_of_local_day_utc, to_naive_utc
from app.core.logging import get_logger
from app.models.delivery import DeliveryMarker

logger = get_logger(__name__)


def cycle_start(occurrence: date, timezone: str) -> datetime:
    """Naive UTC start of an occurrence's cycle."""
    return to_naive_utc(start_of_local_day_utc(occurrence, timezone))


def is_witness(marker: DeliveryMarker | None, occurrence: date, timezone: str) -> bool:
    """Whether a marker proves the occurrence was delivered."""
    if marker is None or marker.last_delivered_at is None:
        return False
    if marker.last_delivered_date != occurrence:
        return False
    return to_naive_utc(marker.last_delivered_at) >= cycle_start(occurrence, timezone)


class DeliveryLedger:
    """Per-user delivery markers with a compare-and-set style write."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def get_marker(self, user_id: uuid.UUID, event_type: str) -> DeliveryMarker | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(DeliveryMarker).where(
                    and_(
                        DeliveryMarker.user_id == user_id,
                        DeliveryMarker.event_type == event_type,
                    )
                )
            )
            return result.scalar_one_or_none()

    async def was_delivered(
        self,
        user_id: uuid.UUID,
        event_type: str,
        occurrence: date,
        timezone: str,
    ) -> bool:
        """Check whether the occurrence is already recorded as delivered."""
        marker = await self.get_marker(user_id, event_type)
        return is_witness(marker, occurrence, timezone)

    async def mark_delivered(
        self,
        user_id: uuid.UUID,
        event_type: str,
        occurrence: date,
        timezone: str,
        delivered_at: datetime,
    ) -> bool:
        """
        Record a successful delivery unless the occurrence is already recorded.

        The write only applies when no marker witnesses this occurrence yet.
        Updating an existing marker is a single guarded UPDATE; a first marker
        is an INSERT protected by the (user_id, event_type) unique constraint.

        Returns:
            True if this call committed the marker, False if the precondition
            rejected the write (another delivery already recorded it)
        """
        start = cycle_start(occurrence, timezone)
        sent_at = to_naive_utc(delivered_at)

        async with self.session_factory() as session:
            result = await session.execute(
                update(DeliveryMarker)
                .where(
                    DeliveryMarker.user_id == user_id,
                    DeliveryMarker.event_type == event_type,
                    or_(
                        DeliveryMarker.last_delivered_date.is_(None),
                        DeliveryMarker.last_delivered_at.is_(None),
                        DeliveryMarker.last_delivered_date != occurrence,
                        DeliveryMarker.last_delivered_at < start,
                    ),
                )
                .values(last_delivered_date=occurrence, last_delivered_at=sent_at)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            if result.rowcount == 1:
                return True

        # Either no marker exists yet, or an existing one rejected the update.
        # The insert succeeds only in the first case.
        async with self.session_factory() as session:
            session.add(
                DeliveryMarker(
                    user_id=user_id,
                    event_type=event_type,
                    last_delivered_date=occurrence,
                    last_delivered_at=sent_at,
                )
            )
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.bind(
                    user_id=str(user_id),
                    event_type=event_type,
                    occurrence=str(occurrence),
                ).debug("delivery_marker_write_rejected")
                return False

        return True
