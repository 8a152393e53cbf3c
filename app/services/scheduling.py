"""Scheduling tick: find users whose event is today and compute their delivery time.

The tick runs hourly. It looks at the MM-DD index buckets for the UTC dates
today and today+1, because a user far east of UTC can already be on the next
calendar day. Users west of UTC whose local date still trails the UTC date are
found again on the next UTC day and, if their target hour passed in between,
picked up by the recovery sweeper.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from app.core.datetime_utils import (
    local_date,
    month_day_keys,
    target_instant_utc,
    to_aware_utc,
    utc_now_aware,
)
from app.core.logging import get_logger
from app.models.user import User
from app.services.events import EventKind
from app.services.user_store import UserStore

logger = get_logger(__name__)


@dataclass
class DeliverySchedule:
    """A user whose target instant has been reached, ready to enqueue."""

    user: User
    occurrence: date
    target_utc: datetime
    delay_seconds: int = 0


class SchedulingTickProcessor:
    """Finds due users for one event kind and decides which to enqueue now."""

    def __init__(
        self,
        store: UserStore,
        kind: EventKind,
        target_hour: int = 9,
        clock: Callable[[], datetime] = utc_now_aware,
    ) -> None:
        self.store = store
        self.kind = kind
        self.target_hour = target_hour
        self.clock = clock

    async def get_users_with_event_today(self, now: datetime | None = None) -> list[User]:
        """
        Users whose event falls on their local today.

        Queries the index buckets for UTC today and tomorrow concurrently
        (plus 02-29 on Feb 28 of non-leap years), skipping users whose marker
        already records that day. Users are de-duplicated by id, then filtered
        by their own timezone.
        """
        now = to_aware_utc(now or self.clock())
        today = now.date()
        buckets = [
            (key, day)
            for day in (today, today + timedelta(days=1))
            for key in month_day_keys(day)
        ]

        results = await asyncio.gather(
            *(
                self.store.query_by_month_day(self.kind, key, exclude_delivered_on=day)
                for key, day in buckets
            )
        )

        seen: set[str] = set()
        due: list[User] = []
        for users in results:
            for user in users:
                user_id = str(user.id)
                if user_id in seen:
                    continue
                seen.add(user_id)

                try:
                    if self.kind.is_due(user, now):
                        due.append(user)
                except Exception as e:
                    logger.bind(user_id=user_id, timezone=user.timezone, error=str(e)).warning(
                        "tick_user_skipped"
                    )

        logger.bind(
            event_type=self.kind.event_type,
            buckets=[key for key, _ in buckets],
            candidates=len(seen),
            due=len(due),
        ).debug("tick_candidates_found")
        return due

    def calculate_schedule(self, user: User, now: datetime | None = None) -> DeliverySchedule | None:
        """
        Decide whether a due user should be enqueued on this tick.

        The target is target_hour:00 on the user's local today. Returns None
        while the target is still in the future; the user is picked up again
        by a later tick.
        """
        now = to_aware_utc(now or self.clock())
        today = local_date(user.timezone, now)
        target = target_instant_utc(today, user.timezone, self.target_hour)
        if target > now:
            return None

        return DeliverySchedule(
            user=user,
            occurrence=self.kind.occurrence_date(user, today.year),
            target_utc=target,
        )

    async def run(self, now: datetime | None = None) -> list[DeliverySchedule]:
        """Run one tick and return the schedules to enqueue."""
        now = to_aware_utc(now or self.clock())
        users = await self.get_users_with_event_today(now)

        schedules: list[DeliverySchedule] = []
        pending = 0
        for user in users:
            try:
                schedule = self.calculate_schedule(user, now)
            except Exception as e:
                logger.bind(user_id=str(user.id), error=str(e)).error("tick_schedule_failed")
                continue
            if schedule is None:
                pending += 1
                continue
            schedules.append(schedule)

        logger.bind(
            event_type=self.kind.event_type,
            due=len(users),
            scheduled=len(schedules),
            pending=pending,
        ).info("tick_complete")
        return schedules
