"""Recovery sweep for occurrences that were due but never delivered.

Covers consumer crashes, sink outages that outlasted the receive budget and
ticks whose dispatch failed entirely. Only past-due occurrences are
re-emitted; an occurrence whose target hour has not arrived yet is left to
the tick.
"""

import asyncio
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta

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
from app.services.ledger import DeliveryLedger
from app.services.queue import SqlMessageQueue
from app.services.user_store import UserStore

logger = get_logger(__name__)


@dataclass
class RecoveryResult:
    candidates: int = 0
    recovered: int = 0
    skipped: int = 0
    errors: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


class RecoverySweeper:
    """Re-emits missed deliveries inside a lookback window."""

    def __init__(
        self,
        store: UserStore,
        ledger: DeliveryLedger,
        queue: SqlMessageQueue,
        kind: EventKind,
        target_hour: int = 9,
        recovery_days: int = 7,
        clock: Callable[[], datetime] = utc_now_aware,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.queue = queue
        self.kind = kind
        self.target_hour = target_hour
        self.recovery_days = recovery_days
        self.clock = clock

    async def find_candidates(self, now: datetime) -> list[User]:
        """Users whose index key matches any day in the window, de-duplicated."""
        start = (now - timedelta(days=self.recovery_days)).date()
        keys: list[str] = []
        day = start
        while day <= now.date():
            for key in month_day_keys(day):
                if key not in keys:
                    keys.append(key)
            day += timedelta(days=1)

        results = await asyncio.gather(
            *(self.store.query_by_month_day(self.kind, key) for key in keys)
        )

        users: dict[str, User] = {}
        for batch in results:
            for user in batch:
                users.setdefault(str(user.id), user)
        return list(users.values())

    async def _recover_user(self, user: User, now: datetime) -> bool:
        """Emit a task for the user's latest occurrence if it was missed."""
        occurrence = self.kind.current_occurrence(user, now)
        window_start = (now - timedelta(days=self.recovery_days)).date()
        if occurrence < window_start or occurrence > local_date(user.timezone, now):
            return False

        target = target_instant_utc(occurrence, user.timezone, self.target_hour)
        if target > now:
            return False

        if await self.ledger.was_delivered(user.id, self.kind.event_type, occurrence, user.timezone):
            return False

        task = self.kind.build_task(user, occurrence, target)
        await self.queue.send(task.to_message_body(), delay_seconds=0)
        logger.bind(
            user_id=str(user.id),
            event_type=self.kind.event_type,
            event_date=str(occurrence),
        ).info("recovery_task_emitted")
        return True

    async def sweep(self, now: datetime | None = None) -> RecoveryResult:
        """Run one sweep over the lookback window."""
        now = to_aware_utc(now or self.clock())
        users = await self.find_candidates(now)
        result = RecoveryResult(candidates=len(users))

        for user in users:
            try:
                if await self._recover_user(user, now):
                    result.recovered += 1
                else:
                    result.skipped += 1
            except Exception as e:
                result.errors += 1
                logger.bind(user_id=str(user.id), error=str(e)).error("recovery_user_failed")

        logger.bind(
            event_type=self.kind.event_type,
            window_days=self.recovery_days,
            **result.as_dict(),
        ).info("recovery_complete")
        return result
