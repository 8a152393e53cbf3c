"""Delivery consumer: turn queued tasks into sends and ledger commits.

Per task:

    RECEIVED -> DROPPED (user missing | already delivered)
             -> SENDING -> FAILED (left on the queue, redelivered, eventually dead-lettered)
                        -> COMMITTED | COMMITTED_RACE

The ledger is written only after the sink accepted the message, so a crash in
between can cause a duplicate send but never a lost one.
"""

import asyncio
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from app.core.datetime_utils import utc_now_aware
from app.core.logging import get_logger
from app.schemas.task import DeliveryTask, decode_task
from app.services.events import get_event_kind
from app.services.ledger import DeliveryLedger
from app.services.queue import ReceivedMessage, SqlMessageQueue
from app.services.sink import DeliverySink
from app.services.user_store import UserStore

logger = get_logger(__name__)


class TaskOutcome(StrEnum):
    DROPPED_MISSING_USER = "dropped_missing_user"
    DROPPED_ALREADY_DELIVERED = "dropped_already_delivered"
    COMMITTED = "committed"
    COMMITTED_RACE = "committed_race"
    FAILED = "failed"


@dataclass
class PollResult:
    received: int = 0
    outcomes: Counter[TaskOutcome] = field(default_factory=Counter)

    def merge(self, other: "PollResult") -> None:
        self.received += other.received
        self.outcomes.update(other.outcomes)

    def as_dict(self) -> dict[str, int]:
        counts = {outcome.value: self.outcomes.get(outcome, 0) for outcome in TaskOutcome}
        return {"received": self.received, **counts}


class DeliveryConsumer:
    """Processes delivery tasks received from the transport queue."""

    def __init__(
        self,
        store: UserStore,
        ledger: DeliveryLedger,
        queue: SqlMessageQueue,
        sink: DeliverySink,
        clock: Callable[[], datetime] = utc_now_aware,
        task_timeout_seconds: float | None = None,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.queue = queue
        self.sink = sink
        self.clock = clock
        self.task_timeout_seconds = task_timeout_seconds

    async def process_task(self, task: DeliveryTask) -> TaskOutcome:
        """
        Deliver one task.

        Raises:
            UnknownEventKindError: If the task names an unregistered kind
            SinkDeliveryError: If the sink did not accept the message
        """
        kind = get_event_kind(task.event_type)
        log = logger.bind(
            user_id=task.user_id,
            event_type=task.event_type,
            event_date=str(task.event_date),
        )

        user = await self.store.get(task.user_id)
        if user is None:
            log.info("delivery_dropped_missing_user")
            return TaskOutcome.DROPPED_MISSING_USER

        if await self.ledger.was_delivered(user.id, kind.event_type, task.event_date, user.timezone):
            log.info("delivery_dropped_already_delivered")
            return TaskOutcome.DROPPED_ALREADY_DELIVERED

        await self.sink.send(kind.format_message(user), kind.event_type)

        committed = await self.ledger.mark_delivered(
            user.id,
            kind.event_type,
            task.event_date,
            user.timezone,
            delivered_at=self.clock(),
        )
        if not committed:
            # Another consumer recorded the same occurrence first.
            log.warning("delivery_marker_race")
            return TaskOutcome.COMMITTED_RACE

        log.info("delivery_committed")
        return TaskOutcome.COMMITTED

    async def handle_message(self, message: ReceivedMessage) -> TaskOutcome:
        """Process a received message and acknowledge it unless it failed."""
        try:
            task = decode_task(message.body)
            if self.task_timeout_seconds:
                async with asyncio.timeout(self.task_timeout_seconds):
                    outcome = await self.process_task(task)
            else:
                outcome = await self.process_task(task)
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.bind(
                message_id=message.message_id,
                receive_count=message.receive_count,
                error_type=type(e).__name__,
                error=error,
            ).error("delivery_failed")
            await self.queue.record_error(message, f"{type(e).__name__}: {error}")
            return TaskOutcome.FAILED

        if not await self.queue.delete(message):
            logger.bind(message_id=message.message_id).warning("queue_receipt_stale")
        return outcome

    async def poll(self) -> PollResult:
        """Receive one batch and process its messages concurrently."""
        messages = await self.queue.receive()
        result = PollResult(received=len(messages))
        if not messages:
            return result

        outcomes = await asyncio.gather(*(self.handle_message(m) for m in messages))
        result.outcomes.update(outcomes)
        logger.bind(**result.as_dict()).info("consumer_poll_complete")
        return result

    async def drain(self, max_polls: int = 50) -> PollResult:
        """Poll until the queue has nothing visible or max_polls is reached."""
        total = PollResult()
        for _ in range(max_polls):
            result = await self.poll()
            total.merge(result)
            if result.received == 0:
                break
        return total
