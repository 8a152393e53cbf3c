"""Batch dispatcher: enqueue delivery schedules in transport-sized batches."""

import asyncio
from dataclasses import dataclass

from app.core.errors import DispatchFailedError
from app.core.logging import get_logger
from app.services.events import EventKind
from app.services.queue import QueueEntry, SqlMessageQueue
from app.services.scheduling import DeliverySchedule

logger = get_logger(__name__)


@dataclass
class DispatchResult:
    total: int = 0
    enqueued: int = 0
    failed: int = 0
    batches: int = 0
    failed_batches: int = 0


class BatchDispatcher:
    """
    Splits schedules into batches and submits them concurrently.

    A failed batch does not cancel the others. If every batch fails and
    nothing was enqueued the dispatch raises DispatchFailedError; a partial
    failure is only logged, the next tick and the recovery sweep pick up
    what was lost.
    """

    def __init__(
        self,
        queue: SqlMessageQueue,
        kind: EventKind,
        batch_size: int | None = None,
    ) -> None:
        self.queue = queue
        self.kind = kind
        self.batch_size = min(batch_size or queue.max_batch_size, queue.max_batch_size)

    def _chunks(self, schedules: list[DeliverySchedule]) -> list[list[DeliverySchedule]]:
        return [
            schedules[i : i + self.batch_size] for i in range(0, len(schedules), self.batch_size)
        ]

    def _entry(self, schedule: DeliverySchedule, index: int) -> QueueEntry:
        task = self.kind.build_task(schedule.user, schedule.occurrence, schedule.target_utc)
        return QueueEntry(
            id=f"{task.user_id}-{index}",
            body=task.to_message_body(),
            delay_seconds=schedule.delay_seconds,
        )

    async def _submit(self, batch_index: int, batch: list[DeliverySchedule]) -> int:
        entries = [self._entry(schedule, i) for i, schedule in enumerate(batch)]
        try:
            await self.queue.send_batch(entries)
        except Exception as e:
            logger.bind(
                batch=batch_index,
                size=len(batch),
                user_ids=[str(s.user.id) for s in batch],
                error=str(e),
            ).error("dispatch_batch_failed")
            raise

        logger.bind(batch=batch_index, size=len(batch)).debug("dispatch_batch_sent")
        return len(entries)

    async def dispatch(self, schedules: list[DeliverySchedule]) -> DispatchResult:
        """
        Enqueue all schedules.

        Raises:
            DispatchFailedError: If every batch failed and nothing was enqueued
        """
        if not schedules:
            logger.info("dispatch_nothing_to_send")
            return DispatchResult()

        batches = self._chunks(schedules)
        outcomes = await asyncio.gather(
            *(self._submit(i, batch) for i, batch in enumerate(batches)),
            return_exceptions=True,
        )

        result = DispatchResult(total=len(schedules), batches=len(batches))
        for batch, outcome in zip(batches, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                result.failed += len(batch)
                result.failed_batches += 1
            else:
                result.enqueued += outcome

        log = logger.bind(
            event_type=self.kind.event_type,
            total=result.total,
            enqueued=result.enqueued,
            failed=result.failed,
            batches=result.batches,
            failed_batches=result.failed_batches,
        )

        if result.failed_batches == result.batches and result.enqueued == 0:
            log.error("dispatch_failed")
            raise DispatchFailedError(failed=result.failed, batches=result.batches)

        if result.failed:
            log.warning("dispatch_partial_failure")
        else:
            log.info("dispatch_complete")
        return result
