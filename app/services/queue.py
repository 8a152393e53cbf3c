"""At-least-once transport queue backed by SQL tables.

Semantics follow a standard hosted queue:

- send / send_batch enqueue messages, optionally delayed;
- receive hides each returned message for the visibility timeout and bumps
  its receive count; a message that is not deleted reappears afterwards;
- once a message has been received max_receive_count times, the next
  receive moves it to the dead-letter table instead of returning it;
- dead letters are kept for the retention period, then purged.

Every claim is a guarded UPDATE, so concurrent receivers never get the same
message inside one visibility window.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import QueueConfig
from app.core.datetime_utils import to_naive_utc, utc_now_aware
from app.core.errors import ConfigurationError, QueueError
from app.core.logging import get_logger
from app.models.queue import DeadLetter, QueueMessage

logger = get_logger(__name__)


@dataclass
class QueueEntry:
    """One entry of a batch send."""

    id: str
    body: dict[str, Any]
    delay_seconds: int = 0


@dataclass
class ReceivedMessage:
    """A message handed to a consumer for one visibility window."""

    message_id: str
    receipt_handle: str
    body: dict[str, Any]
    receive_count: int
    sent_at: datetime | None = None


class SqlMessageQueue:
    """Named queue stored in queue_messages, with a dead_letters path."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        queue_name: str,
        config: QueueConfig | None = None,
        clock: Callable[[], datetime] = utc_now_aware,
    ) -> None:
        if not queue_name:
            raise ConfigurationError("QUEUE_NAME is not set")

        config = config or QueueConfig({})
        self.session_factory = session_factory
        self.queue_name = queue_name
        self.max_batch_size = config.max_batch_size
        self.max_delay_seconds = config.max_delay_seconds
        self.visibility_timeout_seconds = config.visibility_timeout_seconds
        self.max_receive_count = config.max_receive_count
        self.dead_letter_retention_days = config.dead_letter_retention_days
        self.receive_batch_size = config.receive_batch_size
        self.clock = clock

    def _now(self) -> datetime:
        return to_naive_utc(self.clock())

    def _check_delay(self, delay_seconds: int) -> None:
        if not 0 <= delay_seconds <= self.max_delay_seconds:
            raise QueueError(
                f"delay_seconds must be between 0 and {self.max_delay_seconds}, got {delay_seconds}"
            )

    async def send(self, body: dict[str, Any], delay_seconds: int = 0) -> str:
        """Enqueue a single message and return its id."""
        ids = await self.send_batch([QueueEntry(id="0", body=body, delay_seconds=delay_seconds)])
        return ids[0]

    async def send_batch(self, entries: list[QueueEntry]) -> list[str]:
        """
        Enqueue up to max_batch_size messages in one call.

        The batch is written in a single transaction: either every entry is
        enqueued or the call raises.

        Raises:
            QueueError: If the batch is empty, too large, has duplicate entry
                ids or an out-of-range delay, or the write fails
        """
        if not entries:
            raise QueueError("Batch must contain at least one entry")
        if len(entries) > self.max_batch_size:
            raise QueueError(f"Batch of {len(entries)} exceeds limit of {self.max_batch_size}")
        if len({entry.id for entry in entries}) != len(entries):
            raise QueueError("Batch entry ids must be unique")
        for entry in entries:
            self._check_delay(entry.delay_seconds)

        now = self._now()
        messages = [
            QueueMessage(
                id=str(uuid4()),
                queue_name=self.queue_name,
                body=entry.body,
                visible_at=now + timedelta(seconds=entry.delay_seconds),
                receive_count=0,
                created_at=now,
            )
            for entry in entries
        ]

        try:
            async with self.session_factory() as session:
                session.add_all(messages)
                await session.commit()
        except SQLAlchemyError as e:
            raise QueueError(f"Failed to enqueue batch: {e}") from e

        logger.bind(queue=self.queue_name, count=len(messages)).debug("queue_batch_sent")
        return [message.id for message in messages]

    async def receive(self, max_messages: int | None = None) -> list[ReceivedMessage]:
        """
        Claim up to max_messages visible messages for one visibility window.

        Spent messages found on the way are dead-lettered and the lookup
        continues, so an empty result means nothing deliverable is visible.
        """
        limit = max_messages or self.receive_batch_size
        now = self._now()
        hidden_until = now + timedelta(seconds=self.visibility_timeout_seconds)
        received: list[ReceivedMessage] = []

        async with self.session_factory() as session:
            while len(received) < limit:
                result = await session.execute(
                    select(QueueMessage)
                    .where(
                        QueueMessage.queue_name == self.queue_name,
                        QueueMessage.visible_at <= now,
                    )
                    .order_by(QueueMessage.visible_at, QueueMessage.created_at)
                    .limit(limit - len(received))
                )
                candidates = list(result.scalars().all())
                if not candidates:
                    break

                dead_lettered = 0
                for message in candidates:
                    if message.receive_count >= self.max_receive_count:
                        if await self._dead_letter(session, message, now):
                            dead_lettered += 1
                        continue

                    claimed = await self._claim(session, message, now, hidden_until)
                    if claimed:
                        received.append(claimed)

                # Only dead-lettering frees rows for another lookup
                if not dead_lettered:
                    break

            await session.commit()

        return received

    async def _claim(
        self,
        session: AsyncSession,
        message: QueueMessage,
        now: datetime,
        hidden_until: datetime,
    ) -> ReceivedMessage | None:
        handle = str(uuid4())
        claimed = await session.execute(
            update(QueueMessage)
            .where(
                QueueMessage.id == message.id,
                QueueMessage.visible_at <= now,
                QueueMessage.receive_count == message.receive_count,
            )
            .values(
                receive_count=message.receive_count + 1,
                visible_at=hidden_until,
                receipt_handle=handle,
                first_received_at=message.first_received_at or now,
            )
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            return None

        return ReceivedMessage(
            message_id=message.id,
            receipt_handle=handle,
            body=message.body,
            receive_count=message.receive_count + 1,
            sent_at=message.created_at,
        )

    async def _dead_letter(self, session: AsyncSession, message: QueueMessage, now: datetime) -> bool:
        removed = await session.execute(
            delete(QueueMessage)
            .where(
                QueueMessage.id == message.id,
                QueueMessage.visible_at <= now,
            )
            .execution_options(synchronize_session=False)
        )
        if removed.rowcount != 1:
            return False

        session.add(
            DeadLetter(
                queue_name=self.queue_name,
                message_id=message.id,
                body=message.body,
                receive_count=message.receive_count,
                last_error=message.last_error,
                sent_at=message.created_at,
                dead_lettered_at=now,
            )
        )
        logger.bind(
            queue=self.queue_name,
            message_id=message.id,
            receive_count=message.receive_count,
            last_error=message.last_error,
        ).warning("queue_message_dead_lettered")
        return True

    async def delete(self, message: ReceivedMessage) -> bool:
        """Acknowledge a message. Returns False if the receipt is stale."""
        async with self.session_factory() as session:
            result = await session.execute(
                delete(QueueMessage)
                .where(
                    QueueMessage.id == message.message_id,
                    QueueMessage.receipt_handle == message.receipt_handle,
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        return bool(result.rowcount == 1)

    async def record_error(self, message: ReceivedMessage, error: str) -> None:
        """Attach the latest processing error; visibility is left unchanged."""
        async with self.session_factory() as session:
            await session.execute(
                update(QueueMessage)
                .where(QueueMessage.id == message.message_id)
                .values(last_error=error[:2000])
                .execution_options(synchronize_session=False)
            )
            await session.commit()

    async def depth(self) -> int:
        """Number of messages in the queue, visible or in flight."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(func.count())
                .select_from(QueueMessage)
                .where(QueueMessage.queue_name == self.queue_name)
            )
            return int(result.scalar_one())

    async def dead_letter_count(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                select(func.count())
                .select_from(DeadLetter)
                .where(DeadLetter.queue_name == self.queue_name)
            )
            return int(result.scalar_one())

    async def list_dead_letters(self, limit: int = 50, offset: int = 0) -> list[DeadLetter]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(DeadLetter)
                .where(DeadLetter.queue_name == self.queue_name)
                .order_by(DeadLetter.dead_lettered_at.desc())
                .offset(offset)
                .limit(limit)
            )
            return list(result.scalars().all())

    async def redrive(self, dead_letter_id: str) -> str | None:
        """Move a dead letter back onto the queue with a fresh receive budget."""
        now = self._now()
        async with self.session_factory() as session:
            dead_letter = await session.get(DeadLetter, dead_letter_id)
            if dead_letter is None or dead_letter.queue_name != self.queue_name:
                return None

            message = QueueMessage(
                id=str(uuid4()),
                queue_name=self.queue_name,
                body=dead_letter.body,
                visible_at=now,
                receive_count=0,
                created_at=now,
            )
            session.add(message)
            await session.delete(dead_letter)
            await session.commit()

        logger.bind(
            queue=self.queue_name,
            dead_letter_id=dead_letter_id,
            message_id=message.id,
        ).info("dead_letter_redriven")
        return message.id

    async def purge_dead_letters(self, retention_days: int | None = None) -> int:
        """Drop dead letters older than the retention period."""
        days = self.dead_letter_retention_days if retention_days is None else retention_days
        cutoff = self._now() - timedelta(days=days)
        async with self.session_factory() as session:
            result = await session.execute(
                delete(DeadLetter)
                .where(
                    DeadLetter.queue_name == self.queue_name,
                    DeadLetter.dead_lettered_at < cutoff,
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        purged = int(result.rowcount or 0)
        if purged:
            logger.bind(queue=self.queue_name, purged=purged).info("dead_letters_purged")
        return purged
