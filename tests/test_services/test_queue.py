"""Tests for the SQL-backed transport queue."""

import asyncio

import pytest

from app.config import QueueConfig
from app.core.errors import ConfigurationError, QueueError
from app.services.queue import QueueEntry, SqlMessageQueue

pytestmark = pytest.mark.asyncio


def _entries(count: int, delay: int = 0) -> list[QueueEntry]:
    return [QueueEntry(id=str(i), body={"n": i}, delay_seconds=delay) for i in range(count)]


class TestSend:
    """Tests for send and send_batch."""

    async def test_send_then_receive(self, queue):
        message_id = await queue.send({"hello": "world"})

        received = await queue.receive()

        assert len(received) == 1
        assert received[0].message_id == message_id
        assert received[0].body == {"hello": "world"}
        assert received[0].receive_count == 1

    async def test_batch_limit(self, queue):
        with pytest.raises(QueueError):
            await queue.send_batch(_entries(11))
        with pytest.raises(QueueError):
            await queue.send_batch([])

        assert len(await queue.send_batch(_entries(10))) == 10
        assert await queue.depth() == 10

    async def test_duplicate_entry_ids_rejected(self, queue):
        with pytest.raises(QueueError):
            await queue.send_batch([QueueEntry(id="a", body={}), QueueEntry(id="a", body={})])

    async def test_delay_bounds(self, queue):
        with pytest.raises(QueueError):
            await queue.send({"n": 1}, delay_seconds=901)
        with pytest.raises(QueueError):
            await queue.send({"n": 1}, delay_seconds=-1)

    async def test_delayed_message_is_hidden_until_due(self, queue, clock):
        await queue.send({"n": 1}, delay_seconds=900)

        assert await queue.receive() == []
        clock.advance(seconds=900)
        assert len(await queue.receive()) == 1

    async def test_queue_name_required(self, session_factory):
        with pytest.raises(ConfigurationError):
            SqlMessageQueue(session_factory, "")


class TestReceive:
    """Tests for visibility, deletion and dead-lettering."""

    async def test_visibility_timeout(self, queue, clock):
        await queue.send({"n": 1})

        first = await queue.receive()
        assert len(first) == 1
        assert await queue.receive() == []

        clock.advance(seconds=60)
        again = await queue.receive()
        assert len(again) == 1
        assert again[0].receive_count == 2

    async def test_delete_acknowledges(self, queue, clock):
        await queue.send({"n": 1})
        [message] = await queue.receive()

        assert await queue.delete(message) is True
        clock.advance(seconds=60)
        assert await queue.receive() == []
        assert await queue.depth() == 0

    async def test_stale_receipt_does_not_delete(self, queue, clock):
        await queue.send({"n": 1})
        [first] = await queue.receive()
        clock.advance(seconds=60)
        [second] = await queue.receive()

        assert await queue.delete(first) is False
        assert await queue.delete(second) is True

    async def test_dead_letter_after_max_receives(self, queue, clock):
        await queue.send({"n": 1})

        for _ in range(3):
            [message] = await queue.receive()
            await queue.record_error(message, "SinkDeliveryError: Unexpected status code: 500")
            clock.advance(seconds=60)

        assert await queue.receive() == []
        assert await queue.depth() == 0

        [dead] = await queue.list_dead_letters()
        assert dead.body == {"n": 1}
        assert dead.receive_count == 3
        assert "500" in dead.last_error

    async def test_spent_messages_do_not_hide_deliverable_ones(self, queue, clock):
        await queue.send_batch(_entries(10))
        for _ in range(3):
            assert len(await queue.receive()) == 10
            clock.advance(seconds=60)
        fresh_id = await queue.send({"n": "fresh"})

        received = await queue.receive()

        assert [m.message_id for m in received] == [fresh_id]
        assert len(await queue.list_dead_letters()) == 10

    async def test_concurrent_receivers_never_share_a_message(self, queue):
        await queue.send_batch(_entries(10))

        batches = await asyncio.gather(*(queue.receive(max_messages=4) for _ in range(4)))

        ids = [m.message_id for batch in batches for m in batch]
        assert len(ids) == len(set(ids))

        # Whatever lost a claim race is still visible
        rest = await queue.receive()
        assert len(ids) + len(rest) == 10
        assert not set(ids) & {m.message_id for m in rest}


class TestDeadLetters:
    """Tests for redrive and purge."""

    async def _dead_letter_one(self, queue, clock) -> None:
        await queue.send({"n": 1})
        for _ in range(3):
            await queue.receive()
            clock.advance(seconds=60)
        await queue.receive()

    async def test_redrive(self, queue, clock):
        await self._dead_letter_one(queue, clock)
        assert await queue.dead_letter_count() == 1
        [dead] = await queue.list_dead_letters()

        message_id = await queue.redrive(dead.id)

        assert message_id is not None
        assert await queue.dead_letter_count() == 0
        assert await queue.list_dead_letters() == []
        [message] = await queue.receive()
        assert message.receive_count == 1
        assert message.body == {"n": 1}

    async def test_redrive_unknown(self, queue):
        assert await queue.redrive("missing") is None

    async def test_purge_respects_retention(self, queue, clock):
        await self._dead_letter_one(queue, clock)

        assert await queue.purge_dead_letters() == 0
        clock.advance(days=15)
        assert await queue.purge_dead_letters() == 1
        assert await queue.list_dead_letters() == []

    async def test_queues_are_isolated_by_name(self, queue, session_factory, clock):
        other = SqlMessageQueue(session_factory, "other", QueueConfig({}), clock=clock)
        await other.send({"n": 1})

        assert await queue.receive() == []
        assert await queue.depth() == 0
