"""
Shared wiring for job modules.

Builds the tick, dispatcher, consumer and recovery components from
configuration. Used by the scheduled jobs, the CLI and the API.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import AppConfig, get_config
from app.core.datetime_utils import utc_now_aware
from app.services.consumer import DeliveryConsumer
from app.services.dispatcher import BatchDispatcher
from app.services.events import BirthdayEvent, EventKind
from app.services.ledger import DeliveryLedger
from app.services.queue import SqlMessageQueue
from app.services.recovery import RecoverySweeper
from app.services.scheduling import SchedulingTickProcessor
from app.services.sink import DeliverySink, WebhookDeliverySink
from app.services.user_store import UserStore


@dataclass
class DeliveryRuntime:
    store: UserStore
    ledger: DeliveryLedger
    queue: SqlMessageQueue
    tick: SchedulingTickProcessor
    dispatcher: BatchDispatcher
    recovery: RecoverySweeper
    sink: DeliverySink | None = None
    consumer: DeliveryConsumer | None = None


def build_queue(
    session_factory: async_sessionmaker[AsyncSession],
    config: AppConfig | None = None,
    clock: Callable[[], datetime] = utc_now_aware,
) -> SqlMessageQueue:
    config = config or get_config()
    return SqlMessageQueue(
        session_factory,
        queue_name=config.settings.queue_name,
        config=config.queue,
        clock=clock,
    )


def build_sink(config: AppConfig | None = None) -> WebhookDeliverySink:
    """Webhook sink from settings. Raises ConfigurationError without a URL."""
    config = config or get_config()
    settings = config.settings
    return WebhookDeliverySink(
        settings.delivery_webhook_url,
        timeout_seconds=settings.sink_timeout_seconds,
        max_attempts=settings.sink_max_attempts,
    )


def build_runtime(
    session_factory: async_sessionmaker[AsyncSession],
    config: AppConfig | None = None,
    clock: Callable[[], datetime] = utc_now_aware,
    kind: EventKind | None = None,
    sink: DeliverySink | None = None,
    with_consumer: bool = False,
) -> DeliveryRuntime:
    """
    Wire up all delivery components over one session factory.

    The consumer needs a sink; it is only built when with_consumer is set
    (or a sink is passed), so tick and recovery runs work without a
    webhook URL.
    """
    config = config or get_config()
    settings = config.settings
    kind = kind or BirthdayEvent()

    store = UserStore(session_factory)
    ledger = DeliveryLedger(session_factory)
    queue = build_queue(session_factory, config, clock)

    runtime = DeliveryRuntime(
        store=store,
        ledger=ledger,
        queue=queue,
        tick=SchedulingTickProcessor(store, kind, target_hour=settings.target_hour, clock=clock),
        dispatcher=BatchDispatcher(queue, kind, batch_size=config.queue.max_batch_size),
        recovery=RecoverySweeper(
            store,
            ledger,
            queue,
            kind,
            target_hour=settings.target_hour,
            recovery_days=settings.recovery_days,
            clock=clock,
        ),
    )

    if with_consumer or sink is not None:
        runtime.sink = sink or build_sink(config)
        runtime.consumer = DeliveryConsumer(
            store,
            ledger,
            queue,
            runtime.sink,
            clock=clock,
            # Finish (or give up) before the message becomes visible again
            task_timeout_seconds=max(1, config.queue.visibility_timeout_seconds - 10),
        )

    return runtime
