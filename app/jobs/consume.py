"""
Delivery consumer job.

Run with: python -m app.jobs.consume [--max-polls N]

Receives delivery tasks from the queue until nothing is visible, sends each
one through the webhook sink and records it in the ledger. Also hosts the
dead-letter purge.
"""

import argparse
import asyncio
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import get_config
from app.core.database import AsyncSessionLocal
from app.core.logging import get_logger, setup_logging
from app.jobs.utils import build_queue, build_runtime

logger = get_logger(__name__)


async def run_consumer(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    max_polls: int | None = None,
) -> dict[str, Any]:
    """Drain the queue once.

    Raises:
        ConfigurationError: If DELIVERY_WEBHOOK_URL is not set
    """
    config = get_config()
    runtime = build_runtime(session_factory or AsyncSessionLocal, config, with_consumer=True)
    assert runtime.consumer is not None
    result = await runtime.consumer.drain(max_polls or config.scheduling.max_polls_per_run)
    return result.as_dict()


async def run_purge(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    retention_days: int | None = None,
) -> int:
    """Drop dead letters past their retention period."""
    queue = build_queue(session_factory or AsyncSessionLocal)
    return await queue.purge_dead_letters(retention_days)


async def main(max_polls: int | None = None) -> None:
    """Run the consumer job."""
    setup_logging()
    logger.info("consume_job_started")

    try:
        stats = await run_consumer(max_polls=max_polls)
        logger.bind(**stats).info("consume_job_completed")
    except Exception as e:
        logger.bind(error=str(e)).error("consume_job_failed")
        raise


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Drain the delivery queue")
    parser.add_argument("--max-polls", type=int, default=None, help="Receive calls before stopping")
    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()
    asyncio.run(main(max_polls=args.max_polls))
