"""
Scheduling tick job.

Run with: python -m app.jobs.tick

This job:
1. Finds users whose event falls on their local today
2. Keeps those whose target hour has arrived
3. Enqueues a delivery task for each, in batches
"""

import asyncio
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database import AsyncSessionLocal
from app.core.logging import get_logger, setup_logging
from app.jobs.utils import build_runtime

logger = get_logger(__name__)


async def run_tick(session_factory: async_sessionmaker[AsyncSession] | None = None) -> dict[str, Any]:
    """Run one tick and dispatch its schedules.

    Raises:
        DispatchFailedError: If every batch failed to enqueue
    """
    runtime = build_runtime(session_factory or AsyncSessionLocal)
    schedules = await runtime.tick.run()
    result = await runtime.dispatcher.dispatch(schedules)
    return {
        "scheduled": len(schedules),
        "enqueued": result.enqueued,
        "failed": result.failed,
        "batches": result.batches,
        "failed_batches": result.failed_batches,
    }


async def main() -> None:
    """Run the tick job."""
    setup_logging()
    logger.info("tick_job_started")

    try:
        stats = await run_tick()
        logger.bind(**stats).info("tick_job_completed")
    except Exception as e:
        logger.bind(error=str(e)).error("tick_job_failed")
        raise


if __name__ == "__main__":
    asyncio.run(main())
