"""
Recovery sweep job.

Run with: python -m app.jobs.recovery

Re-emits deliveries that were due inside the lookback window
(RECOVERY_DAYS, default 7) but have no delivery marker.
"""

import asyncio

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database import AsyncSessionLocal
from app.core.logging import get_logger, setup_logging
from app.jobs.utils import build_runtime

logger = get_logger(__name__)


async def run_recovery(session_factory: async_sessionmaker[AsyncSession] | None = None) -> dict[str, int]:
    runtime = build_runtime(session_factory or AsyncSessionLocal)
    result = await runtime.recovery.sweep()
    return result.as_dict()


async def main() -> None:
    """Run the recovery job."""
    setup_logging()
    logger.info("recovery_job_started")

    try:
        stats = await run_recovery()
        logger.bind(**stats).info("recovery_job_completed")
    except Exception as e:
        logger.bind(error=str(e)).error("recovery_job_failed")
        raise


if __name__ == "__main__":
    asyncio.run(main())
