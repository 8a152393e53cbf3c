"""
APScheduler integration for FastAPI.

Runs the delivery jobs in-process.

Jobs:
- Tick: finds users whose target hour has arrived and enqueues them (hourly)
- Recovery: re-emits missed deliveries from the lookback window (daily)
- Consumer: drains the delivery queue (every consumer_poll_seconds)
- Dead-letter purge: drops dead letters past retention (daily)
"""

from datetime import datetime
from typing import Any

from apscheduler import AsyncScheduler, ConflictPolicy, JobOutcome, JobReleased
from apscheduler.datastores.memory import MemoryDataStore
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from app.config import get_config
from app.core.database import AsyncSessionLocal
from app.core.datetime_utils import to_naive_utc, utc_now
from app.core.logging import get_logger

logger = get_logger(__name__)

# Global scheduler instance
scheduler: AsyncScheduler | None = None

JOB_IDS = ["delivery_tick", "recovery_sweep", "delivery_consumer", "dead_letter_purge"]


async def tick_job() -> None:
    """Tick job - enqueues users whose target hour has arrived."""
    from app.jobs.tick import run_tick

    logger.debug("scheduled_tick_started")
    try:
        stats = await run_tick()
        logger.bind(**stats).info("scheduled_tick_completed")
    except Exception as e:
        logger.bind(error=str(e)).error("scheduled_tick_failed")
        raise  # Re-raise so APScheduler records the failure


async def recovery_job() -> None:
    """Recovery job - catches deliveries lost since the last sweep."""
    from app.jobs.recovery import run_recovery

    logger.info("scheduled_recovery_started")
    try:
        stats = await run_recovery()
        logger.bind(**stats).info("scheduled_recovery_completed")
    except Exception as e:
        logger.bind(error=str(e)).error("scheduled_recovery_failed")
        raise


async def consumer_job() -> None:
    """Consumer job - drains visible delivery tasks."""
    from app.jobs.consume import run_consumer

    try:
        stats = await run_consumer()
    except Exception as e:
        logger.bind(error=str(e)).error("scheduled_consumer_failed")
        raise

    if stats["received"]:
        logger.bind(**stats).info("scheduled_consumer_completed")
    else:
        logger.debug("scheduled_consumer_idle")


async def purge_job() -> None:
    """Purge job - drops dead letters past retention."""
    from app.jobs.consume import run_purge

    try:
        purged = await run_purge()
        logger.bind(purged=purged).info("scheduled_purge_completed")
    except Exception as e:
        logger.bind(error=str(e)).error("scheduled_purge_failed")
        raise


async def _record_job_result(
    job_id: str,
    scheduled_at: datetime,
    started_at: datetime,
    outcome: JobOutcome,
    error: str | None = None,
) -> None:
    """Record job execution result to database."""
    from app.models.job_run import JobRun

    async with AsyncSessionLocal() as db:
        job_run = JobRun(
            job_id=job_id,
            scheduled_at=to_naive_utc(scheduled_at),
            started_at=to_naive_utc(started_at),
            finished_at=utc_now(),
            outcome=outcome.name,
            error=error,
        )
        db.add(job_run)
        await db.commit()


async def start_scheduler() -> AsyncScheduler | None:
    """Initialize and start the scheduler."""
    global scheduler

    config = get_config()
    if not config.settings.scheduler_enabled:
        logger.info("scheduler_disabled_by_config")
        return None

    cadence = config.scheduling

    # Schedules are rebuilt from config on every start
    data_store = MemoryDataStore()
    scheduler = AsyncScheduler(data_store=data_store)

    # Start the scheduler first (required before calling other methods in APScheduler 4.x)
    await scheduler.__aenter__()

    # Subscribe to job events for history tracking
    scheduler.subscribe(_on_job_completed)

    await scheduler.add_schedule(
        tick_job,
        CronTrigger(minute=cadence.tick_minute),
        id="delivery_tick",
        conflict_policy=ConflictPolicy.replace,  # Update if already exists
    )

    await scheduler.add_schedule(
        recovery_job,
        CronTrigger(hour=cadence.recovery_hour_utc, minute=30),
        id="recovery_sweep",
        conflict_policy=ConflictPolicy.replace,
    )

    # Needs DELIVERY_WEBHOOK_URL; without it each run fails and is recorded
    await scheduler.add_schedule(
        consumer_job,
        IntervalTrigger(seconds=cadence.consumer_poll_seconds),
        id="delivery_consumer",
        conflict_policy=ConflictPolicy.replace,
    )

    await scheduler.add_schedule(
        purge_job,
        CronTrigger(hour=3, minute=0),
        id="dead_letter_purge",
        conflict_policy=ConflictPolicy.replace,
    )

    # Start the scheduler's background worker to actually process jobs
    await scheduler.start_in_background()

    logger.bind(jobs=JOB_IDS).info("scheduler_started")

    return scheduler


async def _on_job_completed(event: Any) -> None:
    """Handle job completion events."""
    if isinstance(event, JobReleased):
        try:
            scheduled_at = getattr(event, "scheduled_fire_time", None) or utc_now()
            started_at = getattr(event, "started_at", None) or utc_now()
            exception = getattr(event, "exception", None)
            await _record_job_result(
                job_id=event.schedule_id or "unknown",
                scheduled_at=scheduled_at,
                started_at=started_at,
                outcome=event.outcome,
                error=str(exception) if event.outcome == JobOutcome.error and exception else None,
            )
        except Exception as e:
            logger.bind(error=str(e)).error("failed_to_record_job_result")


async def stop_scheduler() -> None:
    """Gracefully stop the scheduler."""
    global scheduler
    if scheduler:
        await scheduler.__aexit__(None, None, None)
        logger.info("scheduler_stopped")
        scheduler = None


def scheduler_running() -> bool:
    return scheduler is not None


async def get_job_schedules() -> list[dict[str, Any]]:
    """Get all registered job schedules."""
    if not scheduler:
        return []

    schedules = await scheduler.get_schedules()
    return [
        {
            "id": s.id,
            "task_id": s.task_id,
            "trigger": str(s.trigger),
            "next_fire_time": s.next_fire_time.isoformat() if s.next_fire_time else None,
            "last_fire_time": s.last_fire_time.isoformat() if s.last_fire_time else None,
        }
        for s in schedules
    ]
