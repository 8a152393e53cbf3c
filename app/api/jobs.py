"""Job monitoring and manual trigger endpoints."""

from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import ConfigurationError, DispatchFailedError
from app.core.logging import get_logger
from app.core.scheduler import JOB_IDS, get_job_schedules
from app.dependencies import DBSession, SessionFactory
from app.jobs.consume import run_consumer, run_purge
from app.jobs.recovery import run_recovery
from app.jobs.tick import run_tick
from app.models.job_run import JobRun

logger = get_logger(__name__)

router = APIRouter()

Runner = Callable[[async_sessionmaker[AsyncSession]], Awaitable[dict[str, Any]]]


async def _purge(session_factory: async_sessionmaker[AsyncSession]) -> dict[str, Any]:
    return {"purged": await run_purge(session_factory)}


JOB_RUNNERS: dict[str, Runner] = {
    "delivery_tick": run_tick,
    "recovery_sweep": run_recovery,
    "delivery_consumer": run_consumer,
    "dead_letter_purge": _purge,
}


class ScheduleResponse(BaseModel):
    id: str
    task_id: str
    trigger: str
    next_fire_time: str | None
    last_fire_time: str | None


class JobRunResponse(BaseModel):
    id: str
    job_id: str
    scheduled_at: datetime
    started_at: datetime
    finished_at: datetime
    duration_seconds: float
    outcome: str
    error: str | None


class JobSummaryResponse(BaseModel):
    """Health of one delivery job over its most recent runs."""

    job_id: str
    runs: int
    failures: int
    last_outcome: str | None
    last_finished_at: datetime | None
    last_error: str | None
    avg_duration_seconds: float | None


class JobTriggerResponse(BaseModel):
    job_id: str
    stats: dict[str, Any]


def _check_job_id(job_id: str) -> None:
    if job_id not in JOB_IDS:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown job: {job_id}")


@router.get("/jobs/schedules", response_model=list[ScheduleResponse])
async def list_schedules() -> list[ScheduleResponse]:
    """List the delivery job schedules registered with the in-process scheduler."""
    schedules = await get_job_schedules()
    return [ScheduleResponse(**s) for s in schedules]


@router.get("/jobs/runs", response_model=list[JobRunResponse])
async def list_job_runs(
    db: DBSession,
    job_id: str | None = Query(default=None, description="Filter by job ID"),
    limit: int = Query(default=50, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[JobRunResponse]:
    query = select(JobRun).order_by(JobRun.scheduled_at.desc())

    if job_id:
        _check_job_id(job_id)
        query = query.where(JobRun.job_id == job_id)

    result = await db.execute(query.offset(offset).limit(limit))

    return [
        JobRunResponse(
            id=run.id,
            job_id=run.job_id,
            scheduled_at=run.scheduled_at,
            started_at=run.started_at,
            finished_at=run.finished_at,
            duration_seconds=run.duration_seconds,
            outcome=run.outcome,
            error=run.error,
        )
        for run in result.scalars().all()
    ]


@router.get("/jobs/summary", response_model=list[JobSummaryResponse])
async def job_summary(
    db: DBSession,
    window: int = Query(default=50, ge=1, le=500, description="Recent runs per job"),
) -> list[JobSummaryResponse]:
    """
    Per-job stats for the tick, recovery, consumer and purge jobs.

    Every known job is listed, including ones that have not run yet.
    """
    summaries = []
    for job_id in JOB_IDS:
        result = await db.execute(
            select(JobRun)
            .where(JobRun.job_id == job_id)
            .order_by(JobRun.finished_at.desc())
            .limit(window)
        )
        runs = list(result.scalars().all())
        last = runs[0] if runs else None
        summaries.append(
            JobSummaryResponse(
                job_id=job_id,
                runs=len(runs),
                failures=sum(1 for run in runs if run.outcome != "success"),
                last_outcome=last.outcome if last else None,
                last_finished_at=last.finished_at if last else None,
                last_error=last.error if last else None,
                avg_duration_seconds=(
                    round(sum(run.duration_seconds for run in runs) / len(runs), 3) if runs else None
                ),
            )
        )
    return summaries


@router.post("/jobs/{job_id}/run", response_model=JobTriggerResponse)
async def trigger_job(job_id: str, session_factory: SessionFactory) -> JobTriggerResponse:
    """
    Run a delivery job now, outside its schedule.

    Safe to call at any time: the ledger and queue keep deliveries
    exactly-once however often the tick or recovery runs.
    """
    _check_job_id(job_id)

    try:
        stats = await JOB_RUNNERS[job_id](session_factory)
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e
    except DispatchFailedError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e)) from e

    logger.bind(job_id=job_id, **stats).info("job_triggered_manually")
    return JobTriggerResponse(job_id=job_id, stats=stats)
