from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.api.router import api_router
from app.config import get_settings
from app.core.logging import get_logger, setup_logging
from app.core.scheduler import scheduler_running, start_scheduler, stop_scheduler
from app.dependencies import Queue

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Start logging and the delivery jobs; stop the jobs on shutdown."""
    setup_logging()
    await start_scheduler()
    yield
    await stop_scheduler()


app = FastAPI(
    title="Occasion Notifier",
    description="Timezone-aware yearly event notifications",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/api/docs" if settings.debug else None,
    redoc_url="/api/redoc" if settings.debug else None,
)

app.include_router(api_router)


@app.get("/health")
async def health_check(queue: Queue) -> Any:
    """
    Health check for load balancers.

    Reports the delivery queue's depth and dead-letter count; answers 503
    when the database cannot be reached.
    """
    try:
        depth = await queue.depth()
        dead_letters = await queue.dead_letter_count()
    except SQLAlchemyError as e:
        logger.bind(error=str(e)).error("health_check_database_unreachable")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "database": "unreachable"},
        )

    return {
        "status": "healthy",
        "database": "ok",
        "scheduler": "running" if scheduler_running() else "stopped",
        "queue": queue.queue_name,
        "queue_depth": depth,
        "dead_letters": dead_letters,
    }
