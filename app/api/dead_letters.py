"""Dead-letter inspection and redrive endpoints."""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict

from app.core.logging import get_logger
from app.dependencies import Queue

logger = get_logger(__name__)

router = APIRouter()


class DeadLetterResponse(BaseModel):
    """Response model for a dead-lettered delivery task."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    message_id: str
    body: dict[str, Any]
    receive_count: int
    last_error: str | None
    sent_at: datetime | None
    dead_lettered_at: datetime


class RedriveResponse(BaseModel):
    dead_letter_id: str
    message_id: str


@router.get("/dead-letters", response_model=list[DeadLetterResponse])
async def list_dead_letters(
    queue: Queue,
    limit: int = Query(default=50, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[DeadLetterResponse]:
    """
    List tasks that exhausted their receive budget.

    Newest first. Each entry keeps the last processing error.
    """
    dead_letters = await queue.list_dead_letters(limit=limit, offset=offset)
    return [DeadLetterResponse.model_validate(d) for d in dead_letters]


@router.post("/dead-letters/{dead_letter_id}/redrive", response_model=RedriveResponse)
async def redrive_dead_letter(dead_letter_id: str, queue: Queue) -> RedriveResponse:
    """Put a dead letter back on the queue with a fresh receive budget."""
    message_id = await queue.redrive(dead_letter_id)
    if message_id is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Dead letter not found")

    logger.bind(dead_letter_id=dead_letter_id, message_id=message_id).info("dead_letter_redrive_requested")
    return RedriveResponse(dead_letter_id=dead_letter_id, message_id=message_id)
