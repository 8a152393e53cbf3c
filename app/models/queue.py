"""Tables backing the transport queue and its dead-letter path."""

from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import JSON, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


class QueueMessage(Base):
    """A message waiting to be received, or in flight under a visibility timeout."""

    __tablename__ = "queue_messages"
    __table_args__ = (Index("ix_queue_messages_queue_visible", "queue_name", "visible_at"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    queue_name: Mapped[str] = mapped_column(String(100))
    body: Mapped[dict[str, Any]] = mapped_column(JSON)
    visible_at: Mapped[datetime]
    receive_count: Mapped[int] = mapped_column(default=0)
    receipt_handle: Mapped[str | None] = mapped_column(String(36), default=None)
    first_received_at: Mapped[datetime | None] = mapped_column(default=None)
    last_error: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(default=func.now())


class DeadLetter(Base):
    """A message that exhausted its receive budget, kept for manual inspection."""

    __tablename__ = "dead_letters"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    queue_name: Mapped[str] = mapped_column(String(100), index=True)
    message_id: Mapped[str] = mapped_column(String(36))
    body: Mapped[dict[str, Any]] = mapped_column(JSON)
    receive_count: Mapped[int]
    last_error: Mapped[str | None] = mapped_column(Text, default=None)
    sent_at: Mapped[datetime]
    dead_lettered_at: Mapped[datetime] = mapped_column(index=True)
