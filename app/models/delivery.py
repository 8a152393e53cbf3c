"""Delivery markers: the per-user, per-event-kind delivery ledger."""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import Date, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


class DeliveryMarker(Base):
    """Last delivered occurrence of an event kind for a user.

    The (last_delivered_date, last_delivered_at) pair witnesses that the
    occurrence on last_delivered_date was delivered. The unique constraint
    makes the first insert for a user/kind the only one that can win.
    """

    __tablename__ = "delivery_markers"
    __table_args__ = (UniqueConstraint("user_id", "event_type", name="uq_marker_user_event"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    event_type: Mapped[str] = mapped_column(String(32))
    last_delivered_date: Mapped[date | None] = mapped_column(Date, default=None)
    last_delivered_at: Mapped[datetime | None] = mapped_column(default=None)

    def __repr__(self) -> str:
        return f"<DeliveryMarker user={self.user_id} {self.event_type} date={self.last_delivered_date}>"
