from __future__ import annotations

import uuid
from datetime import date
from typing import Any

from sqlalchemy import JSON, Date, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, validates

from app.core.datetime_utils import format_month_day
from app.models.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    """A registered user with a yearly recurring date."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    first_name: Mapped[str] = mapped_column(String(100))
    last_name: Mapped[str] = mapped_column(String(100))
    birthday: Mapped[date] = mapped_column(Date)
    timezone: Mapped[str] = mapped_column(String(64), default="UTC")
    location: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    # Recurrence index key, kept in sync with birthday
    birthday_month_day: Mapped[str] = mapped_column(String(5), index=True)

    @validates("birthday")
    def _sync_month_day(self, key: str, value: date) -> date:
        self.birthday_month_day = format_month_day(value)
        return value

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<User {self.id} {self.birthday_month_day} {self.timezone}>"
