"""Abstract base class for recurring event kinds."""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any

from app.core.datetime_utils import is_today_in_timezone, local_date, occurrence_date
from app.models.user import User
from app.schemas.task import DeliveryTask


class EventKind(ABC):
    """A kind of yearly event a user can be notified about.

    Each kind names the user attribute holding its recurring date and the
    indexed MM-DD attribute used to find candidates, and formats its own
    message. New kinds are new subclasses registered in the package registry.
    """

    event_type: str = "unknown"
    date_attribute: str = ""
    index_attribute: str = ""

    def event_date(self, user: User) -> date:
        """The user's recurring date (its year is the original year)."""
        value: date = getattr(user, self.date_attribute)
        return value

    def occurrence_date(self, user: User, year: int) -> date:
        """The occurrence of the user's event in a given year."""
        return occurrence_date(self.event_date(user), year)

    def is_due(self, user: User, now: datetime) -> bool:
        """Whether the event falls on today's date in the user's timezone."""
        return is_today_in_timezone(self.event_date(user), user.timezone, now=now)

    def current_occurrence(self, user: User, now: datetime) -> date:
        """Most recent occurrence on or before the user's local today."""
        today = local_date(user.timezone, now)
        occurrence = self.occurrence_date(user, today.year)
        if occurrence > today:
            occurrence = self.occurrence_date(user, today.year - 1)
        return occurrence

    def delivery_fields(self, user: User) -> dict[str, Any]:
        """Display fields denormalized into the delivery task."""
        return {"first_name": user.first_name, "last_name": user.last_name}

    def build_task(self, user: User, occurrence: date, target_utc: datetime) -> DeliveryTask:
        """Build the queue payload for one occurrence."""
        fields = self.delivery_fields(user)
        return DeliveryTask(
            user_id=str(user.id),
            first_name=fields.get("first_name", ""),
            last_name=fields.get("last_name", ""),
            event_type=self.event_type,
            event_date=occurrence,
            timezone=user.timezone,
            target_utc=target_utc,
        )

    @abstractmethod
    def format_message(self, user: User) -> str:
        """Render the outbound message for a user."""
