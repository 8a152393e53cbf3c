from app.models.user import User

from .base import EventKind


class BirthdayEvent(EventKind):
    """Yearly birthday greeting."""

    event_type = "birthday"
    date_attribute = "birthday"
    index_attribute = "birthday_month_day"

    def format_message(self, user: User) -> str:
        return f"Hey, {user.full_name} it's your birthday"
