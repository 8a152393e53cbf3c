"""Recurring event kinds with a name-based registry."""

from app.core.errors import UnknownEventKindError

from .base import EventKind
from .birthday import BirthdayEvent

__all__ = [
    "BirthdayEvent",
    "EventKind",
    "get_event_kind",
    "registered_event_kinds",
]

_EVENT_KINDS: dict[str, EventKind] = {kind.event_type: kind for kind in (BirthdayEvent(),)}


def get_event_kind(event_type: str) -> EventKind:
    """
    Look up a registered event kind by name.

    Raises:
        UnknownEventKindError: If no kind is registered under that name
    """
    try:
        return _EVENT_KINDS[event_type]
    except KeyError:
        raise UnknownEventKindError(f"Unknown event type: {event_type!r}") from None


def registered_event_kinds() -> list[EventKind]:
    """All registered event kinds."""
    return list(_EVENT_KINDS.values())
