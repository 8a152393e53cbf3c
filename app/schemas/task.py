"""Delivery task payloads carried by the transport queue.

Two payload shapes exist on the wire:

- the current shape, tagged by ``eventType``::

    {"userId", "firstName", "lastName", "eventType", "eventDate",
     "timezone", "targetUTC"}

- the legacy birthday-only shape, with no ``eventType`` and the raw
  ``birthday`` instead of the occurrence date::

    {"userId", "firstName", "lastName", "birthday", "timezone", "targetUTC"}

Both decode to DeliveryTask at ingress; nothing downstream looks at the
payload version.
"""

import json
from datetime import UTC, date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from app.core.datetime_utils import local_date
from app.core.errors import MalformedTaskError

LEGACY_EVENT_TYPE = "birthday"


class DeliveryTask(BaseModel):
    """One occurrence to deliver to one user."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    user_id: str = Field(alias="userId", min_length=1)
    first_name: str = Field(default="", alias="firstName")
    last_name: str = Field(default="", alias="lastName")
    event_type: str = Field(alias="eventType", min_length=1)
    event_date: date = Field(alias="eventDate")
    timezone: str = Field(min_length=1)
    target_utc: datetime = Field(alias="targetUTC")

    @field_validator("target_utc")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v.astimezone(UTC)

    def to_message_body(self) -> dict[str, Any]:
        """Serialize to the camelCase wire format."""
        return self.model_dump(by_alias=True, mode="json")


def _decode_legacy(payload: dict[str, Any]) -> DeliveryTask:
    # The legacy producer enqueued at the target hour, so the occurrence is
    # the local calendar day of targetUTC.
    try:
        target_utc = datetime.fromisoformat(str(payload["targetUTC"]).replace("Z", "+00:00"))
        occurrence = local_date(str(payload["timezone"]), now=target_utc)
    except (KeyError, ValueError) as e:
        raise MalformedTaskError(f"Invalid legacy payload: {e}") from e

    return DeliveryTask(
        user_id=payload.get("userId", ""),
        first_name=payload.get("firstName", ""),
        last_name=payload.get("lastName", ""),
        event_type=LEGACY_EVENT_TYPE,
        event_date=occurrence,
        timezone=payload["timezone"],
        target_utc=target_utc,
    )


def decode_task(body: str | bytes | dict[str, Any]) -> DeliveryTask:
    """Decode a queue message body into a DeliveryTask.

    Raises:
        MalformedTaskError: If the body is not JSON or misses required fields
    """
    if isinstance(body, dict):
        payload = body
    else:
        try:
            payload = json.loads(body)
        except (TypeError, ValueError) as e:
            raise MalformedTaskError(f"Invalid JSON payload: {e}") from e

    if not isinstance(payload, dict):
        raise MalformedTaskError("Invalid message format: expected an object")

    try:
        if "eventType" in payload:
            if not isinstance(payload["eventType"], str):
                raise MalformedTaskError("Invalid message format: eventType must be a string")
            return DeliveryTask.model_validate(payload)
        if "birthday" in payload:
            return _decode_legacy(payload)
    except ValidationError as e:
        raise MalformedTaskError(f"Invalid message format: {e.error_count()} invalid fields") from e

    raise MalformedTaskError("Invalid message format: eventType is required")
