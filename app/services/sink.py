"""
Outbound delivery sink.

Messages are posted as {"message": "..."} to a webhook URL. Only 200, 201
and 204 count as delivered; any other status or transport error is a failure.
"""

from abc import ABC, abstractmethod
from typing import Any

import backoff
import httpx

from app.core.errors import ConfigurationError, SinkDeliveryError
from app.core.logging import get_logger

logger = get_logger(__name__)

SUCCESS_STATUSES = frozenset({200, 201, 204})


class DeliverySink(ABC):
    """Where formatted messages are delivered."""

    @abstractmethod
    async def send(self, message: str, event_type: str) -> None:
        """
        Deliver one message.

        Raises:
            SinkDeliveryError: If the message was not accepted
        """


def _log_backoff(details: dict[str, Any]) -> None:
    logger.bind(
        attempt=details["tries"],
        delay_seconds=round(details["wait"], 2),
        error=str(details["exception"]),
    ).warning("sink_retry_attempt")


def _log_giveup(details: dict[str, Any]) -> None:
    logger.bind(
        attempts=details["tries"],
        error=str(details["exception"]),
    ).error("sink_retry_exhausted")


class WebhookDeliverySink(DeliverySink):
    """
    Posts messages to an HTTP endpoint with a bounded timeout and retries.

    Retries are a small in-process budget per task; anything beyond it is
    left to the queue's redelivery policy.
    """

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 10.0,
        max_attempts: int = 3,
        backoff_factor: float = 0.5,
        backoff_max: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not url:
            raise ConfigurationError("DELIVERY_WEBHOOK_URL is not set")

        self.url = url
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max(1, max_attempts)
        self.backoff_factor = backoff_factor
        self.backoff_max = backoff_max
        self.transport = transport

    async def _post(self, client: httpx.AsyncClient, message: str) -> None:
        try:
            resp = await client.post(self.url, json={"message": message})
        except httpx.TimeoutException as e:
            raise SinkDeliveryError(f"Failed to send message: timeout after {self.timeout_seconds}s") from e
        except httpx.HTTPError as e:
            raise SinkDeliveryError(f"Failed to send message: {e}") from e

        if resp.status_code not in SUCCESS_STATUSES:
            raise SinkDeliveryError(
                f"Unexpected status code: {resp.status_code}",
                status_code=resp.status_code,
            )

    async def send(self, message: str, event_type: str) -> None:
        post = backoff.on_exception(
            backoff.expo,
            SinkDeliveryError,
            max_tries=self.max_attempts,
            factor=self.backoff_factor,
            max_value=self.backoff_max,
            on_backoff=_log_backoff,
            on_giveup=_log_giveup,
        )(self._post)

        async with httpx.AsyncClient(
            timeout=self.timeout_seconds,
            transport=self.transport,
            headers={"Content-Type": "application/json"},
        ) as client:
            await post(client, message)

        logger.bind(event_type=event_type).debug("sink_message_sent")
