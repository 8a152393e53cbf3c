"""Exception hierarchy for the delivery engine.

Errors fall into four groups:

- configuration errors are fatal when a component is built;
- data errors (malformed tasks, unknown event kinds) are never retried blindly;
- transient errors (sink, queue) are retried by the next receive, tick or sweep;
- a total dispatch failure escalates the whole tick.
"""


class NotifierError(Exception):
    """Base exception for the notifier."""


class ConfigurationError(NotifierError):
    """Raised when required configuration is missing or invalid."""


class InvalidTimezoneError(NotifierError, ValueError):
    """Raised when a timezone is not a valid IANA identifier."""


class UnknownEventKindError(NotifierError):
    """Raised when a task references an event kind that is not registered."""


class MalformedTaskError(NotifierError):
    """Raised when a queue payload cannot be decoded into a delivery task."""


class SinkDeliveryError(NotifierError):
    """Raised when the outbound sink rejects or fails a send."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class QueueError(NotifierError):
    """Raised when the transport queue rejects a request."""


class DispatchFailedError(NotifierError):
    """Raised when every batch of a tick failed and nothing was enqueued."""

    def __init__(self, failed: int, batches: int) -> None:
        super().__init__(f"All {batches} batches failed to enqueue ({failed} tasks)")
        self.failed = failed
        self.batches = batches
