"""Exception types raised by the queue engine and the remote client."""

from __future__ import annotations

from typing import Optional


class QueueError(Exception):
    """Base class for errors surfaced to whoever drives the engine."""


class ValidationError(QueueError):
    """Bad input or an empty queue."""


class BudgetExceeded(QueueError):
    """The request would push today's usage past the daily limit."""

    def __init__(self, used: int, requested: int, limit: int) -> None:
        self.used = used
        self.requested = requested
        self.limit = limit
        super().__init__(
            f"Daily limit exceeded: used {used}m + requested {requested}m > limit {limit}m"
        )


class NotRunning(QueueError):
    """The queue must be running (or paused) for this command."""


class ItemBusy(QueueError):
    """The item is running and cannot be changed."""


class ItemNotFound(QueueError):
    """No queue item with the given id."""


class RemoteError(Exception):
    """Failure talking to the remote timer service."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class RemoteUnavailable(RemoteError):
    """Network failure, timeout or server error, after retries."""


class RemoteRejected(RemoteError):
    """The service refused the request; retrying will not help."""


class AlreadyStopped(RemoteError):
    """Stop was requested for a timer the service already closed."""
