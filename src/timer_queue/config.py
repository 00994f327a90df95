"""Configuration models and helpers for the timer queue."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional


DEFAULT_API_URL = "http://127.0.0.1:8000/api"


@dataclass(slots=True)
class QueueSettings:
    """Runtime configuration for the queue engine."""

    timer_limit: int = 59
    daily_limit: int = 480
    minute_length: timedelta = timedelta(seconds=60)
    countdown_interval: timedelta = timedelta(seconds=60)
    reconcile_interval: timedelta = timedelta(seconds=30)
    rollover_interval: timedelta = timedelta(seconds=5)
    chunk_gap: timedelta = timedelta(seconds=1)
    error_advance_delay: timedelta = timedelta(seconds=3)
    skip_advance_delay: timedelta = timedelta(seconds=1)
    api_retry_max: int = 3
    api_retry_delay: timedelta = timedelta(seconds=2)
    notification_limit: int = 50

    @classmethod
    def test_mode(cls) -> "QueueSettings":
        """Fast cadence for demos: one accounted minute lasts one second."""
        return cls(
            minute_length=timedelta(seconds=1),
            countdown_interval=timedelta(seconds=1),
        )


@dataclass(slots=True)
class ApiSettings:
    """Connection details for the remote timer service."""

    base_url: str
    token: Optional[str] = None
    timeout: timedelta = timedelta(seconds=10)

    def headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers
