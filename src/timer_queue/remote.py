"""Client for the remote timer service."""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import date, timedelta
from typing import Any, Awaitable, Callable, Optional, Protocol

import httpx

from .config import ApiSettings
from .errors import AlreadyStopped, RemoteRejected, RemoteUnavailable
from .models import RemoteTimer

logger = logging.getLogger(__name__)

_ALREADY_STOPPED_PATTERN = re.compile(
    r"already\s+(stopped|ended|finished)|not\s+(running|active|started)", re.IGNORECASE
)

Sleep = Callable[[float], Awaitable[None]]


class TimerService(Protocol):
    async def create_timer(
        self,
        *,
        project_id: str,
        task_id: str,
        notes: str,
        start_date: date,
        ticket_id: Optional[str] = None,
    ) -> str: ...

    async def stop_timer(self, timer_id: str) -> None: ...

    async def query_daily_timers(self, day: date) -> list[list[RemoteTimer]]: ...

    async def query_daily_total(self, day: date) -> int: ...


def timers_for_day(buckets: list[list[RemoteTimer]], day: date) -> list[RemoteTimer]:
    """Pick the Monday-first weekday bucket for ``day``."""
    index = day.weekday()
    if index >= len(buckets):
        return []
    return buckets[index]


def parse_minutes(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def parse_remote_timer(raw: dict[str, Any]) -> RemoteTimer:
    return RemoteTimer(
        id=str(raw.get("id")),
        project_id=str(raw.get("projectId", "")),
        task_id=str(raw.get("taskId", "")),
        total_time=parse_minutes(raw.get("total_time")),
        spent_at=raw.get("spent_at"),
    )


class HttpTimerService:
    """Talks JSON over HTTP with bearer-token auth.

    Creates and stops are retried with exponential backoff on transport
    failures and 5xx responses; 4xx responses are never retried.
    """

    def __init__(
        self,
        settings: ApiSettings,
        *,
        retry_max: int = 3,
        retry_delay: timedelta = timedelta(seconds=2),
        client: Optional[httpx.AsyncClient] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._retry_max = max(1, retry_max)
        self._retry_delay = retry_delay
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=settings.base_url.rstrip("/"),
            headers=settings.headers(),
            timeout=settings.timeout.total_seconds(),
        )
        self._sleep = sleep

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def create_timer(
        self,
        *,
        project_id: str,
        task_id: str,
        notes: str,
        start_date: date,
        ticket_id: Optional[str] = None,
    ) -> str:
        payload = {
            "projectId": project_id,
            "taskId": task_id,
            "externalTicketId": ticket_id,
            "notes": notes,
            "time": 0,
            "startDate": start_date.isoformat(),
        }
        data = await self._request_with_retry("POST", "/time", json=payload)
        timer = data.get("time") if isinstance(data.get("time"), dict) else data
        timer_id = timer.get("id") if isinstance(timer, dict) else None
        if timer_id is None:
            raise RemoteRejected("Timer could not be created: response carried no id")
        return str(timer_id)

    async def stop_timer(self, timer_id: str) -> None:
        try:
            await self._request_with_retry("POST", f"/time/{timer_id}/stop")
        except RemoteRejected as exc:
            if exc.status_code in (404, 409) or _ALREADY_STOPPED_PATTERN.search(str(exc)):
                raise AlreadyStopped(str(exc), status_code=exc.status_code) from exc
            raise

    async def query_daily_timers(self, day: date) -> list[list[RemoteTimer]]:
        data = await self._request("GET", "/time", params={"startDate": day.isoformat()})
        buckets = data.get("timers") or []
        return [
            [parse_remote_timer(raw) for raw in bucket or [] if isinstance(raw, dict)]
            for bucket in buckets
        ]

    async def query_daily_total(self, day: date) -> int:
        data = await self._request("GET", "/time")
        total = 0
        for bucket in data.get("timers") or []:
            for raw in bucket or []:
                if not isinstance(raw, dict):
                    continue
                spent_at = str(raw.get("spent_at") or "")
                if spent_at[:10] == day.isoformat():
                    total += parse_minutes(raw.get("total_time"))
        return total

    async def _request_with_retry(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        for attempt in range(self._retry_max):
            try:
                return await self._request(method, url, **kwargs)
            except RemoteUnavailable as exc:
                if attempt == self._retry_max - 1:
                    raise
                delay = self._retry_delay.total_seconds() * (2**attempt)
                logger.warning(
                    "%s %s failed (%s); retrying in %.1fs (%d/%d)",
                    method,
                    url,
                    exc,
                    delay,
                    attempt + 1,
                    self._retry_max,
                )
                await self._sleep(delay)
        raise RemoteUnavailable(f"{method} {url} failed")  # pragma: no cover

    async def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise RemoteUnavailable(f"{method} {url} timed out") from exc
        except httpx.TransportError as exc:
            raise RemoteUnavailable(f"{method} {url} failed: {exc}") from exc

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {"data": data}

        message = data.get("message") or f"HTTP {response.status_code}"
        if response.status_code >= 500:
            raise RemoteUnavailable(message, status_code=response.status_code)
        if response.status_code >= 400:
            raise RemoteRejected(message, status_code=response.status_code)
        if data.get("success") is False:
            raise RemoteRejected(message, status_code=response.status_code)
        return data
