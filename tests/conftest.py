from __future__ import annotations

import asyncio
import heapq
import itertools
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Optional

import pytest

from timer_queue.config import QueueSettings
from timer_queue.engine import QueueEngine
from timer_queue.errors import RemoteUnavailable
from timer_queue.models import RemoteTimer
from timer_queue.store import QueueRepository

MONDAY_MORNING = datetime(2024, 3, 4, 9, 0)


async def settle(rounds: int = 50) -> None:
    """Let every ready task run until the loop goes quiet."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeClock:
    """Manually advanced clock; sleepers wake in deadline order."""

    def __init__(self, start: datetime = MONDAY_MORNING) -> None:
        self.current = start
        self._sleepers: list[tuple[datetime, int, asyncio.Future[None]]] = []
        self._sequence = itertools.count()

    def now(self) -> datetime:
        return self.current

    def today(self) -> date:
        return self.current.date()

    async def sleep(self, seconds: float) -> None:
        if seconds <= 0:
            await asyncio.sleep(0)
            return
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        deadline = self.current + timedelta(seconds=seconds)
        heapq.heappush(self._sleepers, (deadline, next(self._sequence), future))
        await future

    def jump(self, moment: datetime) -> None:
        """Move the clock without waking anyone."""
        self.current = moment

    async def advance(self, delta: timedelta) -> None:
        target = self.current + delta
        await settle()
        while self._sleepers and self._sleepers[0][0] <= target:
            deadline, _, future = heapq.heappop(self._sleepers)
            if future.done():
                continue
            self.current = max(self.current, deadline)
            future.set_result(None)
            await settle()
        self.current = target
        await settle()


class FakeTimerService:
    """In-memory remote that records every call."""

    def __init__(self) -> None:
        self.created: list[dict[str, Any]] = []
        self.stopped: list[str] = []
        self.external: list[RemoteTimer] = []
        self.daily_total = 0
        self.create_failures = 0
        self.stop_error: Optional[Exception] = None
        self.stop_gate: Optional[asyncio.Event] = None

    async def create_timer(
        self,
        *,
        project_id: str,
        task_id: str,
        notes: str,
        start_date: date,
        ticket_id: Optional[str] = None,
    ) -> str:
        if self.create_failures:
            self.create_failures -= 1
            raise RemoteUnavailable("service down", status_code=503)
        timer_id = f"timer-{len(self.created) + 1}"
        self.created.append(
            {
                "id": timer_id,
                "project_id": project_id,
                "task_id": task_id,
                "notes": notes,
                "start_date": start_date,
                "ticket_id": ticket_id,
            }
        )
        return timer_id

    async def stop_timer(self, timer_id: str) -> None:
        self.stopped.append(timer_id)
        if self.stop_gate is not None:
            await self.stop_gate.wait()
        if self.stop_error is not None:
            raise self.stop_error

    async def query_daily_timers(self, day: date) -> list[list[RemoteTimer]]:
        buckets: list[list[RemoteTimer]] = [[] for _ in range(7)]
        buckets[day.weekday()] = list(self.external)
        return buckets

    async def query_daily_total(self, day: date) -> int:
        return self.daily_total


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def remote() -> FakeTimerService:
    return FakeTimerService()


@pytest.fixture
def settings() -> QueueSettings:
    return QueueSettings(
        chunk_gap=timedelta(0),
        error_advance_delay=timedelta(0),
        skip_advance_delay=timedelta(0),
    )


@pytest.fixture
def store_path(tmp_path: Path) -> Path:
    return tmp_path / "queue.sqlite3"


@pytest.fixture
def repository(store_path: Path, clock: FakeClock, settings: QueueSettings):
    repo = QueueRepository.open(store_path, daily_limit=settings.daily_limit)
    repo.initialize(clock.today())
    yield repo
    repo.close()


@pytest.fixture
def make_engine(repository, remote, settings, clock):
    def factory() -> QueueEngine:
        return QueueEngine(repository, remote, settings=settings, clock=clock)

    return factory
