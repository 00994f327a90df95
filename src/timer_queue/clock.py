"""Wall-clock access for the engine."""

from __future__ import annotations

import asyncio
from datetime import date, datetime
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...

    def today(self) -> date: ...

    async def sleep(self, seconds: float) -> None: ...


class SystemClock:
    """Local wall-clock time and real asyncio sleeps."""

    def now(self) -> datetime:
        return datetime.now()

    def today(self) -> date:
        return self.now().date()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, seconds))
