"""Daily budget checks and aggregate bookkeeping."""

from __future__ import annotations

import logging
from datetime import date
from typing import Iterable

from .errors import BudgetExceeded
from .models import DailyStats, ItemStatus, QueueItem

logger = logging.getLogger(__name__)


def pending_total(items: Iterable[QueueItem]) -> int:
    """Minutes still planned for items that have not been started."""
    return sum(item.total_duration for item in items if item.status == ItemStatus.PENDING)


def ensure_within_budget(used: int, requested: int, limit: int) -> None:
    if used + requested > limit:
        raise BudgetExceeded(used=used, requested=requested, limit=limit)


def remaining_budget(stats: DailyStats) -> int:
    return max(0, stats.daily_limit - stats.daily_used)


def is_new_day(stats: DailyStats | None, today: date) -> bool:
    return stats is None or stats.date != today.isoformat()


def record_planned(stats: DailyStats, minutes: int) -> None:
    stats.total_planned += minutes
    stats.total_remaining += minutes


def forget_planned(stats: DailyStats, item: QueueItem) -> None:
    """Reverse a pending item's contribution."""
    stats.total_planned = max(0, stats.total_planned - item.total_duration)
    stats.total_remaining = max(0, stats.total_remaining - item.remaining_duration)


def adjust_planned(stats: DailyStats, delta: int) -> None:
    stats.total_planned = max(0, stats.total_planned + delta)
    stats.total_remaining = max(0, stats.total_remaining + delta)


def record_progress(stats: DailyStats, increment: int) -> None:
    """Account minutes the engine itself spent on the remote service."""
    if increment <= 0:
        return
    stats.daily_used += increment
    stats.total_completed += increment
    stats.total_remaining = max(0, stats.total_remaining - increment)
    logger.debug(
        "Daily usage now %d/%d minutes (+%d)", stats.daily_used, stats.daily_limit, increment
    )


def record_external(stats: DailyStats, minutes: int) -> None:
    """Account minutes somebody else logged against a queued item."""
    if minutes <= 0:
        return
    stats.total_completed += minutes
    stats.total_remaining = max(0, stats.total_remaining - minutes)
