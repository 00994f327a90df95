"""Simple reporting utilities for CLI output."""

from __future__ import annotations

from collections import defaultdict
from pathlib import Path
from typing import Iterable

from .models import ItemStatus, Notification, QueueItem
from .normalization import format_minutes
from .stats import remaining_budget
from .store import QueueRepository, database_connection

_STATUS_MARKERS = {
    ItemStatus.PENDING: " ",
    ItemStatus.RUNNING: ">",
    ItemStatus.COMPLETED: "x",
    ItemStatus.ERROR: "!",
}


class SummaryPrinter:
    """Render human-readable queue summaries in the console."""

    def __init__(self, store_path: Path, daily_limit: int = 480) -> None:
        self.store_path = Path(store_path)
        self.daily_limit = daily_limit

    def print_daily_summary(self) -> None:
        with database_connection(self.store_path) as conn:
            repository = QueueRepository(conn, daily_limit=self.daily_limit)
            stats = repository.load_stats()
            state = repository.load_state()
            items = repository.load_items()

        if stats is None:
            print("No queue recorded yet.")
            return

        if state.is_paused:
            status = "paused"
        elif state.is_running:
            status = "running"
        else:
            status = "idle"

        print(f"Queue for {stats.date} ({status})")
        print("-" * 60)
        print(f"Planned:   {format_minutes(stats.total_planned)}")
        print(f"Completed: {format_minutes(stats.total_completed)} ({stats.progress_percent:.0f}%)")
        print(f"Remaining: {format_minutes(stats.total_remaining)}")
        print(
            f"Used today: {format_minutes(stats.daily_used)} of {format_minutes(stats.daily_limit)}"
            f" ({format_minutes(remaining_budget(stats))} left)"
        )

        if not items:
            print()
            print("Queue is empty.")
            return

        print()
        for index, item in enumerate(items):
            marker = _STATUS_MARKERS.get(item.status, "?")
            current = "*" if state.is_running and index == state.current_index else " "
            print(f" {current}[{marker}] {format_item(item)}")
            if item.error:
                print(f"       error: {item.error}")

        totals = aggregate_by_project(items)
        if len(totals) > 1:
            print()
            print("By project:")
            for project, minutes in totals:
                print(f"  {project:<30} {format_minutes(minutes)}")

    def print_notifications(self, limit: int = 10) -> None:
        with database_connection(self.store_path) as conn:
            repository = QueueRepository(conn, daily_limit=self.daily_limit)
            notifications = repository.load_notifications()
        if not notifications:
            print("No notifications.")
            return
        for notification in notifications[:limit]:
            print(format_notification(notification))


def format_item(item: QueueItem) -> str:
    progress = f"{format_minutes(item.completed_duration)}/{format_minutes(item.total_duration)}"
    chunks = f"{len(item.timer_ids)} chunk(s)" if item.timer_ids else "no chunks"
    return f"{item.label[:40]:<40} {progress:>14}  {chunks}  [{item.id[:8]}]"


def format_notification(notification: Notification) -> str:
    stamp = notification.timestamp.strftime("%H:%M")
    unread = "*" if not notification.read else " "
    return f"{unread} {stamp} {notification.type:<7} {notification.message}"


def aggregate_by_project(items: Iterable[QueueItem]) -> list[tuple[str, int]]:
    totals: defaultdict[str, int] = defaultdict(int)
    for item in items:
        totals[item.project_name or item.project_id] += item.total_duration
    return sorted(totals.items(), key=lambda entry: entry[1], reverse=True)
