"""Queue engine: splits queued entries into capped remote timer chunks."""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timedelta
from typing import Any, Awaitable, Callable, Optional

from .clock import Clock, SystemClock
from .config import QueueSettings
from .errors import (
    AlreadyStopped,
    BudgetExceeded,
    ItemBusy,
    ItemNotFound,
    NotRunning,
    RemoteError,
    ValidationError,
)
from .models import DailyStats, ItemStatus, QueueItem, QueueState, UserSettings
from .normalization import format_minutes, normalize_identifier, normalize_text
from .notifications import NotificationCenter
from .remote import TimerService, timers_for_day
from .stats import (
    adjust_planned,
    ensure_within_budget,
    forget_planned,
    is_new_day,
    pending_total,
    record_external,
    record_planned,
    record_progress,
)
from .store import QueueRepository

logger = logging.getLogger(__name__)

Observer = Callable[[str], None]

_EDITABLE_FIELDS = (
    "project_id",
    "project_name",
    "task_id",
    "task_name",
    "notes",
    "ticket_id",
    "ticket_title",
    "duration",
)


def elapsed_minutes(start: datetime, now: datetime, minute_length: timedelta) -> int:
    """Whole accounted minutes between ``start`` and ``now``."""
    if now <= start:
        return 0
    return int((now - start) // minute_length)


class QueueEngine:
    """Owns the day's queue and drives it against the remote timer service.

    Every mutating entry point (commands and the countdown, reconciliation
    and rollover ticks) runs under one asyncio lock, and state is re-read
    from the repository on every step so a restarted process picks up
    exactly where the last one stopped.
    """

    def __init__(
        self,
        repository: QueueRepository,
        remote: TimerService,
        *,
        settings: Optional[QueueSettings] = None,
        clock: Optional[Clock] = None,
        notifications: Optional[NotificationCenter] = None,
    ) -> None:
        self.settings = settings or QueueSettings()
        self._repository = repository
        self._remote = remote
        self._clock = clock or SystemClock()
        self.notifications = notifications or NotificationCenter(
            repository, self._clock, self.settings.notification_limit
        )
        self._lock = asyncio.Lock()
        self._countdown_task: Optional[asyncio.Task[None]] = None
        self._countdown_token = 0
        self._run_token = 0
        self._watch_tasks: list[asyncio.Task[None]] = []
        self._followups: set[asyncio.Task[None]] = set()
        self._observers: list[Observer] = []

    # -- lifecycle -------------------------------------------------------

    async def open(self) -> None:
        """Seed storage, recover an interrupted run and start the watch loops."""
        async with self._lock:
            today = self._clock.today()
            if is_new_day(self._repository.load_stats(), today):
                await self._reset_day_locked(today)
                was_reset = True
            else:
                was_reset = self._repository.initialize(today)
            state = self._repository.load_state()
            auto_start = self._repository.load_settings().auto_start
            if state.is_running and not state.is_paused and not was_reset:
                if auto_start:
                    logger.info("Queue was running before restart; recovering.")
                    await self._recover_locked()
                else:
                    logger.info("Queue was running before restart; auto-start is off.")

        if not self._watch_tasks:
            self._watch_tasks = [
                asyncio.create_task(
                    self._watch_loop(self.settings.rollover_interval, self.check_rollover, "rollover")
                ),
                asyncio.create_task(
                    self._watch_loop(self.settings.reconcile_interval, self.reconcile, "reconcile")
                ),
            ]

    async def close(self) -> None:
        """Cancel every background task; open remote chunks are left for recovery."""
        async with self._lock:
            tasks = list(self._watch_tasks) + list(self._followups)
            countdown = self._cancel_countdown()
            if countdown is not None:
                tasks.append(countdown)
            self._run_token += 1
            self._watch_tasks = []
            for task in tasks:
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def wait_until_idle(self, poll_seconds: float = 1.0) -> None:
        while self._repository.load_state().is_running:
            await self._clock.sleep(poll_seconds)

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register a UI-refresh callback; returns the matching unsubscribe."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    # -- queue state machine ---------------------------------------------

    async def start(self) -> None:
        async with self._lock:
            state = self._repository.load_state()
            if state.is_running:
                raise ValidationError("Queue is already running")
            items = self._repository.load_items()
            if not items:
                self._notify("warning", "Queue is empty. Add entries first.")
                raise ValidationError("Queue is empty")

            stats = self._load_stats()
            used = await self._used_today(stats)
            planned = pending_total(items)
            try:
                ensure_within_budget(used, planned, stats.daily_limit)
            except BudgetExceeded:
                self._notify(
                    "error",
                    f"Daily limit exceeded! Used: {format_minutes(used)}, "
                    f"queued: {format_minutes(planned)}",
                )
                raise

            state.is_running = True
            state.is_paused = False
            state.pause_time = None
            state.start_time = self._clock.now()
            state.current_index = next(
                (index for index, item in enumerate(items) if item.status == ItemStatus.PENDING),
                0,
            )
            self._repository.save_state(state)
            logger.info("Queue started at index %d", state.current_index)
            self._notify("success", "Queue started.")
            self._emit("state")
            await self._process_next_locked()

    async def pause(self) -> None:
        async with self._lock:
            state = self._repository.load_state()
            if not state.is_running:
                self._notify("warning", "Queue is not running.")
                raise NotRunning("Queue is not running")
            if state.is_paused:
                return

            await self._close_current_chunk(state)
            self._cancel_countdown()
            self._run_token += 1
            state.is_paused = True
            state.pause_time = self._clock.now()
            self._repository.save_state(state)
            logger.info("Queue paused at index %d", state.current_index)
            self._notify("info", "Queue paused.")
            self._emit("state")

    async def resume(self) -> None:
        async with self._lock:
            state = self._repository.load_state()
            if not state.is_running or not state.is_paused:
                self._notify("warning", "Queue is not paused.")
                raise NotRunning("Queue is not paused")

            self._accumulate_pause(state)
            state.is_paused = False
            self._repository.save_state(state)
            logger.info("Queue resumed at index %d", state.current_index)
            self._notify("success", "Queue resumed.")
            self._emit("state")
            await self._process_next_locked()

    async def stop(self) -> None:
        async with self._lock:
            await self._stop_locked()
            self._notify("warning", "Queue stopped.")

    async def tick(self) -> None:
        """Run one countdown step right away instead of waiting for the timer."""
        async with self._lock:
            state = self._repository.load_state()
            items = self._repository.load_items()
            if 0 <= state.current_index < len(items):
                await self._countdown_tick_locked(items[state.current_index].id)

    async def reconcile(self) -> None:
        """Skip the running item when someone else already logged its full duration."""
        async with self._lock:
            state = self._repository.load_state()
            if not state.is_running or state.is_paused:
                return
            items = self._repository.load_items()
            item = self._item_at(items, state.current_index)
            if item is None or item.status != ItemStatus.RUNNING:
                return

            external = await self._external_minutes(item)
            logger.debug("Reconcile %s: %d external minutes", item.label, external)
            if external >= item.total_duration:
                self._notify("info", f"{item.label} was completed manually; skipping.")
                await self._skip_locked(state)

    async def check_rollover(self) -> bool:
        """Reset everything when the calendar day has changed."""
        async with self._lock:
            today = self._clock.today()
            if not is_new_day(self._repository.load_stats(), today):
                return False
            await self._reset_day_locked(today)
            return True

    async def _reset_day_locked(self, today: date) -> None:
        """Stop yesterday's open chunk and start the day with an empty queue."""
        self._cancel_countdown()
        self._run_token += 1
        state = self._repository.load_state()
        item = self._item_at(self._repository.load_items(), state.current_index)
        if item is not None and item.current_timer_id:
            await self._stop_remote(item.current_timer_id)
        self._repository.reset_daily(today)
        self._notify("info", "New day started. Queue has been reset.")
        self._emit("state")

    # -- item mutations --------------------------------------------------

    async def add_item(
        self,
        *,
        project_id: Any,
        task_id: Any,
        notes: str,
        duration: int,
        project_name: str = "",
        task_name: str = "",
        ticket_id: Any = None,
        ticket_title: str = "",
    ) -> QueueItem:
        project = normalize_identifier(project_id)
        task = normalize_identifier(task_id)
        note = normalize_text(notes)
        if not project or not task or not note:
            raise ValidationError("Project, task and note are required")
        if duration < 1:
            raise ValidationError("Duration must be at least 1 minute")

        async with self._lock:
            stats = self._load_stats()
            ensure_within_budget(stats.daily_used, duration, stats.daily_limit)
            item = QueueItem.new(
                project_id=project,
                project_name=normalize_text(project_name) or project,
                task_id=task,
                task_name=normalize_text(task_name) or task,
                notes=note,
                duration=duration,
                created_at=self._clock.now(),
                ticket_id=normalize_identifier(ticket_id),
                ticket_title=normalize_text(ticket_title),
            )
            items = self._repository.load_items()
            items.append(item)
            record_planned(stats, item.total_duration)
            self._repository.save_items(items)
            self._repository.save_stats(stats)
            self._notify("success", f"Added to queue: {item.label} ({format_minutes(duration)})")
            self._emit("state")
            return item

    async def remove_item(self, item_id: str) -> None:
        async with self._lock:
            items = self._repository.load_items()
            index = self._index_of(items, item_id)
            item = items[index]
            if item.status == ItemStatus.RUNNING:
                self._notify("error", "A running item cannot be removed. Pause the queue first.")
                raise ItemBusy(f"Item {item_id} is running")

            if item.status == ItemStatus.PENDING:
                stats = self._load_stats()
                forget_planned(stats, item)
                self._repository.save_stats(stats)
            del items[index]
            self._repository.save_items(items)

            state = self._repository.load_state()
            if index < state.current_index:
                state.current_index -= 1
                self._repository.save_state(state)
            self._notify("info", f"Removed {item.label}")
            self._emit("state")

    async def update_item(self, item_id: str, **changes: Any) -> QueueItem:
        unknown = set(changes) - set(_EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

        async with self._lock:
            items = self._repository.load_items()
            item = items[self._index_of(items, item_id)]
            if item.status == ItemStatus.RUNNING:
                self._notify("error", "A running item cannot be edited.")
                raise ItemBusy(f"Item {item_id} is running")

            values: dict[str, Any] = {}
            for field_name in ("project_id", "task_id", "ticket_id"):
                if field_name in changes:
                    values[field_name] = normalize_identifier(changes[field_name])
                    if values[field_name] is None and field_name != "ticket_id":
                        raise ValidationError(f"{field_name} cannot be empty")
            for field_name in ("project_name", "task_name", "ticket_title", "notes"):
                if field_name in changes:
                    values[field_name] = normalize_text(changes[field_name])
            if "notes" in values and not values["notes"]:
                raise ValidationError("notes cannot be empty")

            duration = changes.get("duration")
            if duration is not None and duration != item.total_duration:
                self._apply_duration_change(item, int(duration))
            for field_name, value in values.items():
                setattr(item, field_name, value)

            self._repository.save_items(items)
            self._notify("success", f"Updated {item.label}")
            self._emit("state")
            return item

    async def move_up(self, item_id: str) -> bool:
        return await self._move(item_id, -1)

    async def move_down(self, item_id: str) -> bool:
        return await self._move(item_id, 1)

    async def skip_current(self) -> None:
        async with self._lock:
            state = self._repository.load_state()
            items = self._repository.load_items()
            item = self._item_at(items, state.current_index)
            if item is None or item.status != ItemStatus.RUNNING:
                self._notify("warning", "Nothing to skip.")
                raise ValidationError("No running item to skip")
            self._notify("info", f"Skipping {item.label}")
            await self._skip_locked(state)

    async def clear_completed(self) -> int:
        async with self._lock:
            items = self._repository.load_items()
            state = self._repository.load_state()
            removed_before = sum(
                1
                for item in items[: state.current_index]
                if item.status == ItemStatus.COMPLETED
            )
            remaining = [item for item in items if item.status != ItemStatus.COMPLETED]
            self._repository.save_items(remaining)
            if removed_before:
                state.current_index -= removed_before
                self._repository.save_state(state)
            removed = len(items) - len(remaining)
            self._notify("info", f"Cleared {removed} completed item(s)")
            self._emit("state")
            return removed

    async def clear_all(self) -> None:
        async with self._lock:
            await self._stop_locked()
            self._repository.save_items([])
            state = self._repository.load_state()
            state.current_index = 0
            self._repository.save_state(state)
            stats = self._load_stats()
            stats.total_planned = stats.total_completed
            stats.total_remaining = 0
            self._repository.save_stats(stats)
            self._notify("info", "Queue cleared.")
            self._emit("state")

    async def update_settings(self, **flags: bool) -> UserSettings:
        async with self._lock:
            settings = self._repository.load_settings()
            for name, value in flags.items():
                if not hasattr(settings, name):
                    raise ValidationError(f"Unknown setting: {name}")
                setattr(settings, name, bool(value))
            self._repository.save_settings(settings)
            return settings

    # -- read side -------------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        stats = self._repository.load_stats()
        return {
            "state": self._repository.load_state().to_dict(),
            "items": [item.to_dict() for item in self._repository.load_items()],
            "stats": stats.to_dict() if stats else None,
            "progress": round(stats.progress_percent, 1) if stats else 0.0,
        }

    # -- processing internals --------------------------------------------

    async def _process_next_locked(self) -> None:
        while True:
            state = self._repository.load_state()
            if not state.is_running or state.is_paused:
                return
            items = self._repository.load_items()
            item = self._item_at(items, state.current_index)
            if item is None:
                await self._complete_queue_locked()
                return
            if item.status == ItemStatus.RUNNING and item.has_open_chunk:
                if self._countdown_task is None:
                    self._start_countdown(item.id)
                return
            if item.status == ItemStatus.COMPLETED:
                logger.debug("Skipping completed item %s", item.label)
                state.current_index += 1
                self._repository.save_state(state)
                continue
            await self._process_item_locked(state, items, state.current_index)
            return

    async def _process_item_locked(
        self, state: QueueState, items: list[QueueItem], index: int
    ) -> None:
        item = items[index]
        stats = self._load_stats()

        external = await self._external_minutes(item)
        credit = external - item.external_duration
        if credit > 0:
            applied = min(credit, item.remaining_duration)
            item.external_duration = external
            item.remaining_duration -= applied
            item.completed_duration = item.total_duration - item.remaining_duration
            record_external(stats, applied)
            self._notify("info", f"{item.label}: {format_minutes(external)} already logged")

        if item.remaining_duration <= 0:
            item.status = ItemStatus.COMPLETED
            item.completed_at = self._clock.now()
            item.clear_chunk()
            self._repository.save_items(items)
            self._repository.save_stats(stats)
            state.current_index = index + 1
            self._repository.save_state(state)
            self._notify("success", f"{item.label} was already logged; skipping.")
            self._emit("state")
            self._schedule(self.settings.skip_advance_delay, self._process_next_locked)
            return

        item.status = ItemStatus.RUNNING
        item.error = None
        if item.started_at is None:
            item.started_at = self._clock.now()
        self._repository.save_items(items)
        self._repository.save_stats(stats)

        chunk_duration = min(item.remaining_duration, self.settings.timer_limit)
        try:
            timer_id = await self._remote.create_timer(
                project_id=item.project_id,
                task_id=item.task_id,
                notes=item.notes,
                start_date=self._clock.today(),
                ticket_id=item.ticket_id,
            )
        except RemoteError as exc:
            logger.error("Could not open a timer for %s: %s", item.label, exc)
            item.status = ItemStatus.ERROR
            item.error = str(exc)
            self._repository.save_items(items)
            state.current_index = index + 1
            self._repository.save_state(state)
            self._notify("error", f"Error: {item.label} - {exc}")
            self._emit("state")
            self._schedule(self.settings.error_advance_delay, self._process_next_locked)
            return

        item.timer_ids.append(timer_id)
        item.current_timer_id = timer_id
        item.current_chunk_start = self._clock.now()
        item.current_chunk_duration = chunk_duration
        item.current_chunk_accounted = 0
        self._repository.save_items(items)
        logger.info(
            "Opened timer %s for %s: %d minute chunk (%d remaining)",
            timer_id,
            item.label,
            chunk_duration,
            item.remaining_duration,
        )
        self._notify("success", f"{item.label}: {format_minutes(chunk_duration)} started")
        self._emit("state")
        self._start_countdown(item.id)

    async def _countdown_tick_locked(self, item_id: str) -> bool:
        """Account elapsed minutes; finish the chunk when it is used up.

        Returns True when the countdown for this chunk should stop.
        """
        state = self._repository.load_state()
        if not state.is_running or state.is_paused:
            return True
        items = self._repository.load_items()
        item = self._item_at(items, state.current_index)
        if item is None or item.id != item_id or not item.has_open_chunk:
            return True

        stats = self._load_stats()
        elapsed = self._settle(item, stats)
        self._repository.save_items(items)
        self._repository.save_stats(stats)
        logger.debug(
            "Countdown %s: %d/%d minutes, %d remaining",
            item.label,
            elapsed,
            item.current_chunk_duration,
            item.remaining_duration,
        )
        self._emit("progress")

        if elapsed >= (item.current_chunk_duration or 0):
            await self._complete_chunk_locked(state, items, state.current_index)
            return True
        return False

    def _settle(self, item: QueueItem, stats: DailyStats) -> int:
        """Bring the item's accounting up to now; returns the clamped chunk elapsed."""
        if item.current_chunk_start is None:
            return 0
        if item.current_chunk_duration is None:
            item.current_chunk_duration = min(
                item.remaining_duration + item.current_chunk_accounted,
                self.settings.timer_limit,
            )
        elapsed = min(
            elapsed_minutes(item.current_chunk_start, self._clock.now(), self.settings.minute_length),
            item.current_chunk_duration,
        )
        increment = elapsed - item.current_chunk_accounted
        if increment > 0:
            item.remaining_duration = max(0, item.remaining_duration - increment)
            item.completed_duration = item.total_duration - item.remaining_duration
            item.current_chunk_accounted = elapsed
            record_progress(stats, increment)
        return elapsed

    async def _complete_chunk_locked(
        self, state: QueueState, items: list[QueueItem], index: int
    ) -> None:
        item = items[index]
        if item.current_timer_id:
            await self._stop_remote(item.current_timer_id)
        item.clear_chunk()

        if item.remaining_duration <= 0:
            item.status = ItemStatus.COMPLETED
            item.completed_at = self._clock.now()
            self._repository.save_items(items)
            state.current_index = index + 1
            self._repository.save_state(state)
            logger.info("Item %s completed in %d chunk(s)", item.label, len(item.timer_ids))
            self._notify("success", f"{item.label} completed!")
            self._emit("state")
            await self._process_next_locked()
        else:
            self._repository.save_items(items)
            logger.info("Chunk done for %s; %d minutes left", item.label, item.remaining_duration)
            self._schedule(self.settings.chunk_gap, self._process_next_locked)

    async def _complete_queue_locked(self) -> None:
        await self._stop_locked()
        completed = sum(
            1 for item in self._repository.load_items() if item.status == ItemStatus.COMPLETED
        )
        state = self._repository.load_state()
        state.current_index = 0
        self._repository.save_state(state)
        logger.info("Queue finished; %d item(s) completed", completed)
        self._notify("success", f"Queue completed! {completed} entries processed.")
        self._emit("state")

    async def _stop_locked(self) -> None:
        self._cancel_countdown()
        self._run_token += 1
        state = self._repository.load_state()
        await self._close_current_chunk(state)

        items = self._repository.load_items()
        item = self._item_at(items, state.current_index)
        if item is not None and item.status == ItemStatus.RUNNING:
            item.status = ItemStatus.PENDING
            self._repository.save_items(items)

        if state.is_paused:
            self._accumulate_pause(state)
        state.is_running = False
        state.is_paused = False
        self._repository.save_state(state)
        logger.info("Queue stopped at index %d", state.current_index)
        self._emit("state")

    async def _skip_locked(self, state: QueueState) -> None:
        await self._close_current_chunk(state)
        self._cancel_countdown()
        self._run_token += 1
        items = self._repository.load_items()
        item = items[state.current_index]
        item.status = ItemStatus.PENDING
        self._repository.save_items(items)
        state.current_index += 1
        self._repository.save_state(state)
        logger.info("Skipped %s", item.label)
        self._emit("state")
        await self._process_next_locked()

    async def _close_current_chunk(self, state: QueueState) -> None:
        """Account the open chunk up to now, stop it remotely and forget it."""
        items = self._repository.load_items()
        item = self._item_at(items, state.current_index)
        if item is None or not item.has_open_chunk:
            return
        stats = self._load_stats()
        self._settle(item, stats)
        timer_id = item.current_timer_id
        item.clear_chunk()
        self._repository.save_items(items)
        self._repository.save_stats(stats)
        if timer_id:
            await self._stop_remote(timer_id)

    async def _recover_locked(self) -> None:
        state = self._repository.load_state()
        items = self._repository.load_items()
        item = self._item_at(items, state.current_index)
        if item is None or item.status != ItemStatus.RUNNING or not item.has_open_chunk:
            await self._process_next_locked()
            return

        try:
            stats = self._load_stats()
            elapsed = self._settle(item, stats)
            self._repository.save_items(items)
            self._repository.save_stats(stats)
            chunk_duration = item.current_chunk_duration or 0
            if elapsed < chunk_duration:
                logger.info(
                    "Resuming countdown for %s: %d of %d minutes already elapsed",
                    item.label,
                    elapsed,
                    chunk_duration,
                )
                self._start_countdown(item.id)
            else:
                logger.info("Chunk for %s expired while offline; finalizing", item.label)
                await self._complete_chunk_locked(state, items, state.current_index)
        except Exception:
            logger.exception("Recovery failed; falling back to normal processing")
            await self._process_next_locked()

    # -- helpers ---------------------------------------------------------

    async def _move(self, item_id: str, offset: int) -> bool:
        async with self._lock:
            items = self._repository.load_items()
            index = self._index_of(items, item_id)
            target = index + offset
            if target < 0 or target >= len(items):
                return False
            items[index], items[target] = items[target], items[index]
            self._repository.save_items(items)

            state = self._repository.load_state()
            if state.is_running and state.current_index in (index, target):
                state.current_index = target if state.current_index == index else index
                self._repository.save_state(state)
            self._emit("state")
            return True

    def _apply_duration_change(self, item: QueueItem, duration: int) -> None:
        if duration < 1:
            raise ValidationError("Duration must be at least 1 minute")
        if item.status == ItemStatus.COMPLETED:
            raise ValidationError("Duration of a completed item cannot change")
        if duration < item.completed_duration:
            raise ValidationError(
                f"Duration cannot be less than the {item.completed_duration} minutes already logged"
            )
        delta = duration - item.total_duration
        stats = self._load_stats()
        adjust_planned(stats, delta)
        self._repository.save_stats(stats)
        item.total_duration = duration
        item.remaining_duration = duration - item.completed_duration

    async def _external_minutes(self, item: QueueItem) -> int:
        today = self._clock.today()
        try:
            buckets = await self._remote.query_daily_timers(today)
        except RemoteError as exc:
            logger.warning("Could not fetch today's timers: %s", exc)
            return 0
        return sum(timer.total_time for timer in timers_for_day(buckets, today) if item.matches(timer))

    async def _used_today(self, stats: DailyStats) -> int:
        try:
            remote_total = await self._remote.query_daily_total(self._clock.today())
        except RemoteError as exc:
            logger.warning("Could not fetch today's total; using local figure: %s", exc)
            return stats.daily_used
        return max(stats.daily_used, remote_total)

    async def _stop_remote(self, timer_id: str) -> None:
        try:
            await self._remote.stop_timer(timer_id)
        except AlreadyStopped:
            logger.info("Timer %s was already stopped", timer_id)
        except RemoteError as exc:
            logger.warning("Failed to stop timer %s: %s", timer_id, exc)
            self._notify("warning", f"Timer {timer_id} could not be stopped: {exc}")

    def _start_countdown(self, item_id: str) -> None:
        self._cancel_countdown()
        token = self._countdown_token
        self._countdown_task = asyncio.create_task(self._countdown_loop(token, item_id))

    def _cancel_countdown(self) -> Optional[asyncio.Task[None]]:
        """Stop accepting ticks from the current countdown.

        A tick already holding the lock finishes normally; it is the last one.
        """
        self._countdown_token += 1
        task, self._countdown_task = self._countdown_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            return task
        return None

    async def _countdown_loop(self, token: int, item_id: str) -> None:
        interval = self.settings.countdown_interval.total_seconds()
        while True:
            await self._clock.sleep(interval)
            async with self._lock:
                if token != self._countdown_token:
                    return
                try:
                    finished = await self._countdown_tick_locked(item_id)
                except Exception:
                    logger.exception("Countdown tick failed; retrying next interval")
                    finished = False
            if finished:
                return

    def _schedule(self, delay: timedelta, action: Callable[[], Awaitable[None]]) -> None:
        token = self._run_token

        async def run_later() -> None:
            await self._clock.sleep(delay.total_seconds())
            async with self._lock:
                if token != self._run_token:
                    return
                try:
                    await action()
                except Exception:
                    logger.exception("Scheduled queue step failed")

        task = asyncio.create_task(run_later())
        self._followups.add(task)
        task.add_done_callback(self._followups.discard)

    async def _watch_loop(
        self, interval: timedelta, step: Callable[[], Awaitable[Any]], name: str
    ) -> None:
        while True:
            await self._clock.sleep(interval.total_seconds())
            try:
                await step()
            except Exception:
                logger.exception("%s tick failed; will retry next interval", name)

    def _accumulate_pause(self, state: QueueState) -> None:
        if state.pause_time is not None:
            state.total_pause_time += (self._clock.now() - state.pause_time).total_seconds()
        state.pause_time = None

    def _load_stats(self) -> DailyStats:
        stats = self._repository.load_stats()
        if stats is None:
            stats = DailyStats.fresh(self._clock.today(), self.settings.daily_limit)
        return stats

    def _notify(self, type_: str, message: str) -> None:
        self.notifications.add(type_, message)

    def _emit(self, event: str) -> None:
        for observer in list(self._observers):
            try:
                observer(event)
            except Exception:
                logger.exception("Queue observer failed for %s", event)

    @staticmethod
    def _item_at(items: list[QueueItem], index: int) -> Optional[QueueItem]:
        if 0 <= index < len(items):
            return items[index]
        return None

    @staticmethod
    def _index_of(items: list[QueueItem], item_id: str) -> int:
        for index, item in enumerate(items):
            if item.id == item_id:
                return index
        raise ItemNotFound(f"No queue item with id {item_id}")
