"""Domain models for queued time entries.

Every model round-trips through plain JSON (camelCase keys) because the
store persists them as JSON documents.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional


class ItemStatus:
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"

    ALL = (PENDING, RUNNING, COMPLETED, ERROR)


NOTIFICATION_TYPES = ("error", "warning", "info", "success")


def generate_id() -> str:
    return uuid.uuid4().hex


def _dt_to_json(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _dt_from_json(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _opt_str(value: Any) -> Optional[str]:
    return None if value is None or value == "" else str(value)


def _status(value: Any) -> str:
    return value if value in ItemStatus.ALL else ItemStatus.PENDING


@dataclass(slots=True)
class QueueItem:
    """One logical time entry, realized as one or more remote timer chunks."""

    id: str
    project_id: str
    project_name: str
    task_id: str
    task_name: str
    notes: str
    total_duration: int
    remaining_duration: int
    completed_duration: int = 0
    external_duration: int = 0
    ticket_id: Optional[str] = None
    ticket_title: str = ""
    status: str = ItemStatus.PENDING
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    timer_ids: list[str] = field(default_factory=list)
    current_timer_id: Optional[str] = None
    current_chunk_start: Optional[datetime] = None
    current_chunk_duration: Optional[int] = None
    current_chunk_accounted: int = 0
    error: Optional[str] = None

    @classmethod
    def new(
        cls,
        *,
        project_id: str,
        project_name: str,
        task_id: str,
        task_name: str,
        notes: str,
        duration: int,
        created_at: datetime,
        ticket_id: Optional[str] = None,
        ticket_title: str = "",
    ) -> "QueueItem":
        return cls(
            id=generate_id(),
            project_id=project_id,
            project_name=project_name,
            task_id=task_id,
            task_name=task_name,
            notes=notes,
            total_duration=duration,
            remaining_duration=duration,
            ticket_id=ticket_id,
            ticket_title=ticket_title,
            created_at=created_at,
        )

    @property
    def label(self) -> str:
        return f"{self.project_name} - {self.task_name}"

    @property
    def has_open_chunk(self) -> bool:
        return self.current_timer_id is not None and self.current_chunk_start is not None

    def clear_chunk(self) -> None:
        self.current_timer_id = None
        self.current_chunk_start = None
        self.current_chunk_duration = None
        self.current_chunk_accounted = 0

    def matches(self, timer: "RemoteTimer") -> bool:
        """True for a remote timer on this project+task that this item did not create."""
        return (
            timer.project_id == self.project_id
            and timer.task_id == self.task_id
            and timer.id not in self.timer_ids
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "projectName": self.project_name,
            "taskId": self.task_id,
            "taskName": self.task_name,
            "ticketId": self.ticket_id,
            "ticketTitle": self.ticket_title,
            "notes": self.notes,
            "totalDuration": self.total_duration,
            "remainingDuration": self.remaining_duration,
            "completedDuration": self.completed_duration,
            "externalDuration": self.external_duration,
            "status": self.status,
            "createdAt": _dt_to_json(self.created_at),
            "startedAt": _dt_to_json(self.started_at),
            "completedAt": _dt_to_json(self.completed_at),
            "timerIds": list(self.timer_ids),
            "currentTimerId": self.current_timer_id,
            "currentChunkStart": _dt_to_json(self.current_chunk_start),
            "currentChunkDuration": self.current_chunk_duration,
            "currentChunkAccounted": self.current_chunk_accounted,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QueueItem":
        total = int(data.get("totalDuration") or 0)
        return cls(
            id=str(data.get("id") or generate_id()),
            project_id=str(data.get("projectId", "")),
            project_name=data.get("projectName") or "",
            task_id=str(data.get("taskId", "")),
            task_name=data.get("taskName") or "",
            notes=data.get("notes") or "",
            total_duration=total,
            remaining_duration=int(data.get("remainingDuration", total)),
            completed_duration=int(data.get("completedDuration") or 0),
            external_duration=int(data.get("externalDuration") or 0),
            ticket_id=_opt_str(data.get("ticketId")),
            ticket_title=data.get("ticketTitle") or "",
            status=_status(data.get("status")),
            created_at=_dt_from_json(data.get("createdAt")),
            started_at=_dt_from_json(data.get("startedAt")),
            completed_at=_dt_from_json(data.get("completedAt")),
            timer_ids=[str(timer_id) for timer_id in data.get("timerIds") or []],
            current_timer_id=_opt_str(data.get("currentTimerId")),
            current_chunk_start=_dt_from_json(data.get("currentChunkStart")),
            current_chunk_duration=data.get("currentChunkDuration"),
            current_chunk_accounted=int(data.get("currentChunkAccounted") or 0),
            error=data.get("error"),
        )


@dataclass(slots=True)
class QueueState:
    """Engine-wide control state.

    ``total_pause_time`` is cumulative paused time in seconds.
    """

    is_running: bool = False
    is_paused: bool = False
    current_index: int = 0
    start_time: Optional[datetime] = None
    pause_time: Optional[datetime] = None
    total_pause_time: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "isRunning": self.is_running,
            "isPaused": self.is_paused,
            "currentIndex": self.current_index,
            "startTime": _dt_to_json(self.start_time),
            "pauseTime": _dt_to_json(self.pause_time),
            "totalPauseTime": self.total_pause_time,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QueueState":
        return cls(
            is_running=bool(data.get("isRunning", False)),
            is_paused=bool(data.get("isPaused", False)),
            current_index=int(data.get("currentIndex") or 0),
            start_time=_dt_from_json(data.get("startTime")),
            pause_time=_dt_from_json(data.get("pauseTime")),
            total_pause_time=float(data.get("totalPauseTime") or 0.0),
        )


@dataclass(slots=True)
class DailyStats:
    """Aggregate usage for one calendar day."""

    date: str
    daily_limit: int
    total_planned: int = 0
    total_completed: int = 0
    total_remaining: int = 0
    daily_used: int = 0

    @classmethod
    def fresh(cls, day: date, daily_limit: int) -> "DailyStats":
        return cls(date=day.isoformat(), daily_limit=daily_limit)

    @property
    def progress_percent(self) -> float:
        if self.total_planned <= 0:
            return 0.0
        return self.total_completed / self.total_planned * 100.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "totalPlanned": self.total_planned,
            "totalCompleted": self.total_completed,
            "totalRemaining": self.total_remaining,
            "dailyLimit": self.daily_limit,
            "dailyUsed": self.daily_used,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DailyStats":
        return cls(
            date=str(data.get("date", "")),
            daily_limit=int(data.get("dailyLimit") or 0),
            total_planned=int(data.get("totalPlanned") or 0),
            total_completed=int(data.get("totalCompleted") or 0),
            total_remaining=int(data.get("totalRemaining") or 0),
            daily_used=int(data.get("dailyUsed") or 0),
        )


@dataclass(slots=True)
class Notification:
    id: str
    type: str
    message: str
    timestamp: datetime
    read: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "message": self.message,
            "timestamp": _dt_to_json(self.timestamp),
            "read": self.read,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Notification":
        return cls(
            id=str(data["id"]),
            type=data.get("type") or "info",
            message=data.get("message") or "",
            timestamp=_dt_from_json(data.get("timestamp")) or datetime.min,
            read=bool(data.get("read", False)),
        )


@dataclass(slots=True)
class UserSettings:
    sound_enabled: bool = True
    notifications_enabled: bool = True
    auto_start: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "soundEnabled": self.sound_enabled,
            "notificationsEnabled": self.notifications_enabled,
            "autoStart": self.auto_start,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserSettings":
        return cls(
            sound_enabled=bool(data.get("soundEnabled", True)),
            notifications_enabled=bool(data.get("notificationsEnabled", True)),
            auto_start=bool(data.get("autoStart", True)),
        )


@dataclass(slots=True)
class RemoteTimer:
    """A timer already logged on the remote service."""

    id: str
    project_id: str
    task_id: str
    total_time: int
    spent_at: Optional[str] = None
