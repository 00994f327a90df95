"""FastAPI application that exposes a local API for the timer queue."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

from .clock import Clock
from .config import ApiSettings, QueueSettings
from .engine import QueueEngine
from .errors import (
    BudgetExceeded,
    ItemBusy,
    ItemNotFound,
    NotRunning,
    QueueError,
    ValidationError,
)
from .normalization import parse_duration
from .paths import get_store_path
from .remote import HttpTimerService, TimerService
from .store import QueueRepository

logger = logging.getLogger(__name__)

_STATUS_CODES: dict[type[QueueError], int] = {
    ValidationError: 400,
    ItemNotFound: 404,
    ItemBusy: 409,
    NotRunning: 409,
    BudgetExceeded: 409,
}


class QueueItemPayload(BaseModel):
    project_id: Union[int, str]
    task_id: Union[int, str]
    notes: str
    duration: Union[int, str]
    project_name: str = ""
    task_name: str = ""
    ticket_id: Optional[Union[int, str]] = None
    ticket_title: str = ""

    model_config = ConfigDict(extra="forbid")


class QueueItemUpdate(BaseModel):
    project_id: Optional[Union[int, str]] = None
    project_name: Optional[str] = None
    task_id: Optional[Union[int, str]] = None
    task_name: Optional[str] = None
    notes: Optional[str] = None
    ticket_id: Optional[Union[int, str]] = None
    ticket_title: Optional[str] = None
    duration: Optional[Union[int, str]] = None

    model_config = ConfigDict(extra="forbid")


class SettingsPayload(BaseModel):
    sound_enabled: Optional[bool] = None
    notifications_enabled: Optional[bool] = None
    auto_start: Optional[bool] = None

    model_config = ConfigDict(extra="forbid")


class MarkReadPayload(BaseModel):
    notification_id: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


def create_app(
    *,
    store_path: Optional[Path] = None,
    settings: Optional[QueueSettings] = None,
    api_settings: Optional[ApiSettings] = None,
    remote: Optional[TimerService] = None,
    clock: Optional[Clock] = None,
) -> FastAPI:
    """Instantiate the FastAPI application around one queue engine."""
    resolved_store_path = Path(store_path or get_store_path())
    resolved_settings = settings or QueueSettings()
    if remote is None:
        if api_settings is None:
            raise ValueError("api_settings is required when no remote service is given")
        remote = HttpTimerService(
            api_settings,
            retry_max=resolved_settings.api_retry_max,
            retry_delay=resolved_settings.api_retry_delay,
        )
    repository = QueueRepository.open(
        resolved_store_path, daily_limit=resolved_settings.daily_limit
    )
    engine = QueueEngine(repository, remote, settings=resolved_settings, clock=clock)

    app = FastAPI(title="Timer Queue", version="0.3.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.store_path = resolved_store_path
    app.state.engine = engine

    @app.on_event("startup")
    async def _startup() -> None:
        await engine.open()
        logger.info("Queue engine ready; store at %s", resolved_store_path)

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await engine.close()
        if isinstance(remote, HttpTimerService):
            await remote.aclose()
        repository.close()

    @app.exception_handler(QueueError)
    async def _queue_error(request: Request, exc: QueueError) -> JSONResponse:
        status_code = next(
            (code for kind, code in _STATUS_CODES.items() if isinstance(exc, kind)), 400
        )
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    @app.get("/api/status")
    async def status(request: Request) -> Dict[str, Any]:
        snapshot = request.app.state.engine.snapshot()
        state = snapshot["state"]
        return {
            "running": state["isRunning"],
            "paused": state["isPaused"],
            "current_index": state["currentIndex"],
            "progress": snapshot["progress"],
            "unread_notifications": engine.notifications.unread_count(),
            "store_path": str(request.app.state.store_path),
            "timer_limit": resolved_settings.timer_limit,
            "daily_limit": resolved_settings.daily_limit,
        }

    @app.get("/api/queue")
    async def queue(request: Request) -> Dict[str, Any]:
        return request.app.state.engine.snapshot()

    @app.post("/api/queue/items", status_code=201)
    async def add_item(payload: QueueItemPayload) -> Dict[str, Any]:
        item = await engine.add_item(
            project_id=payload.project_id,
            project_name=payload.project_name,
            task_id=payload.task_id,
            task_name=payload.task_name,
            notes=payload.notes,
            duration=parse_duration(payload.duration),
            ticket_id=payload.ticket_id,
            ticket_title=payload.ticket_title,
        )
        return {"item": item.to_dict()}

    @app.patch("/api/queue/items/{item_id}")
    async def update_item(item_id: str, payload: QueueItemUpdate) -> Dict[str, Any]:
        updates = payload.model_dump(exclude_unset=True)
        if "duration" in updates and updates["duration"] is not None:
            updates["duration"] = parse_duration(updates["duration"])
        item = await engine.update_item(item_id, **updates)
        return {"item": item.to_dict()}

    @app.delete("/api/queue/items/{item_id}")
    async def remove_item(item_id: str) -> Dict[str, Any]:
        await engine.remove_item(item_id)
        return {"removed": item_id}

    @app.post("/api/queue/items/{item_id}/move-up")
    async def move_up(item_id: str) -> Dict[str, Any]:
        return {"moved": await engine.move_up(item_id)}

    @app.post("/api/queue/items/{item_id}/move-down")
    async def move_down(item_id: str) -> Dict[str, Any]:
        return {"moved": await engine.move_down(item_id)}

    @app.post("/api/queue/start")
    async def start() -> Dict[str, Any]:
        await engine.start()
        return engine.snapshot()

    @app.post("/api/queue/pause")
    async def pause() -> Dict[str, Any]:
        await engine.pause()
        return engine.snapshot()

    @app.post("/api/queue/resume")
    async def resume() -> Dict[str, Any]:
        await engine.resume()
        return engine.snapshot()

    @app.post("/api/queue/stop")
    async def stop() -> Dict[str, Any]:
        await engine.stop()
        return engine.snapshot()

    @app.post("/api/queue/skip")
    async def skip() -> Dict[str, Any]:
        await engine.skip_current()
        return engine.snapshot()

    @app.post("/api/queue/clear-completed")
    async def clear_completed() -> Dict[str, Any]:
        return {"removed": await engine.clear_completed()}

    @app.post("/api/queue/clear")
    async def clear_all() -> Dict[str, Any]:
        await engine.clear_all()
        return engine.snapshot()

    @app.get("/api/notifications")
    async def notifications(unread_only: bool = False) -> Dict[str, Any]:
        history = engine.notifications.history(unread_only=unread_only)
        return {
            "notifications": [notification.to_dict() for notification in history],
            "unread": engine.notifications.unread_count(),
        }

    @app.post("/api/notifications/read")
    async def mark_read(payload: MarkReadPayload) -> Dict[str, Any]:
        if payload.notification_id:
            if not engine.notifications.mark_read(payload.notification_id):
                raise ItemNotFound(f"No notification with id {payload.notification_id}")
            return {"marked": 1}
        return {"marked": engine.notifications.mark_all_read()}

    @app.get("/api/settings")
    async def get_settings() -> Dict[str, Any]:
        return repository.load_settings().to_dict()

    @app.put("/api/settings")
    async def put_settings(payload: SettingsPayload) -> Dict[str, Any]:
        flags = {name: value for name, value in payload.model_dump().items() if value is not None}
        updated = await engine.update_settings(**flags)
        return updated.to_dict()

    return app
