"""Run the local queue API under uvicorn."""

from __future__ import annotations

import logging
import threading
import time
import webbrowser
from pathlib import Path
from typing import Optional

import uvicorn

from .config import ApiSettings, QueueSettings
from .paths import get_store_path
from .webapp import create_app

logger = logging.getLogger(__name__)


def build_server(
    *,
    api_settings: ApiSettings,
    host: str = "127.0.0.1",
    port: int = 8765,
    store_path: Optional[Path] = None,
    settings: Optional[QueueSettings] = None,
    log_level: str = "info",
) -> uvicorn.Server:
    app = create_app(
        store_path=store_path or get_store_path(),
        settings=settings or QueueSettings(),
        api_settings=api_settings,
    )
    config = uvicorn.Config(app, host=host, port=port, log_level=log_level)
    return uvicorn.Server(config)


def run_dashboard(
    *,
    api_settings: ApiSettings,
    host: str = "127.0.0.1",
    port: int = 8765,
    store_path: Optional[Path] = None,
    settings: Optional[QueueSettings] = None,
    open_browser: bool = True,
    log_level: str = "info",
) -> None:
    """Serve the API (and drive the queue) until interrupted."""
    server = build_server(
        api_settings=api_settings,
        host=host,
        port=port,
        store_path=store_path,
        settings=settings,
        log_level=log_level,
    )
    if open_browser:
        threading.Thread(
            target=_open_docs_when_ready,
            args=(server, f"http://{host}:{port}/docs"),
            daemon=True,
        ).start()
    server.run()


def _open_docs_when_ready(server: uvicorn.Server, url: str, timeout: float = 15.0) -> None:
    deadline = time.monotonic() + timeout
    while not server.started:
        if server.should_exit or time.monotonic() > deadline:
            logger.warning("API did not come up; not opening %s", url)
            return
        time.sleep(0.2)
    try:
        webbrowser.open(url)
    except Exception:
        logger.exception("Failed to launch browser for %s", url)
