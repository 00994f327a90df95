"""Command-line interface for the timer queue."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional

import typer

from .clock import SystemClock
from .config import DEFAULT_API_URL, ApiSettings, QueueSettings
from .engine import QueueEngine
from .errors import QueueError
from .normalization import format_minutes, parse_duration
from .paths import get_log_path, get_store_path
from .remote import HttpTimerService
from .server_runner import run_dashboard
from .store import QueueRepository

logger = logging.getLogger(__name__)

app = typer.Typer(help="Queue time entries and submit them in capped timer chunks.")

ApiUrlOption = typer.Option(
    DEFAULT_API_URL,
    "--api-url",
    envvar="TIMER_QUEUE_API_URL",
    help="Base URL of the remote timer service.",
)
TokenOption = typer.Option(
    None,
    "--token",
    envvar="TIMER_QUEUE_TOKEN",
    help="Bearer token for the remote timer service.",
)
StoreOption = typer.Option(
    None,
    "--db",
    path_type=Path,
    help="Location of the queue SQLite store.",
)


@app.callback(no_args_is_help=True)
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the API."),
    port: int = typer.Option(
        8765, "--port", min=1, max=65535, help="TCP port for the API."
    ),
    db_path: Optional[Path] = StoreOption,
    api_url: str = ApiUrlOption,
    token: Optional[str] = TokenOption,
    test_mode: bool = typer.Option(
        False, "--test-mode", help="Treat one second as one minute (demo cadence)."
    ),
    open_browser: bool = typer.Option(
        False,
        "--open-browser/--no-open-browser",
        help="Open the interactive API docs in your default browser.",
    ),
) -> None:
    """Run the queue engine behind the local HTTP API."""
    _attach_file_log()
    run_dashboard(
        api_settings=ApiSettings(base_url=api_url, token=token),
        host=host,
        port=port,
        store_path=db_path or get_store_path(),
        settings=QueueSettings.test_mode() if test_mode else QueueSettings(),
        open_browser=open_browser,
    )


@app.command()
def run(
    db_path: Optional[Path] = StoreOption,
    api_url: str = ApiUrlOption,
    token: Optional[str] = TokenOption,
    test_mode: bool = typer.Option(
        False, "--test-mode", help="Treat one second as one minute (demo cadence)."
    ),
) -> None:
    """Process the queue in the foreground until it finishes or is interrupted."""
    _attach_file_log()
    settings = QueueSettings.test_mode() if test_mode else QueueSettings()

    async def _run(engine: QueueEngine) -> None:
        await engine.open()
        if not engine.snapshot()["state"]["isRunning"]:
            await engine.start()
        await engine.wait_until_idle()

    try:
        _with_engine(db_path, api_url, token, settings, _run)
    except KeyboardInterrupt:
        logger.info("Interrupted; open timer chunks will be recovered on next start.")


@app.command()
def add(
    project_id: str = typer.Option(..., "--project", help="Remote project id."),
    task_id: str = typer.Option(..., "--task", help="Remote task id."),
    duration: str = typer.Option(
        ..., "--duration", "-d", help="Duration, e.g. 90, 1h30m, 1:30 or PT1H30M."
    ),
    notes: str = typer.Option(..., "--note", "-n", help="Note attached to every chunk."),
    project_name: str = typer.Option("", "--project-name", help="Display name of the project."),
    task_name: str = typer.Option("", "--task-name", help="Display name of the task."),
    ticket_id: Optional[str] = typer.Option(None, "--ticket", help="External ticket id."),
    db_path: Optional[Path] = StoreOption,
) -> None:
    """Append an entry to today's queue."""
    try:
        minutes = parse_duration(duration)
    except QueueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--duration") from exc

    async def _add(engine: QueueEngine) -> None:
        item = await engine.add_item(
            project_id=project_id,
            project_name=project_name,
            task_id=task_id,
            task_name=task_name,
            notes=notes,
            duration=minutes,
            ticket_id=ticket_id,
        )
        typer.echo(f"Queued {item.label} for {format_minutes(item.total_duration)} [{item.id[:8]}]")

    _with_engine(db_path, DEFAULT_API_URL, None, QueueSettings(), _add, initialize=True)


@app.command(name="list")
def list_queue(db_path: Optional[Path] = StoreOption) -> None:
    """Print today's queue and usage."""
    from .reporting import SummaryPrinter

    SummaryPrinter(store_path=db_path or get_store_path()).print_daily_summary()


@app.command()
def notifications(
    limit: int = typer.Option(10, "--limit", min=1, max=50, help="How many to show."),
    db_path: Optional[Path] = StoreOption,
) -> None:
    """Print the most recent notifications."""
    from .reporting import SummaryPrinter

    SummaryPrinter(store_path=db_path or get_store_path()).print_notifications(limit=limit)


@app.command()
def clear(
    completed_only: bool = typer.Option(
        False, "--completed", help="Only remove completed entries."
    ),
    db_path: Optional[Path] = StoreOption,
    api_url: str = ApiUrlOption,
    token: Optional[str] = TokenOption,
) -> None:
    """Remove entries from today's queue (stopping it first unless --completed)."""

    async def _clear(engine: QueueEngine) -> None:
        if completed_only:
            removed = await engine.clear_completed()
            typer.echo(f"Removed {removed} completed entries.")
        else:
            await engine.clear_all()
            typer.echo("Queue cleared.")

    _with_engine(db_path, api_url, token, QueueSettings(), _clear, initialize=True)


def _with_engine(
    db_path: Optional[Path],
    api_url: str,
    token: Optional[str],
    settings: QueueSettings,
    action: Callable[[QueueEngine], Awaitable[None]],
    *,
    initialize: bool = False,
) -> None:
    """Build an engine over the store, run ``action`` on it and clean up."""
    repository = QueueRepository.open(db_path or get_store_path(), daily_limit=settings.daily_limit)
    remote = HttpTimerService(
        ApiSettings(base_url=api_url, token=token),
        retry_max=settings.api_retry_max,
        retry_delay=settings.api_retry_delay,
    )

    async def _main() -> None:
        engine = QueueEngine(repository, remote, settings=settings)
        if initialize:
            repository.initialize(SystemClock().today())
        try:
            await action(engine)
        finally:
            await engine.close()
            await remote.aclose()

    try:
        asyncio.run(_main())
    except QueueError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    finally:
        repository.close()


def _attach_file_log() -> None:
    handler = logging.FileHandler(get_log_path(), encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    logging.getLogger().addHandler(handler)
