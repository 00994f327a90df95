from datetime import datetime

from timer_queue.models import ItemStatus, QueueItem, QueueState
from timer_queue.reporting import SummaryPrinter, aggregate_by_project, format_item


def make_item(project: str, duration: int, **overrides) -> QueueItem:
    item = QueueItem.new(
        project_id=project,
        project_name=project.title(),
        task_id="11",
        task_name="Review",
        notes="Code review",
        duration=duration,
        created_at=datetime(2024, 3, 4, 8, 0),
    )
    for name, value in overrides.items():
        setattr(item, name, value)
    return item


def test_format_item_shows_progress_and_chunks():
    item = make_item("acme", 140, completed_duration=59, remaining_duration=81, timer_ids=["1"])
    line = format_item(item)
    assert "Acme - Review" in line
    assert "59m/2h 20m" in line
    assert "1 chunk(s)" in line


def test_aggregate_by_project_sorts_by_minutes():
    items = [make_item("acme", 30), make_item("globex", 90), make_item("acme", 20)]
    assert aggregate_by_project(items) == [("Globex", 90), ("Acme", 50)]


def test_daily_summary_marks_current_item(repository, store_path, capsys):
    items = [
        make_item("acme", 30, status=ItemStatus.COMPLETED, completed_duration=30, remaining_duration=0),
        make_item("globex", 60, status=ItemStatus.RUNNING),
        make_item("globex", 20, status=ItemStatus.ERROR, error="HTTP 422"),
    ]
    repository.save_items(items)
    repository.save_state(QueueState(is_running=True, current_index=1))

    SummaryPrinter(store_path).print_daily_summary()

    output = capsys.readouterr().out
    assert "Queue for 2024-03-04 (running)" in output
    assert " *[>] Globex - Review" in output
    assert "  [x] Acme - Review" in output
    assert "Used today: 0m of 8h (8h left)" in output
    assert "error: HTTP 422" in output
    assert "By project:" in output


def test_empty_store_prints_placeholder(repository, store_path, capsys):
    SummaryPrinter(store_path).print_notifications()
    SummaryPrinter(store_path).print_daily_summary()
    output = capsys.readouterr().out
    assert "No notifications." in output
    assert "Queue is empty." in output
