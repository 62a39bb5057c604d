"""
CLI utility helpers — output formatting and history access.
"""

from __future__ import annotations

import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from durable_mr.core.errors import DurableError
from durable_mr.core.settings import get_settings
from durable_mr.history.events import HistoryEvent
from durable_mr.history.sqlite import SqliteHistoryLog
from durable_mr.history.state import OrchestrationState, OrchestrationStatus

console = Console()
err_console = Console(stderr=True)

_STATUS_STYLE = {
    OrchestrationStatus.PENDING: "yellow",
    OrchestrationStatus.RUNNING: "cyan",
    OrchestrationStatus.COMPLETED: "green",
    OrchestrationStatus.FAILED: "red",
    OrchestrationStatus.TERMINATED: "magenta",
}


# ── History helper ───────────────────────────────────────────────────────


def open_history(database: Path | None = None) -> SqliteHistoryLog:
    """Open the SQLite history. Defaults to ``DURABLE_DATABASE_PATH``."""
    return SqliteHistoryLog(database or get_settings().database_path)


def fail(error: DurableError | str) -> None:
    """Print an error and exit with status 1."""
    if isinstance(error, DurableError):
        err_console.print(f"[bold red]Error[/bold red] ({type(error).__name__}): {error.message}")
    else:
        err_console.print(f"[bold red]Error[/bold red]: {error}")
    raise typer.Exit(code=1)


# ── Output helpers ───────────────────────────────────────────────────────


def print_state(state: OrchestrationState, *, as_json: bool = False) -> None:
    """Render an instance status."""
    if as_json:
        console.print_json(json.dumps(state.to_dict(), default=str))
        return

    style = _STATUS_STYLE.get(state.status, "white")
    console.print(f"[bold]{state.name}[/bold] {state.instance_id}")
    console.print(f"  [cyan]status[/cyan]: [{style}]{state.status.value}[/{style}]")
    if state.output is not None:
        console.print(f"  [cyan]output[/cyan]: {state.output}")
    if state.failure is not None:
        console.print(f"  [cyan]failure[/cyan]: {state.failure}")
    if state.parent_instance_id:
        console.print(f"  [cyan]parent[/cyan]: {state.parent_instance_id}")
    console.print(f"  [cyan]events[/cyan]: {state.event_count}")


def _summarize(event: HistoryEvent) -> str:
    data = event.data
    if "failure" in data:
        return str(event.failure)
    for key in ("result", "output"):
        if key in data:
            return json.dumps(data[key], default=str)
    if "name" in data:
        return f"{data['name']}({json.dumps(data.get('input'), default=str)})"
    if "reason" in data:
        return data["reason"]
    return ""


def print_history(events: list[HistoryEvent], *, title: str = "", as_json: bool = False) -> None:
    """Render a history as a Rich table."""
    if as_json:
        console.print_json(json.dumps([e.to_dict() for e in events], default=str))
        return
    if not events:
        console.print("[dim]No events.[/dim]")
        return

    table = Table(title=title or None, show_lines=False, pad_edge=False)
    table.add_column("#", justify="right")
    table.add_column("event")
    table.add_column("task", justify="right")
    table.add_column("attempt", justify="right")
    table.add_column("timestamp")
    table.add_column("detail", overflow="fold")
    for event in events:
        task_id = event.task_id
        table.add_row(
            str(event.sequence),
            event.event_type.value,
            "" if task_id is None else str(task_id),
            str(event.attempt) if "attempt" in event.data else "",
            event.timestamp.isoformat(timespec="seconds") if event.timestamp else "",
            _summarize(event),
        )
    console.print(table)
