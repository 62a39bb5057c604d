"""
Root Typer application for the durable-mr CLI.

    durable-mr run DATA_DIR       run the max-temperature job over DATA_DIR/datain
    durable-mr status ID          instance status from the SQLite history
    durable-mr history ID         instance history as a table
    durable-mr serve              start the HTTP API (uvicorn)
"""

from __future__ import annotations

from pathlib import Path

import typer

from durable_mr import __version__
from durable_mr.cli.utils import console, fail, open_history, print_history, print_state
from durable_mr.core.errors import DurableError, InstanceNotFoundError
from durable_mr.core.logging import configure_logging
from durable_mr.core.settings import get_settings
from durable_mr.execution.registry import Registry
from durable_mr.history.log import InMemoryHistoryLog
from durable_mr.history.state import OrchestrationState, OrchestrationStatus
from durable_mr.mapreduce import MapReduceInput, register_map_reduce
from durable_mr.mapreduce.models import DEFAULT_MAP_INPUT_CONTAINER, DEFAULT_MAP_OUTPUT_CONTAINER
from durable_mr.orchestration.runtime import DurableRuntime
from durable_mr.storage.local import LocalObjectStore

app = typer.Typer(
    name="durable-mr",
    help="durable-mr — durable map/reduce orchestration.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version / logging callback ───────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"durable-mr {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="Override DURABLE_LOG_LEVEL"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit JSON log lines"),
) -> None:
    """durable-mr CLI — run jobs and inspect orchestration history."""
    settings = get_settings()
    configure_logging(log_level or settings.log_level, json_format=json_logs or settings.json_logs)


# ── Commands ─────────────────────────────────────────────────────────────


@app.command("run")
def run(
    data_dir: Path = typer.Argument(..., help="Object store root; containers are sub-directories"),
    input_container: str = typer.Option(DEFAULT_MAP_INPUT_CONTAINER, "--input", "-i"),
    output_container: str = typer.Option(DEFAULT_MAP_OUTPUT_CONTAINER, "--output", "-o"),
    database: Path | None = typer.Option(
        None, "--database", "-d", help="SQLite history file (default: DURABLE_DATABASE_PATH)"
    ),
    in_memory: bool = typer.Option(False, "--in-memory", help="Keep history in memory only"),
    timeout: float = typer.Option(300.0, "--timeout", help="Seconds to wait for completion"),
    as_json: bool = typer.Option(False, "--json", help="Print the final status as JSON"),
) -> None:
    """Run the maximum-temperature map/reduce job over DATA_DIR."""
    if not data_dir.is_dir():
        fail(f"Data directory not found: {data_dir}")

    registry = register_map_reduce(Registry(), LocalObjectStore(data_dir))
    history = InMemoryHistoryLog() if in_memory else open_history(database)
    job = MapReduceInput(
        map_input_container=input_container,
        map_output_container=output_container,
        reduce_container=output_container,
    )

    try:
        with DurableRuntime(registry, history, settings=get_settings()) as runtime:
            instance_id = runtime.start_orchestration("map_reduce", job)
            if not as_json:
                console.print(f"Started [bold]map_reduce[/bold] {instance_id}")
            state = runtime.wait_for_completion(instance_id, timeout=timeout)
    except DurableError as e:
        fail(e)
    except TimeoutError as e:
        fail(str(e))
    finally:
        if not in_memory:
            history.close()

    if as_json:
        print_state(state, as_json=True)
    elif state.status is OrchestrationStatus.COMPLETED:
        console.print(f"[bold green]Maximum temperature:[/bold green] {state.output}")
    else:
        print_state(state)
    if state.status is not OrchestrationStatus.COMPLETED:
        raise typer.Exit(code=1)


@app.command("status")
def status(
    instance_id: str = typer.Argument(..., help="Orchestration instance id"),
    database: Path | None = typer.Option(None, "--database", "-d"),
    as_json: bool = typer.Option(False, "--json"),
) -> None:
    """Show the status of an orchestration instance."""
    with open_history(database) as log:
        state = OrchestrationState.from_history(instance_id, log.read(instance_id))
    if state is None:
        fail(InstanceNotFoundError(instance_id))
    print_state(state, as_json=as_json)


@app.command("history")
def history(
    instance_id: str = typer.Argument(..., help="Orchestration instance id"),
    database: Path | None = typer.Option(None, "--database", "-d"),
    as_json: bool = typer.Option(False, "--json"),
) -> None:
    """Show the event history of an orchestration instance."""
    with open_history(database) as log:
        events = log.read(instance_id).to_list()
    if not events:
        fail(InstanceNotFoundError(instance_id))
    print_history(events, title=f"History of {instance_id}", as_json=as_json)


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, "--host", "-h", help="Bind address (default: DURABLE_HOST)"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port (default: DURABLE_PORT)"),
    log_level: str = typer.Option("info", "--uvicorn-log-level"),
) -> None:
    """Start the HTTP API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.host
    port = port or settings.port
    console.print(f"[bold green]Starting durable-mr API[/bold green] on {host}:{port}")
    uvicorn.run(
        "durable_mr.api:create_app",
        factory=True,
        host=host,
        port=port,
        log_level=log_level,
    )
