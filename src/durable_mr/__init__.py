"""durable-mapreduce — durable, replay-based orchestration for map/reduce jobs.

Orchestrations are generator functions replayed against an append-only
history; activities run on a thread pool; sub-orchestrations get their own
history. See :mod:`durable_mr.orchestration` for the engine and runtime and
:mod:`durable_mr.mapreduce` for the two-phase weather job.

Architecture::

    core/            errors, structlog logging, pydantic settings
    history/         events, in-memory + SQLite logs, derived state
    execution/       registry, retry policy, activity executor
    orchestration/   context, replay engine, aggregation, runtime
    storage/         object store (local directory, in-memory)
    mapreduce/       records, job callbacks, activities, orchestrators
    api/             FastAPI trigger (start / status / history / terminate)
    cli/             typer CLI (run / status / history / serve)
"""

__version__ = "0.1.0"

from durable_mr.execution.registry import Registry
from durable_mr.execution.retry import RetryPolicy
from durable_mr.orchestration.runtime import DurableRuntime

__all__ = ["DurableRuntime", "Registry", "RetryPolicy", "__version__"]
