"""Map/reduce orchestrations.

::

    map_reduce(MapReduceInput)
      ├── map(MapPhaseInput)        list_objects → fan-out map_file → fan-in
      └── reduce(ReducePhaseInput)  list_objects → fan-out reduce_file → aggregate

Each phase is a sub-orchestration with its own history. Any map or reduce task
that fails after its retries fails the phase (``PartialFailure``) and with it
the whole job.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from durable_mr.mapreduce.models import (
    MapFileInput,
    MapPhaseInput,
    MapReduceInput,
    ReduceFileInput,
    ReducePhaseInput,
)
from durable_mr.orchestration.aggregation import aggregate
from durable_mr.orchestration.context import OrchestrationContext


def map_reduce_orchestrator(ctx: OrchestrationContext):
    job: MapReduceInput = ctx.get_input() or MapReduceInput()
    yield ctx.call_sub_orchestrator(
        "map", MapPhaseInput(job.map_input_container, job.map_output_container)
    )
    result = yield ctx.call_sub_orchestrator("reduce", ReducePhaseInput(job.reduce_container))
    return result


def map_orchestrator(ctx: OrchestrationContext):
    """Map every object of ``container_in``; returns the total records emitted."""
    phase: MapPhaseInput = ctx.get_input()
    names = yield ctx.call_activity("list_objects", phase.container_in)
    counts = yield ctx.schedule_all(
        "map_file",
        [MapFileInput(name, phase.container_in, phase.container_out) for name in names],
    )
    return sum(counts.values())


def reduce_orchestrator(ctx: OrchestrationContext, combine: Callable[[Any, Any], Any] = max):
    """Reduce every object of ``container_in`` and fold the per-file results.

    Files with no records contribute nothing; no results at all is an
    ``EmptyInputError``.
    """
    phase: ReducePhaseInput = ctx.get_input()
    names = yield ctx.call_activity("list_objects", phase.container_in)
    per_file = yield ctx.schedule_all(
        "reduce_file",
        [ReduceFileInput(name, phase.container_in) for name in names],
    )
    return aggregate([value for value in per_file.values() if value is not None], combine)
