"""Two-phase map/reduce job on top of the durable orchestrator.

Example:
    >>> registry = register_map_reduce(Registry(), LocalObjectStore("./data"))
    >>> with DurableRuntime(registry) as runtime:
    ...     instance_id = runtime.start_orchestration("map_reduce", MapReduceInput())
    ...     runtime.wait_for_completion(instance_id).output
    35
"""

from __future__ import annotations

from functools import partial

from durable_mr.execution.registry import Registry
from durable_mr.mapreduce.activities import MapReduceActivities
from durable_mr.mapreduce.job import WEATHER_JOB, MapReduceJob, reduce_max_temperature
from durable_mr.mapreduce.models import (
    MapFileInput,
    MapPhaseInput,
    MapReduceInput,
    ReduceFileInput,
    ReducePhaseInput,
)
from durable_mr.mapreduce.orchestrators import (
    map_orchestrator,
    map_reduce_orchestrator,
    reduce_orchestrator,
)
from durable_mr.storage.base import ObjectStore


def register_map_reduce(
    registry: Registry,
    store: ObjectStore,
    job: MapReduceJob = WEATHER_JOB,
) -> Registry:
    """Register the map/reduce activities and orchestrations for ``job``."""
    activities = MapReduceActivities(store, job)
    registry.register_activity("list_objects", activities.list_objects)
    registry.register_activity("map_file", activities.map_file, input_type=MapFileInput)
    registry.register_activity("reduce_file", activities.reduce_file, input_type=ReduceFileInput)

    registry.register_orchestrator(
        "map_reduce",
        map_reduce_orchestrator,
        input_type=MapReduceInput,
        description=f"{job.name}: map then reduce",
    )
    registry.register_orchestrator("map", map_orchestrator, input_type=MapPhaseInput)
    registry.register_orchestrator(
        "reduce",
        partial(reduce_orchestrator, combine=job.combine),
        input_type=ReducePhaseInput,
        description="Reduce every object of a container and fold the results",
    )
    return registry


__all__ = [
    "MapFileInput",
    "MapPhaseInput",
    "MapReduceActivities",
    "MapReduceInput",
    "MapReduceJob",
    "ReduceFileInput",
    "ReducePhaseInput",
    "WEATHER_JOB",
    "reduce_max_temperature",
    "register_map_reduce",
]
