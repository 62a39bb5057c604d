"""Orchestration: replay engine, context API, fan-in, aggregation and runtime."""

from durable_mr.orchestration.aggregation import AggregationState, aggregate
from durable_mr.orchestration.context import OrchestrationContext, item_key
from durable_mr.orchestration.engine import (
    EngineStatus,
    OrchestrationDecision,
    ReplayEngine,
)
from durable_mr.orchestration.runtime import DurableRuntime, create_history_log
from durable_mr.orchestration.tasks import ScheduledTask, Task, TaskKind, TaskState, WhenAllTask

__all__ = [
    "AggregationState",
    "DurableRuntime",
    "EngineStatus",
    "OrchestrationContext",
    "OrchestrationDecision",
    "ReplayEngine",
    "ScheduledTask",
    "Task",
    "TaskKind",
    "TaskState",
    "WhenAllTask",
    "aggregate",
    "create_history_log",
    "item_key",
]
