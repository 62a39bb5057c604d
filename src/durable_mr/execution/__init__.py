"""Activity execution: registry, retry policy and the threaded executor."""

from durable_mr.execution.executor import ActivityExecutor, ActivityOutcome, run_with_timeout
from durable_mr.execution.registry import (
    Activity,
    ActivityDefinition,
    OrchestratorDefinition,
    Registry,
)
from durable_mr.execution.retry import NO_RETRY, RetryPolicy

__all__ = [
    "Activity",
    "ActivityDefinition",
    "ActivityExecutor",
    "ActivityOutcome",
    "NO_RETRY",
    "OrchestratorDefinition",
    "Registry",
    "RetryPolicy",
    "run_with_timeout",
]
