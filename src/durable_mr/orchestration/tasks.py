"""Task handles yielded by orchestration code.

Orchestrator functions are generators. Every suspension point is a ``yield``
of a task handle; the engine resumes the generator with the task's result (or
throws its error into it) once history holds the outcome::

    def my_orchestrator(ctx):
        files = yield ctx.call_activity("list_objects", "datain")
        sizes = yield ctx.task_all([ctx.call_activity("size", f) for f in files])
        return sum(sizes)

Handles carry no I/O. The engine marks them resolved while it replays.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from durable_mr.execution.retry import RetryPolicy


class TaskKind(str, Enum):
    ACTIVITY = "activity"
    SUB_ORCHESTRATION = "sub_orchestration"


class TaskState(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class Task:
    """Base handle: something an orchestration can ``yield`` and wait on."""

    def __init__(self) -> None:
        self.state = TaskState.PENDING
        self.result: Any = None
        self.exception: Exception | None = None

    @property
    def is_complete(self) -> bool:
        return self.state is not TaskState.PENDING

    @property
    def is_failed(self) -> bool:
        return self.state is TaskState.FAILED

    def _complete(self, result: Any) -> None:
        self.state = TaskState.COMPLETED
        self.result = result

    def _fail(self, exception: Exception) -> None:
        self.state = TaskState.FAILED
        self.exception = exception


class ScheduledTask(Task):
    """One activity call or sub-orchestration call.

    ``task_id`` is the position of the scheduling call within the instance;
    it is what ties the handle to its history events across replays.
    """

    def __init__(
        self,
        task_id: int,
        kind: TaskKind,
        name: str,
        input: Any = None,
        *,
        retry: RetryPolicy | None = None,
        timeout_seconds: float | None = None,
        child_instance_id: str | None = None,
    ):
        super().__init__()
        self.task_id = task_id
        self.kind = kind
        self.name = name
        self.input = input
        self.retry = retry
        self.timeout_seconds = timeout_seconds
        self.child_instance_id = child_instance_id

    def __repr__(self) -> str:
        return f"ScheduledTask(id={self.task_id}, kind={self.kind.value}, name={self.name!r}, state={self.state.value})"


class WhenAllTask(Task):
    """Fan-in barrier over several tasks.

    Resolves once every child is terminal. With ``keys`` the result is a dict
    ``key -> result`` in key order, otherwise a list in child order. Any failed
    child turns the barrier into a ``PartialFailure``.
    """

    def __init__(self, children: list[Task], keys: list[Any] | None = None):
        super().__init__()
        if keys is not None and len(keys) != len(children):
            raise ValueError("keys must match children one-to-one")
        self.children = list(children)
        self.keys = keys

    def __repr__(self) -> str:
        return f"WhenAllTask(children={len(self.children)}, state={self.state.value})"
