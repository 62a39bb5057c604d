"""Orchestration context — the API orchestration code is written against.

The context is the only thing an orchestrator may use to interact with the
outside world. Every method is deterministic: it hands out task ids in call
order and lets the engine decide whether the call is already recorded in
history (replay) or new work (frontier).

Rules for orchestrator code:
    - no wall-clock time, random values, or direct I/O
    - read input with ``ctx.get_input()``
    - suspend only by yielding tasks returned from the context

Example::

    def reduce_orchestrator(ctx):
        container = ctx.get_input()
        refs = yield ctx.call_activity("list_objects", container)
        maxima = yield ctx.schedule_all("reduce_file", refs)
        return aggregate(maxima.values(), max)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

from durable_mr.execution.retry import RetryPolicy
from durable_mr.history.events import canonical_json
from durable_mr.orchestration.tasks import ScheduledTask, Task, TaskKind, WhenAllTask


def item_key(item: Any) -> Any:
    """Key used for a fan-out item in result mappings and failure reports."""
    try:
        hash(item)
    except TypeError:
        return canonical_json(item)
    return item


class OrchestrationContext:
    """Deterministic handle passed to orchestrator generator functions."""

    def __init__(
        self,
        instance_id: str,
        name: str,
        input: Any,
        on_schedule: Callable[[ScheduledTask], None],
        *,
        parent_instance_id: str | None = None,
        default_retry: RetryPolicy | None = None,
    ):
        self.instance_id = instance_id
        self.name = name
        self.parent_instance_id = parent_instance_id
        self.default_retry = default_retry
        self.is_replaying = True
        self._input = input
        self._on_schedule = on_schedule
        self._next_task_id = 0

    def get_input(self) -> Any:
        return self._input

    @property
    def tasks_scheduled(self) -> int:
        """Number of scheduling calls made so far in this replay."""
        return self._next_task_id

    def call_activity(
        self,
        name: str,
        input: Any = None,
        *,
        retry: RetryPolicy | None = None,
        timeout: float | None = None,
    ) -> ScheduledTask:
        """Schedule one activity; yield the returned task to wait for it."""
        task = ScheduledTask(
            self._allocate_id(),
            TaskKind.ACTIVITY,
            name,
            input,
            retry=retry or self.default_retry,
            timeout_seconds=timeout,
        )
        self._on_schedule(task)
        return task

    def call_sub_orchestrator(
        self,
        name: str,
        input: Any = None,
        *,
        instance_id: str | None = None,
    ) -> ScheduledTask:
        """Start a nested orchestration with its own history and wait for it.

        The child id defaults to ``"{parent_id}:{task_id}"`` so that replays
        address the same child.
        """
        task_id = self._allocate_id()
        task = ScheduledTask(
            task_id,
            TaskKind.SUB_ORCHESTRATION,
            name,
            input,
            child_instance_id=instance_id or f"{self.instance_id}:{task_id}",
        )
        self._on_schedule(task)
        return task

    def task_all(self, tasks: Iterable[Task]) -> WhenAllTask:
        """Fan-in: resolves to the list of results once every task is terminal."""
        return WhenAllTask(list(tasks))

    def schedule_all(
        self,
        name: str,
        items: Iterable[Any],
        *,
        retry: RetryPolicy | None = None,
        timeout: float | None = None,
    ) -> WhenAllTask:
        """Fan-out one ``name`` activity per item, fan-in to ``{item: result}``.

        ``items`` must come from history (an activity result or the
        orchestration input) so the order is the same on every replay.
        """
        items = list(items)
        tasks = [self.call_activity(name, item, retry=retry, timeout=timeout) for item in items]
        return WhenAllTask(tasks, keys=[item_key(item) for item in items])

    def _allocate_id(self) -> int:
        task_id = self._next_task_id
        self._next_task_id += 1
        return task_id
