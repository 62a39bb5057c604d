"""Tests for OrchestrationContext scheduling calls."""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from durable_mr.execution.retry import RetryPolicy
from durable_mr.orchestration.context import OrchestrationContext, item_key
from durable_mr.orchestration.tasks import ScheduledTask, TaskKind, TaskState, WhenAllTask


@dataclass(frozen=True)
class _Item:
    name: str


@pytest.fixture
def scheduled() -> list[ScheduledTask]:
    return []


@pytest.fixture
def ctx(scheduled) -> OrchestrationContext:
    return OrchestrationContext(
        "job",
        "map",
        {"container_in": "datain"},
        scheduled.append,
        default_retry=RetryPolicy(max_attempts=2),
    )


class TestOrchestrationContext:
    """Tests for task id allocation and scheduling callbacks."""

    def test_input(self, ctx: OrchestrationContext):
        assert ctx.get_input() == {"container_in": "datain"}
        assert ctx.is_replaying

    def test_task_ids_in_call_order(self, ctx: OrchestrationContext, scheduled):
        first = ctx.call_activity("a")
        second = ctx.call_sub_orchestrator("b")
        assert (first.task_id, second.task_id) == (0, 1)
        assert scheduled == [first, second]
        assert ctx.tasks_scheduled == 2

    def test_activity_uses_default_retry(self, ctx: OrchestrationContext):
        task = ctx.call_activity("a", 1)
        assert task.kind is TaskKind.ACTIVITY
        assert task.retry == RetryPolicy(max_attempts=2)
        assert task.state is TaskState.PENDING

    def test_explicit_retry_and_timeout(self, ctx: OrchestrationContext):
        policy = RetryPolicy(max_attempts=5)
        task = ctx.call_activity("a", retry=policy, timeout=3.0)
        assert task.retry is policy
        assert task.timeout_seconds == 3.0

    def test_sub_orchestrator_child_id(self, ctx: OrchestrationContext):
        ctx.call_activity("list_objects")
        child = ctx.call_sub_orchestrator("reduce", {"c": 1})
        assert child.kind is TaskKind.SUB_ORCHESTRATION
        assert child.child_instance_id == "job:1"
        explicit = ctx.call_sub_orchestrator("reduce", instance_id="custom")
        assert explicit.child_instance_id == "custom"

    def test_schedule_all_keys_by_item(self, ctx: OrchestrationContext, scheduled):
        barrier = ctx.schedule_all("map_file", ["a.txt", "b.txt"])
        assert isinstance(barrier, WhenAllTask)
        assert barrier.keys == ["a.txt", "b.txt"]
        assert [t.input for t in scheduled] == ["a.txt", "b.txt"]

    def test_task_all_has_no_keys(self, ctx: OrchestrationContext):
        barrier = ctx.task_all([ctx.call_activity("a"), ctx.call_activity("b")])
        assert barrier.keys is None
        assert len(barrier.children) == 2


class TestItemKey:
    """Tests for fan-out item keys."""

    def test_hashable_items_are_their_own_key(self):
        assert item_key("a.txt") == "a.txt"
        assert item_key(_Item("a")) == _Item("a")

    def test_unhashable_items_use_canonical_json(self):
        assert item_key({"b": 1, "a": 2}) == '{"a":2,"b":1}'


class TestWhenAllTask:
    """Tests for barrier construction."""

    def test_keys_must_match_children(self):
        with pytest.raises(ValueError):
            WhenAllTask([], keys=["x"])
