"""Tests for HistoryIndex and OrchestrationState derivation."""

from __future__ import annotations

from dataclasses import replace

from durable_mr.core.errors import FailureDetails
from durable_mr.history.events import HistoryEvent
from durable_mr.history.index import HistoryIndex
from durable_mr.history.state import OrchestrationState, OrchestrationStatus

_FAIL = FailureDetails("OSError", "disk")


def _stamp(events: list[HistoryEvent]) -> list[HistoryEvent]:
    return [replace(e, sequence=i) for i, e in enumerate(events)]


# ── HistoryIndex ─────────────────────────────────────────────────────────


class TestHistoryIndex:
    """Tests for the per-task view of a history."""

    def test_empty(self):
        index = HistoryIndex([])
        assert index.started is None
        assert index.terminal is None
        assert index.version == 0
        assert index.outstanding_activities() == []

    def test_outstanding_activities(self):
        index = HistoryIndex([
            HistoryEvent.orchestrator_started("map"),
            HistoryEvent.task_scheduled(0, "a"),
            HistoryEvent.task_scheduled(1, "b"),
            HistoryEvent.task_completed(0, "done"),
        ])
        assert [e.task_id for e in index.outstanding_activities()] == [1]
        assert index.version == 4

    def test_latest_attempt_wins(self):
        index = HistoryIndex([
            HistoryEvent.orchestrator_started("map"),
            HistoryEvent.task_scheduled(0, "a"),
            HistoryEvent.task_failed(0, _FAIL, attempt=1),
            HistoryEvent.task_scheduled(0, "a", attempt=2, delay_seconds=1.0),
        ])
        assert index.scheduled[0].attempt == 1
        assert index.latest_attempt[0].attempt == 2
        outstanding = index.outstanding_activities()
        assert [(e.task_id, e.attempt) for e in outstanding] == [(0, 2)]

    def test_first_outcome_counts(self):
        index = HistoryIndex([
            HistoryEvent.orchestrator_started("map"),
            HistoryEvent.task_scheduled(0, "a"),
            HistoryEvent.task_completed(0, "first"),
            HistoryEvent.task_completed(0, "second"),
            HistoryEvent.task_failed(0, _FAIL),
        ])
        assert index.task_outcomes[(0, 1)].data["result"] == "first"
        assert index.duplicates == 2

    def test_sub_orchestrations(self):
        index = HistoryIndex([
            HistoryEvent.orchestrator_started("map_reduce"),
            HistoryEvent.sub_orchestration_scheduled(0, "map", {}, "job:0"),
            HistoryEvent.sub_orchestration_completed(0, 4),
            HistoryEvent.sub_orchestration_scheduled(1, "reduce", {}, "job:1"),
        ])
        assert [e.task_id for e in index.outstanding_sub_orchestrations()] == [1]
        assert index.find_sub_orchestration("job:1").task_id == 1
        assert index.find_sub_orchestration("job:9") is None

    def test_terminal_recorded_once(self):
        index = HistoryIndex([
            HistoryEvent.orchestrator_started("map"),
            HistoryEvent.orchestrator_terminated("stop"),
            HistoryEvent.orchestrator_completed(1),
        ])
        assert index.terminal.data["reason"] == "stop"


# ── OrchestrationState ───────────────────────────────────────────────────


class TestOrchestrationState:
    """Tests for status derived from history."""

    def test_empty_history_is_none(self):
        assert OrchestrationState.from_history("x", []) is None

    def test_pending_after_start(self):
        state = OrchestrationState.from_history(
            "x", _stamp([HistoryEvent.orchestrator_started("map", {"c": 1}, parent_instance_id="p")])
        )
        assert state.status is OrchestrationStatus.PENDING
        assert state.name == "map"
        assert state.input == {"c": 1}
        assert state.parent_instance_id == "p"
        assert state.event_count == 1

    def test_running_then_completed(self):
        events = [
            HistoryEvent.orchestrator_started("map"),
            HistoryEvent.task_scheduled(0, "a"),
        ]
        assert OrchestrationState.from_history("x", events).status is OrchestrationStatus.RUNNING
        events.append(HistoryEvent.orchestrator_completed(35))
        state = OrchestrationState.from_history("x", events)
        assert state.status is OrchestrationStatus.COMPLETED
        assert state.output == 35
        assert state.failure is None

    def test_failed(self):
        state = OrchestrationState.from_history("x", [
            HistoryEvent.orchestrator_started("map"),
            HistoryEvent.orchestrator_failed(FailureDetails("EmptyInputError", "none", retryable=False)),
        ])
        assert state.status is OrchestrationStatus.FAILED
        assert state.failure.error_type == "EmptyInputError"

    def test_terminated_ignores_late_events(self):
        state = OrchestrationState.from_history("x", [
            HistoryEvent.orchestrator_started("map"),
            HistoryEvent.task_scheduled(0, "a"),
            HistoryEvent.orchestrator_terminated("operator request"),
            HistoryEvent.task_completed(0, "late"),
        ])
        assert state.status is OrchestrationStatus.TERMINATED
        assert state.failure.error_type == "Terminated"
        assert state.failure.message == "operator request"
        assert state.event_count == 4

    def test_to_dict(self):
        state = OrchestrationState.from_history("x", [
            HistoryEvent.orchestrator_started("map"),
            HistoryEvent.orchestrator_completed(7),
        ])
        data = state.to_dict()
        assert data["status"] == "completed"
        assert data["output"] == 7
        assert data["created_at"] is None

    def test_terminal_statuses(self):
        assert OrchestrationStatus.COMPLETED.is_terminal
        assert OrchestrationStatus.TERMINATED.is_terminal
        assert not OrchestrationStatus.RUNNING.is_terminal
        assert not OrchestrationStatus.PENDING.is_terminal
