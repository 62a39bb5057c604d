"""Contract tests for the history log backends (in-memory and SQLite)."""

from __future__ import annotations

import threading

import pytest

from durable_mr.core.errors import ConcurrentAppendConflict
from durable_mr.history.events import EventType, HistoryEvent
from durable_mr.history.log import HistoryLog, HistoryView, InMemoryHistoryLog
from durable_mr.history.sqlite import SqliteHistoryLog


class TestHistoryLogContract:
    """Behaviour both backends must share."""

    def test_satisfies_protocol(self, history_log):
        assert isinstance(history_log, HistoryLog)

    def test_unknown_instance_is_empty(self, history_log):
        assert history_log.read("missing").to_list() == []
        assert history_log.version("missing") == 0
        assert not history_log.exists("missing")

    def test_append_stamps_sequence_and_timestamp(self, history_log):
        first = history_log.append("i1", HistoryEvent.orchestrator_started("map"))
        second = history_log.append("i1", HistoryEvent.task_scheduled(0, "list_objects", "datain"))
        assert (first.sequence, second.sequence) == (0, 1)
        assert first.timestamp is not None
        assert first.timestamp.tzinfo is not None

    def test_read_preserves_order_and_data(self, history_log):
        history_log.append("i1", HistoryEvent.orchestrator_started("map", {"container_in": "datain"}))
        history_log.append("i1", HistoryEvent.task_completed(0, ["a.txt", "b.txt"]))
        events = history_log.read("i1").to_list()
        assert [e.event_type for e in events] == [EventType.ORCHESTRATOR_STARTED, EventType.TASK_COMPLETED]
        assert events[0].data["input"] == {"container_in": "datain"}
        assert events[1].data["result"] == ["a.txt", "b.txt"]

    def test_stored_events_cannot_be_edited_by_callers(self, history_log):
        event = HistoryEvent.task_completed(0, ["a.txt", "b.txt"])
        appended = history_log.append("i1", event)
        event.data["result"].append("from-caller")
        appended.data["result"].append("from-append-return")
        history_log.read("i1").to_list()[0].data["result"].append("from-reader")

        assert history_log.read("i1").to_list()[0].data["result"] == ["a.txt", "b.txt"]

    def test_instances_are_independent(self, history_log):
        history_log.append("a", HistoryEvent.orchestrator_started("map"))
        history_log.append("b", HistoryEvent.orchestrator_started("reduce"))
        history_log.append("b", HistoryEvent.orchestrator_completed(1))
        assert history_log.version("a") == 1
        assert history_log.version("b") == 2
        assert history_log.list_instances() == ["a", "b"]

    def test_expected_version_match(self, history_log):
        history_log.append("i1", HistoryEvent.orchestrator_started("map"), expected_version=0)
        history_log.append("i1", HistoryEvent.orchestrator_completed(), expected_version=1)
        assert history_log.version("i1") == 2

    def test_stale_expected_version_conflicts(self, history_log):
        history_log.append("i1", HistoryEvent.orchestrator_started("map"))
        with pytest.raises(ConcurrentAppendConflict) as exc_info:
            history_log.append("i1", HistoryEvent.orchestrator_started("map"), expected_version=0)
        assert exc_info.value.expected_version == 0
        assert exc_info.value.actual_version == 1
        assert history_log.version("i1") == 1

    def test_view_is_restartable(self, history_log):
        history_log.append("i1", HistoryEvent.orchestrator_started("map"))
        view = history_log.read("i1")
        assert isinstance(view, HistoryView)
        assert len(list(view)) == 1
        history_log.append("i1", HistoryEvent.orchestrator_completed())
        assert len(list(view)) == 2
        assert len(list(view)) == 2

    def test_concurrent_writers_one_wins(self, history_log):
        history_log.append("i1", HistoryEvent.orchestrator_started("map"))
        outcomes: list[str] = []
        barrier = threading.Barrier(4)

        def writer(n: int) -> None:
            barrier.wait()
            try:
                history_log.append("i1", HistoryEvent.task_completed(n), expected_version=1)
                outcomes.append("ok")
            except ConcurrentAppendConflict:
                outcomes.append("conflict")

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert sorted(outcomes) == ["conflict", "conflict", "conflict", "ok"]
        assert history_log.version("i1") == 2


class TestInMemoryHistoryLog:
    """Tests specific to the in-memory backend."""

    def test_read_returns_snapshot(self):
        log = InMemoryHistoryLog()
        log.append("i1", HistoryEvent.orchestrator_started("map"))
        snapshot = log.read("i1").to_list()
        log.append("i1", HistoryEvent.orchestrator_completed())
        assert len(snapshot) == 1


class TestSqliteHistoryLog:
    """Tests specific to the SQLite backend."""

    def test_survives_reopen(self, tmp_path):
        path = tmp_path / "history.db"
        with SqliteHistoryLog(path) as log:
            log.append("i1", HistoryEvent.orchestrator_started("map_reduce"))
            log.append("i1", HistoryEvent.task_scheduled(0, "list_objects", "datain"))

        with SqliteHistoryLog(path) as reopened:
            events = reopened.read("i1").to_list()
            assert [e.sequence for e in events] == [0, 1]
            assert events[1].data["name"] == "list_objects"
            assert reopened.list_instances() == ["i1"]
            with pytest.raises(ConcurrentAppendConflict):
                reopened.append("i1", HistoryEvent.orchestrator_completed(), expected_version=1)

    def test_creates_parent_directory(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "history.db"
        with SqliteHistoryLog(path) as log:
            log.append("i1", HistoryEvent.orchestrator_started("map"))
        assert path.exists()

    def test_in_memory_database(self):
        with SqliteHistoryLog() as log:
            log.append("i1", HistoryEvent.orchestrator_started("map"))
            assert log.exists("i1")
