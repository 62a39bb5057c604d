"""Per-task view of one instance history.

``HistoryIndex`` answers the questions replay and dispatch ask about a
history: what was scheduled under each task id, which attempt is current, and
which outcome counts. Only the first outcome recorded for a ``(task_id,
attempt)`` (or for a sub-orchestration task id) is honored; later duplicates
are counted and otherwise ignored.
"""

from __future__ import annotations

from collections.abc import Iterable

from durable_mr.history.events import (
    SCHEDULING_EVENTS,
    SUB_ORCHESTRATION_OUTCOME_EVENTS,
    TASK_OUTCOME_EVENTS,
    TERMINAL_EVENTS,
    EventType,
    HistoryEvent,
)


class HistoryIndex:
    """Indexes a history by task id."""

    def __init__(self, events: Iterable[HistoryEvent]):
        self.events: list[HistoryEvent] = list(events)
        self.started: HistoryEvent | None = None
        self.terminal: HistoryEvent | None = None
        # first scheduling event per task id (attempt 1 for activities)
        self.scheduled: dict[int, HistoryEvent] = {}
        # highest-attempt TASK_SCHEDULED per task id
        self.latest_attempt: dict[int, HistoryEvent] = {}
        self.task_outcomes: dict[tuple[int, int], HistoryEvent] = {}
        self.sub_outcomes: dict[int, HistoryEvent] = {}
        self.duplicates = 0

        for event in self.events:
            event_type = event.event_type
            if event_type is EventType.ORCHESTRATOR_STARTED:
                if self.started is None:
                    self.started = event
            elif event_type in SCHEDULING_EVENTS:
                task_id = event.task_id
                self.scheduled.setdefault(task_id, event)
                if event_type is EventType.TASK_SCHEDULED:
                    current = self.latest_attempt.get(task_id)
                    if current is None or event.attempt > current.attempt:
                        self.latest_attempt[task_id] = event
            elif event_type in TASK_OUTCOME_EVENTS:
                key = (event.task_id, event.attempt)
                if key in self.task_outcomes:
                    self.duplicates += 1
                else:
                    self.task_outcomes[key] = event
            elif event_type in SUB_ORCHESTRATION_OUTCOME_EVENTS:
                if event.task_id in self.sub_outcomes:
                    self.duplicates += 1
                else:
                    self.sub_outcomes[event.task_id] = event
            elif event_type in TERMINAL_EVENTS:
                if self.terminal is None:
                    self.terminal = event

    @property
    def version(self) -> int:
        return len(self.events)

    def outstanding_activities(self) -> list[HistoryEvent]:
        """Current-attempt ``TASK_SCHEDULED`` events that have no outcome yet."""
        return [
            event
            for task_id, event in sorted(self.latest_attempt.items())
            if (task_id, event.attempt) not in self.task_outcomes
        ]

    def outstanding_sub_orchestrations(self) -> list[HistoryEvent]:
        """``SUB_ORCHESTRATION_SCHEDULED`` events that have no outcome yet."""
        return [
            event
            for task_id, event in sorted(self.scheduled.items())
            if event.event_type is EventType.SUB_ORCHESTRATION_SCHEDULED
            and task_id not in self.sub_outcomes
        ]

    def find_sub_orchestration(self, child_instance_id: str) -> HistoryEvent | None:
        for event in self.scheduled.values():
            if (
                event.event_type is EventType.SUB_ORCHESTRATION_SCHEDULED
                and event.data.get("child_instance_id") == child_instance_id
            ):
                return event
        return None
