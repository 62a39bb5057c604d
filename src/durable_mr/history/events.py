"""History event model.

A history is the ordered, append-only record of everything one orchestration
instance has done. It is the only state the orchestrator keeps: instance status,
outstanding tasks and outcomes are all derived from it on demand.

Event kinds::

    ORCHESTRATOR_STARTED          name, input, parent_instance_id
    TASK_SCHEDULED                task_id, name, input, attempt, delay_seconds
    TASK_COMPLETED                task_id, attempt, result
    TASK_FAILED                   task_id, attempt, failure
    SUB_ORCHESTRATION_SCHEDULED   task_id, name, input, child_instance_id
    SUB_ORCHESTRATION_COMPLETED   task_id, result
    SUB_ORCHESTRATION_FAILED      task_id, failure
    ORCHESTRATOR_COMPLETED        output
    ORCHESTRATOR_FAILED           failure
    ORCHESTRATOR_TERMINATED       reason

``sequence`` and ``timestamp`` are stamped by the history log on append.
Replay never reads ``timestamp``.
"""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from durable_mr.core.errors import FailureDetails


class EventType(str, Enum):
    """Kinds of history events."""

    ORCHESTRATOR_STARTED = "orchestrator_started"
    TASK_SCHEDULED = "task_scheduled"
    TASK_COMPLETED = "task_completed"
    TASK_FAILED = "task_failed"
    SUB_ORCHESTRATION_SCHEDULED = "sub_orchestration_scheduled"
    SUB_ORCHESTRATION_COMPLETED = "sub_orchestration_completed"
    SUB_ORCHESTRATION_FAILED = "sub_orchestration_failed"
    ORCHESTRATOR_COMPLETED = "orchestrator_completed"
    ORCHESTRATOR_FAILED = "orchestrator_failed"
    ORCHESTRATOR_TERMINATED = "orchestrator_terminated"


SCHEDULING_EVENTS = frozenset({
    EventType.TASK_SCHEDULED,
    EventType.SUB_ORCHESTRATION_SCHEDULED,
})

TASK_OUTCOME_EVENTS = frozenset({
    EventType.TASK_COMPLETED,
    EventType.TASK_FAILED,
})

SUB_ORCHESTRATION_OUTCOME_EVENTS = frozenset({
    EventType.SUB_ORCHESTRATION_COMPLETED,
    EventType.SUB_ORCHESTRATION_FAILED,
})

TERMINAL_EVENTS = frozenset({
    EventType.ORCHESTRATOR_COMPLETED,
    EventType.ORCHESTRATOR_FAILED,
    EventType.ORCHESTRATOR_TERMINATED,
})


def to_payload(value: Any) -> Any:
    """Convert a value into the JSON-compatible form stored in history.

    Dataclass instances become dicts; tuples become lists.
    """
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return to_payload(dataclasses.asdict(value))
    if isinstance(value, dict):
        return {str(k): to_payload(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [to_payload(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    return value


def canonical_json(value: Any) -> str:
    """Stable JSON text used to compare payloads across replays."""
    return json.dumps(to_payload(value), sort_keys=True, separators=(",", ":"), default=str)


@dataclass(frozen=True)
class HistoryEvent:
    """One entry of an instance history."""

    event_type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    sequence: int | None = None
    timestamp: datetime | None = None

    # ── Factories ────────────────────────────────────────────────

    @classmethod
    def orchestrator_started(
        cls, name: str, input: Any = None, parent_instance_id: str | None = None
    ) -> HistoryEvent:
        return cls(
            EventType.ORCHESTRATOR_STARTED,
            {"name": name, "input": to_payload(input), "parent_instance_id": parent_instance_id},
        )

    @classmethod
    def task_scheduled(
        cls,
        task_id: int,
        name: str,
        input: Any = None,
        *,
        attempt: int = 1,
        delay_seconds: float = 0.0,
        timeout_seconds: float | None = None,
    ) -> HistoryEvent:
        data = {
            "task_id": task_id,
            "name": name,
            "input": to_payload(input),
            "attempt": attempt,
            "delay_seconds": delay_seconds,
        }
        if timeout_seconds is not None:
            data["timeout_seconds"] = timeout_seconds
        return cls(EventType.TASK_SCHEDULED, data)

    @classmethod
    def task_completed(cls, task_id: int, result: Any = None, *, attempt: int = 1) -> HistoryEvent:
        return cls(
            EventType.TASK_COMPLETED,
            {"task_id": task_id, "attempt": attempt, "result": to_payload(result)},
        )

    @classmethod
    def task_failed(cls, task_id: int, failure: FailureDetails, *, attempt: int = 1) -> HistoryEvent:
        return cls(
            EventType.TASK_FAILED,
            {"task_id": task_id, "attempt": attempt, "failure": failure.to_dict()},
        )

    @classmethod
    def sub_orchestration_scheduled(
        cls, task_id: int, name: str, input: Any, child_instance_id: str
    ) -> HistoryEvent:
        return cls(
            EventType.SUB_ORCHESTRATION_SCHEDULED,
            {
                "task_id": task_id,
                "name": name,
                "input": to_payload(input),
                "child_instance_id": child_instance_id,
            },
        )

    @classmethod
    def sub_orchestration_completed(cls, task_id: int, result: Any = None) -> HistoryEvent:
        return cls(
            EventType.SUB_ORCHESTRATION_COMPLETED,
            {"task_id": task_id, "result": to_payload(result)},
        )

    @classmethod
    def sub_orchestration_failed(cls, task_id: int, failure: FailureDetails) -> HistoryEvent:
        return cls(
            EventType.SUB_ORCHESTRATION_FAILED,
            {"task_id": task_id, "failure": failure.to_dict()},
        )

    @classmethod
    def orchestrator_completed(cls, output: Any = None) -> HistoryEvent:
        return cls(EventType.ORCHESTRATOR_COMPLETED, {"output": to_payload(output)})

    @classmethod
    def orchestrator_failed(cls, failure: FailureDetails) -> HistoryEvent:
        return cls(EventType.ORCHESTRATOR_FAILED, {"failure": failure.to_dict()})

    @classmethod
    def orchestrator_terminated(cls, reason: str = "") -> HistoryEvent:
        return cls(EventType.ORCHESTRATOR_TERMINATED, {"reason": reason})

    # ── Accessors ────────────────────────────────────────────────

    @property
    def task_id(self) -> int | None:
        return self.data.get("task_id")

    @property
    def attempt(self) -> int:
        return int(self.data.get("attempt", 1))

    @property
    def failure(self) -> FailureDetails | None:
        raw = self.data.get("failure")
        return FailureDetails.from_dict(raw) if raw is not None else None

    @property
    def is_terminal(self) -> bool:
        return self.event_type in TERMINAL_EVENTS

    # ── Serialization ────────────────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "sequence": self.sequence,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "data": to_payload(self.data),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoryEvent:
        timestamp = data.get("timestamp")
        return cls(
            event_type=EventType(data["event_type"]),
            data=dict(data.get("data") or {}),
            sequence=data.get("sequence"),
            timestamp=datetime.fromisoformat(timestamp) if timestamp else None,
        )
