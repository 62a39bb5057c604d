"""Instance state derived from history.

Nothing about an instance is stored outside its log. ``OrchestrationState``
folds a history into the view callers ask for through ``get_status``.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from durable_mr.core.errors import FailureDetails
from durable_mr.history.events import EventType, HistoryEvent


class OrchestrationStatus(str, Enum):
    """Lifecycle status of an orchestration instance.

    Transition graph::

        PENDING → RUNNING → COMPLETED | FAILED | TERMINATED
        PENDING → TERMINATED
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TERMINATED = "terminated"

    @property
    def is_terminal(self) -> bool:
        return self in (
            OrchestrationStatus.COMPLETED,
            OrchestrationStatus.FAILED,
            OrchestrationStatus.TERMINATED,
        )


@dataclass
class OrchestrationState:
    """Status snapshot of one instance."""

    instance_id: str
    name: str
    status: OrchestrationStatus
    input: Any = None
    output: Any = None
    failure: FailureDetails | None = None
    parent_instance_id: str | None = None
    created_at: datetime | None = None
    last_updated_at: datetime | None = None
    event_count: int = 0

    @classmethod
    def from_history(cls, instance_id: str, events: Iterable[HistoryEvent]) -> OrchestrationState | None:
        """Fold a history into a state; ``None`` when the history is empty."""
        state: OrchestrationState | None = None
        for event in events:
            if state is None:
                if event.event_type is not EventType.ORCHESTRATOR_STARTED:
                    continue
                state = cls(
                    instance_id=instance_id,
                    name=event.data.get("name", ""),
                    status=OrchestrationStatus.PENDING,
                    input=event.data.get("input"),
                    parent_instance_id=event.data.get("parent_instance_id"),
                    created_at=event.timestamp,
                )
            state.event_count += 1
            state.last_updated_at = event.timestamp
            if state.status.is_terminal:
                # late completions after termination are recorded but change nothing
                continue
            if event.event_type is EventType.ORCHESTRATOR_COMPLETED:
                state.status = OrchestrationStatus.COMPLETED
                state.output = event.data.get("output")
            elif event.event_type is EventType.ORCHESTRATOR_FAILED:
                state.status = OrchestrationStatus.FAILED
                state.failure = event.failure
            elif event.event_type is EventType.ORCHESTRATOR_TERMINATED:
                state.status = OrchestrationStatus.TERMINATED
                state.failure = FailureDetails(
                    "Terminated", event.data.get("reason", ""), retryable=False
                )
            elif event.event_type is not EventType.ORCHESTRATOR_STARTED:
                state.status = OrchestrationStatus.RUNNING
        return state

    def to_dict(self) -> dict[str, Any]:
        return {
            "instance_id": self.instance_id,
            "name": self.name,
            "status": self.status.value,
            "input": self.input,
            "output": self.output,
            "failure": self.failure.to_dict() if self.failure else None,
            "parent_instance_id": self.parent_instance_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_updated_at": self.last_updated_at.isoformat() if self.last_updated_at else None,
            "event_count": self.event_count,
        }
