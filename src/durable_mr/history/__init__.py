"""History log: events, storage backends and derived instance state."""

from durable_mr.history.events import (
    EventType,
    HistoryEvent,
    canonical_json,
    to_payload,
)
from durable_mr.history.index import HistoryIndex
from durable_mr.history.log import HistoryLog, HistoryView, InMemoryHistoryLog
from durable_mr.history.sqlite import SqliteHistoryLog
from durable_mr.history.state import OrchestrationState, OrchestrationStatus

__all__ = [
    "EventType",
    "HistoryEvent",
    "HistoryIndex",
    "HistoryLog",
    "HistoryView",
    "InMemoryHistoryLog",
    "OrchestrationState",
    "OrchestrationStatus",
    "SqliteHistoryLog",
    "canonical_json",
    "to_payload",
]
