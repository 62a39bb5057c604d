"""History log — append-only, per-instance event storage.

The history log is the only shared mutable resource in the system. All
coordination between an orchestration and its tasks goes through it.

ARCHITECTURE
────────────
::

    HistoryLog (protocol)
      ├── .append(instance_id, event, expected_version)  ─ stamp + append one event
      ├── .read(instance_id)                             ─ lazy, restartable view
      ├── .version(instance_id)                          ─ number of events
      ├── .exists(instance_id)
      └── .list_instances()

    InMemoryHistoryLog   ─ dict of lists behind a lock (tests, single process)
    SqliteHistoryLog     ─ durable, see history/sqlite.py

Appends are optimistic: a writer that read ``version == n`` passes
``expected_version=n`` and gets ``ConcurrentAppendConflict`` if anybody else
appended in between. Events are never mutated or deleted.
"""

from __future__ import annotations

import copy
import dataclasses
import threading
from collections.abc import Callable, Iterable, Iterator
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable

from durable_mr.core.errors import ConcurrentAppendConflict
from durable_mr.history.events import HistoryEvent


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


def _detached(event: HistoryEvent, **changes) -> HistoryEvent:
    """Copy of ``event`` that shares no mutable payload with the original."""
    return dataclasses.replace(event, data=copy.deepcopy(event.data), **changes)


class HistoryView:
    """Lazy, restartable view over one instance history.

    Every iteration re-reads the backing store, so a view taken before an
    append sees the new event on its next pass.
    """

    def __init__(self, instance_id: str, loader: Callable[[], Iterable[HistoryEvent]]):
        self.instance_id = instance_id
        self._loader = loader

    def __iter__(self) -> Iterator[HistoryEvent]:
        return iter(self._loader())

    def to_list(self) -> list[HistoryEvent]:
        return list(self)

    def __repr__(self) -> str:
        return f"HistoryView({self.instance_id!r})"


@runtime_checkable
class HistoryLog(Protocol):
    """Append-only ordered event storage, one sequence per instance."""

    def append(
        self,
        instance_id: str,
        event: HistoryEvent,
        expected_version: int | None = None,
    ) -> HistoryEvent:
        """Append one event and return it stamped with sequence and timestamp.

        Raises:
            ConcurrentAppendConflict: ``expected_version`` is stale
        """
        ...

    def read(self, instance_id: str) -> HistoryView:
        """Return the full ordered history of an instance (empty if unknown)."""
        ...

    def version(self, instance_id: str) -> int:
        """Number of events recorded for the instance."""
        ...

    def exists(self, instance_id: str) -> bool:
        ...

    def list_instances(self) -> list[str]:
        ...


class InMemoryHistoryLog:
    """Process-local history log.

    Appends are serialized by a single lock. Payloads are deep-copied on the
    way in and on the way out, so callers can never edit a stored event.
    """

    def __init__(self) -> None:
        self._events: dict[str, list[HistoryEvent]] = {}
        self._lock = threading.Lock()

    def append(
        self,
        instance_id: str,
        event: HistoryEvent,
        expected_version: int | None = None,
    ) -> HistoryEvent:
        with self._lock:
            events = self._events.setdefault(instance_id, [])
            if expected_version is not None and expected_version != len(events):
                raise ConcurrentAppendConflict(instance_id, expected_version, len(events))
            stamped = _detached(event, sequence=len(events), timestamp=utcnow())
            events.append(stamped)
            return _detached(stamped)

    def read(self, instance_id: str) -> HistoryView:
        def load() -> list[HistoryEvent]:
            with self._lock:
                return [_detached(e) for e in self._events.get(instance_id, ())]

        return HistoryView(instance_id, load)

    def version(self, instance_id: str) -> int:
        with self._lock:
            return len(self._events.get(instance_id, ()))

    def exists(self, instance_id: str) -> bool:
        with self._lock:
            return bool(self._events.get(instance_id))

    def list_instances(self) -> list[str]:
        with self._lock:
            return sorted(k for k, v in self._events.items() if v)
