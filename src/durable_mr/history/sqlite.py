"""SQLite-backed history log.

Durable implementation of :class:`~durable_mr.history.log.HistoryLog`. An event
is acknowledged only after its transaction commits, so it survives a process
crash.

    .. code-block:: text

        history_events
        ┌───────────────┬──────────┬────────────┬───────────┬──────┐
        │ instance_id PK│ sequence │ event_type │ timestamp │ data │
        │               │    PK    │            │           │ JSON │
        └───────────────┴──────────┴────────────┴───────────┴──────┘

The ``(instance_id, sequence)`` primary key is the cross-process guard: two
writers that both read version ``n`` race for row ``n`` and the loser gets
``ConcurrentAppendConflict``.

Example:
    >>> log = SqliteHistoryLog("history.db")
    >>> log.append("abc", HistoryEvent.orchestrator_started("map_reduce"))
    >>> [e.event_type for e in log.read("abc")]
    [<EventType.ORCHESTRATOR_STARTED: 'orchestrator_started'>]
"""

from __future__ import annotations

import dataclasses
import json
import sqlite3
import threading
from datetime import datetime
from pathlib import Path

from durable_mr.core.errors import ConcurrentAppendConflict
from durable_mr.core.logging import get_logger
from durable_mr.history.events import EventType, HistoryEvent, to_payload
from durable_mr.history.log import HistoryView, utcnow

logger = get_logger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS history_events (
    instance_id TEXT NOT NULL,
    sequence    INTEGER NOT NULL,
    event_type  TEXT NOT NULL,
    timestamp   TEXT NOT NULL,
    data        TEXT NOT NULL,
    PRIMARY KEY (instance_id, sequence)
)
"""


class SqliteHistoryLog:
    """History log persisted in a SQLite database file."""

    def __init__(self, path: str | Path = ":memory:"):
        """Open (and create if needed) the history database.

        Args:
            path: Database file, or ``":memory:"`` for a throwaway log
        """
        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self.path = str(path)
        self._conn = sqlite3.connect(self.path, check_same_thread=False, isolation_level=None)
        self._lock = threading.Lock()
        self._conn.execute(SCHEMA)

    def append(
        self,
        instance_id: str,
        event: HistoryEvent,
        expected_version: int | None = None,
    ) -> HistoryEvent:
        with self._lock:
            cursor = self._conn.cursor()
            cursor.execute("BEGIN IMMEDIATE")
            try:
                cursor.execute(
                    "SELECT COUNT(*) FROM history_events WHERE instance_id = ?",
                    (instance_id,),
                )
                current = cursor.fetchone()[0]
                if expected_version is not None and expected_version != current:
                    raise ConcurrentAppendConflict(instance_id, expected_version, current)

                stamped = dataclasses.replace(event, sequence=current, timestamp=utcnow())
                cursor.execute(
                    """
                    INSERT INTO history_events (instance_id, sequence, event_type, timestamp, data)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        instance_id,
                        stamped.sequence,
                        stamped.event_type.value,
                        stamped.timestamp.isoformat(),
                        json.dumps(to_payload(stamped.data), default=str),
                    ),
                )
            except sqlite3.IntegrityError as e:
                cursor.execute("ROLLBACK")
                raise ConcurrentAppendConflict(
                    instance_id, expected_version if expected_version is not None else -1, current
                ) from e
            except Exception:
                cursor.execute("ROLLBACK")
                raise
            cursor.execute("COMMIT")
            return stamped

    def read(self, instance_id: str) -> HistoryView:
        def load() -> list[HistoryEvent]:
            with self._lock:
                rows = self._conn.execute(
                    """
                    SELECT sequence, event_type, timestamp, data
                    FROM history_events
                    WHERE instance_id = ?
                    ORDER BY sequence
                    """,
                    (instance_id,),
                ).fetchall()
            return [self._row_to_event(row) for row in rows]

        return HistoryView(instance_id, load)

    def version(self, instance_id: str) -> int:
        with self._lock:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM history_events WHERE instance_id = ?",
                (instance_id,),
            ).fetchone()
        return row[0]

    def exists(self, instance_id: str) -> bool:
        return self.version(instance_id) > 0

    def list_instances(self) -> list[str]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT DISTINCT instance_id FROM history_events ORDER BY instance_id"
            ).fetchall()
        return [row[0] for row in rows]

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> SqliteHistoryLog:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    @staticmethod
    def _row_to_event(row: tuple) -> HistoryEvent:
        sequence, event_type, timestamp, data = row
        return HistoryEvent(
            event_type=EventType(event_type),
            data=json.loads(data),
            sequence=sequence,
            timestamp=datetime.fromisoformat(timestamp),
        )
