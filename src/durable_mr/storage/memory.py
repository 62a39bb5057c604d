"""In-memory object store, for tests and single-process runs."""

from __future__ import annotations

import threading
from io import BytesIO
from typing import BinaryIO

from durable_mr.core.errors import ObjectNotFoundError
from durable_mr.storage.base import ObjectRef, ObjectStore


class _CommitOnClose(BytesIO):
    def __init__(self, store: InMemoryObjectStore, ref: ObjectRef):
        super().__init__()
        self._store = store
        self._ref = ref
        self._discard = False

    def __exit__(self, exc_type, exc, tb) -> None:
        self._discard = exc_type is not None
        self.close()

    def close(self) -> None:
        if not self.closed and not self._discard:
            self._store._put(self._ref, self.getvalue())
        super().close()


class InMemoryObjectStore(ObjectStore):
    """Thread-safe dict of containers."""

    def __init__(self, objects: dict[str, dict[str, bytes]] | None = None):
        self._lock = threading.Lock()
        self._containers: dict[str, dict[str, bytes]] = {}
        for container, entries in (objects or {}).items():
            for name, content in entries.items():
                self._put(ObjectRef(container, name), content)

    def _put(self, ref: ObjectRef, content: bytes | str) -> None:
        if isinstance(content, str):
            content = content.encode("utf-8")
        with self._lock:
            self._containers.setdefault(ref.container, {})[ref.name] = content

    def list_objects(self, container: str) -> list[ObjectRef]:
        with self._lock:
            names = sorted(self._containers.get(container, {}))
        return [ObjectRef(container, name) for name in names]

    def open_read(self, ref: ObjectRef) -> BinaryIO:
        with self._lock:
            content = self._containers.get(ref.container, {}).get(ref.name)
        if content is None:
            raise ObjectNotFoundError(ref.container, ref.name)
        return BytesIO(content)

    def open_write(self, ref: ObjectRef) -> BinaryIO:
        return _CommitOnClose(self, ref)

    def exists(self, ref: ObjectRef) -> bool:
        with self._lock:
            return ref.name in self._containers.get(ref.container, {})
