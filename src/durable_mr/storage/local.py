"""Local filesystem object store: one directory per container."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import BinaryIO

from durable_mr.core.errors import ObjectNotFoundError, StorageError
from durable_mr.core.logging import get_logger
from durable_mr.storage.base import ObjectRef, ObjectStore

logger = get_logger(__name__)


class _AtomicWriter:
    """Writes to a temp file and renames it into place on close."""

    def __init__(self, target: Path):
        self.target = target
        fd, tmp = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
        self._tmp = Path(tmp)
        self._file = os.fdopen(fd, "wb")

    def write(self, data: bytes) -> int:
        return self._file.write(data)

    def writelines(self, lines) -> None:
        self._file.writelines(lines)

    @property
    def closed(self) -> bool:
        return self._file.closed

    def close(self) -> None:
        if self._file.closed:
            return
        self._file.close()
        os.replace(self._tmp, self.target)

    def discard(self) -> None:
        self._file.close()
        self._tmp.unlink(missing_ok=True)

    def __enter__(self) -> _AtomicWriter:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self.discard()
        else:
            self.close()


class LocalObjectStore(ObjectStore):
    """
    Local filesystem object store.

    ``root/<container>/<name>``; containers are created on first write.
    """

    def __init__(self, root: str | Path = "./data"):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        logger.debug("local_object_store_initialized", root=str(self.root))

    def _resolve_path(self, container: str, name: str = "") -> Path:
        """Resolve a container (and object) to a path under the root."""
        full_path = (self.root / container / name).resolve()

        # Security: ensure path is within root
        try:
            full_path.relative_to(self.root)
        except ValueError:
            raise StorageError(
                f"Invalid object path: {container}/{name} (outside store root)",
                retryable=False,
            ) from None

        return full_path

    def list_objects(self, container: str) -> list[ObjectRef]:
        directory = self._resolve_path(container)
        if not directory.is_dir():
            return []
        return sorted(
            ObjectRef(container, path.name)
            for path in directory.iterdir()
            if path.is_file() and not path.name.startswith(".")
        )

    def open_read(self, ref: ObjectRef) -> BinaryIO:
        path = self._resolve_path(ref.container, ref.name)
        if not path.is_file():
            raise ObjectNotFoundError(ref.container, ref.name)
        return path.open("rb")

    def open_write(self, ref: ObjectRef) -> BinaryIO:
        path = self._resolve_path(ref.container, ref.name)
        path.parent.mkdir(parents=True, exist_ok=True)
        return _AtomicWriter(path)  # type: ignore[return-value]

    def exists(self, ref: ObjectRef) -> bool:
        return self._resolve_path(ref.container, ref.name).is_file()
