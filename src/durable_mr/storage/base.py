"""Object store interface.

A container is a flat namespace of named objects (a blob container, a
directory). Activities read and write objects through this interface;
orchestrator code never touches it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import BinaryIO


@dataclass(frozen=True, order=True)
class ObjectRef:
    """Address of one object: ``container/name``."""

    container: str
    name: str

    def __str__(self) -> str:
        return f"{self.container}/{self.name}"


class ObjectStore(ABC):
    """Abstract base class for object store backends."""

    @abstractmethod
    def list_objects(self, container: str) -> list[ObjectRef]:
        """
        Enumerate a container.

        Returns:
            Object references sorted by name; an unknown container is empty
        """
        ...

    @abstractmethod
    def open_read(self, ref: ObjectRef) -> BinaryIO:
        """
        Open an object for reading.

        Raises:
            ObjectNotFoundError: If the object doesn't exist
        """
        ...

    @abstractmethod
    def open_write(self, ref: ObjectRef) -> BinaryIO:
        """
        Open an object for writing, replacing any existing content.

        The object becomes visible when the stream is closed.
        """
        ...

    @abstractmethod
    def exists(self, ref: ObjectRef) -> bool:
        """Check if an object exists."""
        ...

    def read_text(self, ref: ObjectRef, encoding: str = "utf-8") -> str:
        """Read an object as text."""
        with self.open_read(ref) as stream:
            return stream.read().decode(encoding)

    def write_text(self, ref: ObjectRef, content: str, encoding: str = "utf-8") -> None:
        """Write text content."""
        with self.open_write(ref) as stream:
            stream.write(content.encode(encoding))
