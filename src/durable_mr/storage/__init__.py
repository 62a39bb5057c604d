"""Object storage abstraction used by activities."""

from durable_mr.storage.base import ObjectRef, ObjectStore
from durable_mr.storage.local import LocalObjectStore
from durable_mr.storage.memory import InMemoryObjectStore

__all__ = ["InMemoryObjectStore", "LocalObjectStore", "ObjectRef", "ObjectStore"]
