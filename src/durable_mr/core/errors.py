"""
Structured error types for durable-mapreduce.

Every failure the orchestrator can observe is a ``DurableError`` carrying a
category, a retryable flag and structured context. Failures that cross the
history log (task failures, sub-orchestration failures) are serialized as
``FailureDetails`` and rebuilt on replay, so orchestration code always sees a
typed exception, never a bare string.

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                        DurableError                              │
        │        (category, retryable, context, cause)                     │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  HistoryError            OrchestrationError      TaskError       │
        │  (HISTORY)               (ORCHESTRATION)         (TASK)          │
        │       │                        │                     │           │
        │  ConcurrentAppend-       NonDeterminismError    TaskFailedError  │
        │    Conflict              PartialFailure         TaskTimeoutError │
        │  InstanceNotFound        SubOrchestration-                       │
        │                            Failed                                │
        │                          InstanceExistsError                     │
        │                                                                  │
        │  RegistrationError       EmptyInputError        RecordFormatError│
        │  (CONFIG)                (VALIDATION)           (PARSE)          │
        │                                                                  │
        │  StorageError ── ObjectNotFoundError (STORAGE)                   │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> error = TaskFailedError("map_file", FailureDetails("OSError", "disk"))
    >>> error.retryable
    True
    >>> error.to_dict()["category"]
    'TASK'
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    HISTORY = "HISTORY"               # Log append/read failures
    ORCHESTRATION = "ORCHESTRATION"   # Replay, fan-in, composition
    TASK = "TASK"                     # Activity execution failures
    STORAGE = "STORAGE"               # Object store I/O
    PARSE = "PARSE"                   # Record format errors
    VALIDATION = "VALIDATION"         # Invalid input to an operation
    CONFIG = "CONFIG"                 # Registration / settings errors
    INTERNAL = "INTERNAL"             # Bugs, unexpected state


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Attributes:
        instance_id: Orchestration instance the error belongs to
        orchestration: Orchestrator name
        task_id: Task sequence number within the instance
        activity: Activity name
        metadata: Additional key-value pairs
    """

    instance_id: str | None = None
    orchestration: str | None = None
    task_id: int | None = None
    activity: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["instance_id", "orchestration", "task_id", "activity"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class DurableError(Exception):
    """Base exception for all durable-mapreduce errors.

    Subclasses set ``default_category`` and ``default_retryable`` so that
    callers rarely need to pass them explicitly.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> DurableError:
        """Add context to this error (fluent API)."""
        for key, value in kwargs.items():
            if hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# FAILURE PAYLOADS (what history stores)
# =============================================================================


@dataclass(frozen=True)
class FailureDetails:
    """Serializable description of a failure, as recorded in history.

    ``retryable`` is taken from ``DurableError.retryable`` when the raised
    exception is one; plain exceptions are treated as retryable.
    """

    error_type: str
    message: str
    retryable: bool = True
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_exception(cls, error: BaseException) -> FailureDetails:
        if isinstance(error, DurableError):
            return cls(
                error_type=type(error).__name__,
                message=error.message,
                retryable=error.retryable,
                details=error.context.to_dict(),
            )
        return cls(error_type=type(error).__name__, message=str(error), retryable=True)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "error_type": self.error_type,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.details:
            result["details"] = dict(self.details)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FailureDetails:
        return cls(
            error_type=data.get("error_type", "Error"),
            message=data.get("message", ""),
            retryable=bool(data.get("retryable", True)),
            details=dict(data.get("details") or {}),
        )

    def __str__(self) -> str:
        return f"{self.error_type}: {self.message}"


# =============================================================================
# HISTORY ERRORS
# =============================================================================


class HistoryError(DurableError):
    """Base class for history log failures."""

    default_category = ErrorCategory.HISTORY


class ConcurrentAppendConflict(HistoryError):
    """Another writer appended to the instance log since it was read.

    Callers re-read the history and retry their append.
    """

    default_retryable = True

    def __init__(self, instance_id: str, expected_version: int, actual_version: int):
        self.instance_id = instance_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Concurrent append to '{instance_id}': expected version "
            f"{expected_version}, found {actual_version}",
            context=ErrorContext(instance_id=instance_id),
        )


class InstanceNotFoundError(HistoryError):
    """No history exists for the requested instance id."""

    def __init__(self, instance_id: str):
        self.instance_id = instance_id
        super().__init__(
            f"Orchestration instance not found: {instance_id}",
            context=ErrorContext(instance_id=instance_id),
        )


# =============================================================================
# ORCHESTRATION ERRORS
# =============================================================================


class OrchestrationError(DurableError):
    """Base class for replay, fan-in and composition failures."""

    default_category = ErrorCategory.ORCHESTRATION


class InstanceExistsError(OrchestrationError):
    """An instance with the requested id has already been started."""

    def __init__(self, instance_id: str):
        self.instance_id = instance_id
        super().__init__(
            f"Orchestration instance already exists: {instance_id}",
            context=ErrorContext(instance_id=instance_id),
        )


class NonDeterminismError(OrchestrationError):
    """Replayed decisions diverged from the recorded history. Always fatal."""

    def __init__(self, message: str, *, task_id: int | None = None):
        super().__init__(message, context=ErrorContext(task_id=task_id))


class PartialFailure(OrchestrationError):
    """One or more tasks of a fan-out failed after exhausting their retries.

    Attributes:
        failed_items: Mapping of fan-out item (or task id) to its failure
        results: Results of the tasks that did complete, by position
    """

    def __init__(
        self,
        failed_items: dict[Any, FailureDetails],
        results: list[Any] | None = None,
    ):
        self.failed_items = failed_items
        self.results = results or []
        names = ", ".join(str(item) for item in list(failed_items)[:5])
        more = "" if len(failed_items) <= 5 else f" (+{len(failed_items) - 5} more)"
        super().__init__(f"{len(failed_items)} task(s) failed: {names}{more}")

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["failed_items"] = {
            str(item): failure.to_dict() for item, failure in self.failed_items.items()
        }
        return result


class SubOrchestrationFailed(OrchestrationError):
    """A nested orchestration ended in failure.

    The child's history stays in the child; only its failure payload crosses
    into the parent.
    """

    def __init__(self, name: str, child_instance_id: str, failure: FailureDetails):
        self.name = name
        self.child_instance_id = child_instance_id
        self.failure = failure
        super().__init__(
            f"Sub-orchestration '{name}' ({child_instance_id}) failed: {failure}",
            context=ErrorContext(orchestration=name, instance_id=child_instance_id),
        )


class EmptyInputError(DurableError):
    """Aggregation was asked to reduce zero results."""

    default_category = ErrorCategory.VALIDATION


# =============================================================================
# TASK ERRORS
# =============================================================================


class TaskError(DurableError):
    """Base class for activity failures."""

    default_category = ErrorCategory.TASK
    default_retryable = True


class TaskFailedError(TaskError):
    """An activity failed and its retry policy is exhausted."""

    def __init__(self, name: str, failure: FailureDetails, *, task_id: int | None = None):
        self.name = name
        self.failure = failure
        super().__init__(
            f"Task '{name}' failed: {failure}",
            retryable=failure.retryable,
            context=ErrorContext(activity=name, task_id=task_id),
        )


class TaskTimeoutError(TaskError):
    """An activity exceeded its deadline."""

    def __init__(self, name: str, timeout: float, elapsed: float):
        self.name = name
        self.timeout = timeout
        self.elapsed = elapsed
        super().__init__(
            f"Task '{name}' timed out after {elapsed:.2f}s (limit {timeout:.2f}s)",
            context=ErrorContext(activity=name),
        )


class StorageError(DurableError):
    """Object store I/O failure."""

    default_category = ErrorCategory.STORAGE
    default_retryable = True


class ObjectNotFoundError(StorageError):
    """The named object does not exist in its container."""

    default_retryable = False

    def __init__(self, container: str, name: str):
        self.container = container
        self.name = name
        super().__init__(
            f"Object not found: {container}/{name}",
            context=ErrorContext(metadata={"container": container, "object": name}),
        )


class RecordFormatError(DurableError):
    """An input record does not have the expected fixed-width layout."""

    default_category = ErrorCategory.PARSE


class RegistrationError(DurableError):
    """A callback could not be registered or resolved."""

    default_category = ErrorCategory.CONFIG


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "DurableError",
    "FailureDetails",
    "HistoryError",
    "ConcurrentAppendConflict",
    "InstanceNotFoundError",
    "OrchestrationError",
    "InstanceExistsError",
    "NonDeterminismError",
    "PartialFailure",
    "SubOrchestrationFailed",
    "EmptyInputError",
    "TaskError",
    "TaskFailedError",
    "TaskTimeoutError",
    "StorageError",
    "ObjectNotFoundError",
    "RecordFormatError",
    "RegistrationError",
]
