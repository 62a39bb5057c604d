"""Core primitives shared by every layer.

Architecture::

    errors.py      DurableError hierarchy + FailureDetails (serializable failure)
    logging.py     structlog configuration, context binding
    settings.py    DurableSettings (pydantic-settings, DURABLE_ env prefix)
"""

from durable_mr.core.errors import (
    ConcurrentAppendConflict,
    DurableError,
    EmptyInputError,
    ErrorCategory,
    ErrorContext,
    FailureDetails,
    HistoryError,
    InstanceExistsError,
    InstanceNotFoundError,
    NonDeterminismError,
    ObjectNotFoundError,
    OrchestrationError,
    PartialFailure,
    RecordFormatError,
    RegistrationError,
    StorageError,
    SubOrchestrationFailed,
    TaskError,
    TaskFailedError,
    TaskTimeoutError,
)
from durable_mr.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)
from durable_mr.core.settings import DurableSettings, get_settings

__all__ = [
    "ConcurrentAppendConflict",
    "DurableError",
    "DurableSettings",
    "EmptyInputError",
    "ErrorCategory",
    "ErrorContext",
    "FailureDetails",
    "HistoryError",
    "InstanceExistsError",
    "InstanceNotFoundError",
    "LogContext",
    "NonDeterminismError",
    "ObjectNotFoundError",
    "OrchestrationError",
    "PartialFailure",
    "RecordFormatError",
    "RegistrationError",
    "StorageError",
    "SubOrchestrationFailed",
    "TaskError",
    "TaskFailedError",
    "TaskTimeoutError",
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "get_settings",
]
