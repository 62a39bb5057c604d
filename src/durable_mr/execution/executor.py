"""Activity executor — runs one callback attempt outside the replay context.

Activities may do I/O, be slow, or be non-deterministic. The executor never
decides whether a task "already ran"; that is the engine's job, done by reading
history. A crash mid-attempt simply means no outcome event gets appended and the
runtime dispatches the task again on recovery (at-least-once execution).

ARCHITECTURE
────────────
::

    ActivityExecutor(registry, max_workers, default_timeout)
      ├── .execute(name, input, timeout)          ─ run inline → ActivityOutcome
      ├── .submit(name, input, timeout)           ─ run on pool → Future[ActivityOutcome]
      └── .shutdown()

    Failure mapping:
      handler raises X          → ActivityOutcome(failure=FailureDetails(X))
      deadline exceeded         → ActivityOutcome(failure=TaskTimeoutError ...)
      unknown activity name     → ActivityOutcome(failure=RegistrationError, retryable=False)

The deadline uses a one-shot worker thread; an overrunning callback keeps
running in the background but its result is discarded.
"""

from __future__ import annotations

import concurrent.futures
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

from durable_mr.core.errors import FailureDetails, RegistrationError, TaskTimeoutError
from durable_mr.core.logging import get_logger
from durable_mr.execution.registry import Registry

logger = get_logger(__name__)


@dataclass(frozen=True)
class ActivityOutcome:
    """Result of one activity attempt."""

    name: str
    result: Any = None
    failure: FailureDetails | None = None
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.failure is None


def run_with_timeout(func, arg: Any, timeout_seconds: float, operation: str) -> Any:
    """Run ``func(arg)`` and raise ``TaskTimeoutError`` if it overruns."""
    if timeout_seconds <= 0:
        raise ValueError(f"Timeout must be positive, got {timeout_seconds}")

    start = time.monotonic()
    pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"deadline-{operation}")
    try:
        future = pool.submit(func, arg)
        try:
            return future.result(timeout=timeout_seconds)
        except concurrent.futures.TimeoutError:
            raise TaskTimeoutError(
                operation, timeout=timeout_seconds, elapsed=time.monotonic() - start
            ) from None
    finally:
        pool.shutdown(wait=False)


class ActivityExecutor:
    """Executes registered activities, inline or on a bounded thread pool."""

    def __init__(
        self,
        registry: Registry,
        *,
        max_workers: int = 8,
        default_timeout: float | None = None,
    ):
        self.registry = registry
        self.default_timeout = default_timeout
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="activity")

    def execute(self, name: str, input: Any = None, *, timeout: float | None = None) -> ActivityOutcome:
        """Run one attempt of activity ``name`` and capture its outcome.

        Never raises for callback failures; they come back as a failed outcome.
        """
        start = time.monotonic()
        try:
            definition = self.registry.get_activity(name)
        except RegistrationError as e:
            logger.error("activity_not_registered", name=name)
            return ActivityOutcome(
                name=name,
                failure=FailureDetails(type(e).__name__, e.message, retryable=False),
            )

        effective_timeout = timeout or definition.timeout_seconds or self.default_timeout
        try:
            if effective_timeout:
                result = run_with_timeout(definition.execute, input, effective_timeout, name)
            else:
                result = definition.execute(input)
        except Exception as e:
            duration = time.monotonic() - start
            failure = FailureDetails.from_exception(e)
            logger.warning(
                "activity_failed",
                name=name,
                error_type=failure.error_type,
                error=failure.message,
                duration_seconds=round(duration, 4),
            )
            return ActivityOutcome(name=name, failure=failure, duration_seconds=duration)

        duration = time.monotonic() - start
        logger.debug("activity_succeeded", name=name, duration_seconds=round(duration, 4))
        return ActivityOutcome(name=name, result=result, duration_seconds=duration)

    def submit(self, name: str, input: Any = None, *, timeout: float | None = None) -> Future[ActivityOutcome]:
        """Run an attempt on the pool.

        Retry backoff is waited out by the caller before submitting, so a pool
        worker is only ever occupied by an attempt that is ready to run.
        """
        return self._pool.submit(self.execute, name, input, timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait, cancel_futures=not wait)
