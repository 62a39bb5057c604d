"""Task retry policy.

A ``RetryPolicy`` is part of orchestration code, so it must be deterministic:
the delay for attempt *n* is a pure function of the policy (no jitter). The
engine records the chosen delay on the ``TASK_SCHEDULED`` event of each retry
and the runtime waits that long before running the attempt.

    delay(n) = min(first_delay * backoff_coefficient ** (n - 1), max_delay)

where *n* is the attempt that just failed (1-based).

Example:
    >>> policy = RetryPolicy(max_attempts=4, first_delay=1.0, backoff_coefficient=2.0)
    >>> [policy.next_delay(n) for n in (1, 2, 3)]
    [1.0, 2.0, 4.0]
"""

from __future__ import annotations

from dataclasses import dataclass, field

from durable_mr.core.errors import FailureDetails
from durable_mr.core.settings import DurableSettings


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration for one scheduled task.

    Attributes:
        max_attempts: Total attempts including the first one (1 = no retry)
        first_delay: Delay in seconds before the second attempt
        backoff_coefficient: Multiplier applied per further attempt
        max_delay: Cap on any single delay
        non_retryable_errors: Error type names that are never retried
    """

    max_attempts: int = 3
    first_delay: float = 0.0
    backoff_coefficient: float = 2.0
    max_delay: float = 60.0
    non_retryable_errors: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.first_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must be non-negative")
        if self.backoff_coefficient < 1:
            raise ValueError("backoff_coefficient must be >= 1")

    def next_delay(self, attempt: int) -> float:
        """Delay before the attempt that follows ``attempt``."""
        return min(
            self.first_delay * (self.backoff_coefficient ** (attempt - 1)),
            self.max_delay,
        )

    def should_retry(self, attempt: int, failure: FailureDetails) -> bool:
        """Whether ``attempt`` (which failed with ``failure``) gets another try."""
        if attempt >= self.max_attempts:
            return False
        if not failure.retryable:
            return False
        return failure.error_type not in self.non_retryable_errors

    @classmethod
    def from_settings(cls, settings: DurableSettings) -> RetryPolicy:
        return cls(
            max_attempts=settings.retry_max_attempts,
            first_delay=settings.retry_first_delay,
            backoff_coefficient=settings.retry_backoff_coefficient,
            max_delay=settings.retry_max_delay,
        )


NO_RETRY = RetryPolicy(max_attempts=1)
