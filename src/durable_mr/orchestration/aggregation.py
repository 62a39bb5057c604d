"""Result aggregation — fold per-item results into one job result.

Fan-in delivers results in no meaningful order, so ``combine`` must be
associative and commutative; then every fold order gives the same answer.
An empty input is an error, never a default value.

Example:
    >>> aggregate([12, 35, 9, 41], max)
    41
    >>> state = AggregationState(max)
    >>> state.fold(3).fold(7).value
    7
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any, Generic, TypeVar

from durable_mr.core.errors import EmptyInputError

T = TypeVar("T")

_UNSET: Any = object()


class AggregationState(Generic[T]):
    """Running accumulator plus the number of results folded in."""

    def __init__(self, combine: Callable[[T, T], T]):
        self.combine = combine
        self.count = 0
        self._accumulator: T = _UNSET

    def fold(self, value: T) -> AggregationState[T]:
        if self.count == 0:
            self._accumulator = value
        else:
            self._accumulator = self.combine(self._accumulator, value)
        self.count += 1
        return self

    @property
    def is_empty(self) -> bool:
        return self.count == 0

    @property
    def value(self) -> T:
        if self.count == 0:
            raise EmptyInputError("Cannot aggregate an empty set of results")
        return self._accumulator


def aggregate(results: Iterable[T], combine: Callable[[T, T], T]) -> T:
    """Combine ``results`` with ``combine``.

    Raises:
        EmptyInputError: ``results`` is empty
    """
    state = AggregationState(combine)
    for value in results:
        state.fold(value)
    return state.value
