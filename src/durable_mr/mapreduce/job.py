"""Pluggable map/reduce callbacks.

A ``MapReduceJob`` bundles the three pieces of domain logic the orchestrations
are generic over:

    map_record(line)       → output line, or None to drop the record
    reduce_records(lines)  → per-file scalar, or None for a file with no records
    combine(a, b)          → job-level fold; associative and commutative

Example:
    >>> WEATHER_JOB.reduce_records(["1901,120", "1901,-56"])
    12
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from durable_mr.mapreduce.records import map_record, parse_reading, to_degrees
from durable_mr.orchestration.aggregation import AggregationState


@dataclass(frozen=True)
class MapReduceJob:
    name: str
    map_record: Callable[[str], str | None]
    reduce_records: Callable[[Iterable[str]], Any]
    combine: Callable[[Any, Any], Any]
    header_rows: int = 1


def reduce_max_temperature(lines: Iterable[str]) -> int | None:
    """Maximum temperature in whole degrees over ``year,tenths`` lines."""
    state: AggregationState[int] = AggregationState(max)
    for line in lines:
        if not line.strip():
            continue
        _, tenths = parse_reading(line)
        state.fold(to_degrees(tenths))
    return None if state.is_empty else state.value


WEATHER_JOB = MapReduceJob(
    name="max_temperature",
    map_record=map_record,
    reduce_records=reduce_max_temperature,
    combine=max,
)
