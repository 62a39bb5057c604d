"""Inputs of the map/reduce orchestrations and activities.

Each callback receives exactly the fields it needs. Instances are recorded in
history as plain dicts and rebuilt by the registry on the way back in.
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_MAP_INPUT_CONTAINER = "datain"
DEFAULT_MAP_OUTPUT_CONTAINER = "dataout"


@dataclass(frozen=True)
class MapReduceInput:
    """Top-level job: map ``datain`` into ``dataout``, then reduce ``dataout``."""

    map_input_container: str = DEFAULT_MAP_INPUT_CONTAINER
    map_output_container: str = DEFAULT_MAP_OUTPUT_CONTAINER
    reduce_container: str = DEFAULT_MAP_OUTPUT_CONTAINER


@dataclass(frozen=True)
class MapPhaseInput:
    container_in: str
    container_out: str


@dataclass(frozen=True)
class ReducePhaseInput:
    container_in: str


@dataclass(frozen=True)
class MapFileInput:
    """One map task: ``container_in/file_name`` → ``container_out/file_name``."""

    file_name: str
    container_in: str
    container_out: str


@dataclass(frozen=True)
class ReduceFileInput:
    file_name: str
    container_in: str
