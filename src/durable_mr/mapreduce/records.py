"""Fixed-width weather record parsing.

Input records are NCDC-style fixed-width lines::

    col 15-18   observation year                       "1901"
    col 87      temperature sign                       "+" / "-"
    col 88-91   temperature, tenths of a degree C      "0012"
    col 92      quality code

Map output records are ``"year,temperature"`` lines, temperature still in
tenths. ``9999`` marks a missing reading and is never emitted.
"""

from __future__ import annotations

from durable_mr.core.errors import RecordFormatError

YEAR_SLICE = slice(15, 19)
SIGN_COLUMN = 87
MISSING_TEMPERATURE = "9999"
MIN_RECORD_LENGTH = 92


def _check_length(line: str) -> None:
    if len(line) < MIN_RECORD_LENGTH:
        raise RecordFormatError(
            f"Record too short: {len(line)} chars, need at least {MIN_RECORD_LENGTH}",
            retryable=False,
        )


def map_year(line: str) -> str:
    _check_length(line)
    return line[YEAR_SLICE]


def map_temperature(line: str) -> str | None:
    """Temperature field in tenths of a degree, or ``None`` if missing.

    A leading ``+`` is dropped; a ``-`` is kept.
    """
    _check_length(line)
    if line[SIGN_COLUMN] == "+":
        raw = line[SIGN_COLUMN + 1:SIGN_COLUMN + 5]
    else:
        raw = line[SIGN_COLUMN:SIGN_COLUMN + 5]
    if raw.lstrip("-") == MISSING_TEMPERATURE:
        return None
    return raw


def map_record(line: str) -> str | None:
    """Map one input line to ``"year,temperature"``; ``None`` skips it."""
    temperature = map_temperature(line)
    if temperature is None:
        return None
    return f"{map_year(line)},{temperature}"


def parse_reading(line: str) -> tuple[str, int]:
    """Parse a map output line into ``(year, tenths)``."""
    parts = line.strip().split(",")
    if len(parts) != 2:
        raise RecordFormatError(f"Expected 'year,temperature', got {line.strip()!r}", retryable=False)
    year, raw = parts
    try:
        return year, int(raw)
    except ValueError:
        raise RecordFormatError(f"Temperature is not an integer: {raw!r}", retryable=False) from None


def to_degrees(tenths: int) -> int:
    """Tenths of a degree to whole degrees, truncating toward zero."""
    return int(tenths / 10)
