"""
Shared pytest fixtures for durable-mapreduce tests.

This module provides:
- History logs (in-memory and SQLite on a temp path)
- Isolated settings that ignore the caller's environment
- A runtime factory that stops every runtime it created
- Weather record builders for the map/reduce tests
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from durable_mr.core.settings import DurableSettings
from durable_mr.execution.registry import Registry
from durable_mr.execution.retry import RetryPolicy
from durable_mr.history.log import InMemoryHistoryLog
from durable_mr.history.sqlite import SqliteHistoryLog
from durable_mr.orchestration.runtime import DurableRuntime
from durable_mr.storage.memory import InMemoryObjectStore

HEADER = "STATION   YEAR  ...  TEMPERATURE"


def build_weather_line(year: str, temperature: str, quality: str = "1") -> str:
    """Fixed-width record: year at columns 15-18, signed temperature at 87-91."""
    return "0" * 15 + year + "9" * (87 - 19) + temperature + quality


def weather_file(*records: tuple[str, str]) -> bytes:
    lines = [HEADER] + [build_weather_line(year, temp) for year, temp in records]
    return ("\n".join(lines) + "\n").encode("utf-8")


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        time.sleep(0.01)


# =============================================================================
# Core fixtures
# =============================================================================


@pytest.fixture
def settings(tmp_path: Path) -> DurableSettings:
    """Settings isolated from env files, with fast retries."""
    return DurableSettings(
        _env_file=None,
        max_workers=4,
        retry_max_attempts=3,
        retry_first_delay=0.0,
        database_path=tmp_path / "history.db",
        data_dir=tmp_path / "data",
    )


@pytest.fixture
def registry() -> Registry:
    return Registry()


@pytest.fixture
def memory_log() -> InMemoryHistoryLog:
    return InMemoryHistoryLog()


@pytest.fixture
def sqlite_log(tmp_path: Path) -> Generator[SqliteHistoryLog, None, None]:
    log = SqliteHistoryLog(tmp_path / "history.db")
    yield log
    log.close()


@pytest.fixture(params=["memory", "sqlite"])
def history_log(request, tmp_path: Path):
    """Both history backends, for contract tests."""
    if request.param == "memory":
        yield InMemoryHistoryLog()
    else:
        log = SqliteHistoryLog(tmp_path / "contract.db")
        yield log
        log.close()


@pytest.fixture
def make_runtime(settings: DurableSettings) -> Generator[Callable[..., DurableRuntime], None, None]:
    """Factory for started runtimes; all are stopped at teardown."""
    created: list[DurableRuntime] = []

    def factory(registry: Registry, history=None, *, start: bool = True, **kwargs) -> DurableRuntime:
        kwargs.setdefault("settings", settings)
        kwargs.setdefault("default_retry", RetryPolicy(max_attempts=3))
        runtime = DurableRuntime(registry, history, **kwargs)
        created.append(runtime)
        if start:
            runtime.start()
        return runtime

    yield factory
    for runtime in created:
        runtime.stop()


@pytest.fixture
def gate() -> Generator[threading.Event, None, None]:
    """Event that blocking test activities wait on; always released at teardown."""
    event = threading.Event()
    yield event
    event.set()


# =============================================================================
# Map/reduce fixtures
# =============================================================================


@pytest.fixture
def weather_store() -> InMemoryObjectStore:
    """Two input files whose per-file maxima are 12 and 35 degrees."""
    return InMemoryObjectStore({
        "datain": {
            "w1.txt": weather_file(("1901", "+0120"), ("1901", "+0050"), ("1901", "-0011")),
            "w2.txt": weather_file(("1902", "+0350"), ("1902", "+9999"), ("1902", "+0101")),
        },
    })


@pytest.fixture
def make_weather_line() -> Callable[..., str]:
    return build_weather_line


@pytest.fixture
def make_weather_file() -> Callable[..., bytes]:
    """``make_weather_file(("1901", "+0120"), ...)`` → file bytes with a header row."""
    return weather_file
