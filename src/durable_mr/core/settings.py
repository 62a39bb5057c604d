"""Runtime settings for durable-mapreduce.

Configuration is explicit, validated and environment-driven. Every field can be
overridden with a ``DURABLE_`` prefixed environment variable or a ``.env``
file::

    DURABLE_HISTORY_BACKEND=sqlite
    DURABLE_DATABASE_PATH=/var/lib/durable/history.db
    DURABLE_MAX_WORKERS=16

Fields
──────
log_level / json_logs       : structlog configuration
history_backend             : ``memory`` or ``sqlite``
database_path               : SQLite history file (sqlite backend)
max_workers                 : Activity thread-pool size
retry_*                     : Default task retry policy
task_timeout_seconds        : Default per-activity deadline (None = no deadline)
data_dir                    : Root of the local object store (one dir per container)
host / port / api_prefix    : HTTP trigger front end
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DurableSettings(BaseSettings):
    """Settings shared by the runtime, the CLI and the HTTP API."""

    model_config = SettingsConfigDict(
        env_prefix="DURABLE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None

    # ── History ──────────────────────────────────────────────────
    history_backend: Literal["memory", "sqlite"] = "memory"
    database_path: Path = Field(
        default_factory=lambda: Path.home() / ".durable_mr" / "history.db",
        description="SQLite history database file",
    )

    # ── Execution ────────────────────────────────────────────────
    max_workers: int = Field(default=8, ge=1)
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_first_delay: float = Field(default=0.0, ge=0.0)
    retry_backoff_coefficient: float = Field(default=2.0, ge=1.0)
    retry_max_delay: float = Field(default=60.0, ge=0.0)
    task_timeout_seconds: float | None = None

    # ── Storage ──────────────────────────────────────────────────
    data_dir: Path = Field(
        default_factory=lambda: Path.home() / ".durable_mr" / "data",
        description="Local object store root; each container is a sub-directory",
    )

    # ── HTTP trigger ─────────────────────────────────────────────
    host: str = "127.0.0.1"
    port: int = 7071
    api_prefix: str = "/api"

    @field_validator("task_timeout_seconds")
    @classmethod
    def _positive_timeout(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            raise ValueError("task_timeout_seconds must be positive")
        return value


@lru_cache(maxsize=1)
def get_settings() -> DurableSettings:
    """Return the process-wide settings (cached)."""
    return DurableSettings()
