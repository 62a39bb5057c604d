"""
FastAPI application factory — the HTTP trigger for durable orchestrations.

``create_app()`` wires the runtime, routers and error handlers into a
single ``FastAPI`` instance. The runtime's dispatch loop runs for the
lifetime of the app (lifespan start/stop).
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from durable_mr import __version__
from durable_mr.api.errors import durable_error_handler, unhandled_exception_handler
from durable_mr.core.errors import DurableError
from durable_mr.core.logging import get_logger
from durable_mr.core.settings import DurableSettings, get_settings
from durable_mr.execution.registry import Registry
from durable_mr.mapreduce import register_map_reduce
from durable_mr.orchestration.runtime import DurableRuntime
from durable_mr.storage.local import LocalObjectStore

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan — start and stop the dispatch loop."""
    runtime: DurableRuntime = app.state.runtime
    runtime.start()
    logger.info("api_started", version=app.version)
    yield
    runtime.stop()
    logger.info("api_shutting_down")


def build_default_runtime(settings: DurableSettings) -> DurableRuntime:
    """Runtime with the map/reduce job over the local data directory."""
    registry = register_map_reduce(Registry(), LocalObjectStore(settings.data_dir))
    return DurableRuntime.from_settings(registry, settings)


def create_app(
    runtime: DurableRuntime | None = None,
    *,
    settings: DurableSettings | None = None,
) -> FastAPI:
    """Build and return a fully-configured FastAPI application.

    Parameters
    ----------
    runtime : DurableRuntime | None
        Runtime to expose (useful for testing). When ``None`` a runtime for
        the map/reduce job is built from settings.
    settings : DurableSettings | None
        Override settings. When ``None`` the cached :func:`get_settings` is used.
    """
    settings = settings or get_settings()
    runtime = runtime or build_default_runtime(settings)

    app = FastAPI(
        title="durable-mapreduce",
        version=__version__,
        lifespan=lifespan,
        docs_url=f"{settings.api_prefix}/docs",
        openapi_url=f"{settings.api_prefix}/openapi.json",
    )
    app.state.settings = settings
    app.state.runtime = runtime

    # ── Exception handlers ───────────────────────────────────────────
    app.add_exception_handler(DurableError, durable_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # ── Routers ──────────────────────────────────────────────────────
    from durable_mr.api.routers import orchestrations

    app.include_router(orchestrations.router, prefix=settings.api_prefix, tags=["orchestrations"])

    @app.get("/health", tags=["health"])
    def health() -> dict[str, str]:
        return {"status": "ok" if runtime.is_running else "stopped"}

    return app
