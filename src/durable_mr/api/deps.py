"""
FastAPI dependencies.

The runtime is created once by :func:`durable_mr.api.app.create_app` and
stored on ``app.state``; routers receive it through ``RuntimeDep``.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from durable_mr.orchestration.runtime import DurableRuntime


def get_runtime(request: Request) -> DurableRuntime:
    return request.app.state.runtime


RuntimeDep = Annotated[DurableRuntime, Depends(get_runtime)]
