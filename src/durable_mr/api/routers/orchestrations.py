"""
Orchestrations router — start, inspect and terminate instances.

Endpoints:
    POST   /orchestrations/{name}                     Start an instance (202 + check-status body)
    GET    /orchestrations/{instance_id}              Instance status, output or failure
    GET    /orchestrations/{instance_id}/history      Ordered history events
    POST   /orchestrations/{instance_id}/terminate    Request termination (202)

The start endpoint answers immediately; the job runs on the runtime's
dispatch loop and clients poll ``status_query_get_uri``.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Query, Request
from fastapi.responses import JSONResponse

from durable_mr.api.deps import RuntimeDep
from durable_mr.api.schemas import (
    CheckStatusResponse,
    HistoryEventSchema,
    InstanceStatusSchema,
    TerminateBody,
)

router = APIRouter(prefix="/orchestrations")


def check_status_response(request: Request, instance_id: str) -> JSONResponse:
    status_uri = str(request.url_for("get_instance_status", instance_id=instance_id))
    body = CheckStatusResponse(
        id=instance_id,
        status_query_get_uri=status_uri,
        history_get_uri=str(request.url_for("get_instance_history", instance_id=instance_id)),
        terminate_post_uri=str(request.url_for("terminate_instance", instance_id=instance_id)),
    )
    return JSONResponse(
        status_code=202,
        content=body.model_dump(),
        headers={"Location": status_uri},
    )


@router.post("/{name}", status_code=202, response_model=CheckStatusResponse)
def start_orchestration(
    name: str,
    request: Request,
    runtime: RuntimeDep,
    body: dict[str, Any] | None = Body(default=None),
    instance_id: str | None = Query(default=None, description="Explicit instance id"),
):
    """Start orchestration ``name`` with the JSON body as its input.

    Example:
        POST /api/orchestrations/map_reduce
        {"map_input_container": "datain", "map_output_container": "dataout"}

        Response (202):
        {"id": "5f0c...", "status_query_get_uri": "http://.../orchestrations/5f0c...", ...}
    """
    new_id = runtime.start_orchestration(name, body, instance_id=instance_id)
    return check_status_response(request, new_id)


@router.get("/{instance_id}", response_model=InstanceStatusSchema, name="get_instance_status")
def get_instance_status(instance_id: str, runtime: RuntimeDep):
    return InstanceStatusSchema.from_state(runtime.get_status(instance_id))


@router.get(
    "/{instance_id}/history",
    response_model=list[HistoryEventSchema],
    name="get_instance_history",
)
def get_instance_history(instance_id: str, runtime: RuntimeDep):
    return [HistoryEventSchema.from_event(event) for event in runtime.get_history(instance_id)]


@router.post("/{instance_id}/terminate", status_code=202, name="terminate_instance")
def terminate_instance(instance_id: str, runtime: RuntimeDep, body: TerminateBody | None = None):
    reason = body.reason if body else ""
    runtime.terminate(instance_id, reason)
    return {"id": instance_id, "terminate_requested": True}
