"""
API schemas — request bodies, status documents and RFC 7807 errors.

Every 2xx body is one of the models below; every 4xx/5xx body is a
:class:`ProblemDetail`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from durable_mr.history.events import HistoryEvent
from durable_mr.history.state import OrchestrationState


class ProblemDetail(BaseModel):
    """RFC 7807 «Problem Details for HTTP APIs».

    Error Codes:
        - ``InstanceNotFoundError`` (404): no history for the instance id
        - ``RegistrationError`` (404): unknown orchestration name
        - ``InstanceExistsError`` (409): instance id already used
        - validation errors (400): input does not fit the orchestration
    """

    type: str = Field(default="about:blank", description="URI reference for the error type")
    title: str = Field(description="Short human-readable summary")
    status: int = Field(description="HTTP status code")
    detail: str = Field(default="", description="Human-readable explanation")
    instance: str = Field(default="", description="URI of the request that failed")


class FailureSchema(BaseModel):
    error_type: str
    message: str
    retryable: bool = True
    details: dict[str, Any] = Field(default_factory=dict)


class CheckStatusResponse(BaseModel):
    """Returned when an orchestration is started.

    Carries the instance id and the URLs a client polls or posts to next.
    """

    id: str = Field(description="Orchestration instance id")
    status_query_get_uri: str
    history_get_uri: str
    terminate_post_uri: str


class InstanceStatusSchema(BaseModel):
    instance_id: str
    name: str
    runtime_status: str = Field(description="pending | running | completed | failed | terminated")
    input: Any = None
    output: Any = None
    failure: FailureSchema | None = None
    parent_instance_id: str | None = None
    created_at: datetime | None = None
    last_updated_at: datetime | None = None
    event_count: int = 0

    @classmethod
    def from_state(cls, state: OrchestrationState) -> InstanceStatusSchema:
        return cls(
            instance_id=state.instance_id,
            name=state.name,
            runtime_status=state.status.value,
            input=state.input,
            output=state.output,
            failure=FailureSchema(**state.failure.to_dict()) if state.failure else None,
            parent_instance_id=state.parent_instance_id,
            created_at=state.created_at,
            last_updated_at=state.last_updated_at,
            event_count=state.event_count,
        )


class HistoryEventSchema(BaseModel):
    sequence: int | None = None
    event_type: str
    timestamp: datetime | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_event(cls, event: HistoryEvent) -> HistoryEventSchema:
        return cls(**event.to_dict())


class TerminateBody(BaseModel):
    reason: str = Field(default="", description="Recorded on the terminal event")
