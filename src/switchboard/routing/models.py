"""Tasks and handoff payloads.

Task is the unit of work the dispatcher routes. HandoffPayload is what one
agent leaves for another; on the wire its severity ``normal`` is spelled
``medium``:

    {
        "source_agent_id": "security-reviewer",
        "target_capability": "test-coverage",
        "severity": "high",
        "fields": {"file": "src/ffi.rs", "summary": "..."},
        "created_at": "2026-01-01T12:00:00+00:00"
    }
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, field_serializer, field_validator

from switchboard.core.enums import Severity, TaskOrigin
from switchboard.core.types import TaskContext


def _utcnow() -> datetime:
    return datetime.now(UTC)


def new_task_id(prefix: str = "task") -> str:
    return f"{prefix}-{uuid4().hex[:12]}"


@dataclass(frozen=True, slots=True)
class Task:
    """A unit of work submitted for routing.

    Mapping contexts are copied into a read-only view on construction.
    Anything else is kept as given so the run can reject it.

    Attributes:
        id: Task identifier; at most one live run per id.
        context: Attribute name -> value, evaluated by agent triggers.
        origin: USER_REQUEST or HANDOFF.
        created_at: Creation time (UTC).
        target_capability: Capability a handoff-derived task is bound to.
        depth: Handoff hops from the originating user request.
    """

    id: str
    context: TaskContext
    origin: TaskOrigin = TaskOrigin.USER_REQUEST
    created_at: datetime = field(default_factory=_utcnow)
    target_capability: str | None = None
    depth: int = 0

    def __post_init__(self) -> None:
        if isinstance(self.context, Mapping):
            object.__setattr__(self, "context", MappingProxyType(dict(self.context)))

    @property
    def is_handoff(self) -> bool:
        return self.origin is TaskOrigin.HANDOFF

    @classmethod
    def user_request(cls, context: TaskContext, *, task_id: str | None = None) -> Task:
        """Create a user-request task, generating an id if none is given."""
        return cls(id=task_id or new_task_id(), context=context)

    @classmethod
    def from_handoff(cls, payload: HandoffPayload, *, depth: int) -> Task:
        """Derive a HANDOFF task bound to the payload's target capability.

        The context is the payload's fields plus a ``handoff`` entry
        describing where the work came from.
        """
        context = {
            **payload.fields,
            "handoff": {
                "source_agent_id": payload.source_agent_id,
                "severity": payload.severity.value,
                "target_capability": payload.target_capability,
                "origin_task_id": payload.origin_task_id,
            },
        }
        return cls(
            id=new_task_id("handoff"),
            context=context,
            origin=TaskOrigin.HANDOFF,
            target_capability=payload.target_capability,
            depth=depth,
        )


class HandoffPayload(BaseModel, frozen=True):
    """Structured work one agent leaves for another capability.

    Immutable, and consumed at most once by the queue.

    Attributes:
        id: Unique payload id.
        source_agent_id: Agent that produced the payload.
        target_capability: Capability the payload is addressed to.
        severity: Priority tier (critical > high > normal > low).
        fields: Subset of the source agent's handoff schema, held as a
            read-only copy of what was passed in.
        created_at: Creation time; FIFO order within a severity tier.
        origin_task_id: Task whose run produced the payload.
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    source_agent_id: str = Field(min_length=1)
    target_capability: str = Field(min_length=1)
    severity: Severity
    fields: Mapping[str, Any] = Field(default_factory=dict, validate_default=True)
    created_at: datetime = Field(default_factory=_utcnow)
    origin_task_id: str | None = None

    @field_validator("severity", mode="before")
    @classmethod
    def parse_severity(cls, v: Any) -> Severity:
        """Accept the wire spelling "medium" for NORMAL."""
        if isinstance(v, str):
            return Severity.parse(v)
        return v  # type: ignore[no-any-return]

    @field_validator("fields", mode="after")
    @classmethod
    def freeze_fields(cls, v: Mapping[str, Any]) -> Mapping[str, Any]:
        return MappingProxyType(dict(v))

    @field_serializer("fields")
    def serialize_fields(self, v: Mapping[str, Any]) -> dict[str, Any]:
        return dict(v)

    @property
    def route_key(self) -> tuple[str, str]:
        """(source agent, target capability); at most one such pair is in flight."""
        return (self.source_agent_id, self.target_capability)

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the JSON-compatible wire shape."""
        data: dict[str, Any] = {
            "id": self.id,
            "source_agent_id": self.source_agent_id,
            "target_capability": self.target_capability,
            "severity": self.severity.wire_value,
            "fields": dict(self.fields),
            "created_at": self.created_at.isoformat(),
        }
        if self.origin_task_id is not None:
            data["origin_task_id"] = self.origin_task_id
        return data

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> HandoffPayload:
        """Parse the wire shape.

        Raises:
            pydantic.ValidationError: If required keys are missing or invalid.
        """
        return cls.model_validate(dict(data))


__all__ = ["HandoffPayload", "Task", "new_task_id"]
