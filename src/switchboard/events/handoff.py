"""Event definitions for handoff payloads.

- handoff.enqueued: a payload was accepted by the queue
- handoff.dropped: a payload was discarded (unroutable or over depth)
- handoff.consumed: a payload was turned into a derived task
"""

from __future__ import annotations

from switchboard.events.base import BaseEvent
from switchboard.routing.models import HandoffPayload

HANDOFF_AGGREGATE = "handoff"


def _payload_summary(payload: HandoffPayload) -> dict[str, object]:
    return {
        "source_agent_id": payload.source_agent_id,
        "target_capability": payload.target_capability,
        "severity": payload.severity.value,
        "origin_task_id": payload.origin_task_id,
        "field_names": sorted(payload.fields),
    }


def create_handoff_enqueued_event(payload: HandoffPayload) -> BaseEvent:
    return BaseEvent(
        type="handoff.enqueued",
        aggregate_type=HANDOFF_AGGREGATE,
        aggregate_id=payload.id,
        data=_payload_summary(payload),
    )


def create_handoff_dropped_event(payload: HandoffPayload, reason: str) -> BaseEvent:
    """Factory for a dropped payload.

    Args:
        payload: The discarded payload.
        reason: "unroutable" or "depth_exceeded".
    """
    return BaseEvent(
        type="handoff.dropped",
        aggregate_type=HANDOFF_AGGREGATE,
        aggregate_id=payload.id,
        data={**_payload_summary(payload), "reason": reason},
    )


def create_handoff_consumed_event(
    payload: HandoffPayload,
    task_id: str,
    depth: int,
) -> BaseEvent:
    return BaseEvent(
        type="handoff.consumed",
        aggregate_type=HANDOFF_AGGREGATE,
        aggregate_id=payload.id,
        data={**_payload_summary(payload), "task_id": task_id, "depth": depth},
    )
