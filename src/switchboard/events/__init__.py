"""Lifecycle events for the run journal."""

from switchboard.events.base import BaseEvent
from switchboard.events.handoff import (
    HANDOFF_AGGREGATE,
    create_handoff_consumed_event,
    create_handoff_dropped_event,
    create_handoff_enqueued_event,
)
from switchboard.events.run import (
    RUN_AGGREGATE,
    create_run_completed_event,
    create_run_failed_event,
    create_run_submitted_event,
    create_stage_advanced_event,
)

__all__ = [
    "BaseEvent",
    "HANDOFF_AGGREGATE",
    "RUN_AGGREGATE",
    "create_handoff_consumed_event",
    "create_handoff_dropped_event",
    "create_handoff_enqueued_event",
    "create_run_completed_event",
    "create_run_failed_event",
    "create_run_submitted_event",
    "create_stage_advanced_event",
]
