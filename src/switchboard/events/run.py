"""Event definitions for pipeline run lifecycle.

- run.submitted: the dispatcher accepted a task and bound it to an agent
- run.stage.advanced: a run moved to its next stage
- run.completed: a run reached DONE
- run.failed: a run reached FAILED
"""

from __future__ import annotations

from collections.abc import Iterable

from switchboard.events.base import BaseEvent

RUN_AGGREGATE = "run"


def create_run_submitted_event(
    run_id: str,
    task_id: str,
    agent_id: str,
    origin: str,
    depth: int,
    context_keys: Iterable[str],
) -> BaseEvent:
    """Factory for run submission.

    Only the context's keys are recorded; values are caller data and stay
    out of the journal.
    """
    return BaseEvent(
        type="run.submitted",
        aggregate_type=RUN_AGGREGATE,
        aggregate_id=run_id,
        data={
            "task_id": task_id,
            "agent_id": agent_id,
            "origin": origin,
            "depth": depth,
            "context_keys": sorted(context_keys),
        },
    )


def create_stage_advanced_event(
    run_id: str,
    from_stage: str,
    to_stage: str,
) -> BaseEvent:
    return BaseEvent(
        type="run.stage.advanced",
        aggregate_type=RUN_AGGREGATE,
        aggregate_id=run_id,
        data={"from_stage": from_stage, "to_stage": to_stage},
    )


def create_run_completed_event(
    run_id: str,
    finding_count: int,
    handoff_count: int,
) -> BaseEvent:
    return BaseEvent(
        type="run.completed",
        aggregate_type=RUN_AGGREGATE,
        aggregate_id=run_id,
        data={"finding_count": finding_count, "handoff_count": handoff_count},
    )


def create_run_failed_event(
    run_id: str,
    stage: str,
    error_type: str,
    error_message: str,
) -> BaseEvent:
    """Factory for run failure.

    Args:
        run_id: Failed run.
        stage: Stage the run was in when it failed.
        error_type: Exception class name, e.g. "StageTimeoutError".
        error_message: Human-readable error message.
    """
    return BaseEvent(
        type="run.failed",
        aggregate_type=RUN_AGGREGATE,
        aggregate_id=run_id,
        data={
            "stage": stage,
            "error_type": error_type,
            "error_message": error_message,
        },
    )
