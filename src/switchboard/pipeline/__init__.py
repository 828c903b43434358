"""The four-stage agent pipeline."""

from switchboard.pipeline.runner import (
    PipelineRun,
    PipelineRunner,
    ProgressCallback,
    RunResult,
    StageRecord,
    new_run_id,
    validate_context,
)
from switchboard.pipeline.stages import NEXT_STAGE, Finding, can_transition, order_findings

__all__ = [
    "NEXT_STAGE",
    "Finding",
    "PipelineRun",
    "PipelineRunner",
    "ProgressCallback",
    "RunResult",
    "StageRecord",
    "can_transition",
    "new_run_id",
    "order_findings",
    "validate_context",
]
