"""Four-stage pipeline runner.

One PipelineRunner drives one run of one agent over one task:

    ANALYZE -> ASSESS -> RECOMMEND -> DELIVER -> DONE
         \\________\\__________\\__________\\____> FAILED

- Analyze:   validate the context, ask the backend for an understanding
- Assess:    ask for findings, order them by severity then rubric
- Recommend: ask for remediations, drop unremediated findings below high
- Deliver:   ask for the deliverable, convert qualifying findings to handoffs

The awaited backend call is the only suspension point of a stage, and each
call runs under its stage's timeout. Any error ends the run in FAILED with
the error recorded; nothing is retried and no partial result is exposed.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from switchboard.agents.models import AgentSpec
from switchboard.backends.base import StageBackend
from switchboard.config.models import StageTimeoutConfig
from switchboard.core.enums import Severity, Stage
from switchboard.core.errors import (
    BackendError,
    MalformedContextError,
    RunCancelledError,
    RunError,
    StageTimeoutError,
)
from switchboard.core.types import Artifact
from switchboard.observability.logging import bind_context, get_logger
from switchboard.pipeline.stages import Finding, can_transition, order_findings
from switchboard.routing.models import HandoffPayload, Task

log = get_logger(__name__)

ProgressCallback = Callable[["PipelineRun", Stage, Stage], Awaitable[None]]
"""Awaited after every transition with (run, from_stage, to_stage)."""


def new_run_id() -> str:
    return f"run-{uuid4().hex[:12]}"


def validate_context(context: object) -> dict[str, Any]:
    """Return a plain copy of a task context.

    Raises:
        MalformedContextError: If the context is not a mapping with string keys.
    """
    if not isinstance(context, Mapping):
        raise MalformedContextError(
            f"Task context must be a mapping, got {type(context).__name__}",
            stage=Stage.ANALYZE.value,
        )
    bad_keys = [repr(k) for k in context if not isinstance(k, str)]
    if bad_keys:
        raise MalformedContextError(
            "Task context keys must be strings",
            stage=Stage.ANALYZE.value,
            details={"keys": bad_keys},
        )
    return dict(context)


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class StageRecord:
    stage: Stage
    entered_at: datetime


@dataclass(frozen=True, slots=True)
class RunResult:
    """Final outcome of a run that reached DONE.

    Attributes:
        understanding: Analyze artifact.
        findings: Findings kept after Recommend, in priority order.
        deliverable: Deliver artifact.
        handoffs: Payloads produced at Deliver.
    """

    understanding: Artifact
    findings: tuple[Finding, ...]
    deliverable: Artifact
    handoffs: tuple[HandoffPayload, ...] = ()


@dataclass
class PipelineRun:
    """Mutable state of one run, owned by its PipelineRunner."""

    run_id: str
    task: Task
    agent: AgentSpec
    stage: Stage = Stage.ANALYZE
    started_at: datetime = field(default_factory=_now)
    finished_at: datetime | None = None
    result: RunResult | None = None
    error: RunError | None = None
    history: list[StageRecord] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.history:
            self.history.append(StageRecord(self.stage, self.started_at))

    @property
    def stage_sequence(self) -> tuple[Stage, ...]:
        """Every stage the run has been in, in order."""
        return tuple(record.stage for record in self.history)

    @property
    def is_terminal(self) -> bool:
        return self.stage.is_terminal


class PipelineRunner:
    """Drives one agent through the four stages for one task.

    Example:
        runner = PipelineRunner(agent, task, backend)
        run = await runner.execute()
        if run.stage is Stage.DONE:
            handoffs = run.result.handoffs
    """

    def __init__(
        self,
        agent: AgentSpec,
        task: Task,
        backend: StageBackend,
        *,
        run_id: str | None = None,
        timeouts: StageTimeoutConfig | None = None,
        progress_callback: ProgressCallback | None = None,
        capability_exists: Callable[[str], bool] | None = None,
    ) -> None:
        self._agent = agent
        self._task = task
        self._backend = backend
        self._timeouts = timeouts or StageTimeoutConfig()
        self._progress_callback = progress_callback
        self._capability_exists = capability_exists
        self._run = PipelineRun(run_id=run_id or new_run_id(), task=task, agent=agent)
        self._cancel_requested = False
        self._inflight: asyncio.Future[Artifact] | None = None

    @property
    def run(self) -> PipelineRun:
        return self._run

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def request_cancel(self) -> bool:
        """Ask the run to stop.

        Only honored before DELIVER. The run then ends in FAILED with
        RunCancelledError at its next suspension point.

        Returns:
            True if the request was accepted, False at or after DELIVER.
        """
        stage = self._run.stage
        if stage is Stage.DELIVER or stage.is_terminal:
            return False
        self._cancel_requested = True
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        return True

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def _transition(self, target: Stage) -> None:
        current = self._run.stage
        if not can_transition(current, target):
            msg = f"Illegal transition {current.value} -> {target.value}"
            raise RuntimeError(msg)

        self._run.stage = target
        self._run.history.append(StageRecord(target, _now()))
        if target.is_terminal:
            self._run.finished_at = self._run.history[-1].entered_at

        log.debug(
            "pipeline.stage.advanced",
            from_stage=current.value,
            to_stage=target.value,
        )
        if self._progress_callback is not None:
            try:
                await self._progress_callback(self._run, current, target)
            except Exception as e:
                log.warning(
                    "pipeline.progress_callback.failed",
                    to_stage=target.value,
                    error=str(e),
                )

    async def _advance(self, target: Stage) -> None:
        """Move forward, unless a cancel request is pending."""
        if self._cancel_requested:
            raise RunCancelledError("Run cancelled", stage=self._run.stage.value)
        await self._transition(target)

    # ------------------------------------------------------------------
    # Backend calls
    # ------------------------------------------------------------------

    async def _call_backend(self, stage: Stage, context: Mapping[str, Any]) -> Artifact:
        if self._cancel_requested:
            raise RunCancelledError("Run cancelled", stage=stage.value)

        timeout = self._timeouts.for_stage(stage)
        call = asyncio.ensure_future(self._backend.invoke(stage, self._agent.id, context))
        self._inflight = call
        try:
            artifact = await asyncio.wait_for(call, timeout=timeout)
        except TimeoutError as e:
            if not call.cancelled():
                # The backend raised TimeoutError itself
                raise BackendError.from_exception(e, stage=stage.value) from e
            raise StageTimeoutError(stage.value, timeout or 0.0) from e
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if self._cancel_requested and (current is None or current.cancelling() == 0):
                raise RunCancelledError("Run cancelled", stage=stage.value) from None
            raise
        finally:
            self._inflight = None

        if not isinstance(artifact, Mapping):
            raise BackendError(
                f"Backend returned {type(artifact).__name__}, expected a mapping",
                stage=stage.value,
            )
        return artifact

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _validated_context(self) -> dict[str, Any]:
        return validate_context(self._task.context)

    async def _analyze(self, context: dict[str, Any]) -> Artifact:
        return await self._call_backend(Stage.ANALYZE, context)

    async def _assess(
        self, context: dict[str, Any], understanding: Artifact
    ) -> tuple[Finding, ...]:
        artifact = await self._call_backend(
            Stage.ASSESS,
            {"task": context, "understanding": dict(understanding)},
        )
        raw = artifact.get("findings", [])
        if not isinstance(raw, list):
            raise BackendError("Assess artifact 'findings' must be a list", stage="assess")
        return order_findings(Finding.from_artifact(item, index=i) for i, item in enumerate(raw))

    async def _recommend(
        self, context: dict[str, Any], findings: tuple[Finding, ...]
    ) -> tuple[Finding, ...]:
        artifact = await self._call_backend(
            Stage.RECOMMEND,
            {"task": context, "findings": [f.to_dict() for f in findings]},
        )
        remediations = artifact.get("remediations", {})
        if not isinstance(remediations, Mapping):
            raise BackendError(
                "Recommend artifact 'remediations' must be an object", stage="recommend"
            )

        kept = []
        for finding in findings:
            remediation = remediations.get(finding.id)
            if remediation is not None:
                kept.append(finding.with_remediation(remediation))
            elif finding.severity.at_least(Severity.HIGH):
                kept.append(finding)
        return tuple(kept)

    async def _deliver(
        self,
        context: dict[str, Any],
        understanding: Artifact,
        findings: tuple[Finding, ...],
    ) -> RunResult:
        deliverable = await self._call_backend(
            Stage.DELIVER,
            {
                "task": context,
                "understanding": dict(understanding),
                "findings": [f.to_dict() for f in findings],
            },
        )
        return RunResult(
            understanding=understanding,
            findings=findings,
            deliverable=deliverable,
            handoffs=self.build_handoffs(findings),
        )

    def _target_for(self, finding: Finding) -> str | None:
        rule = self._agent.rule_for(finding.category)
        if rule is not None:
            if not finding.severity.at_least(rule.min_severity):
                return None
            return rule.target_capability
        category = finding.category.value
        if self._capability_exists is not None and self._capability_exists(category):
            return category
        return None

    def build_handoffs(self, findings: tuple[Finding, ...]) -> tuple[HandoffPayload, ...]:
        """Convert qualifying findings into handoff payloads.

        A finding qualifies when it is at least high severity and has a
        target: its explicit ``target_capability``, else the agent's rule for
        its category, else the category itself when ``capability_exists``
        says some agent provides it. Targets the agent itself provides are
        skipped. Payload fields are limited to the agent's handoff schema.
        """
        payloads = []
        for finding in findings:
            if not finding.severity.at_least(Severity.HIGH):
                continue
            target = finding.target_capability
            if target is None:
                target = self._target_for(finding)
                if target is None:
                    continue
            if self._agent.has_capability(target):
                continue

            candidates = {
                **finding.fields,
                "finding_id": finding.id,
                "category": finding.category.value,
                "summary": finding.summary,
                "recommendation": finding.remediation,
            }
            fields = {
                key: value
                for key, value in candidates.items()
                if key in self._agent.handoff_schema and value is not None
            }
            payloads.append(
                HandoffPayload(
                    source_agent_id=self._agent.id,
                    target_capability=target,
                    severity=finding.severity,
                    fields=fields,
                    origin_task_id=self._task.id,
                )
            )
        return tuple(payloads)

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------

    async def _fail(self, error: RunError) -> None:
        if error.stage is None:
            error.stage = self._run.stage.value
        self._run.error = error
        log.warning(
            "pipeline.run.failed",
            stage=self._run.stage.value,
            error_type=type(error).__name__,
            error=error.message,
        )
        await self._transition(Stage.FAILED)

    async def abort(self, error: RunError) -> None:
        """Fail a run that never got to execute (or has not finished)."""
        if not self._run.is_terminal:
            await self._fail(error)

    async def execute(self) -> PipelineRun:
        """Run the pipeline to a terminal stage.

        Per-run errors are recorded on the returned run, never raised.
        Cancellation of the surrounding asyncio task is recorded as
        RunCancelledError and then propagated.
        """
        if self._run.is_terminal:
            return self._run

        bind_context(
            run_id=self._run.run_id,
            task_id=self._task.id,
            agent_id=self._agent.id,
            depth=self._task.depth,
        )
        log.info("pipeline.run.started", origin=self._task.origin.value)

        try:
            if self._cancel_requested:
                raise RunCancelledError("Run cancelled", stage=Stage.ANALYZE.value)
            context = self._validated_context()
            understanding = await self._analyze(context)

            await self._advance(Stage.ASSESS)
            findings = await self._assess(context, understanding)

            await self._advance(Stage.RECOMMEND)
            findings = await self._recommend(context, findings)

            await self._advance(Stage.DELIVER)
            result = await self._deliver(context, understanding, findings)

            self._run.result = result
            await self._transition(Stage.DONE)
            log.info(
                "pipeline.run.completed",
                finding_count=len(result.findings),
                handoff_count=len(result.handoffs),
            )
        except RunError as e:
            await self._fail(e)
        except asyncio.CancelledError:
            await self._fail(RunCancelledError("Run task cancelled"))
            raise
        except Exception as e:
            await self._fail(BackendError.from_exception(e, stage=self._run.stage.value))

        return self._run


__all__ = [
    "PipelineRun",
    "PipelineRunner",
    "ProgressCallback",
    "RunResult",
    "StageRecord",
    "new_run_id",
    "validate_context",
]
