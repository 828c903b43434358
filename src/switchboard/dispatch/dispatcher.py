"""Dispatcher: the caller-facing coordinator.

Accepts tasks, picks the agent for each, runs pipelines concurrently, and
moves handoff payloads through the queue into derived tasks.

Every public operation returns a Result. Expected failures (duplicate
submission, no matching agent, unroutable handoff, depth exceeded) are
values; per-run failures are recorded on the run and surfaced by
``status``. Nothing here raises for a misbehaving agent or backend.

Usage:
    dispatcher = Dispatcher(registry, backend)

    task = Task.user_request({"lang": "rust", "has_unsafe_block": True})
    result = await dispatcher.submit(task)
    if result.is_ok:
        status = (await dispatcher.wait(result.value)).value

    drained = await dispatcher.drain_handoffs(max_depth=3)
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from switchboard.agents.loader import load_registry
from switchboard.agents.models import AgentSpec
from switchboard.agents.registry import AgentRegistry
from switchboard.backends.base import PermissionGuard, StageBackend, ToolPermissionSource
from switchboard.config.models import (
    DispatcherConfig,
    StageTimeoutConfig,
    SwitchboardConfig,
    get_config_dir,
)
from switchboard.core.enums import Stage
from switchboard.core.errors import (
    DuplicateTaskError,
    EmptyQueueError,
    HandoffDepthExceededError,
    MalformedContextError,
    NoMatchingAgentError,
    PersistenceError,
    RoutingError,
    RunCancelledError,
    RunError,
    SwitchboardError,
    UnknownRunError,
)
from switchboard.core.types import Result
from switchboard.events import (
    BaseEvent,
    create_handoff_consumed_event,
    create_handoff_dropped_event,
    create_handoff_enqueued_event,
    create_run_completed_event,
    create_run_failed_event,
    create_run_submitted_event,
    create_stage_advanced_event,
)
from switchboard.observability.logging import get_logger
from switchboard.persistence.event_store import EventStore, database_url_for
from switchboard.pipeline.runner import (
    PipelineRun,
    PipelineRunner,
    RunResult,
    validate_context,
)
from switchboard.routing.matcher import TriggerMatcher
from switchboard.routing.models import HandoffPayload, Task
from switchboard.routing.queue import HandoffQueue

log = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class RunStatus:
    """Point-in-time view of a run.

    Attributes:
        run_id: Run identifier.
        task_id: Task the run belongs to.
        agent_id: Agent chosen for the task.
        stage: Current (or terminal) stage.
        stage_sequence: Every stage observed so far, in order.
        depth: Handoff hop count of the task.
        started_at: When the run was created.
        finished_at: When the run reached a terminal stage.
        error: Recorded error if the run FAILED.
        result: Run result if the run reached DONE.
    """

    run_id: str
    task_id: str
    agent_id: str
    stage: Stage
    stage_sequence: tuple[Stage, ...]
    depth: int
    started_at: datetime
    finished_at: datetime | None
    error: RunError | None
    result: RunResult | None

    @property
    def is_terminal(self) -> bool:
        return self.stage.is_terminal

    @property
    def succeeded(self) -> bool:
        return self.stage is Stage.DONE

    @classmethod
    def from_run(cls, run: PipelineRun) -> RunStatus:
        return cls(
            run_id=run.run_id,
            task_id=run.task.id,
            agent_id=run.agent.id,
            stage=run.stage,
            stage_sequence=run.stage_sequence,
            depth=run.task.depth,
            started_at=run.started_at,
            finished_at=run.finished_at,
            error=run.error,
            result=run.result,
        )


class Dispatcher:
    """Routes tasks to agents and coordinates handoff chains.

    Runs execute as asyncio tasks, bounded by ``max_concurrent_runs``. A task
    id has at most one live run; the check and the registration happen with
    no await in between. Finished runs stay queryable through ``status``
    until more than ``max_retained_runs`` are held; the oldest are forgotten
    first.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        backend: StageBackend,
        *,
        queue: HandoffQueue | None = None,
        config: DispatcherConfig | None = None,
        timeouts: StageTimeoutConfig | None = None,
        permission_source: ToolPermissionSource | None = None,
        event_store: EventStore | None = None,
    ) -> None:
        self._registry = registry
        self._matcher = TriggerMatcher(registry)
        self._backend = PermissionGuard(backend, registry, permission_source)
        self._queue = queue if queue is not None else HandoffQueue()
        self._config = config or DispatcherConfig()
        self._timeouts = timeouts or StageTimeoutConfig()
        self._event_store = event_store
        self._owns_event_store = False
        self._semaphore = asyncio.Semaphore(self._config.max_concurrent_runs)

        self._live: dict[str, PipelineRunner] = {}
        self._runners: dict[str, PipelineRunner] = {}
        self._tasks: dict[str, asyncio.Task[PipelineRun]] = {}
        self._task_depth: dict[str, int] = {}
        self._closed = False

        log.info(
            "dispatch.dispatcher.initialized",
            agent_count=len(registry),
            max_concurrent_runs=self._config.max_concurrent_runs,
            journal_enabled=event_store is not None,
        )

    @classmethod
    async def from_config(
        cls,
        config: SwitchboardConfig,
        backend: StageBackend | None = None,
        *,
        registry: AgentRegistry | None = None,
    ) -> Dispatcher:
        """Build a dispatcher from configuration.

        Loads the routing table (unless a registry is given), creates the
        LiteLLM backend (unless one is given), and opens the event journal
        when persistence is enabled.

        Raises:
            ConfigError: If the routing table cannot be loaded.
        """
        if registry is None:
            table = config.routing.table_path
            registry = load_registry(Path(table) if table else None)
        if backend is None:
            from switchboard.backends.llm import LiteLLMStageBackend

            backend = LiteLLMStageBackend(config.backend, registry=registry)

        event_store = None
        if config.persistence.enabled:
            db_path = get_config_dir() / config.persistence.database_path
            event_store = EventStore(database_url_for(db_path))
            await event_store.initialize()

        dispatcher = cls(
            registry,
            backend,
            config=config.dispatcher,
            timeouts=config.stages,
            event_store=event_store,
        )
        dispatcher._owns_event_store = event_store is not None
        return dispatcher

    @property
    def registry(self) -> AgentRegistry:
        return self._registry

    @property
    def queue(self) -> HandoffQueue:
        return self._queue

    # ------------------------------------------------------------------
    # Journal
    # ------------------------------------------------------------------

    async def _journal(self, event: BaseEvent) -> None:
        """Append to the event store; failures are logged, never raised."""
        if self._event_store is None:
            return
        try:
            await self._event_store.append(event)
        except PersistenceError as e:
            log.warning(
                "dispatch.journal.append_failed",
                event_type=event.type,
                aggregate_id=event.aggregate_id,
                error=e.message,
            )

    async def _on_progress(self, run: PipelineRun, from_stage: Stage, to_stage: Stage) -> None:
        await self._journal(
            create_stage_advanced_event(run.run_id, from_stage.value, to_stage.value)
        )
        if to_stage is Stage.DONE and run.result is not None:
            await self._journal(
                create_run_completed_event(
                    run.run_id,
                    finding_count=len(run.result.findings),
                    handoff_count=len(run.result.handoffs),
                )
            )
        elif to_stage is Stage.FAILED and run.error is not None:
            await self._journal(
                create_run_failed_event(
                    run.run_id,
                    stage=from_stage.value,
                    error_type=type(run.error).__name__,
                    error_message=run.error.message,
                )
            )

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def _resolve(self, task: Task) -> Result[AgentSpec, SwitchboardError]:
        if task.is_handoff:
            capability = task.target_capability or ""
            agent = self._registry.find_by_capability(capability).first()
            if agent is None:
                return Result.err(RoutingError(capability))
            return Result.ok(agent)

        match = self._matcher.first_match(task)
        if match is None:
            return Result.err(NoMatchingAgentError(task.id))
        return Result.ok(match)

    async def submit(
        self,
        task: Task,
        *,
        timeouts: StageTimeoutConfig | None = None,
    ) -> Result[str, SwitchboardError]:
        """Start a run for ``task``.

        Args:
            task: Task to route.
            timeouts: Per-stage timeouts overriding the configured defaults.

        Returns:
            Ok(run_id), or Err with DuplicateTaskError while the task id has a
            live run, MalformedContextError if the context is not a mapping
            with string keys, NoMatchingAgentError if no trigger matches, or
            RoutingError if a handoff task's capability has no provider.
        """
        if self._closed:
            return Result.err(SwitchboardError("Dispatcher is closed"))

        live = self._live.get(task.id)
        if live is not None:
            log.warning(
                "dispatch.submit.duplicate",
                task_id=task.id,
                run_id=live.run.run_id,
            )
            return Result.err(DuplicateTaskError(task.id, run_id=live.run.run_id))

        try:
            validate_context(task.context)
        except MalformedContextError as e:
            log.warning("dispatch.submit.malformed_context", task_id=task.id, error=e.message)
            return Result.err(e)

        resolved = self._resolve(task)
        if resolved.is_err:
            log.info(
                "dispatch.submit.unmatched",
                task_id=task.id,
                origin=task.origin.value,
                error=str(resolved.error),
            )
            return Result.err(resolved.error)
        agent = resolved.value

        runner = PipelineRunner(
            agent,
            task,
            self._backend,
            timeouts=timeouts or self._timeouts,
            progress_callback=self._on_progress,
            capability_exists=self._registry.has_capability,
        )
        run_id = runner.run.run_id
        self._live[task.id] = runner
        self._runners[run_id] = runner
        self._task_depth[task.id] = task.depth
        self._tasks[run_id] = asyncio.create_task(self._execute(runner), name=run_id)
        self._prune_finished()

        log.info(
            "dispatch.run.submitted",
            task_id=task.id,
            run_id=run_id,
            agent_id=agent.id,
            origin=task.origin.value,
            depth=task.depth,
        )
        return Result.ok(run_id)

    def _prune_finished(self) -> None:
        """Forget the oldest finished runs beyond ``max_retained_runs``."""
        excess = len(self._runners) - self._config.max_retained_runs
        if excess <= 0:
            return
        finished = [run_id for run_id, task in self._tasks.items() if task.done()][:excess]
        for run_id in finished:
            runner = self._runners.pop(run_id)
            del self._tasks[run_id]
            task_id = runner.run.task.id
            if task_id not in self._live and not any(
                r.run.task.id == task_id for r in self._runners.values()
            ):
                self._task_depth.pop(task_id, None)
        log.debug("dispatch.runs.pruned", pruned=len(finished), retained=len(self._runners))

    async def _execute(self, runner: PipelineRunner) -> PipelineRun:
        run = runner.run
        try:
            context = run.task.context
            context_keys = [str(k) for k in context] if isinstance(context, Mapping) else []
            await self._journal(
                create_run_submitted_event(
                    run.run_id,
                    task_id=run.task.id,
                    agent_id=run.agent.id,
                    origin=run.task.origin.value,
                    depth=run.task.depth,
                    context_keys=context_keys,
                )
            )
            async with self._semaphore:
                await runner.execute()

            if run.stage is Stage.DONE and run.result is not None:
                for payload in run.result.handoffs:
                    await self.enqueue_handoff(payload)
            return run
        except asyncio.CancelledError:
            await runner.abort(RunCancelledError("Dispatcher closed"))
            raise
        finally:
            if self._live.get(run.task.id) is runner:
                del self._live[run.task.id]

    # ------------------------------------------------------------------
    # Run queries and control
    # ------------------------------------------------------------------

    def status(self, run_id: str) -> Result[RunStatus, UnknownRunError]:
        runner = self._runners.get(run_id)
        if runner is None:
            return Result.err(UnknownRunError(run_id))
        return Result.ok(RunStatus.from_run(runner.run))

    async def wait(self, run_id: str) -> Result[RunStatus, UnknownRunError]:
        """Wait for a run to reach a terminal stage and return its status."""
        task = self._tasks.get(run_id)
        runner = self._runners.get(run_id)
        if task is None or runner is None:
            return Result.err(UnknownRunError(run_id))
        await asyncio.wait({task})
        return Result.ok(RunStatus.from_run(runner.run))

    async def run(
        self,
        task: Task,
        *,
        timeouts: StageTimeoutConfig | None = None,
    ) -> Result[RunStatus, SwitchboardError]:
        """Submit a task and wait for its run to finish."""
        submitted = await self.submit(task, timeouts=timeouts)
        if submitted.is_err:
            return Result.err(submitted.error)
        waited = await self.wait(submitted.value)
        if waited.is_err:
            return Result.err(waited.error)
        return Result.ok(waited.value)

    def cancel(self, run_id: str) -> Result[bool, UnknownRunError]:
        """Cancel a run.

        Returns:
            Ok(True) if the run will end FAILED with RunCancelledError,
            Ok(False) if it is already at or past DELIVER.
        """
        runner = self._runners.get(run_id)
        if runner is None:
            return Result.err(UnknownRunError(run_id))
        accepted = runner.request_cancel()
        log.info("dispatch.run.cancel_requested", run_id=run_id, accepted=accepted)
        return Result.ok(accepted)

    def live_runs(self) -> dict[str, str]:
        """Map of task id to run id for every live run."""
        return {task_id: runner.run.run_id for task_id, runner in self._live.items()}

    # ------------------------------------------------------------------
    # Handoffs
    # ------------------------------------------------------------------

    async def _drop(self, payload: HandoffPayload, reason: str) -> None:
        await self._journal(create_handoff_dropped_event(payload, reason))

    async def enqueue_handoff(self, payload: HandoffPayload) -> Result[None, RoutingError]:
        """Validate and enqueue a handoff payload.

        A payload whose target capability no agent provides is dropped and
        reported; the queue is left unchanged.
        """
        if not self._registry.has_capability(payload.target_capability):
            error = RoutingError(payload.target_capability, payload_id=payload.id)
            log.error(
                "dispatch.handoff.dropped",
                reason="unroutable",
                payload_id=payload.id,
                source_agent_id=payload.source_agent_id,
                target_capability=payload.target_capability,
            )
            await self._drop(payload, "unroutable")
            return Result.err(error)

        self._queue.enqueue(payload)
        await self._journal(create_handoff_enqueued_event(payload))
        log.info(
            "dispatch.handoff.enqueued",
            payload_id=payload.id,
            source_agent_id=payload.source_agent_id,
            target_capability=payload.target_capability,
            severity=payload.severity.value,
        )
        return Result.ok(None)

    async def drain_handoffs(
        self, max_depth: int | None = None
    ) -> Result[int, SwitchboardError]:
        """Process queued handoffs, one hop per payload, up to ``max_depth`` hops.

        Each hop dequeues the best eligible payload, derives a HANDOFF task
        bound to its target capability, runs it to completion and releases
        the payload's route.

        Args:
            max_depth: Hop limit. Defaults to ``dispatcher.default_max_depth``.

        Returns:
            Ok(number of payloads processed) once nothing eligible is left,
            including when the remaining payloads wait on routes another
            drain has in flight. Err(RoutingError) if a dequeued payload
            could not be routed. Err(HandoffDepthExceededError) if all
            ``max_depth`` hops were used and payloads remain; the payloads
            produced by this drain's derived tasks are then dropped, and
            everything else stays queued.

        Raises:
            ValueError: If max_depth is negative.
        """
        if max_depth is None:
            max_depth = self._config.default_max_depth
        if max_depth < 0:
            msg = f"max_depth must be >= 0, got {max_depth}"
            raise ValueError(msg)

        derived: set[str] = set()
        processed = 0
        hops = 0

        while hops < max_depth:
            try:
                payload = self._queue.dequeue()
            except EmptyQueueError:
                break
            hops += 1

            try:
                depth = self._task_depth.get(payload.origin_task_id or "", 0) + 1
                task = Task.from_handoff(payload, depth=depth)
                submitted = await self.submit(task)
                if submitted.is_err:
                    log.error(
                        "dispatch.handoff.dropped",
                        reason="unroutable",
                        payload_id=payload.id,
                        target_capability=payload.target_capability,
                        error=str(submitted.error),
                    )
                    await self._drop(payload, "unroutable")
                    return Result.err(submitted.error)

                derived.add(task.id)
                await self._journal(create_handoff_consumed_event(payload, task.id, depth))
                log.info(
                    "dispatch.handoff.consumed",
                    payload_id=payload.id,
                    task_id=task.id,
                    run_id=submitted.value,
                    depth=depth,
                )
                await self.wait(submitted.value)
                processed += 1
            finally:
                self._queue.release(payload)

        pending = len(self._queue)
        if pending == 0 or hops < max_depth:
            if pending:
                log.info(
                    "dispatch.handoff.drain_blocked",
                    processed=processed,
                    pending=pending,
                    in_flight=len(self._queue.in_flight()),
                )
            return Result.ok(processed)

        dropped = self._queue.discard(lambda p: p.origin_task_id in derived)
        for payload in dropped:
            await self._drop(payload, "depth_exceeded")
        log.error(
            "dispatch.handoff.depth_exceeded",
            max_depth=max_depth,
            processed=processed,
            pending=pending,
            dropped=len(dropped),
        )
        return Result.err(
            HandoffDepthExceededError(max_depth, pending=pending, dropped=len(dropped))
        )

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Cancel live runs, wait for them to settle, and close an owned journal."""
        self._closed = True
        tasks = [self._tasks[runner.run.run_id] for runner in self._live.values()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self._owns_event_store and self._event_store is not None:
            await self._event_store.close()
        log.info("dispatch.dispatcher.closed", cancelled=len(tasks))


__all__ = ["Dispatcher", "RunStatus"]
