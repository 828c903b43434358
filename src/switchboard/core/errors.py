"""Error hierarchy for Switchboard.

Exceptions are raised for startup failures and programming bugs, and are
carried as the error type of Result for expected failures at the dispatch
boundary.

Exception Hierarchy:
    SwitchboardError (base)
    ├── ConfigError                - Configuration and routing-table issues
    ├── RegistryError
    │   ├── DuplicateAgentError    - Agent id registered twice
    │   └── UnknownAgentError      - Agent id not registered
    ├── SubmissionError
    │   ├── NoMatchingAgentError   - No trigger matched the task context
    │   ├── DuplicateTaskError     - Task id already has a live run
    │   └── UnknownRunError        - Run id not known to the dispatcher
    ├── RunError                   - Terminates a single pipeline run
    │   ├── MalformedContextError
    │   ├── StageTimeoutError
    │   ├── PermissionDeniedError
    │   ├── BackendError
    │   └── RunCancelledError
    ├── HandoffError               - Reported to the operator, payload dropped
    │   ├── RoutingError
    │   └── HandoffDepthExceededError
    ├── EmptyQueueError
    └── PersistenceError
"""

from __future__ import annotations

from typing import Any


class SwitchboardError(Exception):
    """Base exception for all Switchboard errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dict with additional context.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


class ConfigError(SwitchboardError):
    """Error from configuration or routing-table loading.

    Attributes:
        config_key: The configuration key that caused the error.
        config_file: Path to the config file if applicable.
    """

    def __init__(
        self,
        message: str,
        *,
        config_key: str | None = None,
        config_file: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.config_key = config_key
        self.config_file = config_file


# =============================================================================
# Registry
# =============================================================================


class RegistryError(SwitchboardError):
    """Base for agent registry errors. Fatal at startup."""

    def __init__(
        self,
        message: str,
        *,
        agent_id: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.agent_id = agent_id


class DuplicateAgentError(RegistryError):
    """An agent with the same id is already registered."""


class UnknownAgentError(RegistryError):
    """No agent with the requested id is registered."""


# =============================================================================
# Submission
# =============================================================================


class SubmissionError(SwitchboardError):
    """Base for errors surfaced to the submitter of a task."""


class NoMatchingAgentError(SubmissionError):
    """No registered agent's trigger matched the task context."""

    def __init__(self, task_id: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(f"No agent matches task {task_id}", details)
        self.task_id = task_id


class DuplicateTaskError(SubmissionError):
    """A live run already exists for the task id."""

    def __init__(self, task_id: str, *, run_id: str) -> None:
        super().__init__(
            f"Task {task_id} already has a live run",
            {"run_id": run_id},
        )
        self.task_id = task_id
        self.run_id = run_id


class UnknownRunError(SubmissionError):
    """The dispatcher has no record of the run id."""

    def __init__(self, run_id: str) -> None:
        super().__init__(f"Unknown run: {run_id}")
        self.run_id = run_id


# =============================================================================
# Per-run failures
# =============================================================================


class RunError(SwitchboardError):
    """Base for errors that terminate one pipeline run.

    Attributes:
        stage: Value of the stage the run was in when the error occurred.
    """

    def __init__(
        self,
        message: str,
        *,
        stage: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.stage = stage


class MalformedContextError(RunError):
    """Task context (or a stage artifact derived from it) is not well formed."""


class StageTimeoutError(RunError):
    """A stage exceeded its timeout."""

    def __init__(self, stage: str, timeout_seconds: float) -> None:
        super().__init__(
            f"Stage {stage} exceeded {timeout_seconds}s",
            stage=stage,
            details={"timeout_seconds": timeout_seconds},
        )
        self.timeout_seconds = timeout_seconds


class PermissionDeniedError(RunError):
    """A backend call needed effects outside the agent's tool permissions.

    Attributes:
        agent_id: Agent whose call was denied.
        denied: Effect categories that were not allowed.
    """

    def __init__(self, agent_id: str, *, stage: str, denied: frozenset[str]) -> None:
        super().__init__(
            f"Agent {agent_id} is not permitted: {', '.join(sorted(denied))}",
            stage=stage,
            details={"denied": sorted(denied)},
        )
        self.agent_id = agent_id
        self.denied = denied


class BackendError(RunError):
    """The stage backend failed or returned an unusable artifact."""

    @classmethod
    def from_exception(cls, exc: Exception, *, stage: str) -> BackendError:
        """Wrap an arbitrary backend exception, keeping it as __cause__."""
        error = cls(
            str(exc) or type(exc).__name__,
            stage=stage,
            details={"original_exception": type(exc).__name__},
        )
        error.__cause__ = exc
        return error


class RunCancelledError(RunError):
    """The run was cancelled before reaching Deliver."""


# =============================================================================
# Handoff routing
# =============================================================================


class HandoffError(SwitchboardError):
    """Base for handoff routing errors reported to the operator."""


class RoutingError(HandoffError):
    """No registered agent provides the payload's target capability."""

    def __init__(self, target_capability: str, *, payload_id: str | None = None) -> None:
        super().__init__(
            f"No agent provides capability '{target_capability}'",
            {"payload_id": payload_id} if payload_id else None,
        )
        self.target_capability = target_capability
        self.payload_id = payload_id


class HandoffDepthExceededError(HandoffError):
    """Handoffs were still pending after the allowed number of hops."""

    def __init__(self, max_depth: int, *, pending: int, dropped: int = 0) -> None:
        super().__init__(
            f"Handoff chain exceeded max depth {max_depth}",
            {"pending": pending, "dropped": dropped},
        )
        self.max_depth = max_depth
        self.pending = pending
        self.dropped = dropped


class EmptyQueueError(SwitchboardError):
    """No eligible handoff payload is pending."""


class PersistenceError(SwitchboardError):
    """Error from event journal operations.

    Attributes:
        operation: The operation that failed (e.g., "insert", "select").
        table: The database table involved if applicable.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        table: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.operation = operation
        self.table = table
