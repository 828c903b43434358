"""Switchboard core module - shared types, errors, and masking helpers."""

from switchboard.core.errors import (
    BackendError,
    ConfigError,
    DuplicateAgentError,
    DuplicateTaskError,
    EmptyQueueError,
    HandoffDepthExceededError,
    HandoffError,
    MalformedContextError,
    NoMatchingAgentError,
    PermissionDeniedError,
    PersistenceError,
    RegistryError,
    RoutingError,
    RunCancelledError,
    RunError,
    StageTimeoutError,
    SubmissionError,
    SwitchboardError,
    UnknownAgentError,
    UnknownRunError,
)
from switchboard.core.security import mask_api_key, sanitize_for_logging
from switchboard.core.types import Artifact, EventPayload, Result, TaskContext

__all__ = [
    # Types
    "Result",
    "TaskContext",
    "Artifact",
    "EventPayload",
    # Errors
    "SwitchboardError",
    "ConfigError",
    "RegistryError",
    "DuplicateAgentError",
    "UnknownAgentError",
    "SubmissionError",
    "NoMatchingAgentError",
    "DuplicateTaskError",
    "UnknownRunError",
    "RunError",
    "MalformedContextError",
    "StageTimeoutError",
    "PermissionDeniedError",
    "BackendError",
    "RunCancelledError",
    "HandoffError",
    "RoutingError",
    "HandoffDepthExceededError",
    "EmptyQueueError",
    "PersistenceError",
    # Masking
    "mask_api_key",
    "sanitize_for_logging",
]
