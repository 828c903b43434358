"""Shared vocabulary for routing and pipeline runs.

These enums are used by every layer (descriptors, queue, runner, journal),
so they live in core to keep the packages above free of import cycles.
"""

from __future__ import annotations

from enum import StrEnum


class Severity(StrEnum):
    """Severity of a finding or handoff, highest first.

    The wire format spells NORMAL as "medium"; both spellings are accepted
    when parsing.
    """

    CRITICAL = "critical"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @property
    def rank(self) -> int:
        """0 for CRITICAL through 3 for LOW. Lower ranks dequeue first."""
        return _SEVERITY_RANK[self]

    @property
    def wire_value(self) -> str:
        return "medium" if self is Severity.NORMAL else self.value

    def at_least(self, other: Severity) -> bool:
        """Return True if this severity is as high as ``other`` or higher."""
        return self.rank <= other.rank

    @classmethod
    def parse(cls, value: str | Severity) -> Severity:
        """Parse a severity, accepting the wire spelling "medium".

        Raises:
            ValueError: If the value is not a known severity.
        """
        if isinstance(value, Severity):
            return value
        normalized = str(value).strip().lower()
        if normalized == "medium":
            return cls.NORMAL
        return cls(normalized)


_SEVERITY_RANK = {
    Severity.CRITICAL: 0,
    Severity.HIGH: 1,
    Severity.NORMAL: 2,
    Severity.LOW: 3,
}


class Stage(StrEnum):
    """Pipeline stages. DONE and FAILED are terminal."""

    ANALYZE = "analyze"
    ASSESS = "assess"
    RECOMMEND = "recommend"
    DELIVER = "deliver"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (Stage.DONE, Stage.FAILED)

    @property
    def is_working(self) -> bool:
        """True for the four stages that call the backend."""
        return self in WORKING_STAGES


WORKING_STAGES: tuple[Stage, ...] = (
    Stage.ANALYZE,
    Stage.ASSESS,
    Stage.RECOMMEND,
    Stage.DELIVER,
)
"""The fixed forward order of backend-calling stages."""


class RubricCategory(StrEnum):
    """Assessment rubric categories, in fixed priority order."""

    CORRECTNESS = "correctness"
    SECURITY = "security"
    PERFORMANCE = "performance"
    MAINTAINABILITY = "maintainability"
    TESTING = "testing"
    FRAMEWORK_ADHERENCE = "framework-adherence"

    @property
    def rank(self) -> int:
        return _RUBRIC_ORDER.index(self)


_RUBRIC_ORDER: tuple[RubricCategory, ...] = tuple(RubricCategory)


class TaskOrigin(StrEnum):
    """Where a task came from."""

    USER_REQUEST = "user-request"
    HANDOFF = "handoff"


class ToolPermission(StrEnum):
    """External-effect categories an agent may be granted."""

    READ = "read"
    WRITE = "write"
    EXECUTE = "execute"
    NETWORK_FETCH = "network-fetch"
