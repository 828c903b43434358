"""Agent descriptors.

The router only interprets descriptors: ids, capability tags, triggers,
tool permissions, handoff schema and handoff rules. What an agent actually
produces is opaque artifact data returned by the stage backend.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from switchboard.agents.predicates import Predicate
from switchboard.core.enums import RubricCategory, Severity, Stage, ToolPermission

DEFAULT_STAGE_EFFECTS: frozenset[ToolPermission] = frozenset({ToolPermission.READ})
"""Effects a stage needs when the descriptor says nothing about it."""


@dataclass(frozen=True, slots=True)
class HandoffRule:
    """Route findings of one rubric category to another capability.

    Attributes:
        category: Rubric category of findings this rule converts.
        target_capability: Capability tag the payload is addressed to.
        min_severity: Lowest finding severity that is handed off.
    """

    category: RubricCategory
    target_capability: str
    min_severity: Severity = Severity.HIGH


@dataclass(frozen=True, slots=True)
class AgentSpec:
    """Immutable descriptor of one agent persona.

    Attributes:
        id: Unique agent identifier.
        capabilities: Capability tags, in declaration order.
        trigger: Predicate over a task context deciding applicability.
        tool_permissions: Effect categories the agent may use.
        handoff_schema: Output field names the agent may put on a handoff.
        handoff_rules: Finding category to target capability routes.
        stage_effects: Effects each stage's backend call needs, as
            (stage, effects) pairs. Stages not listed need only ``read``.
        description: Human-readable description.
    """

    id: str
    capabilities: tuple[str, ...]
    trigger: Predicate
    tool_permissions: frozenset[ToolPermission]
    handoff_schema: frozenset[str] = frozenset()
    handoff_rules: tuple[HandoffRule, ...] = ()
    stage_effects: tuple[tuple[Stage, frozenset[ToolPermission]], ...] = ()
    description: str = ""

    def has_capability(self, tag: str) -> bool:
        return tag in self.capabilities

    def effects_for(self, stage: Stage) -> frozenset[ToolPermission]:
        """Return the effects the backend call for ``stage`` requires."""
        for listed, effects in self.stage_effects:
            if listed is stage:
                return effects
        return DEFAULT_STAGE_EFFECTS

    def rule_for(self, category: RubricCategory) -> HandoffRule | None:
        """Return the first handoff rule for a rubric category, if any."""
        for rule in self.handoff_rules:
            if rule.category is category:
                return rule
        return None

    @classmethod
    def create(
        cls,
        id: str,
        *,
        capabilities: Iterable[str],
        trigger: Predicate,
        tool_permissions: Iterable[ToolPermission | str] = (ToolPermission.READ,),
        handoff_schema: Iterable[str] = (),
        handoff_rules: Iterable[HandoffRule] = (),
        stage_effects: Mapping[Stage, Iterable[ToolPermission | str]] | None = None,
        description: str = "",
    ) -> AgentSpec:
        """Build a spec from loose iterables and string permissions.

        Example:
            AgentSpec.create(
                "security-reviewer",
                capabilities=["security"],
                trigger=Flag("has_unsafe_block"),
                tool_permissions=["read", "network-fetch"],
            )
        """
        return cls(
            id=id,
            capabilities=tuple(capabilities),
            trigger=trigger,
            tool_permissions=frozenset(ToolPermission(p) for p in tool_permissions),
            handoff_schema=frozenset(handoff_schema),
            handoff_rules=tuple(handoff_rules),
            stage_effects=tuple(
                (stage, frozenset(ToolPermission(p) for p in effects))
                for stage, effects in (stage_effects or {}).items()
            ),
            description=description,
        )
