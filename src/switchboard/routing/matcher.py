"""Trigger matching.

Evaluates every registered agent's trigger against a task context and
returns the matches in registration order. Triggers are pure, total
predicates, so matching never raises on odd context values; a context that
is not a mapping simply matches nothing.
"""

from __future__ import annotations

from collections.abc import Mapping

from switchboard.agents.models import AgentSpec
from switchboard.agents.registry import AgentRegistry
from switchboard.observability.logging import get_logger
from switchboard.routing.models import Task

log = get_logger(__name__)


class TriggerMatcher:
    """Selects applicable agents for a task."""

    def __init__(self, registry: AgentRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> AgentRegistry:
        return self._registry

    def matching_agents(self, task: Task) -> list[AgentSpec]:
        """Return every agent whose trigger accepts the task context.

        An empty list is a normal outcome, not an error.
        """
        context = task.context
        if not isinstance(context, Mapping):
            log.debug("routing.matcher.context_not_mapping", task_id=task.id)
            return []

        matches = [agent for agent in self._registry if agent.trigger(context)]
        log.debug(
            "routing.matcher.matched",
            task_id=task.id,
            agent_ids=[agent.id for agent in matches],
        )
        return matches

    def first_match(self, task: Task) -> AgentSpec | None:
        """Return the first matching agent in registration order, or None."""
        context = task.context
        if not isinstance(context, Mapping):
            return None
        for agent in self._registry:
            if agent.trigger(context):
                return agent
        return None


__all__ = ["TriggerMatcher"]
