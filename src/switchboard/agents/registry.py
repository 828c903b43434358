"""Agent registry.

Holds the immutable agent descriptors loaded at startup and answers
capability lookups. Registration order is meaningful: when several agents
match a task, the first registered one wins.

Usage:
    registry = AgentRegistry.from_specs(load_routing_table().unwrap())

    reviewer = registry.get("security-reviewer")
    for agent in registry.find_by_capability("test-coverage"):
        ...
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from threading import RLock

from switchboard.agents.models import AgentSpec
from switchboard.core.errors import ConfigError, DuplicateAgentError, UnknownAgentError
from switchboard.observability.logging import get_logger

log = get_logger(__name__)


class CapabilityView:
    """Lazy, restartable view of the agents providing one capability.

    Each iteration walks the registry afresh in registration order, so the
    view can be iterated any number of times.
    """

    __slots__ = ("_registry", "_tag")

    def __init__(self, registry: AgentRegistry, tag: str) -> None:
        self._registry = registry
        self._tag = tag

    @property
    def capability(self) -> str:
        return self._tag

    def __iter__(self) -> Iterator[AgentSpec]:
        for agent in self._registry:
            if agent.has_capability(self._tag):
                yield agent

    def __bool__(self) -> bool:
        return self.first() is not None

    def first(self) -> AgentSpec | None:
        """Return the first provider in registration order, or None."""
        return next(iter(self), None)

    def __repr__(self) -> str:
        return f"CapabilityView({self._tag!r}, {[a.id for a in self]})"


class AgentRegistry:
    """Registry of agent descriptors keyed by id.

    The registry is filled at startup and then sealed; after ``seal()`` it
    is read-only and safe to share between concurrent runs.
    """

    def __init__(self) -> None:
        self._agents: dict[str, AgentSpec] = {}
        self._sealed = False
        self._lock = RLock()

    @classmethod
    def from_specs(cls, specs: Iterable[AgentSpec]) -> AgentRegistry:
        """Build a sealed registry from specs, all or nothing.

        Raises:
            DuplicateAgentError: If two specs share an id. No registry is
                returned, so no partially filled registry is ever visible.
        """
        registry = cls()
        for spec in specs:
            registry.register(spec)
        registry.seal()
        return registry

    def register(self, agent: AgentSpec) -> None:
        """Add an agent.

        Raises:
            DuplicateAgentError: If the id is already registered.
            ConfigError: If the registry has been sealed.
        """
        with self._lock:
            if self._sealed:
                raise ConfigError(
                    f"Cannot register {agent.id}: registry is sealed",
                    details={"agent_id": agent.id},
                )
            if agent.id in self._agents:
                raise DuplicateAgentError(
                    f"Agent already registered: {agent.id}",
                    agent_id=agent.id,
                )
            self._agents[agent.id] = agent

        log.debug(
            "agents.registry.registered",
            agent_id=agent.id,
            capabilities=list(agent.capabilities),
        )

    def seal(self) -> None:
        """Make the registry read-only."""
        with self._lock:
            self._sealed = True
        log.info("agents.registry.sealed", agent_count=len(self._agents))

    @property
    def sealed(self) -> bool:
        return self._sealed

    def get(self, agent_id: str) -> AgentSpec:
        """Return the agent with ``agent_id``.

        Raises:
            UnknownAgentError: If no such agent is registered.
        """
        with self._lock:
            agent = self._agents.get(agent_id)
        if agent is None:
            raise UnknownAgentError(f"Unknown agent: {agent_id}", agent_id=agent_id)
        return agent

    def find_by_capability(self, tag: str) -> CapabilityView:
        """Return the agents providing ``tag``, in registration order."""
        return CapabilityView(self, tag)

    def has_capability(self, tag: str) -> bool:
        return any(agent.has_capability(tag) for agent in self)

    def capabilities(self) -> frozenset[str]:
        """Return every capability tag some registered agent provides."""
        return frozenset(tag for agent in self for tag in agent.capabilities)

    def __iter__(self) -> Iterator[AgentSpec]:
        with self._lock:
            agents = list(self._agents.values())
        return iter(agents)

    def __len__(self) -> int:
        return len(self._agents)

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._agents


__all__ = ["AgentRegistry", "CapabilityView"]
