"""Stage backend boundary and tool-permission enforcement.

The pipeline never produces agent content itself. Each working stage calls
a StageBackend, which returns an opaque artifact mapping. Before a call
goes out, PermissionGuard checks that the effects the stage needs are
within what the agent is allowed.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from switchboard.agents.registry import AgentRegistry
from switchboard.core.enums import Stage, ToolPermission
from switchboard.core.errors import PermissionDeniedError
from switchboard.core.types import Artifact
from switchboard.observability.logging import get_logger

log = get_logger(__name__)


@runtime_checkable
class StageBackend(Protocol):
    """Produces the artifact for one stage of one agent's run.

    Example:
        backend: StageBackend = LiteLLMStageBackend(registry=registry)
        understanding = await backend.invoke(Stage.ANALYZE, "architect", context)
    """

    async def invoke(
        self,
        stage: Stage,
        agent_id: str,
        context: Mapping[str, Any],
    ) -> Artifact:
        """Run one stage and return its artifact.

        Raises:
            BackendError: If the stage could not be produced.
        """
        ...


class ToolPermissionSource(Protocol):
    """Answers which effect categories an agent may use."""

    def allowed_effects(self, agent_id: str) -> frozenset[ToolPermission]: ...


class RegistryPermissionSource:
    """Grants each agent exactly the tool permissions in its descriptor."""

    def __init__(self, registry: AgentRegistry) -> None:
        self._registry = registry

    def allowed_effects(self, agent_id: str) -> frozenset[ToolPermission]:
        return self._registry.get(agent_id).tool_permissions


class StaticPermissionSource:
    """Fixed grants per agent id, e.g. an operator policy narrower than the table."""

    def __init__(
        self,
        grants: Mapping[str, frozenset[ToolPermission] | set[ToolPermission]],
        *,
        default: frozenset[ToolPermission] = frozenset(),
    ) -> None:
        self._grants = {agent_id: frozenset(effects) for agent_id, effects in grants.items()}
        self._default = default

    def allowed_effects(self, agent_id: str) -> frozenset[ToolPermission]:
        return self._grants.get(agent_id, self._default)


class PermissionGuard:
    """StageBackend wrapper that denies calls outside an agent's permissions.

    The effects a call needs come from the agent's ``stage_effects``; the
    effects it may use come from the permission source.
    """

    def __init__(
        self,
        backend: StageBackend,
        registry: AgentRegistry,
        source: ToolPermissionSource | None = None,
    ) -> None:
        self._backend = backend
        self._registry = registry
        self._source = source or RegistryPermissionSource(registry)

    @property
    def backend(self) -> StageBackend:
        return self._backend

    def check(self, stage: Stage, agent_id: str) -> None:
        """Raise if ``agent_id`` may not perform ``stage``.

        Raises:
            PermissionDeniedError: If required effects are not allowed.
            UnknownAgentError: If the agent is not registered.
        """
        required = self._registry.get(agent_id).effects_for(stage)
        denied = required - self._source.allowed_effects(agent_id)
        if denied:
            log.warning(
                "backends.permission.denied",
                agent_id=agent_id,
                stage=stage.value,
                denied=sorted(denied),
            )
            raise PermissionDeniedError(
                agent_id,
                stage=stage.value,
                denied=frozenset(e.value for e in denied),
            )

    async def invoke(
        self,
        stage: Stage,
        agent_id: str,
        context: Mapping[str, Any],
    ) -> Artifact:
        self.check(stage, agent_id)
        return await self._backend.invoke(stage, agent_id, context)


__all__ = [
    "PermissionGuard",
    "RegistryPermissionSource",
    "StageBackend",
    "StaticPermissionSource",
    "ToolPermissionSource",
]
