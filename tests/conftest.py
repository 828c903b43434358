"""Shared fixtures: the bundled registry and a scripted stage backend."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from typing import Any

import pytest

from switchboard.agents.loader import ROUTING_TABLE_ENV, load_registry
from switchboard.agents.registry import AgentRegistry
from switchboard.core.enums import Stage

DEFAULT_ARTIFACTS: dict[Stage, dict[str, Any]] = {
    Stage.ANALYZE: {"summary": "understood"},
    Stage.ASSESS: {"findings": []},
    Stage.RECOMMEND: {"remediations": {}},
    Stage.DELIVER: {"deliverable": "done"},
}


class ScriptedBackend:
    """StageBackend returning canned artifacts.

    Script keys are ``(agent_id, stage)`` or ``stage``; values are an
    artifact, an exception to raise, or a callable taking the context.
    """

    def __init__(
        self,
        script: Mapping[Any, Any] | None = None,
        *,
        delays: Mapping[Any, float] | None = None,
        gates: Mapping[Any, asyncio.Event] | None = None,
    ) -> None:
        self.script = dict(script or {})
        self.delays = dict(delays or {})
        self.gates = dict(gates or {})
        self.calls: list[tuple[Stage, str, dict[str, Any]]] = []
        self.entered: dict[tuple[str, Stage], asyncio.Event] = {}

    def _lookup(self, table: Mapping[Any, Any], stage: Stage, agent_id: str) -> Any:
        if (agent_id, stage) in table:
            return table[(agent_id, stage)]
        return table.get(stage)

    def entered_event(self, agent_id: str, stage: Stage) -> asyncio.Event:
        return self.entered.setdefault((agent_id, stage), asyncio.Event())

    def stages_for(self, agent_id: str) -> list[Stage]:
        return [stage for stage, called_agent, _ in self.calls if called_agent == agent_id]

    async def invoke(
        self, stage: Stage, agent_id: str, context: Mapping[str, Any]
    ) -> Mapping[str, Any]:
        self.calls.append((stage, agent_id, dict(context)))
        self.entered_event(agent_id, stage).set()

        gate = self._lookup(self.gates, stage, agent_id)
        if gate is not None:
            await gate.wait()
        delay = self._lookup(self.delays, stage, agent_id)
        if delay:
            await asyncio.sleep(delay)

        value = self._lookup(self.script, stage, agent_id)
        if value is None:
            value = DEFAULT_ARTIFACTS[stage]
        if isinstance(value, BaseException):
            raise value
        if callable(value):
            value = value(context)
        return value  # type: ignore[no-any-return]


@pytest.fixture
def registry(monkeypatch: pytest.MonkeyPatch) -> AgentRegistry:
    """Sealed registry built from the bundled routing table."""
    monkeypatch.delenv(ROUTING_TABLE_ENV, raising=False)
    return load_registry()


@pytest.fixture
def backend_factory() -> Callable[..., ScriptedBackend]:
    return ScriptedBackend


@pytest.fixture
def backend() -> ScriptedBackend:
    return ScriptedBackend()
