"""Routing table loader.

The routing table is a YAML file listing agent personas in priority order
(see the bundled ``routing_table.yaml``). It is resolved in this order:

1. An explicit path (``routing.table_path`` in config, or an argument)
2. ``SWITCHBOARD_ROUTING_TABLE`` env var
3. ``importlib.resources`` bundle shipped with the package

Loading is all or nothing: a table with any invalid entry yields an error
and no agents.
"""

from __future__ import annotations

import importlib.resources
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
import yaml

from switchboard.agents.models import AgentSpec, HandoffRule
from switchboard.agents.predicates import parse_predicate
from switchboard.agents.registry import AgentRegistry
from switchboard.core.enums import RubricCategory, Severity, Stage, ToolPermission
from switchboard.core.errors import ConfigError
from switchboard.core.types import Result
from switchboard.observability.logging import get_logger

log = get_logger(__name__)

ROUTING_TABLE_ENV = "SWITCHBOARD_ROUTING_TABLE"
BUNDLED_TABLE = "routing_table.yaml"


# ---------------------------------------------------------------------------
# Table schema
# ---------------------------------------------------------------------------


class _RuleEntry(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    category: RubricCategory
    target: str = Field(min_length=1)
    min_severity: str = "high"


class _AgentEntry(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(min_length=1)
    description: str = ""
    capabilities: list[str] = Field(min_length=1)
    trigger: Any
    tool_permissions: list[ToolPermission] = Field(default_factory=lambda: [ToolPermission.READ])
    handoff_schema: list[str] = Field(default_factory=list)
    handoff_rules: list[_RuleEntry] = Field(default_factory=list)
    stage_effects: dict[Stage, list[ToolPermission]] = Field(default_factory=dict)


class _TableEntry(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    version: int = 1
    agents: list[_AgentEntry] = Field(min_length=1)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def _read_table_text(path: Path | None) -> tuple[str, str]:
    """Return (yaml text, source description) for the resolved table."""
    if path is None:
        env_path = os.environ.get(ROUTING_TABLE_ENV)
        if env_path:
            path = Path(env_path).expanduser()

    if path is not None:
        if not path.exists():
            raise ConfigError(
                f"Routing table not found: {path}",
                config_file=str(path),
            )
        return path.read_text(encoding="utf-8"), str(path)

    resource = importlib.resources.files("switchboard.agents").joinpath(BUNDLED_TABLE)
    return resource.read_text(encoding="utf-8"), f"<bundled {BUNDLED_TABLE}>"


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _build_spec(entry: _AgentEntry, index: int) -> AgentSpec:
    trigger = parse_predicate(entry.trigger, path=f"agents[{index}].trigger")

    rules = []
    for rule in entry.handoff_rules:
        try:
            min_severity = Severity.parse(rule.min_severity)
        except ValueError as e:
            raise ConfigError(
                f"Unknown severity '{rule.min_severity}' in rules of {entry.id}",
                config_key=f"agents[{index}].handoff_rules",
            ) from e
        rules.append(HandoffRule(rule.category, rule.target, min_severity))

    for stage in entry.stage_effects:
        if not stage.is_working:
            raise ConfigError(
                f"Agent {entry.id} lists effects for terminal stage '{stage.value}'",
                config_key=f"agents[{index}].stage_effects",
            )

    spec = AgentSpec.create(
        entry.id,
        capabilities=entry.capabilities,
        trigger=trigger,
        tool_permissions=entry.tool_permissions,
        handoff_schema=entry.handoff_schema,
        handoff_rules=rules,
        stage_effects=entry.stage_effects,
        description=entry.description,
    )

    excess = {e for _, effects in spec.stage_effects for e in effects} - spec.tool_permissions
    if excess:
        # Allowed in the table; the permission guard denies these stages at run time.
        log.warning(
            "agents.loader.effects_exceed_permissions",
            agent_id=spec.id,
            effects=sorted(excess),
        )
    return spec


def _check_handoff_targets(specs: list[AgentSpec]) -> None:
    provided = {tag for spec in specs for tag in spec.capabilities}
    for spec in specs:
        for rule in spec.handoff_rules:
            if rule.target_capability not in provided:
                raise ConfigError(
                    f"Agent {spec.id} hands off to '{rule.target_capability}', "
                    "which no agent provides",
                    config_key=f"{spec.id}.handoff_rules",
                )


def parse_routing_table(data: Any, *, source: str = "<memory>") -> tuple[AgentSpec, ...]:
    """Build agent specs from an already-parsed routing table.

    Raises:
        ConfigError: If the table is malformed, a trigger is invalid, or a
            handoff rule targets a capability no agent provides.
    """
    try:
        table = _TableEntry.model_validate(data)
    except PydanticValidationError as e:
        lines = [f"  - {'.'.join(str(x) for x in err['loc'])}: {err['msg']}" for err in e.errors()]
        raise ConfigError(
            "Routing table validation failed:\n" + "\n".join(lines),
            config_file=source,
            details={"validation_errors": e.errors(include_url=False)},
        ) from e

    specs = [_build_spec(entry, i) for i, entry in enumerate(table.agents)]
    _check_handoff_targets(specs)
    return tuple(specs)


def load_routing_table(path: Path | None = None) -> Result[tuple[AgentSpec, ...], ConfigError]:
    """Load and validate the routing table.

    Args:
        path: Explicit table path. None resolves through the env var and
            then the bundled table.

    Returns:
        Result containing the agent specs in table order, or the ConfigError.
    """
    try:
        text, source = _read_table_text(path)
        data = yaml.safe_load(text)
    except ConfigError as e:
        return Result.err(e)
    except yaml.YAMLError as e:
        return Result.err(
            ConfigError(
                f"Failed to parse routing table: {e}",
                config_file=str(path) if path else None,
                details={"yaml_error": str(e)},
            )
        )

    try:
        specs = parse_routing_table(data, source=source)
    except ConfigError as e:
        if e.config_file is None:
            e.config_file = source
        return Result.err(e)

    log.info("agents.loader.table_loaded", source=source, agent_count=len(specs))
    return Result.ok(specs)


def load_registry(path: Path | None = None) -> AgentRegistry:
    """Load the routing table into a sealed registry.

    Raises:
        ConfigError: If the table cannot be loaded.
        DuplicateAgentError: If two entries share an id.
    """
    specs = load_routing_table(path).unwrap()
    return AgentRegistry.from_specs(specs)


__all__ = [
    "ROUTING_TABLE_ENV",
    "load_registry",
    "load_routing_table",
    "parse_routing_table",
]
