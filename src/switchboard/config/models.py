"""Pydantic models for Switchboard configuration.

All configuration validation happens through these models.

Classes:
    DispatcherConfig: Run concurrency and default handoff depth
    StageTimeoutConfig: Per-stage timeouts for pipeline runs
    RoutingConfig: Where the routing table is loaded from
    BackendConfig: LLM stage backend settings
    PersistenceConfig: Event journal settings
    LoggingConfig: Logging settings
    SwitchboardConfig: Top-level configuration combining all sections
"""

import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from switchboard.core.enums import Stage


class DispatcherConfig(BaseModel, frozen=True):
    """Dispatcher configuration.

    Attributes:
        max_concurrent_runs: Upper bound on pipeline runs executing at once
        default_max_depth: Hop limit used when drain_handoffs gets no max_depth
        max_retained_runs: Runs kept for status queries before the oldest
            finished ones are forgotten
    """

    max_concurrent_runs: int = Field(default=8, ge=1)
    default_max_depth: int = Field(default=5, ge=0)
    max_retained_runs: int = Field(default=1000, ge=1)


class StageTimeoutConfig(BaseModel, frozen=True):
    """Independent timeout for each backend-calling stage.

    None disables the timeout for that stage.
    """

    analyze_timeout_seconds: float | None = Field(default=120.0, gt=0)
    assess_timeout_seconds: float | None = Field(default=120.0, gt=0)
    recommend_timeout_seconds: float | None = Field(default=120.0, gt=0)
    deliver_timeout_seconds: float | None = Field(default=300.0, gt=0)

    def for_stage(self, stage: Stage) -> float | None:
        """Return the timeout for a working stage.

        Raises:
            ValueError: If the stage is terminal.
        """
        if not stage.is_working:
            msg = f"Stage {stage.value!r} has no timeout"
            raise ValueError(msg)
        timeout: float | None = getattr(self, f"{stage.value}_timeout_seconds")
        return timeout


class RoutingConfig(BaseModel, frozen=True):
    """Routing table configuration.

    Attributes:
        table_path: Path to a routing table YAML file. None means the
            SWITCHBOARD_ROUTING_TABLE env var, then the bundled table.
    """

    table_path: str | None = None

    @field_validator("table_path")
    @classmethod
    def expand_table_path(cls, v: str | None) -> str | None:
        """Expand ~ in the table path."""
        if v:
            return str(Path(v).expanduser())
        return v


class BackendConfig(BaseModel, frozen=True):
    """LLM stage backend configuration.

    Attributes:
        model: LiteLLM model identifier
        temperature: Sampling temperature
        max_tokens: Completion token limit per stage call
        timeout: Transport timeout per request, in seconds
        max_retries: Transport retry attempts for transient provider errors
    """

    model: str = "openrouter/google/gemini-2.0-flash-001"
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    max_tokens: int = Field(default=4096, ge=1)
    timeout: float = Field(default=60.0, gt=0)
    max_retries: int = Field(default=3, ge=0)


class PersistenceConfig(BaseModel, frozen=True):
    """Event journal configuration.

    Attributes:
        enabled: Whether lifecycle events are journaled
        database_path: Path to SQLite database (relative to config dir)
    """

    enabled: bool = False
    database_path: str = "data/switchboard.db"


class LoggingConfig(BaseModel, frozen=True):
    """Logging configuration.

    Attributes:
        level: Log level (debug, info, warning, error)
        mode: Console output mode (dev for human-readable, prod for JSON)
        file_logging: Whether to also write rotated JSON log files
    """

    level: Literal["debug", "info", "warning", "error"] = "info"
    mode: Literal["dev", "prod"] = "dev"
    file_logging: bool = False


class SwitchboardConfig(BaseModel, frozen=True):
    """Top-level Switchboard configuration.

    Validates against config.yaml in the config directory.
    """

    dispatcher: DispatcherConfig = Field(default_factory=DispatcherConfig)
    stages: StageTimeoutConfig = Field(default_factory=StageTimeoutConfig)
    routing: RoutingConfig = Field(default_factory=RoutingConfig)
    backend: BackendConfig = Field(default_factory=BackendConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def get_default_config() -> SwitchboardConfig:
    """Get the default Switchboard configuration."""
    return SwitchboardConfig()


def get_config_dir() -> Path:
    """Get the Switchboard configuration directory.

    Returns:
        $SWITCHBOARD_HOME if set, else ~/.switchboard/
    """
    home = os.environ.get("SWITCHBOARD_HOME")
    if home:
        return Path(home).expanduser()
    return Path.home() / ".switchboard"
