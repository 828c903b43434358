"""Structured logging configuration for Switchboard.

structlog is wired through the standard library so that Switchboard's records
and any foreign stdlib records share one rendering pipeline:

- ISO 8601 UTC timestamps and log level on every entry
- contextvars integration, so a run's ids follow it across awaits
- masking of secrets picked up from task contexts
- console output (human-readable in dev, JSON in prod)
- optional daily-rotated JSON file output

Standard log keys:
- task_id: Task identifier
- run_id: Pipeline run identifier
- agent_id: Agent handling the run
- stage: Current pipeline stage
- depth: Handoff hop count

Event naming convention:
- dot.notation, ``domain.entity.verb_past_tense``
- e.g. "dispatch.run.submitted", "pipeline.stage.advanced"

Usage:
    from switchboard.observability import configure_logging, get_logger, bind_context

    configure_logging(LoggingConfig(mode=LogMode.PROD))
    log = get_logger(__name__)

    bind_context(run_id="run-1a2b", agent_id="security-reviewer")
    log.info("pipeline.stage.advanced", stage="assess")
"""

from __future__ import annotations

from enum import Enum
import logging
from logging.handlers import TimedRotatingFileHandler
import os
from pathlib import Path
import sys
from typing import Any

from pydantic import BaseModel, Field
import structlog

from switchboard.core.security import (
    is_sensitive_field,
    is_sensitive_value,
    mask_api_key,
    sanitize_for_logging,
)

ROOT_LOGGER_NAME = "switchboard"


class LogMode(str, Enum):
    """Logging output mode."""

    DEV = "dev"
    PROD = "prod"


class LoggingConfig(BaseModel):
    """Runtime logging configuration.

    Attributes:
        mode: Output mode (dev for human-readable, prod for JSON).
        log_level: Minimum log level to output.
        log_dir: Directory for log files. Defaults to ~/.switchboard/logs/.
        max_log_days: Number of rotated daily files to keep.
        enable_file_logging: Whether to also write JSON logs to a file.
    """

    mode: LogMode = Field(default=LogMode.DEV)
    log_level: str = Field(default="INFO")
    log_dir: Path = Field(default_factory=lambda: Path.home() / ".switchboard" / "logs")
    max_log_days: int = Field(default=7, ge=1, le=365)
    enable_file_logging: bool = Field(default=False)

    model_config = {"frozen": True}


_configured: bool = False
_current_config: LoggingConfig | None = None


def _get_mode_from_env() -> LogMode:
    """Read SWITCHBOARD_LOG_MODE; anything other than "prod" means dev."""
    if os.environ.get("SWITCHBOARD_LOG_MODE", "dev").lower() == "prod":
        return LogMode.PROD
    return LogMode.DEV


def _get_log_level(level_str: str) -> int:
    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "WARN": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    return level_map.get(level_str.upper(), logging.INFO)


def _mask_sensitive_data(
    _logger: Any,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Structlog processor that masks secrets in log entries."""
    for key, value in list(event_dict.items()):
        if key in ("event", "level", "timestamp", "logger"):
            continue
        if is_sensitive_field(key):
            event_dict[key] = "<REDACTED>"
        elif isinstance(value, str) and is_sensitive_value(value):
            event_dict[key] = mask_api_key(value)
        elif isinstance(value, dict):
            event_dict[key] = sanitize_for_logging(value)
    return event_dict


def _get_shared_processors() -> list[Any]:
    """Processors applied to both structlog and foreign stdlib records."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _mask_sensitive_data,
        structlog.processors.StackInfoRenderer(),
    ]


def _build_formatter(renderer: Any) -> structlog.stdlib.ProcessorFormatter:
    final: list[Any] = [structlog.stdlib.ProcessorFormatter.remove_processors_meta]
    if isinstance(renderer, structlog.processors.JSONRenderer):
        final.append(structlog.processors.format_exc_info)
    final.append(renderer)
    return structlog.stdlib.ProcessorFormatter(
        processors=final,
        foreign_pre_chain=_get_shared_processors(),
    )


def _setup_file_handler(config: LoggingConfig) -> TimedRotatingFileHandler | None:
    """Create the daily-rotated JSON file handler, if file logging is enabled."""
    if not config.enable_file_logging:
        return None

    config.log_dir.mkdir(parents=True, exist_ok=True)
    handler = TimedRotatingFileHandler(
        filename=str(config.log_dir / "switchboard.log"),
        when="midnight",
        interval=1,
        backupCount=config.max_log_days,
        encoding="utf-8",
        utc=True,
    )
    # Files are always JSON for log aggregation tools
    handler.setFormatter(_build_formatter(structlog.processors.JSONRenderer()))
    return handler


def configure_logging(config: LoggingConfig | None = None) -> None:
    """Configure structlog and the ``switchboard`` stdlib logger.

    Safe to call more than once; handlers from a previous call are replaced.

    Args:
        config: Logging configuration. If None, uses defaults with the mode
            taken from the SWITCHBOARD_LOG_MODE environment variable.
    """
    global _configured, _current_config

    if config is None:
        config = LoggingConfig(mode=_get_mode_from_env())
    _current_config = config

    log_level = _get_log_level(config.log_level)
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(log_level)
    root_logger.propagate = False
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    console_renderer: Any
    if config.mode == LogMode.DEV:
        console_renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    else:
        console_renderer = structlog.processors.JSONRenderer()
    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(_build_formatter(console_renderer))
    root_logger.addHandler(console)

    file_handler = _setup_file_handler(config)
    if file_handler:
        root_logger.addHandler(file_handler)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_get_shared_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a bound logger, configuring defaults on first use.

    Args:
        name: Logger name, normally ``__name__`` of the calling module.
    """
    if not _configured:
        configure_logging()
    return structlog.get_logger(name or ROOT_LOGGER_NAME)


def bind_context(**kwargs: Any) -> None:
    """Bind context variables for all subsequent entries in this async context.

    Never bind credentials here; contexts are copied into every entry.

    Example:
        bind_context(task_id="task-1", run_id="run-1a2b", depth=0)
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove context variables from the logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()


def get_current_config() -> LoggingConfig | None:
    """Return the active LoggingConfig, or None if logging is unconfigured."""
    return _current_config


def is_configured() -> bool:
    return _configured


def reset_logging() -> None:
    """Reset logging state. Intended for tests."""
    global _configured, _current_config
    _configured = False
    _current_config = None
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()
