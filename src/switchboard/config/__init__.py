"""Configuration module for Switchboard.

Configuration is stored in ~/.switchboard/ (or $SWITCHBOARD_HOME).

Usage:
    from switchboard.config import load_config

    config = load_config()
    limit = config.dispatcher.max_concurrent_runs
"""

from switchboard.config.loader import (
    config_exists,
    create_default_config,
    ensure_config_dir,
    load_config,
    to_logging_config,
)
from switchboard.config.models import (
    BackendConfig,
    DispatcherConfig,
    LoggingConfig,
    PersistenceConfig,
    RoutingConfig,
    StageTimeoutConfig,
    SwitchboardConfig,
    get_config_dir,
    get_default_config,
)

__all__ = [
    # Models
    "SwitchboardConfig",
    "DispatcherConfig",
    "StageTimeoutConfig",
    "RoutingConfig",
    "BackendConfig",
    "PersistenceConfig",
    "LoggingConfig",
    # Functions
    "load_config",
    "create_default_config",
    "ensure_config_dir",
    "config_exists",
    "get_config_dir",
    "get_default_config",
    "to_logging_config",
]
