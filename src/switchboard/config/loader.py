"""Configuration loading for Switchboard.

Functions:
    load_config: Load configuration from <config dir>/config.yaml
    create_default_config: Write a default config.yaml
    ensure_config_dir: Ensure the config directory and its subdirectories exist
    config_exists: Check whether config.yaml exists
    to_logging_config: Translate the logging section for configure_logging
"""

from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import ValidationError as PydanticValidationError
import yaml

from switchboard.config.models import (
    SwitchboardConfig,
    get_config_dir,
    get_default_config,
)
from switchboard.core.errors import ConfigError
from switchboard.observability.logging import LoggingConfig as RuntimeLoggingConfig
from switchboard.observability.logging import LogMode

# Load .env from the current directory, then the global one
load_dotenv()
load_dotenv(Path.home() / ".switchboard" / ".env")


def ensure_config_dir() -> Path:
    """Ensure the configuration directory exists.

    Creates the directory plus its data/ and logs/ subdirectories.
    """
    config_dir = get_config_dir()
    _make_layout(config_dir)
    return config_dir


def _make_layout(config_dir: Path) -> None:
    config_dir.mkdir(parents=True, exist_ok=True)
    (config_dir / "data").mkdir(exist_ok=True)
    (config_dir / "logs").mkdir(exist_ok=True)


def _format_validation_errors(error: PydanticValidationError) -> str:
    lines = []
    for item in error.errors():
        loc = ".".join(str(x) for x in item["loc"])
        lines.append(f"  - {loc}: {item['msg']}")
    return "\n".join(lines)


def create_default_config(
    config_dir: Path | None = None,
    *,
    overwrite: bool = False,
) -> Path:
    """Create a default config.yaml.

    Args:
        config_dir: Directory to create the file in. Defaults to get_config_dir().
        overwrite: If True, overwrite an existing file.

    Returns:
        Path to the written config file.

    Raises:
        ConfigError: If the file exists and overwrite=False.
    """
    if config_dir is None:
        config_dir = ensure_config_dir()
    else:
        _make_layout(config_dir)

    config_path = config_dir / "config.yaml"
    if config_path.exists() and not overwrite:
        raise ConfigError(
            f"Configuration file already exists: {config_path}",
            config_file=str(config_path),
        )

    config_dict = get_default_config().model_dump(mode="json")
    with config_path.open("w") as f:
        yaml.dump(
            config_dict,
            f,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
    return config_path


def load_config(config_path: Path | None = None) -> SwitchboardConfig:
    """Load configuration from a YAML file.

    Args:
        config_path: Path to config file. Defaults to <config dir>/config.yaml.

    Returns:
        Validated SwitchboardConfig instance.

    Raises:
        ConfigError: If the file doesn't exist, is malformed, or fails validation.
    """
    if config_path is None:
        config_path = get_config_dir() / "config.yaml"

    if not config_path.exists():
        raise ConfigError(
            f"Configuration file not found: {config_path}",
            config_file=str(config_path),
        )

    try:
        with config_path.open() as f:
            config_dict: Any = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse configuration file: {e}",
            config_file=str(config_path),
            details={"yaml_error": str(e)},
        ) from e

    if config_dict is None:
        config_dict = {}
    if not isinstance(config_dict, dict):
        raise ConfigError(
            "Configuration root must be a mapping",
            config_file=str(config_path),
        )

    try:
        return SwitchboardConfig.model_validate(config_dict)
    except PydanticValidationError as e:
        raise ConfigError(
            "Configuration validation failed:\n" + _format_validation_errors(e),
            config_file=str(config_path),
            details={"validation_errors": e.errors(include_url=False)},
        ) from e


def config_exists() -> bool:
    return (get_config_dir() / "config.yaml").exists()


def to_logging_config(config: SwitchboardConfig) -> RuntimeLoggingConfig:
    """Build the runtime logging config from the ``logging`` section."""
    section = config.logging
    return RuntimeLoggingConfig(
        mode=LogMode(section.mode),
        log_level=section.level.upper(),
        log_dir=get_config_dir() / "logs",
        enable_file_logging=section.file_logging,
    )
