"""
User configuration for Melodi.

Configuration lives in a YAML file in the application directory
(typer.get_app_dir("melodi")/config.yaml). Every field is optional; a missing
file yields the defaults.

Example config.yaml:
    log_level: warning
    default_open_mode: readonly
    cache_dir: ~/.cache/melodi
"""

from enum import Enum
from pathlib import Path

import typer
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from melodi.errors import ConfigError
from melodi.schema import OpenMode

APP_NAME = "melodi"
CONFIG_FILE_NAME = "config.yaml"


class LogLevel(str, Enum):
    """Logging verbosity selectable in the configuration."""

    NONE = "none"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    DEBUG = "debug"


def default_app_dir() -> Path:
    """Per-user application directory."""
    return Path(typer.get_app_dir(APP_NAME))


class MelodiConfig(BaseModel):
    """
    Validated user configuration.

    Attributes:
        log_level: Verbosity of the melodi logger
        cache_dir: Where the query history file is kept
        default_open_mode: Open mode used instead of prompting, if set
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    log_level: LogLevel = Field(
        default=LogLevel.NONE,
        description="Logging verbosity",
    )
    cache_dir: Path = Field(
        default_factory=default_app_dir,
        description="Directory holding the query history file",
    )
    default_open_mode: OpenMode | None = Field(
        default=None,
        description="Open mode used without prompting",
    )


def default_config_path() -> Path:
    """Location of the configuration file."""
    return default_app_dir() / CONFIG_FILE_NAME


def load_config(path: Path | str | None = None) -> MelodiConfig:
    """
    Load the configuration from a YAML file.

    Args:
        path: Config file path (defaults to the application directory)

    Returns:
        Validated MelodiConfig; defaults if the file does not exist

    Raises:
        ConfigError: If the file is not valid YAML or fails validation
    """
    path = Path(path) if path is not None else default_config_path()
    if not path.exists():
        return MelodiConfig()

    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if isinstance(data.get("cache_dir"), str):
            data["cache_dir"] = Path(data["cache_dir"]).expanduser()
        return MelodiConfig.model_validate(data)
    except (OSError, UnicodeDecodeError, yaml.YAMLError, ValidationError, AttributeError) as e:
        raise ConfigError(config_path=str(path), underlying_error=str(e)) from e
