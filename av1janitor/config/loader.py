import logging
from pathlib import Path
from typing import Optional
import yaml
from pydantic import ValidationError

from av1janitor.config.models import AppConfig
from av1janitor.domain.errors import ConfigError

DEFAULT_CONFIG_PATH = Path("~/.config/av1janitor/config.yaml")

logger = logging.getLogger(__name__)


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Loads configuration from YAML; a missing file yields the defaults."""
    path = Path(config_path or DEFAULT_CONFIG_PATH).expanduser()
    if not path.exists():
        logger.info(f"No config file at {path}, using defaults")
        return AppConfig()

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to read config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    try:
        return AppConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e


def validate_for_run(config: AppConfig):
    """Checks the parts of the config that only matter when actually scanning."""
    if not config.general.watched_directories:
        raise ConfigError("watched_directories cannot be empty")
    for directory in config.general.watched_directories:
        if not Path(directory).exists():
            raise ConfigError(f"Watched directory does not exist: {directory}")
