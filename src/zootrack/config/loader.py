"""
Config loading - file discovery, pointer files and environment overrides.
"""

import logging
import os
from pathlib import Path

import yaml

from ..errors import ConfigValidationError
from ..utils.constants import ENV_DB_PATH, ENV_MODEL_FILE

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "config.yaml"


def config_search_paths() -> list[Path]:
    return [
        Path.cwd() / DEFAULT_CONFIG_NAME,
        Path.home() / ".config" / "zootrack" / DEFAULT_CONFIG_NAME,
    ]


def find_config_file(config_path: str = DEFAULT_CONFIG_NAME) -> Path:
    """
    Find config file in standard locations.

    Search order:
    1. Specified path (if provided and not default)
    2. Current directory (config.yaml)
    3. ~/.config/zootrack/config.yaml

    Raises:
        ConfigValidationError: If no config file is found
    """
    if config_path != DEFAULT_CONFIG_NAME:
        specified = Path(config_path)
        if specified.exists():
            return specified
        raise ConfigValidationError(f"Specified config file not found: {config_path}")

    for path in config_search_paths():
        if path.exists():
            logger.info(f"Using config: {path}")
            return path

    searched = ", ".join(str(p) for p in config_search_paths())
    raise ConfigValidationError(f"No config file found (searched: {searched})")


def load_config(config_path: str = DEFAULT_CONFIG_NAME) -> dict:
    """
    Load a YAML config file and apply environment overrides.

    Supports pointer files: if config only contains `use: path/to/config.yaml`,
    that file is loaded instead (resolved relative to the pointer file).

    Raises:
        ConfigValidationError: If the file is missing or not valid YAML
    """
    config_file = find_config_file(config_path)

    try:
        with open(config_file, encoding="utf-8") as f:
            config = yaml.safe_load(f)

        if isinstance(config, dict) and list(config.keys()) == ["use"]:
            pointer_path = Path(config_file).parent / config["use"]
            logger.info(f"Config pointer: {config_file} -> {config['use']}")
            with open(pointer_path, encoding="utf-8") as f:
                config = yaml.safe_load(f)
            config_file = pointer_path

    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Invalid YAML in {config_file}: {e}") from e
    except OSError as e:
        raise ConfigValidationError(f"Cannot read config {config_file}: {e}") from e

    if config is None:
        config = {}
    if not isinstance(config, dict):
        raise ConfigValidationError(f"Config root must be a mapping: {config_file}")

    logger.info(f"Configuration loaded from {config_file}")
    return load_config_with_env(config)


def load_config_with_env(config: dict) -> dict:
    """
    Apply environment variable overrides to config.

    Args:
        config: Base configuration dictionary

    Returns:
        Configuration with environment variables applied
    """
    if ENV_DB_PATH in os.environ:
        logger.info(f"Using database path from environment: {ENV_DB_PATH}")
        config.setdefault("store", {})["db_path"] = os.environ[ENV_DB_PATH]

    if ENV_MODEL_FILE in os.environ:
        logger.info(f"Using model file from environment: {ENV_MODEL_FILE}")
        config.setdefault("detection", {})["model_file"] = os.environ[ENV_MODEL_FILE]

    return config
