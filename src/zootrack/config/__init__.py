"""
Configuration loading, validation, and resolution.

- load_config: YAML file discovery, pointer files, environment overrides
- validate_config_full: Comprehensive validation with errors/warnings
- resolve_cameras: Fill per-camera settings from the owning user

Pydantic schemas available for type-safe validation:
- Config: Complete configuration schema
- validate_config_pydantic: Validate and parse config to Pydantic model
"""

from ..errors import ConfigValidationError
from .loader import find_config_file, load_config, load_config_with_env
from .resolver import CameraPlan, resolve_cameras, user_records
from .schemas import (
    CameraConfig,
    Config,
    DetectionConfig,
    IngestConfig,
    UserConfig,
    validate_config_pydantic,
)
from .validator import ValidationResult, print_validation_result, validate_config_full

__all__ = [
    "CameraConfig",
    "CameraPlan",
    "Config",
    "ConfigValidationError",
    "DetectionConfig",
    "IngestConfig",
    "UserConfig",
    "ValidationResult",
    "find_config_file",
    "load_config",
    "load_config_with_env",
    "print_validation_result",
    "resolve_cameras",
    "user_records",
    "validate_config_full",
    "validate_config_pydantic",
]
