"""
Configuration Validator - Validates config syntax and semantic correctness.

Schema errors come from pydantic; cross-references (camera -> user) and
settings that are legal but probably unintended are checked here.
"""

import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .resolver import resolve_cameras
from .schemas import Config, validate_config_pydantic

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of config validation."""

    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    derived: dict[str, Any] = field(default_factory=dict)
    config: Config | None = None


def validate_config_full(config: dict) -> ValidationResult:
    """
    Comprehensive config validation with detailed error messages.

    Args:
        config: Configuration dictionary to validate

    Returns:
        ValidationResult with errors, warnings, derived camera plans and
        the parsed Config when valid.
    """
    result = ValidationResult(valid=True)

    try:
        parsed = validate_config_pydantic(config)
    except ValidationError as e:
        for error in e.errors():
            location = ".".join(str(part) for part in error["loc"]) or "config"
            result.errors.append(f"{location}: {error['msg']}")
        result.valid = False
        return result

    _validate_model_file(parsed, result)
    _validate_cameras(parsed, result)
    _validate_ingest(parsed, result)

    if result.errors:
        result.valid = False
        return result

    plans = resolve_cameras(parsed)
    result.derived["cameras"] = plans
    result.derived["subscribers"] = [
        user.id for user in parsed.users if user.notification_preference != "None"
    ]
    result.config = parsed

    for plan in plans:
        if not plan.start:
            continue
        if not plan.target_labels:
            result.warnings.append(
                f"Camera {plan.camera_id} has no target labels - it will stream but never ingest"
            )
        if not plan.highlight_save_path:
            result.warnings.append(
                f"Camera {plan.camera_id} has no highlight path - highlight clips disabled"
            )

    return result


def _validate_model_file(config: Config, result: ValidationResult) -> None:
    model_file = config.detection.model_file
    if not Path(model_file).exists():
        result.warnings.append(
            f"Model file not found: {model_file} (will be downloaded if valid)"
        )


def _validate_cameras(config: Config, result: ValidationResult) -> None:
    user_ids = {user.id for user in config.users}
    for camera in config.cameras:
        if camera.user is not None and camera.user not in user_ids:
            result.errors.append(
                f"Camera {camera.id} references unknown user: {camera.user}"
            )
    if not config.cameras:
        result.warnings.append("No cameras configured - use --discover to list devices")


def _validate_ingest(config: Config, result: ValidationResult) -> None:
    ingest = config.ingest
    if ingest.notify_threshold < ingest.warning_threshold:
        result.warnings.append(
            f"ingest.notify_threshold ({ingest.notify_threshold}) is below "
            f"warning_threshold ({ingest.warning_threshold}) - alerts for Info detections"
        )


# ANSI color codes for terminal output
class Colors:
    GREEN = "\033[92m"
    RED = "\033[91m"
    YELLOW = "\033[93m"
    CYAN = "\033[96m"
    BOLD = "\033[1m"
    RESET = "\033[0m"

    @classmethod
    def disable(cls):
        """Disable colors for non-TTY output."""
        cls.GREEN = cls.RED = cls.YELLOW = ""
        cls.CYAN = cls.BOLD = cls.RESET = ""


if not sys.stdout.isatty():
    Colors.disable()


def print_validation_result(result: ValidationResult) -> None:
    """Print validation result with errors, warnings and resolved cameras."""
    print()
    print(f"{Colors.BOLD}Configuration Validation{Colors.RESET}")
    print("=" * 60)

    if result.valid:
        print(f"\n{Colors.GREEN}✓ Configuration is valid{Colors.RESET}")
    else:
        print(f"\n{Colors.RED}✗ Configuration has errors{Colors.RESET}")

    if result.errors:
        print(f"\n{Colors.RED}Errors:{Colors.RESET}")
        for error in result.errors:
            print(f"  {Colors.RED}✗{Colors.RESET} {error}")

    if result.warnings:
        print(f"\n{Colors.YELLOW}Warnings:{Colors.RESET}")
        for warning in result.warnings:
            print(f"  {Colors.YELLOW}!{Colors.RESET} {warning}")

    if result.valid and result.derived:
        print(f"\n{Colors.CYAN}Cameras:{Colors.RESET}")
        for plan in result.derived.get("cameras", []):
            labels = ", ".join(sorted(plan.target_labels)) or "none"
            state = "start" if plan.start else "idle"
            print(
                f"  Camera {plan.camera_id} ({plan.source}, {state}): targets [{labels}], "
                f"threshold {plan.detection_threshold:.0f}%, "
                f"highlights {plan.highlight_save_path or 'off'}"
            )

        subscribers = result.derived.get("subscribers", [])
        if subscribers:
            print(f"  Alert subscribers: {', '.join(str(s) for s in subscribers)}")

    print()
