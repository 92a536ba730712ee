"""
Config resolver - fills per-camera gaps from the owning user's settings.

A camera entry may leave target labels, highlight path and threshold
unset; they are then taken from the referenced user (or, if no user is
referenced, from the first configured user).
"""

import logging
from dataclasses import dataclass, field

from ..models import NotificationPreference, User, UserSettings
from .schemas import CameraConfig, Config, UserConfig

logger = logging.getLogger(__name__)


@dataclass
class CameraPlan:
    """Fully resolved start parameters for one camera."""

    camera_id: int
    source: int | str
    target_labels: set[str] = field(default_factory=set)
    highlight_save_path: str | None = None
    detection_threshold: float = 0.0
    start: bool = True
    user_id: int | None = None


def _owner(camera: CameraConfig, users: dict[int, UserConfig], config: Config) -> UserConfig | None:
    if camera.user is not None:
        return users.get(camera.user)
    return config.users[0] if config.users else None


def resolve_cameras(config: Config) -> list[CameraPlan]:
    """Resolve every configured camera against its user's settings."""
    users = {user.id: user for user in config.users}
    plans = []

    for camera in config.cameras:
        owner = _owner(camera, users, config)

        labels = camera.target_labels
        if labels is None:
            labels = owner.target_labels if owner else []

        highlight_path = camera.highlight_save_path
        if highlight_path is None and owner is not None:
            highlight_path = owner.highlight_save_path

        threshold = camera.detection_threshold
        if threshold is None:
            threshold = owner.detection_threshold if owner else 0.0

        plans.append(
            CameraPlan(
                camera_id=camera.id,
                source=camera.source if camera.source is not None else camera.id,
                target_labels={label.lower() for label in labels},
                highlight_save_path=highlight_path,
                detection_threshold=threshold,
                start=camera.start,
                user_id=owner.id if owner else None,
            )
        )

    return plans


def user_records(config: Config) -> list[tuple[User, UserSettings]]:
    """Users and settings to seed into the detection store."""
    return [
        (
            User(user_id=user.id, name=user.name, email=user.email, role=user.role),
            UserSettings(
                user_id=user.id,
                notification_preference=NotificationPreference(user.notification_preference),
                detection_threshold=user.detection_threshold,
                target_labels={label.lower() for label in user.target_labels},
                highlight_save_path=user.highlight_save_path,
            ),
        )
        for user in config.users
    ]
