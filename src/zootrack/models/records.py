"""
Relational records owned by the persistence collaborator.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class NotificationPreference(str, Enum):
    EMAIL = "Email"
    SMS = "SMS"
    BOTH = "Both"
    NONE = "None"


@dataclass
class Camera:
    camera_id: int
    location: str
    status: str = "Active"
    last_active: datetime | None = None


@dataclass
class Media:
    media_id: int
    camera_id: int
    type: str  # 'Image', 'Video' or 'Placeholder'
    file_path: str
    timestamp: datetime


@dataclass
class Event:
    """Time window that groups detections."""

    event_id: int
    start_time: datetime
    end_time: datetime
    status: str = "Active"


@dataclass
class User:
    user_id: int
    name: str
    email: str = ""
    role: str = "Viewer"


@dataclass
class UserSettings:
    """Per-user configuration consumed read-only by the core."""

    user_id: int
    notification_preference: NotificationPreference = NotificationPreference.NONE
    detection_threshold: float = 0.0
    target_labels: set[str] = field(default_factory=set)
    highlight_save_path: str | None = None


@dataclass
class Alert:
    alert_id: int
    message: str
    created_at: datetime
    detection_id: int
    user_id: int


@dataclass
class AuditLogEntry:
    log_id: int
    user_id: int
    action_type: str
    message: str
    level: str
    timestamp: datetime
    detection_id: int | None = None
