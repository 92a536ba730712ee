"""
Consolidated data models for the camera core.

This package contains all core data structures used across the application.
"""

from .camera import CameraState, FrameResult, HighlightSession, HighlightState
from .detection import (
    BoundingBox,
    DetectedObject,
    Detection,
    RawDetection,
    Severity,
    TrackingRoute,
    utc_now,
)
from .protocols import FrameSource, ObjectDetector
from .records import (
    Alert,
    AuditLogEntry,
    Camera,
    Event,
    Media,
    NotificationPreference,
    User,
    UserSettings,
)

__all__ = [
    "Alert",
    "AuditLogEntry",
    "BoundingBox",
    "Camera",
    # Camera models
    "CameraState",
    "DetectedObject",
    "Detection",
    "Event",
    "FrameResult",
    # Protocols
    "FrameSource",
    "HighlightSession",
    "HighlightState",
    "Media",
    "NotificationPreference",
    "ObjectDetector",
    # Detection models
    "RawDetection",
    "Severity",
    "TrackingRoute",
    "User",
    "UserSettings",
    "utc_now",
]
