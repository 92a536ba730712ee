"""
Pydantic schemas for configuration validation.

Provides type-safe, declarative validation with clear error messages.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..utils.constants import (
    CORRELATION_WINDOW_SECONDS,
    CRITICAL_THRESHOLD,
    DEFAULT_CAMERA_ID,
    DEFAULT_CONFIDENCE,
    DEFAULT_DB_PATH,
    DEFAULT_DISCOVER_MAX_INDEX,
    DEFAULT_FPS,
    DEFAULT_FRAME_HEIGHT,
    DEFAULT_FRAME_WIDTH,
    DEFAULT_IOU,
    DEFAULT_MEDIA_ROOT,
    DEFAULT_MODEL_FILE,
    DEFAULT_QUEUE_SIZE,
    DEFAULT_SNAPSHOT_DIR,
    EVENT_WINDOW_MINUTES,
    FREQUENT_COUNT,
    FREQUENT_WINDOW_MINUTES,
    HIGHLIGHT_DURATION_SECONDS,
    HIGHLIGHT_FOURCC,
    MAX_CENTER_DISTANCE,
    MIN_SIZE_RATIO,
    NOTIFY_THRESHOLD,
    TICK_INTERVAL_SECONDS,
    WARNING_THRESHOLD,
)


class StrictModel(BaseModel):
    """Base model that rejects unknown fields."""

    model_config = ConfigDict(extra="forbid")


class StoreConfig(StrictModel):
    """Detection store settings."""

    db_path: str = Field(default=DEFAULT_DB_PATH, min_length=1)


class MediaConfig(StrictModel):
    """Media archive settings."""

    root: str = Field(default=DEFAULT_MEDIA_ROOT, min_length=1)
    extract_frames: bool = False
    sample_fps: float = Field(default=1.0, gt=0)


class DetectionConfig(StrictModel):
    """Detection settings."""

    model_file: str = Field(default=DEFAULT_MODEL_FILE, description="YOLO model file path (.pt)")
    confidence_threshold: float = Field(
        default=DEFAULT_CONFIDENCE, ge=0.0, le=1.0, description="Model confidence threshold"
    )
    iou_threshold: float = Field(default=DEFAULT_IOU, ge=0.0, le=1.0)

    @field_validator("model_file")
    @classmethod
    def validate_model_file(cls, v: str) -> str:
        if not v.endswith(".pt"):
            raise ValueError("Model file must be .pt format")
        return v


class CaptureConfig(StrictModel):
    """Camera capture settings."""

    backend: str | None = Field(default=None, description="Preferred OpenCV backend, e.g. 'dshow'")
    width: int = Field(default=DEFAULT_FRAME_WIDTH, gt=0)
    height: int = Field(default=DEFAULT_FRAME_HEIGHT, gt=0)
    default_fps: float = Field(default=DEFAULT_FPS, gt=0)
    discover_max_index: int = Field(default=DEFAULT_DISCOVER_MAX_INDEX, ge=1)


class SchedulerConfig(StrictModel):
    """Frame loop scheduling."""

    interval_seconds: float = Field(default=TICK_INTERVAL_SECONDS, gt=0)
    max_workers: int = Field(default=0, ge=0, description="Frame thread pool size (0 = inline)")


class HighlightConfig(StrictModel):
    """Highlight clip settings."""

    duration_seconds: float = Field(default=HIGHLIGHT_DURATION_SECONDS, gt=0)
    fourcc: str = Field(default=HIGHLIGHT_FOURCC, min_length=4, max_length=4)


class TrackingConfig(StrictModel):
    """Tracking correlation settings."""

    enabled: bool = True
    window_seconds: float = Field(default=CORRELATION_WINDOW_SECONDS, gt=0)
    max_center_distance: float = Field(default=MAX_CENTER_DISTANCE, gt=0)
    min_size_ratio: float = Field(default=MIN_SIZE_RATIO, ge=0, lt=1)


class IngestConfig(StrictModel):
    """Ingest policy. Thresholds are confidence percentages."""

    queue_size: int = Field(default=DEFAULT_QUEUE_SIZE, gt=0)
    default_camera_id: int = Field(default=DEFAULT_CAMERA_ID, ge=0)
    event_window_minutes: int = Field(default=EVENT_WINDOW_MINUTES, gt=0)
    warning_threshold: float = Field(default=WARNING_THRESHOLD, ge=0, le=100)
    critical_threshold: float = Field(default=CRITICAL_THRESHOLD, ge=0, le=100)
    notify_threshold: float = Field(default=NOTIFY_THRESHOLD, ge=0, le=100)
    frequent_window_minutes: int = Field(default=FREQUENT_WINDOW_MINUTES, gt=0)
    frequent_count: int = Field(default=FREQUENT_COUNT, gt=0)

    @model_validator(mode="after")
    def validate_thresholds(self):
        if self.warning_threshold >= self.critical_threshold:
            raise ValueError("warning_threshold must be < critical_threshold")
        return self


class UserConfig(StrictModel):
    """User and their camera settings."""

    id: int = Field(..., ge=1)
    name: str = Field(..., min_length=1)
    email: str = ""
    role: str = "Viewer"
    notification_preference: Literal["Email", "SMS", "Both", "None"] = "None"
    detection_threshold: float = Field(default=0.0, ge=0, le=100)
    target_labels: list[str] = Field(default_factory=list)
    highlight_save_path: str | None = None


class CameraConfig(StrictModel):
    """One camera to run."""

    id: int = Field(..., ge=0)
    source: int | str | None = Field(
        default=None, description="Device index or stream URL (default: the camera id)"
    )
    user: int | None = Field(default=None, description="User whose settings fill the gaps")
    target_labels: list[str] | None = None
    highlight_save_path: str | None = None
    detection_threshold: float | None = Field(default=None, ge=0, le=100)
    start: bool = True


class RuntimeConfig(StrictModel):
    """Runtime configuration."""

    default_duration_hours: float = Field(default=1.0, gt=0)
    snapshot_dir: str | None = DEFAULT_SNAPSHOT_DIR
    shutdown_timeout: float = Field(default=5.0, ge=0)


class Config(StrictModel):
    """Complete configuration schema."""

    store: StoreConfig = Field(default_factory=StoreConfig)
    media: MediaConfig = Field(default_factory=MediaConfig)
    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    highlight: HighlightConfig = Field(default_factory=HighlightConfig)
    tracking: TrackingConfig = Field(default_factory=TrackingConfig)
    ingest: IngestConfig = Field(default_factory=IngestConfig)
    users: list[UserConfig] = Field(default_factory=list)
    cameras: list[CameraConfig] = Field(default_factory=list)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)

    @model_validator(mode="after")
    def validate_unique_ids(self):
        """Camera and user ids must be unique."""
        camera_ids = [camera.id for camera in self.cameras]
        if len(camera_ids) != len(set(camera_ids)):
            raise ValueError(f"Duplicate camera ids: {camera_ids}")

        user_ids = [user.id for user in self.users]
        if len(user_ids) != len(set(user_ids)):
            raise ValueError(f"Duplicate user ids: {user_ids}")

        return self


def validate_config_pydantic(config: dict) -> Config:
    """
    Validate configuration using Pydantic.

    Args:
        config: Raw configuration dictionary

    Returns:
        Validated Config object

    Raises:
        pydantic.ValidationError: If validation fails
    """
    return Config(**(config or {}))
