"""
Detection data models - boxes, raw inference output, persisted detections
and tracking routes.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class Severity(str, Enum):
    """Severity assigned to a detection by its confidence."""

    INFO = "Info"
    WARNING = "Warning"
    CRITICAL = "Critical"


@dataclass(frozen=True)
class BoundingBox:
    """
    Axis-aligned box in frame-relative units (0..1), top-left origin.

    Attributes:
        x: Left edge as a fraction of frame width
        y: Top edge as a fraction of frame height
        width: Width as a fraction of frame width
        height: Height as a fraction of frame height
    """

    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    @property
    def area(self) -> float:
        return self.width * self.height

    def has_area(self) -> bool:
        """A box with zero width is treated as 'no box'."""
        return self.width > 0

    def distance_to(self, other: "BoundingBox") -> float:
        """Euclidean distance between the two box centers."""
        (x1, y1), (x2, y2) = self.center, other.center
        return math.hypot(x1 - x2, y1 - y2)

    @classmethod
    def from_pixels(
        cls, x: float, y: float, w: float, h: float, frame_width: int, frame_height: int
    ) -> "BoundingBox":
        """Normalize a pixel box against the frame geometry."""
        if frame_width <= 0 or frame_height <= 0:
            raise ValueError(f"Invalid frame geometry {frame_width}x{frame_height}")
        return cls(
            x=x / frame_width,
            y=y / frame_height,
            width=w / frame_width,
            height=h / frame_height,
        )


@dataclass(frozen=True)
class DetectedObject:
    """
    One object reported by the detector, in the detector's own units.

    Attributes:
        label: Class name (lower-case)
        confidence: Model confidence 0..1
        box: (x, y, w, h) in pixels
    """

    label: str
    confidence: float
    box: tuple[int, int, int, int]


@dataclass
class RawDetection:
    """
    Ingest candidate handed from a camera worker (or any producer) to the
    ingest pipeline. Confidence is a percentage, the box is frame-relative.
    Unset fields are filled with defaults during ingestion.
    """

    label: str
    confidence: float
    box: BoundingBox | None = None
    camera_id: int | None = None
    timestamp: datetime | None = None
    frame_number: int = 0
    media_id: int | None = None
    event_id: int | None = None
    frame_jpeg: bytes | None = field(default=None, repr=False)

    @classmethod
    def from_inference(
        cls,
        obj: DetectedObject,
        camera_id: int,
        frame_width: int,
        frame_height: int,
        frame_number: int,
        timestamp: datetime | None = None,
        frame_jpeg: bytes | None = None,
    ) -> "RawDetection":
        """Convert detector output to the percentage/normalized convention."""
        x, y, w, h = obj.box
        return cls(
            label=obj.label,
            confidence=obj.confidence * 100,
            box=BoundingBox.from_pixels(x, y, w, h, frame_width, frame_height),
            camera_id=camera_id,
            timestamp=timestamp,
            frame_number=frame_number,
            frame_jpeg=frame_jpeg,
        )


@dataclass
class Detection:
    """
    A persisted detection. Only tracking_id may change after creation,
    and only once (backfilled by the correlator).
    """

    detection_id: int
    camera_id: int
    media_id: int
    event_id: int
    timestamp: datetime
    confidence: float
    label: str
    box: BoundingBox | None = None
    frame_number: int = 0
    tracking_id: int | None = None
    severity: Severity = Severity.INFO

    @property
    def center(self) -> tuple[float, float] | None:
        return self.box.center if self.box is not None else None


@dataclass
class TrackingRoute:
    """
    Reconstructed path of one tracked object on one camera.

    Attributes:
        tracking_id: Shared tracking id of the member detections
        camera_id: Camera the object was seen on
        label: Label of the first detection
        start_time: Timestamp of the first detection
        end_time: Timestamp of the last detection
        path: Box centers ordered by frame number
    """

    tracking_id: int
    camera_id: int
    label: str
    start_time: datetime
    end_time: datetime
    path: list[tuple[float, float]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON storage."""
        return {
            "tracking_id": self.tracking_id,
            "camera_id": self.camera_id,
            "label": self.label,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "path": [[x, y] for x, y in self.path],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TrackingRoute":
        """Deserialize from dictionary."""
        return cls(
            tracking_id=int(data["tracking_id"]),
            camera_id=int(data["camera_id"]),
            label=data["label"],
            start_time=datetime.fromisoformat(data["start_time"]),
            end_time=datetime.fromisoformat(data["end_time"]),
            path=[(float(x), float(y)) for x, y in data.get("path", [])],
        )


def utc_now() -> datetime:
    """Timezone-aware current time used as the default clock."""
    return datetime.now(timezone.utc)
