"""
Camera-side models - per-camera state, highlight sessions and frame results.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class HighlightState(str, Enum):
    """States of the highlight recorder."""

    IDLE = "Idle"
    RECORDING = "Recording"


@dataclass
class CameraState:
    """
    In-memory state of one camera. Owned by the camera manager;
    callers only ever see snapshot copies.

    Attributes:
        camera_id: Camera identifier
        initialized: Capture handle and detector are ready
        processing: Camera is included in scheduler ticks
        target_labels: Labels that trigger ingestion and highlights
        highlight_save_path: Root directory for highlight clips
        frame_width: Negotiated capture width in pixels
        frame_height: Negotiated capture height in pixels
        fps: Negotiated capture frame rate
        detection_threshold: Minimum confidence (percent) forwarded to ingest
    """

    camera_id: int
    initialized: bool = False
    processing: bool = False
    target_labels: set[str] = field(default_factory=set)
    highlight_save_path: str | None = None
    frame_width: int = 0
    frame_height: int = 0
    fps: float = 0.0
    detection_threshold: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "camera_id": self.camera_id,
            "initialized": self.initialized,
            "processing": self.processing,
            "target_labels": sorted(self.target_labels),
            "highlight_save_path": self.highlight_save_path,
            "frame_width": self.frame_width,
            "frame_height": self.frame_height,
            "fps": self.fps,
            "detection_threshold": self.detection_threshold,
        }


@dataclass
class HighlightSession:
    """An open highlight clip: writer handle plus its fixed deadline."""

    path: str
    writer: Any
    started_at: float
    deadline: float
    frames_written: int = 0


@dataclass
class FrameResult:
    """
    Output of one processed frame, consumed by the broadcast transport.

    Attributes:
        camera_id: Source camera
        jpeg_bytes: JPEG-encoded annotated frame
        target_detected: Any target label seen in this frame
        detected_labels: Target labels seen in this frame
    """

    camera_id: int
    jpeg_bytes: bytes
    target_detected: bool = False
    detected_labels: set[str] = field(default_factory=set)

    @property
    def status_text(self) -> str:
        if self.target_detected:
            return f"Processing... Target detected: {', '.join(sorted(self.detected_labels))}"
        return "Processing... Monitoring..."
