"""
Camera core - capture, highlight recording, per-camera workers and the
manager/scheduler that drives them.

The YOLO detector lives in core.detector and is imported explicitly so the
rest of the core can be used without loading the model stack.
"""

from .camera import OpenCVFrameSource, discover_cameras, resolve_backend
from .highlight import HighlightRecorder
from .manager import CameraManager, CameraScheduler
from .worker import CameraWorker

__all__ = [
    "CameraManager",
    "CameraScheduler",
    "CameraWorker",
    "HighlightRecorder",
    "OpenCVFrameSource",
    "discover_cameras",
    "resolve_backend",
]
