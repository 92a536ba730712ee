"""
Persistence collaborator - SQLite store for detections, tracking routes,
and the camera/media/event/user records they reference.
"""

from .store import DetectionStore

__all__ = ["DetectionStore"]
