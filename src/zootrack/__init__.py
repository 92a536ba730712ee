"""
ZooTrack camera core

Multi-camera animal detection: each camera runs capture -> detect ->
annotate -> highlight record -> broadcast, while detections flow through an
ingest pipeline that assigns severity, raises alerts and correlates
sightings into tracking routes.

Package structure:
  core/       - Frame sources, detector, highlight recorder, workers, manager
  processor/  - Ingest queue and pipeline, tracking correlator, audit, media
  storage/    - SQLite detection store
  config/     - Configuration loading and validation
  models/     - Data structures and capability protocols
  utils/      - Constants
"""

__version__ = "1.0.0"

from .broadcast import InMemoryBroadcastHub, LatestFrameWriter, channel_for
from .config import ConfigValidationError, ValidationResult, validate_config_full
from .core import CameraManager, CameraScheduler, CameraWorker, HighlightRecorder
from .processor import DetectionIngestPipeline, IngestQueue, TrackingCorrelator
from .storage import DetectionStore

__all__ = [
    "CameraManager",
    "CameraScheduler",
    "CameraWorker",
    "ConfigValidationError",
    "DetectionIngestPipeline",
    "DetectionStore",
    "HighlightRecorder",
    "InMemoryBroadcastHub",
    "IngestQueue",
    "LatestFrameWriter",
    "TrackingCorrelator",
    "ValidationResult",
    "channel_for",
    "validate_config_full",
]
