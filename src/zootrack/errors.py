"""
Error taxonomy for the camera core.

Per-frame and per-detection failures are isolated: they are logged and
recorded, never allowed to halt a camera loop. Only reference and
validation failures surface to the caller of an ingest.
"""


class ZooTrackError(Exception):
    """Base class for all ZooTrack errors."""


class CaptureError(ZooTrackError):
    """Camera could not be opened or read."""


class InferenceError(ZooTrackError):
    """Object detector failed on a frame."""


class WriterError(ZooTrackError):
    """Highlight clip writer failed to open or write."""


class DetectionReferenceError(ZooTrackError):
    """Detection points at a camera, media or event record that does not exist."""


class DetectionValidationError(ZooTrackError, ValueError):
    """Detection candidate is malformed (e.g. confidence out of range)."""


class CorrelationError(ZooTrackError):
    """Similarity computation between two detections failed."""


class ConfigValidationError(ZooTrackError):
    """Raised when config validation fails."""
