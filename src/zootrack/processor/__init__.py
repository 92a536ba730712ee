"""
Detection processing - everything after a camera hands off a detection:

- Ingest queue (non-blocking hand-off from the frame loop)
- Ingest pipeline (persistence, severity, alerts, frequency signal)
- Tracking correlation and route building
- Audit log and media archive
"""

from .audit import AuditLog
from .correlator import TrackingCorrelator, is_similar
from .ingest import DetectionIngestPipeline, alert_message, classify_severity
from .ingest_queue import IngestQueue
from .media import MediaArchive

__all__ = [
    "AuditLog",
    "DetectionIngestPipeline",
    "IngestQueue",
    "MediaArchive",
    "TrackingCorrelator",
    "alert_message",
    "classify_severity",
    "is_similar",
]
