"""
Detection ingest pipeline - turns a raw detection into a persisted one and
applies the follow-up policy: severity, tracking, alerts and the
frequent-detection signal.

Only validation and missing-reference errors reach the caller. Every other
step is best-effort: a failure is logged, written to the audit log as
IngestStepFailed, and the remaining steps still run.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Callable

from ..errors import DetectionReferenceError, DetectionValidationError
from ..models import Detection, RawDetection, Severity, utc_now
from ..storage import DetectionStore
from ..utils.constants import (
    CRITICAL_THRESHOLD,
    DEFAULT_CAMERA_ID,
    EVENT_WINDOW_MINUTES,
    FREQUENT_COUNT,
    FREQUENT_WINDOW_MINUTES,
    NOTIFY_THRESHOLD,
    WARNING_THRESHOLD,
)
from .audit import AuditLog
from .correlator import TrackingCorrelator
from .media import MediaArchive

logger = logging.getLogger(__name__)

FrequentCallback = Callable[[int, int], None]

_CREATED_ACTIONS = {
    Severity.INFO: "DetectionCreated",
    Severity.WARNING: "HighConfidenceDetectionCreated",
    Severity.CRITICAL: "CriticalDetectionCreated",
}


def classify_severity(
    confidence: float,
    warning_threshold: float = WARNING_THRESHOLD,
    critical_threshold: float = CRITICAL_THRESHOLD,
) -> Severity:
    """Info below warning, Warning below critical, Critical at or above."""
    if confidence >= critical_threshold:
        return Severity.CRITICAL
    if confidence >= warning_threshold:
        return Severity.WARNING
    return Severity.INFO


def alert_message(camera_id: int, timestamp: datetime, confidence: float) -> str:
    return (
        f"Detection from device '{camera_id}' occurred at "
        f"{timestamp.strftime('%Y-%m-%d %H:%M:%S')} with confidence {confidence:.2f}%"
    )


class DetectionIngestPipeline:
    """
    Args:
        store: Persistence collaborator
        correlator: Tracking correlator (None disables tracking)
        audit: Audit log (defaults to one over the same store)
        media_archive: Where detection frames are archived (None = placeholder media)
        clock: Source of "now" for defaults and alert times
        on_frequent: Called with (camera_id, count) when a camera is busy
    """

    def __init__(
        self,
        store: DetectionStore,
        correlator: TrackingCorrelator | None = None,
        audit: AuditLog | None = None,
        media_archive: MediaArchive | None = None,
        clock: Callable[[], datetime] = utc_now,
        on_frequent: FrequentCallback | None = None,
        default_camera_id: int = DEFAULT_CAMERA_ID,
        event_window_minutes: int = EVENT_WINDOW_MINUTES,
        warning_threshold: float = WARNING_THRESHOLD,
        critical_threshold: float = CRITICAL_THRESHOLD,
        notify_threshold: float = NOTIFY_THRESHOLD,
        frequent_window_minutes: int = FREQUENT_WINDOW_MINUTES,
        frequent_count: int = FREQUENT_COUNT,
    ):
        self.store = store
        self.correlator = correlator
        self.audit = audit or AuditLog(store)
        self.media_archive = media_archive
        self._clock = clock
        self.on_frequent = on_frequent

        self.default_camera_id = default_camera_id
        self.event_window_minutes = event_window_minutes
        self.warning_threshold = warning_threshold
        self.critical_threshold = critical_threshold
        self.notify_threshold = notify_threshold
        self.frequent_window_minutes = frequent_window_minutes
        self.frequent_count = frequent_count

        self.alerts_created = 0

    def ingest(self, raw: RawDetection) -> Detection:
        """
        Persist a raw detection and run the follow-up policy.

        Returns:
            The persisted detection (with tracking id when tracking succeeded)

        Raises:
            DetectionValidationError: Confidence outside 0..100
            DetectionReferenceError: Camera, media or event record missing
        """
        self._validate(raw)

        timestamp = raw.timestamp or self._clock()
        camera_id = raw.camera_id if raw.camera_id is not None else self.default_camera_id

        media_id, event_id = self._ensure_references(raw, camera_id, timestamp)
        self._check_references(camera_id, media_id, event_id)

        severity = classify_severity(
            raw.confidence, self.warning_threshold, self.critical_threshold
        )
        detection = self.store.save_detection(
            Detection(
                detection_id=0,
                camera_id=camera_id,
                media_id=media_id,
                event_id=event_id,
                timestamp=timestamp,
                confidence=raw.confidence,
                label=raw.label.lower(),
                box=raw.box,
                frame_number=raw.frame_number,
                severity=severity,
            )
        )

        self._run_step("audit", self._record_created, detection)
        self._run_step("tracking", self._track, detection)
        self._run_step("notification", self._notify, detection)
        self._run_step("frequency", self._check_frequency, detection)

        logger.debug(
            f"Ingested detection {detection.detection_id}: '{detection.label}' "
            f"{detection.confidence:.1f}% on camera {camera_id} ({severity.value})"
        )
        return detection

    def _validate(self, raw: RawDetection) -> None:
        confidence = raw.confidence
        if (
            not isinstance(confidence, (int, float))
            or not math.isfinite(confidence)
            or not 0 <= confidence <= 100
        ):
            raise DetectionValidationError(
                f"Confidence must be between 0 and 100, got {confidence!r}"
            )

    def _ensure_references(
        self, raw: RawDetection, camera_id: int, timestamp: datetime
    ) -> tuple[int | None, int | None]:
        try:
            self.store.ensure_camera(camera_id)
        except Exception as e:
            self._step_failed("camera", e)

        media_id = raw.media_id
        if media_id is None:
            try:
                media_id = self._ensure_media(raw, camera_id, timestamp)
            except Exception as e:
                self._step_failed("media", e)

        event_id = raw.event_id
        if event_id is None:
            try:
                event_id = self.store.ensure_active_event(
                    timestamp, self.event_window_minutes
                ).event_id
            except Exception as e:
                self._step_failed("event", e)

        return media_id, event_id

    def _ensure_media(self, raw: RawDetection, camera_id: int, timestamp: datetime) -> int:
        if raw.frame_jpeg and self.media_archive is not None:
            try:
                path = self.media_archive.save_frame(raw.frame_jpeg, timestamp)
                return self.store.add_media(camera_id, "Image", path, timestamp).media_id
            except OSError as e:
                logger.warning(f"Could not archive detection frame, using placeholder: {e}")
        return self.store.ensure_default_media(camera_id, timestamp).media_id

    def _check_references(
        self, camera_id: int, media_id: int | None, event_id: int | None
    ) -> None:
        if not self.store.camera_exists(camera_id):
            raise DetectionReferenceError(f"Camera {camera_id} does not exist")
        if media_id is None or not self.store.media_exists(media_id):
            raise DetectionReferenceError(f"Media {media_id} does not exist")
        if event_id is None or not self.store.event_exists(event_id):
            raise DetectionReferenceError(f"Event {event_id} does not exist")

    def _record_created(self, detection: Detection) -> None:
        self.audit.record(
            _CREATED_ACTIONS[detection.severity],
            f"Detection of '{detection.label}' on camera {detection.camera_id} "
            f"with confidence {detection.confidence:.2f}%",
            level=detection.severity.value,
            detection_id=detection.detection_id,
        )

    def _track(self, detection: Detection) -> None:
        if self.correlator is None:
            return
        tracking_id = self.correlator.correlate(detection)
        route = self.correlator.maybe_build_route(detection.camera_id, tracking_id)
        if route is not None:
            self.audit.record(
                "TrackingRouteCreated",
                f"Tracking route {tracking_id} for '{route.label}' on camera "
                f"{route.camera_id} ({len(route.path)} points)",
                detection_id=detection.detection_id,
            )

    def _notify(self, detection: Detection) -> None:
        if detection.confidence < self.notify_threshold:
            return

        message = alert_message(detection.camera_id, detection.timestamp, detection.confidence)
        for user, settings in self.store.subscribers():
            self.store.add_alert(detection.detection_id, user.user_id, message, self._clock())
            self.alerts_created += 1
            self.audit.record(
                "NotificationSent",
                f"Alert for detection {detection.detection_id} sent to user "
                f"{user.user_id} ({settings.notification_preference.value})",
                detection_id=detection.detection_id,
                user_id=user.user_id,
            )

    def _check_frequency(self, detection: Detection) -> None:
        since = detection.timestamp - timedelta(minutes=self.frequent_window_minutes)
        count = self.store.count_detections_since(
            detection.camera_id, since, detection.timestamp
        )
        if count < self.frequent_count:
            return

        message = (
            f"{count} detections on camera {detection.camera_id} in the last "
            f"{self.frequent_window_minutes} minutes"
        )
        logger.warning(message)
        self.audit.record(
            "FrequentDetections",
            message,
            level="Warning",
            detection_id=detection.detection_id,
        )
        if self.on_frequent is not None:
            self.on_frequent(detection.camera_id, count)

    def _run_step(self, name: str, step: Callable[[Detection], None], detection: Detection) -> None:
        try:
            step(detection)
        except Exception as e:
            self._step_failed(name, e, detection.detection_id)

    def _step_failed(self, name: str, error: Exception, detection_id: int | None = None) -> None:
        logger.error(f"Ingest step '{name}' failed: {error}")
        self.audit.record(
            "IngestStepFailed",
            f"{name}: {error}",
            level="Error",
            detection_id=detection_id,
        )
