"""
Tests for the detection ingest pipeline.
"""

import os
import tempfile
import unittest
from datetime import datetime, timedelta, timezone

from zootrack.errors import DetectionReferenceError, DetectionValidationError
from zootrack.models import (
    BoundingBox,
    NotificationPreference,
    RawDetection,
    Severity,
    User,
    UserSettings,
)
from zootrack.processor import (
    AuditLog,
    DetectionIngestPipeline,
    MediaArchive,
    TrackingCorrelator,
    alert_message,
    classify_severity,
)
from zootrack.storage import DetectionStore

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class TestSeverity(unittest.TestCase):
    def test_boundaries(self):
        self.assertEqual(classify_severity(0), Severity.INFO)
        self.assertEqual(classify_severity(79.99), Severity.INFO)
        self.assertEqual(classify_severity(80), Severity.WARNING)
        self.assertEqual(classify_severity(94.9), Severity.WARNING)
        self.assertEqual(classify_severity(95), Severity.CRITICAL)
        self.assertEqual(classify_severity(100), Severity.CRITICAL)

    def test_alert_message(self):
        message = alert_message(3, T0, 91.5)

        self.assertEqual(
            message, "Detection from device '3' occurred at 2024-05-01 12:00:00 with confidence 91.50%"
        )


class IngestTestCase(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.store = DetectionStore()
        self.frequent = []
        self.pipeline = DetectionIngestPipeline(
            self.store,
            correlator=TrackingCorrelator(self.store),
            media_archive=MediaArchive(self.tmp.name),
            clock=lambda: T0,
            on_frequent=lambda camera_id, count: self.frequent.append((camera_id, count)),
        )

    def tearDown(self):
        self.store.close()
        self.tmp.cleanup()

    def actions(self, detection_id=None):
        return [e.action_type for e in self.store.logs(detection_id=detection_id, page_size=500)]

    def add_subscriber(self, user_id, preference):
        self.store.add_user(User(user_id, f"keeper{user_id}"))
        self.store.save_user_settings(UserSettings(user_id, preference))


class TestIngest(IngestTestCase):
    def test_defaults_camera_and_timestamp(self):
        detection = self.pipeline.ingest(RawDetection(label="lion", confidence=50))

        self.assertEqual(detection.camera_id, 1)
        self.assertEqual(detection.timestamp, T0)
        self.assertTrue(self.store.camera_exists(1))
        self.assertEqual(self.store.get_media(detection.media_id).type, "Placeholder")
        self.assertEqual(self.store.get_detection(detection.detection_id), detection)

    def test_labels_are_lower_cased(self):
        detection = self.pipeline.ingest(RawDetection(label="Lion", confidence=50))

        self.assertEqual(detection.label, "lion")

    def test_severity_and_audit_action(self):
        cases = [
            (50, Severity.INFO, "DetectionCreated"),
            (94.9, Severity.WARNING, "HighConfidenceDetectionCreated"),
            (95, Severity.CRITICAL, "CriticalDetectionCreated"),
        ]
        for confidence, severity, action in cases:
            with self.subTest(confidence=confidence):
                detection = self.pipeline.ingest(
                    RawDetection(label="tiger", confidence=confidence, camera_id=int(confidence))
                )
                self.assertEqual(detection.severity, severity)
                entries = self.store.logs(action_type=action, detection_id=detection.detection_id)
                self.assertEqual(len(entries), 1)
                self.assertEqual(entries[0].level, severity.value)

    def test_event_is_reused_within_window(self):
        a = self.pipeline.ingest(RawDetection("tiger", 50, timestamp=T0))
        b = self.pipeline.ingest(RawDetection("tiger", 50, timestamp=T0 + timedelta(minutes=30)))

        self.assertEqual(a.event_id, b.event_id)

    def test_frame_is_archived_as_image_media(self):
        detection = self.pipeline.ingest(
            RawDetection("tiger", 50, timestamp=T0, frame_jpeg=b"\xff\xd8jpeg")
        )

        media = self.store.get_media(detection.media_id)
        self.assertEqual(media.type, "Image")
        self.assertEqual(
            media.file_path, os.path.join("Detections", "detection_20240501_120000_000.jpg")
        )
        with open(os.path.join(self.tmp.name, media.file_path), "rb") as f:
            self.assertEqual(f.read(), b"\xff\xd8jpeg")

    def test_explicit_references_are_kept(self):
        media = self.store.add_media(4, "Video", "clip.avi", T0)
        event = self.store.ensure_active_event(T0, 60)

        detection = self.pipeline.ingest(
            RawDetection("tiger", 50, camera_id=4, media_id=media.media_id, event_id=event.event_id)
        )

        self.assertEqual(detection.media_id, media.media_id)
        self.assertEqual(detection.event_id, event.event_id)

    def test_missing_media_is_rejected(self):
        with self.assertRaises(DetectionReferenceError):
            self.pipeline.ingest(RawDetection("tiger", 50, media_id=999))

        self.assertEqual(self.store.count_detections_since(1, T0 - timedelta(days=1)), 0)

    def test_missing_event_is_rejected(self):
        with self.assertRaises(DetectionReferenceError):
            self.pipeline.ingest(RawDetection("tiger", 50, event_id=999))

    def test_confidence_out_of_range_is_rejected(self):
        for confidence in (-0.1, 100.1, float("nan")):
            with self.subTest(confidence=confidence):
                with self.assertRaises(DetectionValidationError):
                    self.pipeline.ingest(RawDetection("tiger", confidence))

        self.assertFalse(self.store.camera_exists(1))


class TestTracking(IngestTestCase):
    def test_tiger_builds_route(self):
        first = self.pipeline.ingest(
            RawDetection(
                "tiger", 80, box=BoundingBox.from_pixels(120, 80, 150, 200, 640, 480),
                camera_id=1, timestamp=T0, frame_number=1,
            )
        )
        second = self.pipeline.ingest(
            RawDetection(
                "tiger", 82, box=BoundingBox.from_pixels(125, 85, 148, 195, 640, 480),
                camera_id=1, timestamp=T0 + timedelta(seconds=0.75), frame_number=2,
            )
        )

        self.assertEqual(first.tracking_id, 1)
        self.assertEqual(second.tracking_id, 1)
        route = self.store.get_tracking_route(1)
        self.assertEqual(len(route.path), 2)
        self.assertIn("TrackingRouteCreated", self.actions(second.detection_id))

    def test_tracking_failure_is_audited(self):
        class BrokenCorrelator:
            def correlate(self, detection):
                raise RuntimeError("store locked")

        pipeline = DetectionIngestPipeline(self.store, correlator=BrokenCorrelator(), clock=lambda: T0)

        detection = pipeline.ingest(RawDetection("tiger", 50))

        self.assertIsNone(detection.tracking_id)
        failures = self.store.logs(action_type="IngestStepFailed")
        self.assertEqual(len(failures), 1)
        self.assertEqual(failures[0].level, "Error")
        self.assertIn("tracking", failures[0].message)


class TestNotifications(IngestTestCase):
    def setUp(self):
        super().setUp()
        self.add_subscriber(2, NotificationPreference.EMAIL)
        self.add_subscriber(3, NotificationPreference.NONE)
        self.add_subscriber(4, NotificationPreference.SMS)

    def test_alert_per_subscriber_at_threshold(self):
        detection = self.pipeline.ingest(RawDetection("tiger", 90, camera_id=7))

        alerts = self.store.alerts_for_detection(detection.detection_id)
        self.assertEqual([a.user_id for a in alerts], [2, 4])
        self.assertEqual(alerts[0].message, alert_message(7, T0, 90))
        sent = self.store.logs(action_type="NotificationSent")
        self.assertEqual(sorted(e.user_id for e in sent), [2, 4])

    def test_no_alert_below_threshold(self):
        detection = self.pipeline.ingest(RawDetection("tiger", 89.9))

        self.assertEqual(self.store.alerts_for_detection(detection.detection_id), [])
        self.assertEqual(self.pipeline.alerts_created, 0)


class TestFrequentDetections(IngestTestCase):
    def ingest_many(self, count):
        for i in range(count):
            self.pipeline.ingest(
                RawDetection("zebra", 50, camera_id=5, timestamp=T0 + timedelta(minutes=i))
            )

    def test_five_in_window_signals(self):
        self.ingest_many(5)

        self.assertEqual(self.frequent, [(5, 5)])
        entries = self.store.logs(action_type="FrequentDetections")
        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0].level, "Warning")

    def test_four_in_window_is_quiet(self):
        self.ingest_many(4)

        self.assertEqual(self.frequent, [])
        self.assertEqual(self.store.logs(action_type="FrequentDetections"), [])

    def test_old_detections_fall_out_of_window(self):
        for minutes in (0, 1, 2, 3, 20):
            self.pipeline.ingest(
                RawDetection("zebra", 50, camera_id=5, timestamp=T0 + timedelta(minutes=minutes))
            )

        self.assertEqual(self.frequent, [])


class TestAuditLog(unittest.TestCase):
    def test_record_never_raises(self):
        store = DetectionStore()
        audit = AuditLog(store)
        store.close()

        self.assertIsNone(audit.record("DetectionCreated", "after close"))

    def test_entries_use_system_user(self):
        store = DetectionStore()
        audit = AuditLog(store)

        audit.record("DetectionCreated", "hello", detection_id=4)

        entries = audit.entries(detection_id=4)
        self.assertEqual(entries[0].user_id, 1)
        store.close()


if __name__ == "__main__":
    unittest.main()
