"""
Tests for tracking correlation and route building.
"""

import math
import unittest
from datetime import datetime, timedelta, timezone

from zootrack.errors import CorrelationError
from zootrack.models import BoundingBox, Detection, Severity
from zootrack.processor.correlator import TrackingCorrelator, is_similar
from zootrack.storage import DetectionStore

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def px(x, y, w, h):
    return BoundingBox.from_pixels(x, y, w, h, 640, 480)


class CorrelatorTestCase(unittest.TestCase):
    def setUp(self):
        self.store = DetectionStore()
        self.correlator = TrackingCorrelator(self.store)

    def tearDown(self):
        self.store.close()

    def add(self, box, offset=0.0, camera_id=1, frame_number=0, label="tiger"):
        self.store.ensure_camera(camera_id)
        media = self.store.ensure_default_media(camera_id, T0)
        event = self.store.ensure_active_event(T0, 60)
        return self.store.save_detection(
            Detection(
                detection_id=0,
                camera_id=camera_id,
                media_id=media.media_id,
                event_id=event.event_id,
                timestamp=T0 + timedelta(seconds=offset),
                confidence=80.0,
                label=label,
                box=box,
                frame_number=frame_number,
                severity=Severity.WARNING,
            )
        )


class TestSimilarity(unittest.TestCase):
    def detection(self, box):
        return Detection(1, 1, 1, 1, T0, 80.0, "tiger", box)

    def test_close_similar_boxes_match(self):
        a = self.detection(BoundingBox(0.2, 0.2, 0.2, 0.2))
        b = self.detection(BoundingBox(0.25, 0.2, 0.2, 0.18))

        self.assertTrue(is_similar(a, b))

    def test_distant_boxes_do_not_match(self):
        a = self.detection(BoundingBox(0.0, 0.0, 0.2, 0.2))
        b = self.detection(BoundingBox(0.35, 0.0, 0.2, 0.2))

        self.assertFalse(is_similar(a, b))

    def test_size_ratio_must_exceed_minimum(self):
        a = self.detection(BoundingBox(0.2, 0.2, 0.2, 0.2))
        half = self.detection(BoundingBox(0.2, 0.2, 0.2, 0.1))
        most = self.detection(BoundingBox(0.2, 0.2, 0.2, 0.16))

        self.assertFalse(is_similar(a, half))
        self.assertTrue(is_similar(a, most))

    def test_zero_width_or_missing_box_never_matches(self):
        a = self.detection(BoundingBox(0.2, 0.2, 0.2, 0.2))

        self.assertFalse(is_similar(a, self.detection(BoundingBox(0.2, 0.2, 0.0, 0.2))))
        self.assertFalse(is_similar(a, self.detection(None)))

    def test_non_finite_geometry_raises(self):
        a = self.detection(BoundingBox(0.2, 0.2, 0.2, 0.2))
        b = self.detection(BoundingBox(math.inf, 0.2, 0.2, 0.2))

        with self.assertRaises(CorrelationError):
            is_similar(a, b)


class TestCorrelate(CorrelatorTestCase):
    def test_tiger_walkthrough(self):
        first = self.add(px(120, 80, 150, 200), offset=0.0, frame_number=1)
        first_id = self.correlator.correlate(first)
        self.assertIsNone(self.correlator.maybe_build_route(1, first_id))

        second = self.add(px(125, 85, 148, 195), offset=0.75, frame_number=2)
        second_id = self.correlator.correlate(second)
        route = self.correlator.maybe_build_route(1, second_id)

        self.assertEqual(first_id, 1)
        self.assertEqual(second_id, 1)
        self.assertEqual(second.tracking_id, 1)
        self.assertIsNotNone(route)
        self.assertEqual(len(route.path), 2)
        self.assertEqual(route.path[0], first.box.center)
        self.assertEqual(route.label, "tiger")
        self.assertEqual(route.start_time, first.timestamp)
        self.assertEqual(route.end_time, second.timestamp)

    def test_unmatched_detections_get_new_ids(self):
        a = self.add(BoundingBox(0.0, 0.0, 0.1, 0.1))
        b = self.add(BoundingBox(0.8, 0.8, 0.1, 0.1), offset=1)

        self.assertEqual(self.correlator.correlate(a), 1)
        self.assertEqual(self.correlator.correlate(b), 2)

    def test_minting_is_monotonic(self):
        ids = [
            self.correlator.correlate(self.add(BoundingBox(0.0, 0.0, 0.1, 0.1), offset=i * 20))
            for i in range(4)
        ]

        self.assertEqual(ids, [1, 2, 3, 4])

    def test_unassigned_match_gets_same_new_id(self):
        earlier = self.add(BoundingBox(0.2, 0.2, 0.2, 0.2))
        later = self.add(BoundingBox(0.21, 0.2, 0.2, 0.2), offset=2)

        tracking_id = self.correlator.correlate(later)

        self.assertEqual(tracking_id, 1)
        self.assertEqual(self.store.get_detection(earlier.detection_id).tracking_id, 1)

    def test_outside_window_does_not_match(self):
        old = self.add(BoundingBox(0.2, 0.2, 0.2, 0.2))
        self.correlator.correlate(old)
        new = self.add(BoundingBox(0.2, 0.2, 0.2, 0.2), offset=16)

        self.assertEqual(self.correlator.correlate(new), 2)

    def test_other_camera_does_not_match(self):
        self.correlator.correlate(self.add(BoundingBox(0.2, 0.2, 0.2, 0.2), camera_id=1))

        other = self.add(BoundingBox(0.2, 0.2, 0.2, 0.2), camera_id=2, offset=1)

        self.assertEqual(self.correlator.correlate(other), 2)

    def test_closest_in_time_wins(self):
        far = self.add(BoundingBox(0.2, 0.2, 0.2, 0.2), offset=-10)
        self.store.assign_tracking_id(far.detection_id, 5)
        near = self.add(BoundingBox(0.2, 0.2, 0.2, 0.2), offset=-2)
        self.store.assign_tracking_id(near.detection_id, 8)

        current = self.add(BoundingBox(0.2, 0.2, 0.2, 0.2))

        self.assertEqual(self.correlator.correlate(current), 8)

    def test_existing_tracking_id_is_kept(self):
        detection = self.add(BoundingBox(0.2, 0.2, 0.2, 0.2))
        self.store.assign_tracking_id(detection.detection_id, 6)

        self.assertEqual(self.correlator.correlate(detection), 6)

    def test_correlation_error_mints_fresh_id(self):
        broken = self.add(BoundingBox(math.nan, 0.2, 0.2, 0.2))
        self.store.assign_tracking_id(broken.detection_id, 3)

        current = self.add(BoundingBox(0.2, 0.2, 0.2, 0.2), offset=1)

        self.assertEqual(self.correlator.correlate(current), 4)


class TestRoutes(CorrelatorTestCase):
    def test_route_needs_two_detections(self):
        detection = self.add(BoundingBox(0.2, 0.2, 0.2, 0.2))
        tracking_id = self.correlator.correlate(detection)

        self.assertIsNone(self.correlator.maybe_build_route(1, tracking_id))
        self.assertIsNone(self.store.get_tracking_route(tracking_id))

    def test_route_path_follows_frame_order(self):
        boxes = {
            3: BoundingBox(0.30, 0.2, 0.2, 0.2),
            1: BoundingBox(0.20, 0.2, 0.2, 0.2),
            2: BoundingBox(0.25, 0.2, 0.2, 0.2),
        }
        for offset, (frame_number, box) in enumerate(boxes.items()):
            detection = self.add(box, offset=offset, frame_number=frame_number)
            self.store.assign_tracking_id(detection.detection_id, 1)

        route = self.correlator.maybe_build_route(1, 1)

        self.assertEqual(route.path, [boxes[1].center, boxes[2].center, boxes[3].center])

    def test_route_is_built_once(self):
        for offset in range(3):
            detection = self.add(BoundingBox(0.2, 0.2, 0.2, 0.2), offset=offset)
            self.store.assign_tracking_id(detection.detection_id, 1)

        first = self.correlator.maybe_build_route(1, 1)
        second = self.correlator.maybe_build_route(1, 1)

        self.assertIsNotNone(first)
        self.assertIsNone(second)
        self.assertEqual(len(self.store.get_tracking_route(1).path), 3)


if __name__ == "__main__":
    unittest.main()
