"""
Tests for the media archive.
"""

import os
import tempfile
import unittest
from datetime import datetime, timezone

import cv2
import numpy as np

from zootrack.models import Media
from zootrack.processor import MediaArchive

T0 = datetime(2024, 5, 1, 12, 0, 0, 250000, tzinfo=timezone.utc)


class TestMediaArchive(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.archive = MediaArchive(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def test_save_frame_returns_relative_path(self):
        path = self.archive.save_frame(b"jpeg", T0)

        self.assertEqual(path, os.path.join("Detections", "detection_20240501_120000_250.jpg"))
        self.assertTrue(os.path.isfile(self.archive.resolve(path)))

    def test_missing_source_extracts_nothing(self):
        media = Media(7, 1, "Video", "gone.avi", T0)

        self.assertEqual(self.archive.extract_frames(media), [])

    def test_image_is_copied(self):
        path = self.archive.save_frame(b"jpeg", T0)
        media = Media(3, 1, "Image", path, T0)

        extracted = self.archive.extract_frames(media)

        self.assertEqual(len(extracted), 1)
        self.assertEqual(os.path.dirname(extracted[0]), os.path.join(self.tmp.name, "SavedDetections", "3"))
        with open(extracted[0], "rb") as f:
            self.assertEqual(f.read(), b"jpeg")

    def test_video_is_sampled(self):
        video_path = os.path.join(self.tmp.name, "clip.avi")
        writer = cv2.VideoWriter(video_path, cv2.VideoWriter_fourcc(*"MJPG"), 10.0, (64, 48))
        for i in range(10):
            writer.write(np.full((48, 64, 3), i * 20, dtype=np.uint8))
        writer.release()
        media = Media(5, 1, "Video", "clip.avi", T0)

        extracted = self.archive.extract_frames(media, sample_fps=5.0)

        self.assertEqual(len(extracted), 5)
        self.assertTrue(all(os.path.isfile(p) for p in extracted))


if __name__ == "__main__":
    unittest.main()
