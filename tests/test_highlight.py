"""
Tests for the highlight recorder state machine.
"""

import os
import tempfile
import unittest
from datetime import datetime

import numpy as np

from fakes import FakeClock, FakeWriterFactory
from zootrack.core.highlight import HighlightRecorder, highlight_filename
from zootrack.models import HighlightState


def frame(width=640, height=480):
    return np.zeros((height, width, 3), dtype=np.uint8)


class TestHighlightRecorder(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.clock = FakeClock()
        self.writers = FakeWriterFactory()
        self.recorder = HighlightRecorder(
            camera_id=3,
            frame_width=640,
            frame_height=480,
            fps=20.0,
            clock=self.clock,
            writer_factory=self.writers,
            wall_clock=lambda: datetime(2024, 5, 1, 13, 45, 10, 123456),
        )
        self.recorder.configure({"Tiger"}, self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def test_stays_idle_without_target(self):
        self.recorder.update(frame(), target_detected=False)

        self.assertEqual(self.recorder.state, HighlightState.IDLE)
        self.assertEqual(self.writers.calls, 0)

    def test_stays_idle_without_save_path(self):
        self.recorder.configure({"tiger"}, None)

        self.recorder.update(frame(), target_detected=True)

        self.assertEqual(self.recorder.state, HighlightState.IDLE)

    def test_stays_idle_without_labels(self):
        self.recorder.configure(set(), self.tmp.name)

        self.recorder.update(frame(), target_detected=True)

        self.assertFalse(self.recorder.is_recording)

    def test_target_starts_clip_in_camera_directory(self):
        self.recorder.update(frame(), target_detected=True)

        self.assertEqual(self.recorder.state, HighlightState.RECORDING)
        writer = self.writers.writers[0]
        self.assertEqual(
            writer.path,
            os.path.join(self.tmp.name, "Camera_3", "highlight_20240501_134510123.avi"),
        )
        self.assertEqual(writer.fourcc, "MJPG")
        self.assertEqual(writer.size, (640, 480))
        self.assertEqual(writer.fps, 20.0)
        self.assertTrue(os.path.isdir(os.path.join(self.tmp.name, "Camera_3")))
        self.assertEqual(len(writer.frames), 1)

    def test_frames_appended_while_recording(self):
        self.recorder.update(frame(), target_detected=True)
        self.recorder.update(frame(), target_detected=False)
        self.recorder.update(frame(), target_detected=False)

        self.assertEqual(len(self.writers.writers[0].frames), 3)
        self.assertEqual(self.recorder.session.frames_written, 3)

    def test_clip_closes_at_deadline(self):
        start = self.clock.now
        self.recorder.update(frame(), target_detected=True)

        self.clock.now = start + 4.9
        self.recorder.update(frame(), target_detected=False)
        self.assertTrue(self.recorder.is_recording)

        self.clock.now = start + 5.0
        self.recorder.update(frame(), target_detected=False)
        self.assertFalse(self.recorder.is_recording)
        self.assertTrue(self.writers.writers[0].released)
        self.assertEqual(len(self.writers.writers[0].frames), 2)

    def test_qualifying_frames_do_not_extend_deadline(self):
        self.recorder.update(frame(), target_detected=True)
        deadline = self.recorder.session.deadline

        for _ in range(4):
            self.clock.advance(1.0)
            self.recorder.update(frame(), target_detected=True)
            self.assertEqual(self.recorder.session.deadline, deadline)

        self.clock.advance(1.0)
        self.recorder.poll()

        self.assertEqual(self.recorder.state, HighlightState.IDLE)
        self.assertEqual(self.writers.calls, 1)

    def test_target_at_expiry_starts_new_clip(self):
        self.recorder.update(frame(), target_detected=True)
        self.clock.advance(5.0)

        self.recorder.update(frame(), target_detected=True)

        self.assertTrue(self.writers.writers[0].released)
        self.assertEqual(self.writers.calls, 2)
        self.assertTrue(self.recorder.is_recording)

    def test_poll_closes_without_frames(self):
        self.recorder.update(frame(), target_detected=True)
        self.clock.advance(6.0)

        self.recorder.poll()

        self.assertFalse(self.recorder.is_recording)
        self.assertEqual(self.recorder.clips_written, 1)

    def test_writer_open_failure_stays_idle(self):
        writers = FakeWriterFactory(fail_open=True)
        recorder = HighlightRecorder(3, 640, 480, 20.0, clock=self.clock, writer_factory=writers)
        recorder.configure({"tiger"}, self.tmp.name)

        recorder.update(frame(), target_detected=True)

        self.assertEqual(recorder.state, HighlightState.IDLE)
        self.assertIsNone(recorder.session)
        self.assertEqual(writers.calls, 1)

    def test_write_failure_closes_clip(self):
        writers = FakeWriterFactory(fail_on_write=True)
        recorder = HighlightRecorder(3, 640, 480, 20.0, clock=self.clock, writer_factory=writers)
        recorder.configure({"tiger"}, self.tmp.name)

        recorder.update(frame(), target_detected=True)

        self.assertFalse(recorder.is_recording)
        self.assertTrue(writers.writers[0].released)

    def test_dispose_forces_idle(self):
        self.recorder.update(frame(), target_detected=True)

        self.recorder.dispose()

        self.assertEqual(self.recorder.state, HighlightState.IDLE)
        self.assertTrue(self.writers.writers[0].released)

    def test_frames_resized_to_writer_geometry(self):
        self.recorder.update(frame(320, 240), target_detected=True)

        written = self.writers.writers[0].frames[0]
        self.assertEqual(written.shape[:2], (480, 640))


class TestHighlightFilename(unittest.TestCase):
    def test_millisecond_suffix(self):
        name = highlight_filename(datetime(2024, 1, 2, 3, 4, 5, 6000))

        self.assertEqual(name, "highlight_20240102_030405006.avi")


if __name__ == "__main__":
    unittest.main()
