"""
Tests for CLI helpers that do not need a camera.
"""

import tempfile
import unittest

from zootrack.broadcast import InMemoryBroadcastHub, LatestFrameWriter
from zootrack.cli import build_broadcaster, parse_args, parse_duration, seed_users, start_cameras
from zootrack.config import CameraPlan, validate_config_pydantic
from zootrack.storage import DetectionStore


class TestArgs(unittest.TestCase):
    def test_defaults(self):
        args = parse_args([])

        self.assertIsNone(args.duration)
        self.assertEqual(args.config, "config.yaml")
        self.assertFalse(args.validate)
        self.assertFalse(args.discover)

    def test_duration_and_flags(self):
        args = parse_args(["0.5", "-q", "-c", "zoo.yaml"])

        self.assertEqual(args.duration, 0.5)
        self.assertTrue(args.quiet)
        self.assertEqual(args.config, "zoo.yaml")

    def test_duration_falls_back_to_config(self):
        config = validate_config_pydantic({"runtime": {"default_duration_hours": 2}})

        self.assertEqual(parse_duration(None, config), 2)
        self.assertEqual(parse_duration(0.25, config), 0.25)

    def test_non_positive_duration_exits(self):
        config = validate_config_pydantic({})

        with self.assertRaises(SystemExit):
            parse_duration(0, config)


class TestRuntimeBuilders(unittest.TestCase):
    def test_seed_users_adds_system_user(self):
        store = DetectionStore()
        config = validate_config_pydantic(
            {"users": [{"id": 2, "name": "keeper", "notification_preference": "Email"}]}
        )

        seed_users(store, config)

        self.assertEqual([user.user_id for user, _ in store.subscribers()], [2])
        self.assertIsNotNone(store.get_user_settings(2))
        store.close()

    def test_broadcaster_choice(self):
        hub_config = validate_config_pydantic({"runtime": {"snapshot_dir": None}})
        self.assertIsInstance(build_broadcaster(hub_config), InMemoryBroadcastHub)

        with tempfile.TemporaryDirectory() as tmp:
            writer_config = validate_config_pydantic({"runtime": {"snapshot_dir": tmp}})
            self.assertIsInstance(build_broadcaster(writer_config), LatestFrameWriter)

    def test_start_cameras_skips_idle_and_failed(self):
        class StubManager:
            def __init__(self):
                self.started = []

            def start(self, camera_id, labels, path, threshold):
                self.started.append(camera_id)
                return camera_id != 2

        manager = StubManager()
        plans = [
            CameraPlan(0, 0, {"tiger"}),
            CameraPlan(1, 1, {"tiger"}, start=False),
            CameraPlan(2, 2, {"tiger"}),
        ]

        started = start_cameras(manager, plans)

        self.assertEqual(started, [0])
        self.assertEqual(manager.started, [0, 2])


if __name__ == "__main__":
    unittest.main()
