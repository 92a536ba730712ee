"""
Broadcast transport - where annotated frames go after each tick.

The manager only depends on the FrameBroadcaster protocol. Two in-process
implementations are provided: a subscriber hub and a latest-frame writer
that keeps one JPEG per camera on disk for external viewers.
"""

import logging
import os
import threading
from typing import Callable, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

FrameCallback = Callable[[bytes, str], None]


def channel_for(camera_id: int) -> str:
    """Broadcast channel name for a camera."""
    return f"camera-{camera_id}"


@runtime_checkable
class FrameBroadcaster(Protocol):
    def publish(self, channel: str, jpeg_bytes: bytes, status: str) -> None: ...


class InMemoryBroadcastHub:
    """
    Fan-out of frames to callbacks subscribed per camera channel.
    A failing subscriber is logged and never affects the others.
    """

    def __init__(self):
        self._subscribers: dict[str, list[FrameCallback]] = {}
        self._lock = threading.Lock()
        self.published = 0

    def subscribe(self, camera_id: int, callback: FrameCallback) -> None:
        with self._lock:
            self._subscribers.setdefault(channel_for(camera_id), []).append(callback)

    def unsubscribe(self, camera_id: int, callback: FrameCallback) -> None:
        with self._lock:
            callbacks = self._subscribers.get(channel_for(camera_id), [])
            if callback in callbacks:
                callbacks.remove(callback)

    def publish(self, channel: str, jpeg_bytes: bytes, status: str) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(channel, []))
            self.published += 1

        for callback in callbacks:
            try:
                callback(jpeg_bytes, status)
            except Exception as e:
                logger.error(f"Subscriber on {channel} failed: {e}")


class LatestFrameWriter:
    """
    Keeps the most recent frame of every channel as {channel}.jpg.

    Writes go to a temp file first and are renamed into place so readers
    never see a partial image.
    """

    def __init__(self, output_dir: str):
        self.output_dir = output_dir
        os.makedirs(output_dir, exist_ok=True)
        self.statuses: dict[str, str] = {}

    def path_for(self, channel: str) -> str:
        return os.path.join(self.output_dir, f"{channel}.jpg")

    def publish(self, channel: str, jpeg_bytes: bytes, status: str) -> None:
        path = self.path_for(channel)
        tmp_path = f"{path}.tmp"
        try:
            with open(tmp_path, "wb") as f:
                f.write(jpeg_bytes)
            os.replace(tmp_path, path)
        except OSError as e:
            logger.error(f"Failed to write latest frame for {channel}: {e}")
            return
        self.statuses[channel] = status
