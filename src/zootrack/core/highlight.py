"""
Highlight recorder - a short clip written after the first target sighting.

State machine:
    IDLE --(target frame, labels + path configured)--> RECORDING
    RECORDING --(clock >= deadline | write failure | dispose)--> IDLE

The deadline is armed once, when the clip starts, and further target
frames do not extend it. Expiry is checked at the start of every update()
and by poll(), so a clip closes even if the camera stops delivering frames.
"""

import logging
import os
import threading
import time
from datetime import datetime
from typing import Any, Callable

import cv2
import numpy as np

from ..errors import WriterError
from ..models import HighlightSession, HighlightState
from ..utils.constants import (
    HIGHLIGHT_DURATION_SECONDS,
    HIGHLIGHT_EXTENSION,
    HIGHLIGHT_FOURCC,
)

logger = logging.getLogger(__name__)

WriterFactory = Callable[[str, str, float, tuple[int, int]], Any]


def open_video_writer(path: str, fourcc: str, fps: float, size: tuple[int, int]):
    """
    Open a cv2.VideoWriter.

    Raises:
        WriterError: If the writer cannot be opened
    """
    writer = cv2.VideoWriter(path, cv2.VideoWriter_fourcc(*fourcc), fps, size)
    if not writer.isOpened():
        writer.release()
        raise WriterError(f"Cannot open video writer: {path}")
    return writer


def highlight_filename(now: datetime) -> str:
    """highlight_YYYYmmdd_HHMMSSfff.avi"""
    return (
        f"highlight_{now.strftime('%Y%m%d_%H%M%S')}{now.microsecond // 1000:03d}"
        f".{HIGHLIGHT_EXTENSION}"
    )


class HighlightRecorder:
    """
    Per-camera highlight clip recorder.

    Args:
        camera_id: Camera the clips belong to
        frame_width: Native frame width of the camera
        frame_height: Native frame height of the camera
        fps: Native frame rate of the camera
        duration: Clip length in seconds from the first trigger
        clock: Monotonic clock used for the deadline
        writer_factory: Callable(path, fourcc, fps, (w, h)) returning a writer
        wall_clock: Clock used for clip file names
    """

    def __init__(
        self,
        camera_id: int,
        frame_width: int,
        frame_height: int,
        fps: float,
        duration: float = HIGHLIGHT_DURATION_SECONDS,
        fourcc: str = HIGHLIGHT_FOURCC,
        clock: Callable[[], float] = time.monotonic,
        writer_factory: WriterFactory = open_video_writer,
        wall_clock: Callable[[], datetime] = datetime.now,
    ):
        self.camera_id = camera_id
        self.frame_size = (frame_width, frame_height)
        self.fps = fps
        self.duration = duration
        self.fourcc = fourcc
        self._clock = clock
        self._writer_factory = writer_factory
        self._wall_clock = wall_clock

        self.target_labels: set[str] = set()
        self.save_path: str | None = None

        self._session: HighlightSession | None = None
        self._lock = threading.Lock()
        self.clips_written = 0

    @property
    def state(self) -> HighlightState:
        return HighlightState.RECORDING if self._session else HighlightState.IDLE

    @property
    def is_recording(self) -> bool:
        return self._session is not None

    @property
    def session(self) -> HighlightSession | None:
        return self._session

    def configure(self, target_labels: set[str], save_path: str | None) -> None:
        """Set the labels that trigger clips and the root directory for them."""
        with self._lock:
            self.target_labels = {label.lower() for label in target_labels}
            self.save_path = save_path or None

    def update(self, frame: np.ndarray, target_detected: bool) -> None:
        """
        Feed one annotated frame.

        Args:
            frame: Annotated BGR frame
            target_detected: A target label was seen in this frame
        """
        with self._lock:
            now = self._clock()
            self._expire_if_due(now)

            if (
                self._session is None
                and target_detected
                and self.target_labels
                and self.save_path
            ):
                self._begin(now)

            if self._session is not None:
                self._write(frame)

    def poll(self) -> None:
        """Close the clip if its deadline has passed."""
        with self._lock:
            self._expire_if_due(self._clock())

    def dispose(self) -> None:
        """Force the recorder back to IDLE, closing any open clip."""
        with self._lock:
            self._close("disposed")

    def _expire_if_due(self, now: float) -> None:
        if self._session is not None and now >= self._session.deadline:
            self._close("deadline reached")

    def _begin(self, now: float) -> None:
        camera_dir = os.path.join(self.save_path, f"Camera_{self.camera_id}")
        path = os.path.join(camera_dir, highlight_filename(self._wall_clock()))

        try:
            os.makedirs(camera_dir, exist_ok=True)
            writer = self._writer_factory(path, self.fourcc, self.fps, self.frame_size)
        except (WriterError, OSError) as e:
            logger.error(f"Camera {self.camera_id}: highlight writer failed: {e}")
            return

        self._session = HighlightSession(
            path=path,
            writer=writer,
            started_at=now,
            deadline=now + self.duration,
        )
        logger.info(f"Camera {self.camera_id}: highlight recording started: {path}")

    def _write(self, frame: np.ndarray) -> None:
        session = self._session
        height, width = frame.shape[:2]
        if (width, height) != self.frame_size:
            frame = cv2.resize(frame, self.frame_size)

        try:
            session.writer.write(frame)
            session.frames_written += 1
        except Exception as e:
            logger.error(
                f"Camera {self.camera_id}: highlight write failed, stopping clip: {e}"
            )
            self._close("write failure")

    def _close(self, reason: str) -> None:
        session = self._session
        if session is None:
            return
        self._session = None

        try:
            session.writer.release()
        except Exception as e:
            logger.warning(f"Camera {self.camera_id}: error closing highlight writer: {e}")

        self.clips_written += 1
        logger.info(
            f"Camera {self.camera_id}: highlight saved ({reason}): "
            f"{session.path} ({session.frames_written} frames)"
        )
