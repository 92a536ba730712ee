"""
Camera initialization and frame capture.
"""

import logging
import math

import cv2
import numpy as np

from ..errors import CaptureError
from ..utils.constants import (
    DEFAULT_DISCOVER_MAX_INDEX,
    DEFAULT_FPS,
    DEFAULT_FRAME_HEIGHT,
    DEFAULT_FRAME_WIDTH,
)

logger = logging.getLogger(__name__)


def resolve_backend(name: str | None) -> int | None:
    """
    Map a backend name from config ('dshow', 'v4l2', 'ffmpeg', ...) to the
    OpenCV constant. Unknown names resolve to None (default backend only).
    """
    if not name:
        return None
    backend = getattr(cv2, f"CAP_{name.upper()}", None)
    if backend is None:
        logger.warning(f"Unknown capture backend '{name}', using default")
    return backend


class OpenCVFrameSource:
    """
    FrameSource backed by cv2.VideoCapture.

    Tries the preferred backend first and falls back to the default one.
    There is no retry or reconnect: a failed open raises CaptureError and a
    failed read returns None.

    Args:
        source: Device index or stream URL
        backend: Preferred cv2.CAP_* backend, or None for the default
        width: Requested frame width
        height: Requested frame height
        default_fps: Frame rate used when the device reports none
    """

    def __init__(
        self,
        source: int | str,
        backend: int | None = None,
        width: int = DEFAULT_FRAME_WIDTH,
        height: int = DEFAULT_FRAME_HEIGHT,
        default_fps: float = DEFAULT_FPS,
    ):
        self.source = source
        self.backend = backend
        self.requested_width = width
        self.requested_height = height
        self.default_fps = default_fps

        self._cap: cv2.VideoCapture | None = None
        self._width = 0
        self._height = 0
        self._fps = 0.0

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def fps(self) -> float:
        return self._fps

    @property
    def is_open(self) -> bool:
        return self._cap is not None and self._cap.isOpened()

    def open(self) -> None:
        """
        Open the capture handle and read back the negotiated geometry.

        Raises:
            CaptureError: If no backend can open the source
        """
        if self.is_open:
            return

        cap = None
        if self.backend is not None:
            logger.info(f"Opening camera {self.source} (backend {self.backend})")
            cap = cv2.VideoCapture(self.source, self.backend)
            if not cap.isOpened():
                logger.warning(
                    f"Preferred backend failed for camera {self.source}, trying default"
                )
                cap.release()
                cap = None

        if cap is None:
            cap = cv2.VideoCapture(self.source, cv2.CAP_ANY)
            if not cap.isOpened():
                cap.release()
                logger.error(f"Cannot open camera: {self.source}")
                raise CaptureError(f"Cannot open camera: {self.source}")

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.requested_width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.requested_height)

        self._width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)) or self.requested_width
        self._height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)) or self.requested_height

        fps = cap.get(cv2.CAP_PROP_FPS)
        if not fps or not math.isfinite(fps) or fps <= 0:
            fps = self.default_fps
        self._fps = float(fps)
        self._cap = cap

        logger.info(
            f"Camera {self.source} opened: {self._width}x{self._height} @ {self._fps:.1f} fps"
        )

    def read(self) -> np.ndarray | None:
        if self._cap is None:
            return None
        ret, frame = self._cap.read()
        if not ret or frame is None:
            logger.debug(f"No frame from camera {self.source}")
            return None
        return frame

    def release(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
            logger.info(f"Camera {self.source} released")


def discover_cameras(
    max_index: int = DEFAULT_DISCOVER_MAX_INDEX, backend: int | None = None
) -> list[int]:
    """
    Probe device indices [0, max_index) and return the ones that open.

    Args:
        max_index: Number of device indices to probe
        backend: Preferred backend passed to each probe

    Returns:
        Openable device indices
    """
    found = []
    for index in range(max_index):
        source = OpenCVFrameSource(index, backend=backend)
        try:
            source.open()
        except CaptureError:
            continue
        finally:
            source.release()
        found.append(index)

    logger.info(f"Discovered {len(found)} camera(s): {found}")
    return found
