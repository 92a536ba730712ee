"""
Capability protocols - the contracts with capture and inference backends.

Any camera backend (OpenCV device, RTSP stream, test fake) and any detection
model can implement these to plug into a camera worker.
"""

from typing import Protocol, runtime_checkable

import numpy as np

from .detection import DetectedObject


@runtime_checkable
class FrameSource(Protocol):
    """
    Protocol for one physical or virtual camera.

    Example:
        source.open()
        frame = source.read()
        ...
        source.release()
    """

    @property
    def width(self) -> int: ...

    @property
    def height(self) -> int: ...

    @property
    def fps(self) -> float: ...

    def open(self) -> None:
        """
        Open the capture handle and negotiate geometry.

        Raises:
            CaptureError: If the camera cannot be opened
        """
        ...

    def read(self) -> np.ndarray | None:
        """Read one BGR frame, or None if no frame is available."""
        ...

    def release(self) -> None:
        """Release the capture handle. Safe to call more than once."""
        ...


@runtime_checkable
class ObjectDetector(Protocol):
    """Protocol for detection models: frame in, detections out."""

    def detect(self, frame: np.ndarray) -> list[DetectedObject]:
        """
        Run inference on a single frame.

        Args:
            frame: BGR frame from camera (numpy array)

        Returns:
            Detected objects with confidence 0..1 and pixel boxes

        Raises:
            InferenceError: If the model fails on this frame
        """
        ...
