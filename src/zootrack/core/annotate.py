"""
Frame annotation - detection boxes, labels and error stamps.
"""

import cv2
import numpy as np

from ..models import DetectedObject

BOX_COLOR = (0, 0, 255)  # Red (BGR)
LABEL_COLOR = (50, 205, 50)  # Lime green (BGR)
ERROR_COLOR = (0, 0, 255)


def draw_detections(frame: np.ndarray, detections: list[DetectedObject]) -> np.ndarray:
    """
    Draw a box and a "label NN.N%" caption for every detection.

    Args:
        frame: Frame to annotate (modified in place)
        detections: Detector output in pixel units

    Returns:
        Annotated frame
    """
    for det in detections:
        x, y, w, h = det.box
        cv2.rectangle(frame, (x, y), (x + w, y + h), BOX_COLOR, 2)
        cv2.putText(
            frame,
            f"{det.label} {det.confidence * 100:.1f}%",
            (x, max(y - 10, 15)),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.5,
            LABEL_COLOR,
            2,
        )
    return frame


def stamp_error(frame: np.ndarray, text: str = "Detection Error") -> np.ndarray:
    """Overlay an error caption in the top-left corner."""
    cv2.putText(
        frame,
        text,
        (10, 30),
        cv2.FONT_HERSHEY_SIMPLEX,
        1,
        ERROR_COLOR,
        2,
    )
    return frame


def encode_jpeg(frame: np.ndarray, quality: int = 85) -> bytes:
    """
    JPEG-encode a frame.

    Raises:
        ValueError: If OpenCV cannot encode the frame
    """
    ok, buffer = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, quality])
    if not ok:
        raise ValueError("JPEG encoding failed")
    return buffer.tobytes()
