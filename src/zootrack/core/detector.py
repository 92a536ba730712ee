"""
YOLO object detector - wraps an ultralytics model behind the ObjectDetector
protocol so camera workers never touch the model API directly.
"""

import os

os.environ["QT_QPA_PLATFORM"] = "offscreen"

import logging

import numpy as np
import torch
from ultralytics import YOLO

from ..errors import InferenceError
from ..models import DetectedObject
from ..utils.constants import DEFAULT_CONFIDENCE, DEFAULT_IOU, DEFAULT_MODEL_FILE

logger = logging.getLogger(__name__)


class YoloObjectDetector:
    """
    ObjectDetector backed by an ultralytics YOLO model.

    Args:
        model_file: Path or hub name of the model weights
        confidence: Minimum model confidence (0..1)
        iou: Non-maximum suppression IoU threshold
        classes: Optional class-id filter passed to the model
    """

    def __init__(
        self,
        model_file: str = DEFAULT_MODEL_FILE,
        confidence: float = DEFAULT_CONFIDENCE,
        iou: float = DEFAULT_IOU,
        classes: list[int] | None = None,
    ):
        self.model_file = model_file
        self.confidence = confidence
        self.iou = iou
        self.classes = classes
        self.device = "cuda" if torch.cuda.is_available() else "cpu"
        self.model = self._initialize_model()

    def _initialize_model(self) -> YOLO:
        """Load the model and move it to the GPU if available."""
        try:
            model = YOLO(self.model_file)
            model.to(self.device)
        except Exception as e:
            raise InferenceError(f"Cannot load model {self.model_file}: {e}") from e

        logger.info(f"Model initialized: {self.model_file}")
        logger.info(f"Device: {self.device}")

        if self.device == "cuda":
            logger.info(f"GPU: {torch.cuda.get_device_name(0)}")
        else:
            logger.warning("Running on CPU - performance will be slow")

        return model

    def detect(self, frame: np.ndarray) -> list[DetectedObject]:
        """
        Run inference on one BGR frame.

        Raises:
            InferenceError: If the model fails on this frame
        """
        try:
            results = self.model.predict(
                source=frame,
                conf=self.confidence,
                iou=self.iou,
                classes=self.classes,
                device=self.device,
                verbose=False,
            )
        except Exception as e:
            raise InferenceError(f"Inference failed: {e}") from e

        return _parse_results(results)


def _parse_results(results) -> list[DetectedObject]:
    """Convert ultralytics results (xyxy boxes) into DetectedObjects."""
    detections = []
    for result in results:
        boxes = result.boxes
        if boxes is None or len(boxes) == 0:
            continue

        names = result.names
        xyxy = boxes.xyxy.cpu().numpy()
        confs = boxes.conf.cpu().numpy()
        classes = boxes.cls.cpu().numpy().astype(int)

        for (x1, y1, x2, y2), conf, cls in zip(xyxy, confs, classes):
            label = str(names[int(cls)])
            detections.append(
                DetectedObject(
                    label=label.lower(),
                    confidence=float(conf),
                    box=(int(x1), int(y1), int(x2 - x1), int(y2 - y1)),
                )
            )

    return detections
