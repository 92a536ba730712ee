"""
Tests for YOLO result parsing and error wrapping (no model weights needed).
"""

import unittest
from types import SimpleNamespace

import numpy as np
import torch

from zootrack.core.detector import YoloObjectDetector, _parse_results
from zootrack.errors import InferenceError


def fake_result(boxes, names):
    """Mimic an ultralytics Results object with xyxy/conf/cls tensors."""
    if not boxes:
        return SimpleNamespace(boxes=[], names=names)
    xyxy = torch.tensor([b[0] for b in boxes], dtype=torch.float32)
    conf = torch.tensor([b[1] for b in boxes], dtype=torch.float32)
    cls = torch.tensor([b[2] for b in boxes], dtype=torch.float32)

    class Boxes:
        def __len__(self):
            return len(boxes)

    result_boxes = Boxes()
    result_boxes.xyxy, result_boxes.conf, result_boxes.cls = xyxy, conf, cls
    return SimpleNamespace(boxes=result_boxes, names=names)


class TestParseResults(unittest.TestCase):
    def test_xyxy_converted_to_pixel_box(self):
        results = [fake_result([((120, 80, 270, 280), 0.9, 1)], {0: "person", 1: "Tiger"})]

        detections = _parse_results(results)

        self.assertEqual(len(detections), 1)
        det = detections[0]
        self.assertEqual(det.label, "tiger")
        self.assertAlmostEqual(det.confidence, 0.9, places=5)
        self.assertEqual(det.box, (120, 80, 150, 200))

    def test_empty_results(self):
        self.assertEqual(_parse_results([fake_result([], {})]), [])
        self.assertEqual(_parse_results([]), [])


class TestDetectErrors(unittest.TestCase):
    def test_predict_failure_raises_inference_error(self):
        detector = YoloObjectDetector.__new__(YoloObjectDetector)
        detector.confidence, detector.iou, detector.classes, detector.device = 0.35, 0.6, None, "cpu"

        def broken_predict(**kwargs):
            raise RuntimeError("CUDA error")

        detector.model = SimpleNamespace(predict=broken_predict)

        with self.assertRaises(InferenceError):
            detector.detect(np.zeros((48, 64, 3), dtype=np.uint8))


if __name__ == "__main__":
    unittest.main()
