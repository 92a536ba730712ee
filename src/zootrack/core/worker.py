"""
Camera worker - one camera's capture -> detect -> annotate -> record -> encode
pipeline, one frame per call.

A worker never raises out of process_one_frame(): read failures, inference
errors and ingest sink failures are logged and the frame loop carries on.
"""

import logging
import threading
from dataclasses import replace
from typing import Any, Callable

import numpy as np

from ..models import (
    CameraState,
    DetectedObject,
    FrameResult,
    FrameSource,
    ObjectDetector,
    RawDetection,
    utc_now,
)
from ..utils.constants import STATUS_REPORT_INTERVAL
from .annotate import draw_detections, encode_jpeg, stamp_error
from .highlight import HighlightRecorder

logger = logging.getLogger(__name__)

IngestSink = Callable[[RawDetection], Any]
RecorderFactory = Callable[[int, int, int, float], HighlightRecorder]


class CameraWorker:
    """
    Frame pipeline for a single camera.

    Args:
        camera_id: Camera identifier
        source: Frame source (opened lazily by initialize)
        detector_factory: Builds the detector on first initialize
        ingest_sink: Receives target detections; must not block
        recorder_factory: Callable(camera_id, width, height, fps) -> recorder
    """

    def __init__(
        self,
        camera_id: int,
        source: FrameSource,
        detector_factory: Callable[[], ObjectDetector],
        ingest_sink: IngestSink | None = None,
        recorder_factory: RecorderFactory = HighlightRecorder,
    ):
        self.camera_id = camera_id
        self.source = source
        self._detector_factory = detector_factory
        self._ingest_sink = ingest_sink
        self._recorder_factory = recorder_factory

        self._detector: ObjectDetector | None = None
        self._recorder: HighlightRecorder | None = None
        self._state = CameraState(camera_id=camera_id)

        # _frame_lock: at most one in-flight frame; _state_lock: config snapshot
        self._frame_lock = threading.Lock()
        self._state_lock = threading.Lock()

        self._frame_number = 0
        self.frames_processed = 0
        self.detections_submitted = 0

    @property
    def state(self) -> CameraState:
        """Snapshot copy of the camera state."""
        with self._state_lock:
            return replace(self._state, target_labels=set(self._state.target_labels))

    @property
    def processing(self) -> bool:
        with self._state_lock:
            return self._state.initialized and self._state.processing

    @property
    def busy(self) -> bool:
        """A frame is currently being processed."""
        return self._frame_lock.locked()

    @property
    def recorder(self) -> HighlightRecorder | None:
        return self._recorder

    @property
    def frame_number(self) -> int:
        """Number of the last frame read."""
        return self._frame_number

    def resume_frame_numbers(self, last_frame_number: int) -> None:
        """Continue numbering after a previous worker for the same camera."""
        with self._frame_lock:
            self._frame_number = max(self._frame_number, last_frame_number)

    def initialize(self) -> bool:
        """
        Open the frame source and build the detector.

        Returns:
            True if the camera is ready (or already was)
        """
        with self._frame_lock:
            if self._state.initialized:
                return True

            try:
                self.source.open()
                if self._detector is None:
                    self._detector = self._detector_factory()
            except Exception as e:
                logger.error(f"Camera {self.camera_id}: initialization failed: {e}")
                self.source.release()
                return False

            self._recorder = self._recorder_factory(
                self.camera_id, self.source.width, self.source.height, self.source.fps
            )

            with self._state_lock:
                self._state.initialized = True
                self._state.frame_width = self.source.width
                self._state.frame_height = self.source.height
                self._state.fps = self.source.fps
                self._recorder.configure(
                    self._state.target_labels, self._state.highlight_save_path
                )

        logger.info(
            f"Camera {self.camera_id} initialized "
            f"({self.source.width}x{self.source.height} @ {self.source.fps:.1f} fps)"
        )
        return True

    def set_targets(
        self,
        labels: set[str],
        highlight_path: str | None,
        detection_threshold: float = 0.0,
    ) -> None:
        """Replace target labels, highlight root and ingest threshold."""
        labels = {label.lower() for label in labels}
        with self._state_lock:
            self._state.target_labels = labels
            self._state.highlight_save_path = highlight_path
            self._state.detection_threshold = detection_threshold
            if self._recorder is not None:
                self._recorder.configure(labels, highlight_path)

        logger.info(
            f"Camera {self.camera_id} targets: {sorted(labels) or 'none'} "
            f"(threshold {detection_threshold:.0f}%, highlights: {highlight_path or 'off'})"
        )

    def set_processing(self, processing: bool) -> None:
        with self._state_lock:
            self._state.processing = processing

    def stop(self) -> None:
        """Stop processing and close any open highlight clip."""
        with self._frame_lock:
            self.set_processing(False)
            if self._recorder is not None:
                self._recorder.dispose()
        logger.info(f"Camera {self.camera_id} stopped")

    def dispose(self) -> None:
        """Release the capture handle and reset to uninitialized."""
        with self._frame_lock:
            if self._recorder is not None:
                self._recorder.dispose()
            self.source.release()
            self._detector = None
            with self._state_lock:
                self._state.initialized = False
                self._state.processing = False
        logger.info(
            f"Camera {self.camera_id} disposed ({self.frames_processed} frames, "
            f"{self.detections_submitted} detections submitted)"
        )

    def process_one_frame(self) -> FrameResult | None:
        """
        Run the pipeline on one frame.

        Returns:
            FrameResult, or None if the camera is idle or no frame was read
        """
        with self._frame_lock:
            with self._state_lock:
                ready = self._state.initialized and self._state.processing
                targets = set(self._state.target_labels)
                threshold = self._state.detection_threshold

            if not ready:
                self._poll_recorder()
                return None

            try:
                frame = self.source.read()
            except Exception as e:
                logger.warning(f"Camera {self.camera_id}: frame read failed: {e}")
                frame = None

            if frame is None:
                logger.debug(f"Camera {self.camera_id}: no frame")
                self._poll_recorder()
                return None

            # Detector boxes are in pixels of the frame actually read
            frame_height, frame_width = frame.shape[:2]
            self._frame_number += 1
            frame_number = self._frame_number
            timestamp = utc_now()

            detection_failed = False
            try:
                detections = self._detector.detect(frame)
            except Exception as e:
                logger.error(f"Camera {self.camera_id}: detection failed: {e}")
                detections = []
                detection_failed = True

            target_detected = False
            detected_labels: set[str] = set()
            raw_jpeg: bytes | None = None

            for det in detections:
                if det.label not in targets:
                    continue
                target_detected = True
                detected_labels.add(det.label)

                if det.confidence * 100 < threshold:
                    continue
                if raw_jpeg is None:
                    raw_jpeg = self._encode_raw(frame)
                self._submit(det, frame_width, frame_height, frame_number, timestamp, raw_jpeg)

            annotated = draw_detections(frame.copy(), detections)
            if detection_failed:
                stamp_error(annotated)

            if self._recorder is not None:
                self._recorder.update(annotated, target_detected)

            try:
                jpeg_bytes = encode_jpeg(annotated)
            except Exception as e:
                logger.warning(f"Camera {self.camera_id}: frame encoding failed: {e}")
                return None

            self.frames_processed += 1
            if self.frames_processed % STATUS_REPORT_INTERVAL == 0:
                logger.info(
                    f"Camera {self.camera_id}: {self.frames_processed} frames, "
                    f"{self.detections_submitted} detections submitted"
                )

            return FrameResult(
                camera_id=self.camera_id,
                jpeg_bytes=jpeg_bytes,
                target_detected=target_detected,
                detected_labels=detected_labels,
            )

    def _poll_recorder(self) -> None:
        if self._recorder is not None:
            self._recorder.poll()

    def _encode_raw(self, frame: np.ndarray) -> bytes | None:
        try:
            return encode_jpeg(frame)
        except Exception as e:
            logger.warning(f"Camera {self.camera_id}: raw frame encoding failed: {e}")
            return None

    def _submit(
        self,
        det: DetectedObject,
        frame_width: int,
        frame_height: int,
        frame_number: int,
        timestamp,
        raw_jpeg: bytes | None,
    ) -> None:
        if self._ingest_sink is None:
            return
        try:
            raw = RawDetection.from_inference(
                det,
                camera_id=self.camera_id,
                frame_width=frame_width,
                frame_height=frame_height,
                frame_number=frame_number,
                timestamp=timestamp,
                frame_jpeg=raw_jpeg,
            )
            self._ingest_sink(raw)
            self.detections_submitted += 1
        except Exception as e:
            logger.error(f"Camera {self.camera_id}: detection hand-off failed: {e}")
