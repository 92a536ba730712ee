"""
Ingest queue - decouples the frame loop from database writes.

Camera workers submit() without ever blocking; a single consumer thread
drains the queue into the ingest pipeline. When the queue is full new
detections are dropped and counted rather than stalling a camera.
"""

import logging
import queue
import threading

from ..models import RawDetection
from ..utils.constants import DEFAULT_QUEUE_SIZE
from .ingest import DetectionIngestPipeline
from .media import MediaArchive

logger = logging.getLogger(__name__)

# Placeholder media has no file behind it
EXTRACTABLE_MEDIA_TYPES = ("Image", "Video")


class IngestQueue:
    """
    Bounded work queue with one consumer.

    Args:
        pipeline: Ingest pipeline run for each detection
        maxsize: Queue capacity
        media_archive: Archive used for post-ingest frame extraction
        extract_frames: Extract stills from image or video media after ingest
        sample_fps: Extraction rate for video media
    """

    def __init__(
        self,
        pipeline: DetectionIngestPipeline,
        maxsize: int = DEFAULT_QUEUE_SIZE,
        media_archive: MediaArchive | None = None,
        extract_frames: bool = False,
        sample_fps: float = 1.0,
    ):
        self.pipeline = pipeline
        self.media_archive = media_archive
        self.extract_frames = extract_frames
        self.sample_fps = sample_fps

        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._thread: threading.Thread | None = None
        self._counter_lock = threading.Lock()

        self.processed = 0
        self.failed = 0
        self.dropped = 0

    def __call__(self, raw: RawDetection) -> bool:
        return self.submit(raw)

    @property
    def backlog(self) -> int:
        return self._queue.qsize()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def stats(self) -> dict[str, int]:
        with self._counter_lock:
            return {
                "processed": self.processed,
                "failed": self.failed,
                "dropped": self.dropped,
                "backlog": self.backlog,
            }

    def submit(self, raw: RawDetection) -> bool:
        """
        Enqueue a detection without blocking.

        Returns:
            False if the queue was full and the detection was dropped
        """
        try:
            self._queue.put_nowait(raw)
        except queue.Full:
            with self._counter_lock:
                self.dropped += 1
            logger.warning(
                f"Ingest queue full, dropped '{raw.label}' from camera {raw.camera_id}"
            )
            return False
        return True

    def start(self) -> None:
        if self.is_running:
            return
        self._thread = threading.Thread(target=self._run, name="IngestQueue", daemon=True)
        self._thread.start()
        logger.info(f"Ingest queue started (capacity {self._queue.maxsize})")

    def stop(self, timeout: float = 5.0) -> None:
        """Signal the consumer to finish the backlog and exit."""
        if self._thread is None:
            return
        try:
            self._queue.put(None, timeout=timeout)
        except queue.Full:
            logger.warning("Ingest queue still full at shutdown, consumer not signalled")
        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            logger.warning(f"Ingest consumer did not stop within {timeout}s")
        self._thread = None
        logger.info(
            f"Ingest queue stopped: {self.processed} processed, "
            f"{self.failed} failed, {self.dropped} dropped"
        )

    def join(self) -> None:
        """Block until every submitted detection has been handled."""
        self._queue.join()

    def _run(self) -> None:
        while True:
            raw = self._queue.get()
            try:
                if raw is None:  # Shutdown signal
                    break
                self._handle(raw)
            finally:
                self._queue.task_done()

    def _handle(self, raw: RawDetection) -> None:
        try:
            detection = self.pipeline.ingest(raw)
        except Exception as e:
            with self._counter_lock:
                self.failed += 1
            logger.error(f"Ingest failed for '{raw.label}' from camera {raw.camera_id}: {e}")
            return

        with self._counter_lock:
            self.processed += 1

        if self.extract_frames and self.media_archive is not None:
            try:
                media = self.pipeline.store.get_media(detection.media_id)
                if media is not None and media.type in EXTRACTABLE_MEDIA_TYPES:
                    self.media_archive.extract_frames(media, self.sample_fps)
            except Exception as e:
                logger.error(f"Frame extraction failed for media {detection.media_id}: {e}")
