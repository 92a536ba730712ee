"""
Camera manager - the single owner of the camera id -> worker map, plus the
scheduler thread that drives it.

All lifecycle mutations (initialize/start/stop/dispose) go through the
manager lock. tick() only snapshots which workers are processing and then
runs them outside the lock, so a slow camera never blocks lifecycle calls.
"""

import logging
import os
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable

from ..broadcast import FrameBroadcaster, channel_for
from ..models import CameraState, FrameResult
from ..utils.constants import TICK_INTERVAL_SECONDS
from .camera import discover_cameras
from .worker import CameraWorker

logger = logging.getLogger(__name__)

WorkerFactory = Callable[[int], CameraWorker]


class CameraManager:
    """
    Owns all camera workers.

    Args:
        worker_factory: Builds an uninitialized worker for a camera id
        broadcaster: Receives every non-empty frame result
        discover_fn: Returns candidate camera ids
        max_workers: Thread pool size for frame processing (0 = inline)
    """

    def __init__(
        self,
        worker_factory: WorkerFactory,
        broadcaster: FrameBroadcaster | None = None,
        discover_fn: Callable[[], list[int]] = discover_cameras,
        max_workers: int = 0,
    ):
        self._worker_factory = worker_factory
        self._broadcaster = broadcaster
        self._discover_fn = discover_fn

        self._workers: dict[int, CameraWorker] = {}
        self._lock = threading.RLock()

        self._executor: ThreadPoolExecutor | None = None
        if max_workers > 0:
            self._executor = ThreadPoolExecutor(
                max_workers=max_workers, thread_name_prefix="camera"
            )
        self._in_flight: dict[int, Future] = {}
        # Last frame number per camera, kept across dispose/re-initialize
        self._frame_numbers: dict[int, int] = {}

    def discover(self) -> list[int]:
        """Probe for cameras. Returns candidate ids without initializing them."""
        try:
            camera_ids = self._discover_fn()
        except Exception as e:
            logger.error(f"Camera discovery failed: {e}")
            return []
        logger.info(f"Camera candidates: {camera_ids}")
        return list(camera_ids)

    def initialize(self, camera_id: int) -> bool:
        """
        Initialize a camera. Already-initialized cameras are a no-op.

        Returns:
            True if the camera is ready
        """
        with self._lock:
            worker = self._workers.get(camera_id)
            created = worker is None
            if created:
                worker = self._worker_factory(camera_id)
                worker.resume_frame_numbers(self._frame_numbers.get(camera_id, 0))
                self._workers[camera_id] = worker

            if worker.initialize():
                return True

            worker.set_processing(False)
            if created:
                del self._workers[camera_id]
            logger.error(f"Camera {camera_id} could not be initialized")
            return False

    def start(
        self,
        camera_id: int,
        targets: set[str] | list[str],
        highlight_path: str | None,
        detection_threshold: float = 0.0,
    ) -> bool:
        """
        Start processing a camera, initializing it first if needed.

        Returns:
            True if the camera is now processing
        """
        with self._lock:
            if not self.initialize(camera_id):
                return False

            if highlight_path:
                try:
                    os.makedirs(highlight_path, exist_ok=True)
                except OSError as e:
                    logger.error(
                        f"Camera {camera_id}: cannot create highlight directory "
                        f"{highlight_path}: {e}"
                    )
                    return False

            worker = self._workers[camera_id]
            worker.set_targets(
                {label.lower() for label in targets}, highlight_path, detection_threshold
            )
            worker.set_processing(True)

        logger.info(f"Camera {camera_id} processing started")
        return True

    def stop(self, camera_id: int) -> None:
        """Stop processing. Unknown ids are ignored."""
        with self._lock:
            worker = self._workers.get(camera_id)
            if worker is None:
                logger.debug(f"Stop ignored for unknown camera {camera_id}")
                return
            worker.stop()

    def dispose(self, camera_id: int) -> None:
        """Release a camera and forget it. Unknown ids are ignored."""
        with self._lock:
            worker = self._workers.pop(camera_id, None)
            self._in_flight.pop(camera_id, None)
        if worker is not None:
            worker.dispose()
            with self._lock:
                self._frame_numbers[camera_id] = worker.frame_number

    def stop_all(self) -> None:
        """Dispose every camera (writers flushed, capture handles released)."""
        with self._lock:
            camera_ids = list(self._workers)
        for camera_id in camera_ids:
            self.dispose(camera_id)
        logger.info(f"All cameras stopped ({len(camera_ids)})")

    def shutdown(self) -> None:
        """stop_all() plus thread pool shutdown."""
        self.stop_all()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def status_of(self, camera_id: int) -> CameraState | None:
        with self._lock:
            worker = self._workers.get(camera_id)
        return worker.state if worker is not None else None

    def statuses(self) -> dict[int, CameraState]:
        with self._lock:
            workers = dict(self._workers)
        return {camera_id: worker.state for camera_id, worker in workers.items()}

    def tick(self) -> int:
        """
        Process one frame on every processing camera.

        Returns:
            Number of cameras scheduled this tick
        """
        with self._lock:
            workers = [w for w in self._workers.values() if w.processing]

        scheduled = 0
        for worker in workers:
            if self._executor is None:
                self._run_worker(worker)
                scheduled += 1
                continue

            future = self._in_flight.get(worker.camera_id)
            if future is not None and not future.done():
                logger.debug(f"Camera {worker.camera_id}: previous frame in flight, skipping")
                continue
            self._in_flight[worker.camera_id] = self._executor.submit(
                self._run_worker, worker
            )
            scheduled += 1

        return scheduled

    def _run_worker(self, worker: CameraWorker) -> None:
        try:
            result = worker.process_one_frame()
        except Exception as e:
            logger.error(f"Camera {worker.camera_id}: frame processing error: {e}", exc_info=True)
            return
        if result is not None:
            self._publish(result)

    def _publish(self, result: FrameResult) -> None:
        if self._broadcaster is None:
            return
        try:
            self._broadcaster.publish(
                channel_for(result.camera_id), result.jpeg_bytes, result.status_text
            )
        except Exception as e:
            logger.error(f"Broadcast failed for camera {result.camera_id}: {e}")


class CameraScheduler:
    """
    Background thread that calls manager.tick() at a fixed period.

    Exits within one period of stop() and disposes all cameras on the way out.
    An owned stop event is cleared on start() so the scheduler can be restarted;
    a shared stop_event (e.g. the CLI shutdown signal) is left to its owner.
    """

    def __init__(
        self,
        manager: CameraManager,
        interval: float = TICK_INTERVAL_SECONDS,
        stop_event: threading.Event | None = None,
    ):
        self.manager = manager
        self.interval = interval
        self._owns_stop_event = stop_event is None
        self._stop_event = stop_event or threading.Event()
        self._thread: threading.Thread | None = None
        self.ticks = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        if self._owns_stop_event:
            self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="CameraScheduler", daemon=True
        )
        self._thread.start()
        logger.info(f"Camera scheduler started ({self.interval * 1000:.0f}ms period)")

    def stop(self, timeout: float = 2.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("Camera scheduler stopped")

    def _run(self) -> None:
        try:
            while not self._stop_event.is_set():
                started = time.monotonic()
                try:
                    self.manager.tick()
                except Exception as e:
                    logger.error(f"Scheduler tick failed: {e}", exc_info=True)
                self.ticks += 1
                elapsed = time.monotonic() - started
                self._stop_event.wait(max(0.0, self.interval - elapsed))
        finally:
            self.manager.stop_all()
