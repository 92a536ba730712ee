"""
ZooTrack CLI
Main entry point for running the camera core.

  python -m zootrack [hours]      Run configured cameras
  --validate                      Check configuration validity
  --discover                      List openable camera devices
"""

import argparse
import logging
import signal
import sys
import time
from threading import Event as ThreadEvent

from .broadcast import FrameBroadcaster, InMemoryBroadcastHub, LatestFrameWriter
from .config import (
    CameraPlan,
    Config,
    ConfigValidationError,
    load_config,
    print_validation_result,
    resolve_cameras,
    user_records,
    validate_config_full,
)
from .config.schemas import CaptureConfig
from .core import (
    CameraManager,
    CameraScheduler,
    CameraWorker,
    HighlightRecorder,
    OpenCVFrameSource,
    discover_cameras,
    resolve_backend,
)
from .models import User
from .processor import (
    DetectionIngestPipeline,
    IngestQueue,
    MediaArchive,
    TrackingCorrelator,
)
from .storage import DetectionStore
from .utils.constants import SYSTEM_USER_ID

logger = logging.getLogger(__name__)

# Module-level shutdown signal for SIGTERM/SIGINT handling
_shutdown_signal = ThreadEvent()

STATS_INTERVAL_SECONDS = 60


def _handle_shutdown_signal(signum, _frame):
    """Handle SIGTERM/SIGINT for graceful shutdown."""
    signal_name = "SIGTERM" if signum == signal.SIGTERM else "SIGINT"
    # print is safer than logger in signal handlers
    print(f"\nReceived {signal_name}, initiating graceful shutdown...")
    _shutdown_signal.set()


def _setup_signal_handlers():
    """Register signal handlers for graceful shutdown."""
    signal.signal(signal.SIGTERM, _handle_shutdown_signal)
    signal.signal(signal.SIGINT, _handle_shutdown_signal)


def setup_logging(quiet: bool = False) -> None:
    """
    Setup logging configuration.

    Args:
        quiet: If True, only show warnings and errors
    """
    level = logging.WARNING if quiet else logging.INFO

    # Custom formatter with shorter module names
    class ShortNameFormatter(logging.Formatter):
        def format(self, record):
            record.name = record.name.replace("zootrack.", "zt.")
            return super().format(record)

    handler = logging.StreamHandler()
    handler.setFormatter(
        ShortNameFormatter(
            fmt="%(asctime)s %(name)s %(levelname)s %(message)s", datefmt="%H:%M:%S"
        )
    )
    logging.root.addHandler(handler)
    logging.root.setLevel(level)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="ZooTrack - multi-camera animal detection, highlights and tracking",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m zootrack 1             # Run for 1 hour
  python -m zootrack 0.5           # Run for 30 minutes
  python -m zootrack 1 --quiet     # Run for 1 hour with minimal logs
  python -m zootrack --validate    # Check config validity
  python -m zootrack --discover    # List camera devices

Environment Variables:
  ZOOTRACK_DB_PATH    - Override store.db_path
  ZOOTRACK_MODEL_FILE - Override detection.model_file
        """,
    )

    parser.add_argument(
        "duration",
        type=float,
        nargs="?",
        help="Duration in hours (default: from config.yaml)",
    )

    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Quiet mode - only show warnings and errors",
    )

    parser.add_argument(
        "-c",
        "--config",
        default="config.yaml",
        help="Path to config file (default: config.yaml)",
    )

    parser.add_argument(
        "--validate",
        action="store_true",
        help="Validate configuration and show resolved cameras",
    )

    parser.add_argument(
        "--discover",
        action="store_true",
        help="Probe camera device indices and exit",
    )

    return parser.parse_args(argv)


def parse_duration(duration_arg: float | None, config: Config) -> float:
    """
    Duration in hours from the command line, else from config.

    Raises:
        SystemExit: If duration is invalid
    """
    if duration_arg is not None:
        if duration_arg <= 0:
            logger.error(f"Invalid duration '{duration_arg}' - must be positive")
            logger.error("Usage: python -m zootrack [hours]")
            sys.exit(1)
        return duration_arg
    return config.runtime.default_duration_hours


def print_banner(config: Config, plans: list[CameraPlan], duration_hours: float) -> None:
    """Print system startup banner."""
    duration_seconds = int(duration_hours * 3600)

    print("\n" + "=" * 70)
    print("ZOOTRACK CAMERA CORE")
    print("=" * 70)

    print(f"\nModel: {config.detection.model_file}")
    print(f"Store: {config.store.db_path}")
    print(f"Cameras: {sum(1 for p in plans if p.start)} of {len(plans)} set to start")
    print(f"Tracking: {'on' if config.tracking.enabled else 'off'}")

    print("\nRuntime:")
    print(f"  Duration: {duration_hours} hour(s) ({duration_seconds / 60:.0f} minutes)")
    if config.runtime.snapshot_dir:
        print(f"  Latest frames: {config.runtime.snapshot_dir}")
    print("  Press Ctrl+C to stop early")
    print("=" * 70)
    print()


def load_validated_config(config_path: str) -> Config:
    """
    Load and validate configuration, exiting on failure.

    Raises:
        SystemExit: If config cannot be loaded or is invalid
    """
    try:
        raw = load_config(config_path)
    except ConfigValidationError as e:
        logger.error(str(e))
        sys.exit(1)

    result = validate_config_full(raw)
    if not result.valid:
        print_validation_result(result)
        sys.exit(1)
    for warning in result.warnings:
        logger.warning(warning)
    logger.info("Configuration validated")
    return result.config


def seed_users(store: DetectionStore, config: Config) -> None:
    """Write configured users (and the system user) to the store."""
    configured = user_records(config)
    if all(user.user_id != SYSTEM_USER_ID for user, _ in configured):
        store.add_user(User(user_id=SYSTEM_USER_ID, name="System", role="System"))
    for user, settings in configured:
        store.add_user(user)
        store.save_user_settings(settings)
    logger.info(f"Seeded {len(configured)} user(s)")


def build_broadcaster(config: Config) -> FrameBroadcaster:
    if config.runtime.snapshot_dir:
        return LatestFrameWriter(config.runtime.snapshot_dir)
    return InMemoryBroadcastHub()


def build_worker_factory(
    config: Config, plans: dict[int, CameraPlan], ingest_queue: IngestQueue
):
    """Factory used by the manager to build a worker per camera id."""
    backend = resolve_backend(config.capture.backend)

    def detector_factory():
        from .core.detector import YoloObjectDetector

        return YoloObjectDetector(
            model_file=config.detection.model_file,
            confidence=config.detection.confidence_threshold,
            iou=config.detection.iou_threshold,
        )

    def recorder_factory(camera_id: int, width: int, height: int, fps: float):
        return HighlightRecorder(
            camera_id,
            width,
            height,
            fps,
            duration=config.highlight.duration_seconds,
            fourcc=config.highlight.fourcc,
        )

    def make_worker(camera_id: int) -> CameraWorker:
        plan = plans.get(camera_id)
        source = OpenCVFrameSource(
            plan.source if plan else camera_id,
            backend=backend,
            width=config.capture.width,
            height=config.capture.height,
            default_fps=config.capture.default_fps,
        )
        return CameraWorker(
            camera_id,
            source,
            detector_factory=detector_factory,
            ingest_sink=ingest_queue,
            recorder_factory=recorder_factory,
        )

    return make_worker


def start_cameras(manager: CameraManager, plans: list[CameraPlan]) -> list[int]:
    """Start every camera marked to start. Returns the ids that started."""
    started = []
    for plan in plans:
        if not plan.start:
            continue
        if manager.start(
            plan.camera_id,
            plan.target_labels,
            plan.highlight_save_path,
            plan.detection_threshold,
        ):
            started.append(plan.camera_id)
        else:
            logger.error(f"Camera {plan.camera_id} failed to start")
    return started


def monitor(
    scheduler: CameraScheduler,
    ingest_queue: IngestQueue,
    duration_seconds: int,
    start_time: float,
) -> str:
    """
    Wait until the run should end.

    Returns:
        Reason for stopping ('duration', 'signal', 'scheduler_died', 'interrupted')
    """
    last_stats = start_time
    try:
        while True:
            if _shutdown_signal.is_set():
                return "signal"

            now = time.time()
            if now - start_time >= duration_seconds:
                return "duration"

            if not scheduler.is_running:
                return "scheduler_died"

            if now - last_stats >= STATS_INTERVAL_SECONDS:
                stats = ingest_queue.stats()
                logger.info(
                    f"Ingest: {stats['processed']} processed, {stats['failed']} failed, "
                    f"{stats['dropped']} dropped, {stats['backlog']} queued"
                )
                last_stats = now

            _shutdown_signal.wait(1)

    except KeyboardInterrupt:
        return "interrupted"


def shutdown(
    scheduler: CameraScheduler,
    manager: CameraManager,
    ingest_queue: IngestQueue,
    store: DetectionStore,
    timeout: float,
) -> None:
    """Stop the frame loop, dispose cameras, drain ingest, close the store."""
    logger.info("Shutting down...")
    scheduler.stop(timeout=timeout)
    manager.shutdown()
    ingest_queue.stop(timeout=timeout)
    store.close()


def print_final_status(reason: str, elapsed: float, ingest_queue: IngestQueue) -> None:
    print(f"\n{'=' * 70}")

    if reason == "duration":
        print(f"Duration reached - stopped after {elapsed / 60:.1f} minutes")
    elif reason == "scheduler_died":
        print("Camera scheduler ended unexpectedly")
    elif reason == "interrupted":
        print("Interrupted by user (Ctrl+C)")
    elif reason == "signal":
        print("Shutdown signal received (SIGTERM/SIGINT)")
    elif reason == "no_cameras":
        print("No cameras could be started")

    stats = ingest_queue.stats()
    print(
        f"Detections: {stats['processed']} ingested, {stats['failed']} failed, "
        f"{stats['dropped']} dropped"
    )
    print("=" * 70)
    print("SYSTEM SHUTDOWN COMPLETE")
    print(f"{'=' * 70}\n")


def run_validate(config_path: str) -> None:
    """Run validation mode."""
    try:
        raw = load_config(config_path)
    except ConfigValidationError as e:
        print(f"Error: {e}")
        sys.exit(1)

    result = validate_config_full(raw)
    print_validation_result(result)
    sys.exit(0 if result.valid else 1)


def run_discover(max_index: int, backend: str | None) -> None:
    """Probe device indices and print the openable ones."""
    found = discover_cameras(max_index, backend=resolve_backend(backend))
    if not found:
        print("No cameras found")
        sys.exit(1)
    print("Cameras found:")
    for index in found:
        print(f"  {index}")
    sys.exit(0)


def run(config: Config, duration_hours: float) -> str:
    """Build the runtime, run until the duration or a signal, shut down."""
    plans = resolve_cameras(config)

    print_banner(config, plans, duration_hours)
    _setup_signal_handlers()

    store = DetectionStore(config.store.db_path)
    seed_users(store, config)

    archive = MediaArchive(config.media.root)
    correlator = None
    if config.tracking.enabled:
        correlator = TrackingCorrelator(
            store,
            window_seconds=config.tracking.window_seconds,
            max_center_distance=config.tracking.max_center_distance,
            min_size_ratio=config.tracking.min_size_ratio,
        )

    ingest = config.ingest
    pipeline = DetectionIngestPipeline(
        store,
        correlator=correlator,
        media_archive=archive,
        default_camera_id=ingest.default_camera_id,
        event_window_minutes=ingest.event_window_minutes,
        warning_threshold=ingest.warning_threshold,
        critical_threshold=ingest.critical_threshold,
        notify_threshold=ingest.notify_threshold,
        frequent_window_minutes=ingest.frequent_window_minutes,
        frequent_count=ingest.frequent_count,
    )
    ingest_queue = IngestQueue(
        pipeline,
        maxsize=ingest.queue_size,
        media_archive=archive,
        extract_frames=config.media.extract_frames,
        sample_fps=config.media.sample_fps,
    )
    ingest_queue.start()

    backend = resolve_backend(config.capture.backend)
    manager = CameraManager(
        build_worker_factory(config, {p.camera_id: p for p in plans}, ingest_queue),
        broadcaster=build_broadcaster(config),
        discover_fn=lambda: discover_cameras(config.capture.discover_max_index, backend),
        max_workers=config.scheduler.max_workers,
    )
    scheduler = CameraScheduler(
        manager, interval=config.scheduler.interval_seconds, stop_event=_shutdown_signal
    )

    start_time = time.time()
    if not start_cameras(manager, plans):
        reason = "no_cameras"
    else:
        scheduler.start()
        print("\n" + "=" * 70)
        print("SYSTEM RUNNING")
        print("=" * 70 + "\n")
        reason = monitor(scheduler, ingest_queue, int(duration_hours * 3600), start_time)
    elapsed = time.time() - start_time

    shutdown(scheduler, manager, ingest_queue, store, config.runtime.shutdown_timeout)
    print_final_status(reason, elapsed, ingest_queue)
    return reason


def main(argv: list[str] | None = None) -> None:
    """Main orchestrator function."""
    args = parse_args(argv)
    setup_logging(quiet=args.quiet or args.validate)

    if args.validate:
        run_validate(args.config)
        return

    if args.discover:
        capture = CaptureConfig()
        try:
            result = validate_config_full(load_config(args.config))
            if result.valid:
                capture = result.config.capture
        except ConfigValidationError:
            logger.info("No usable config, probing with default capture settings")
        run_discover(capture.discover_max_index, capture.backend)
        return

    config = load_validated_config(args.config)
    duration_hours = parse_duration(args.duration, config)
    reason = run(config, duration_hours)
    sys.exit(1 if reason in ("no_cameras", "scheduler_died") else 0)


if __name__ == "__main__":
    main()
