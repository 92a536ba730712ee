"""
Constants used throughout the ZooTrack camera core
"""

# Scheduling
TICK_INTERVAL_SECONDS = 0.05  # ~20 Hz frame loop
STATUS_REPORT_INTERVAL = 200  # Log per-camera status every N frames

# Capture defaults
DEFAULT_FRAME_WIDTH = 640
DEFAULT_FRAME_HEIGHT = 480
DEFAULT_FPS = 20.0
DEFAULT_DISCOVER_MAX_INDEX = 5

# Inference
DEFAULT_MODEL_FILE = "yolov10n.pt"
DEFAULT_CONFIDENCE = 0.35
DEFAULT_IOU = 0.6

# Highlight recording
HIGHLIGHT_DURATION_SECONDS = 5.0  # Fixed window from first trigger, never extended
HIGHLIGHT_FOURCC = "MJPG"
HIGHLIGHT_EXTENSION = "avi"

# Tracking correlation
CORRELATION_WINDOW_SECONDS = 15.0
MAX_CENTER_DISTANCE = 0.3  # Frame-relative units
MIN_SIZE_RATIO = 0.7  # Strictly greater than

# Ingest policy (confidence in percent)
WARNING_THRESHOLD = 80.0
CRITICAL_THRESHOLD = 95.0
NOTIFY_THRESHOLD = 90.0
FREQUENT_WINDOW_MINUTES = 10
FREQUENT_COUNT = 5
EVENT_WINDOW_MINUTES = 60

# Sentinel records
DEFAULT_CAMERA_ID = 1
SYSTEM_USER_ID = 1

# Queue configuration
DEFAULT_QUEUE_SIZE = 1000

# Storage
DEFAULT_DB_PATH = "zootrack.db"
DEFAULT_MEDIA_ROOT = "MediaFiles"
DEFAULT_SNAPSHOT_DIR = "/tmp/zootrack/snapshots"

# Environment variables
ENV_DB_PATH = "ZOOTRACK_DB_PATH"
ENV_MODEL_FILE = "ZOOTRACK_MODEL_FILE"
