"""
Detection Store - SQLite persistence for detections, routes and their context.

One connection is shared by the frame loop's ingest consumer, the correlator
and the CLI. Every public call runs inside `transaction()`, which serializes
access behind a re-entrant lock, so each query sees a consistent
point-in-time view even while new detections are being inserted.

Timestamps are stored as UTC epoch seconds (REAL) so window queries are
plain numeric comparisons.
"""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Iterator

from ..models import (
    Alert,
    AuditLogEntry,
    BoundingBox,
    Camera,
    Detection,
    Event,
    Media,
    NotificationPreference,
    Severity,
    TrackingRoute,
    User,
    UserSettings,
)

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS cameras (
    camera_id INTEGER PRIMARY KEY,
    location TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'Active',
    last_active REAL
);
CREATE TABLE IF NOT EXISTS media (
    media_id INTEGER PRIMARY KEY AUTOINCREMENT,
    camera_id INTEGER NOT NULL,
    type TEXT NOT NULL,
    file_path TEXT NOT NULL,
    timestamp REAL NOT NULL
);
CREATE TABLE IF NOT EXISTS events (
    event_id INTEGER PRIMARY KEY AUTOINCREMENT,
    start_time REAL NOT NULL,
    end_time REAL NOT NULL,
    status TEXT NOT NULL DEFAULT 'Active'
);
CREATE TABLE IF NOT EXISTS detections (
    detection_id INTEGER PRIMARY KEY AUTOINCREMENT,
    camera_id INTEGER NOT NULL,
    media_id INTEGER NOT NULL,
    event_id INTEGER NOT NULL,
    timestamp REAL NOT NULL,
    confidence REAL NOT NULL,
    label TEXT NOT NULL,
    box_x REAL,
    box_y REAL,
    box_w REAL,
    box_h REAL,
    frame_number INTEGER NOT NULL DEFAULT 0,
    tracking_id INTEGER,
    severity TEXT NOT NULL DEFAULT 'Info'
);
CREATE INDEX IF NOT EXISTS idx_detections_camera_time
    ON detections (camera_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_detections_tracking
    ON detections (camera_id, tracking_id);
CREATE TABLE IF NOT EXISTS tracking_routes (
    tracking_id INTEGER PRIMARY KEY,
    camera_id INTEGER NOT NULL,
    label TEXT NOT NULL,
    start_time REAL NOT NULL,
    end_time REAL NOT NULL,
    path TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS users (
    user_id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT NOT NULL DEFAULT '',
    role TEXT NOT NULL DEFAULT 'Viewer'
);
CREATE TABLE IF NOT EXISTS user_settings (
    user_id INTEGER PRIMARY KEY,
    notification_preference TEXT NOT NULL DEFAULT 'None',
    detection_threshold REAL NOT NULL DEFAULT 0,
    target_labels TEXT NOT NULL DEFAULT '[]',
    highlight_save_path TEXT
);
CREATE TABLE IF NOT EXISTS alerts (
    alert_id INTEGER PRIMARY KEY AUTOINCREMENT,
    message TEXT NOT NULL,
    created_at REAL NOT NULL,
    detection_id INTEGER NOT NULL,
    user_id INTEGER NOT NULL
);
CREATE TABLE IF NOT EXISTS logs (
    log_id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    action_type TEXT NOT NULL,
    message TEXT NOT NULL DEFAULT '',
    level TEXT NOT NULL DEFAULT 'Info',
    timestamp REAL NOT NULL,
    detection_id INTEGER
);
"""


def _ts(value: datetime) -> float:
    """Datetime -> epoch seconds. Naive datetimes are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


def _dt(value: float | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


class DetectionStore:
    """
    SQLite-backed persistence collaborator.

    Args:
        path: Database file path, or ":memory:" for a private in-memory store
    """

    def __init__(self, path: str = ":memory:"):
        self.path = path
        self._lock = threading.RLock()
        self._depth = 0
        self._conn = sqlite3.connect(path, check_same_thread=False, timeout=5.0)
        self._conn.row_factory = sqlite3.Row
        if path != ":memory:":
            try:
                self._conn.execute("PRAGMA journal_mode=WAL")
                self._conn.execute("PRAGMA synchronous=NORMAL")
            except sqlite3.DatabaseError as e:
                logger.warning(f"Could not enable WAL mode: {e}")
        self._conn.executescript(_SCHEMA)
        self._conn.commit()
        logger.info(f"Detection store opened: {path}")

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Serialized unit of work. Nested calls join the outer transaction;
        only the outermost one commits or rolls back.
        """
        with self._lock:
            self._depth += 1
            try:
                yield self._conn
            except Exception:
                if self._depth == 1:
                    self._conn.rollback()
                raise
            else:
                if self._depth == 1:
                    self._conn.commit()
            finally:
                self._depth -= 1

    def close(self) -> None:
        with self._lock:
            self._conn.close()
        logger.info("Detection store closed")

    # --- Cameras, media and events ---

    def ensure_camera(self, camera_id: int) -> Camera:
        """Return the camera row, creating a minimal one if absent."""
        now = _ts(datetime.now(timezone.utc))
        with self.transaction() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO cameras (camera_id, location, status, last_active) "
                "VALUES (?, ?, 'Active', ?)",
                (camera_id, f"Camera {camera_id}", now),
            )
            conn.execute(
                "UPDATE cameras SET last_active = ? WHERE camera_id = ?",
                (now, camera_id),
            )
            row = conn.execute(
                "SELECT * FROM cameras WHERE camera_id = ?", (camera_id,)
            ).fetchone()
        return Camera(
            camera_id=row["camera_id"],
            location=row["location"],
            status=row["status"],
            last_active=_dt(row["last_active"]),
        )

    def camera_exists(self, camera_id: int) -> bool:
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT 1 FROM cameras WHERE camera_id = ?", (camera_id,)
            ).fetchone()
        return row is not None

    def add_media(
        self, camera_id: int, media_type: str, file_path: str, timestamp: datetime
    ) -> Media:
        with self.transaction() as conn:
            cur = conn.execute(
                "INSERT INTO media (camera_id, type, file_path, timestamp) VALUES (?, ?, ?, ?)",
                (camera_id, media_type, file_path, _ts(timestamp)),
            )
            media_id = cur.lastrowid
        return Media(
            media_id=media_id,
            camera_id=camera_id,
            type=media_type,
            file_path=file_path,
            timestamp=timestamp,
        )

    def ensure_default_media(self, camera_id: int, timestamp: datetime) -> Media:
        """Reuse the camera's placeholder media record, creating it once."""
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT * FROM media WHERE camera_id = ? AND type = 'Placeholder' "
                "ORDER BY media_id LIMIT 1",
                (camera_id,),
            ).fetchone()
            if row is not None:
                return self._media_from_row(row)
            return self.add_media(camera_id, "Placeholder", "", timestamp)

    def get_media(self, media_id: int) -> Media | None:
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT * FROM media WHERE media_id = ?", (media_id,)
            ).fetchone()
        return self._media_from_row(row) if row is not None else None

    def media_exists(self, media_id: int) -> bool:
        return self.get_media(media_id) is not None

    def ensure_active_event(self, at: datetime, window_minutes: int) -> Event:
        """Return an active event covering `at`, or open a new window there."""
        at_ts = _ts(at)
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT * FROM events WHERE status = 'Active' "
                "AND start_time <= ? AND end_time >= ? ORDER BY event_id LIMIT 1",
                (at_ts, at_ts),
            ).fetchone()
            if row is None:
                end = at + timedelta(minutes=window_minutes)
                cur = conn.execute(
                    "INSERT INTO events (start_time, end_time, status) VALUES (?, ?, 'Active')",
                    (at_ts, _ts(end)),
                )
                row = conn.execute(
                    "SELECT * FROM events WHERE event_id = ?", (cur.lastrowid,)
                ).fetchone()
        return Event(
            event_id=row["event_id"],
            start_time=_dt(row["start_time"]),
            end_time=_dt(row["end_time"]),
            status=row["status"],
        )

    def event_exists(self, event_id: int) -> bool:
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT 1 FROM events WHERE event_id = ?", (event_id,)
            ).fetchone()
        return row is not None

    # --- Detections ---

    def save_detection(self, detection: Detection) -> Detection:
        """Insert a detection and return it with its assigned id."""
        box = detection.box
        with self.transaction() as conn:
            cur = conn.execute(
                "INSERT INTO detections (camera_id, media_id, event_id, timestamp, "
                "confidence, label, box_x, box_y, box_w, box_h, frame_number, "
                "tracking_id, severity) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    detection.camera_id,
                    detection.media_id,
                    detection.event_id,
                    _ts(detection.timestamp),
                    detection.confidence,
                    detection.label,
                    box.x if box else None,
                    box.y if box else None,
                    box.width if box else None,
                    box.height if box else None,
                    detection.frame_number,
                    detection.tracking_id,
                    detection.severity.value,
                ),
            )
            detection_id = cur.lastrowid
        return replace(detection, detection_id=detection_id)

    def get_detection(self, detection_id: int) -> Detection | None:
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT * FROM detections WHERE detection_id = ?", (detection_id,)
            ).fetchone()
        return self._detection_from_row(row) if row is not None else None

    def find_recent_detections(
        self,
        camera_id: int,
        around: datetime,
        window_seconds: float,
        exclude_id: int | None = None,
    ) -> list[Detection]:
        """
        Detections on `camera_id` within +/- window of `around`,
        closest in time first (ties broken by id).
        """
        center = _ts(around)
        with self.transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM detections WHERE camera_id = ? "
                "AND timestamp BETWEEN ? AND ? AND detection_id != ? "
                "ORDER BY ABS(timestamp - ?) ASC, detection_id ASC",
                (
                    camera_id,
                    center - window_seconds,
                    center + window_seconds,
                    exclude_id if exclude_id is not None else -1,
                    center,
                ),
            ).fetchall()
        return [self._detection_from_row(row) for row in rows]

    def detections_for_track(self, camera_id: int, tracking_id: int) -> list[Detection]:
        """Members of a track ordered by frame number."""
        with self.transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM detections WHERE camera_id = ? AND tracking_id = ? "
                "ORDER BY frame_number ASC, timestamp ASC, detection_id ASC",
                (camera_id, tracking_id),
            ).fetchall()
        return [self._detection_from_row(row) for row in rows]

    def assign_tracking_id(self, detection_id: int, tracking_id: int) -> bool:
        """Backfill a tracking id. Returns False if one was already set."""
        with self.transaction() as conn:
            cur = conn.execute(
                "UPDATE detections SET tracking_id = ? "
                "WHERE detection_id = ? AND tracking_id IS NULL",
                (tracking_id, detection_id),
            )
        return cur.rowcount == 1

    def max_tracking_id(self) -> int:
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT MAX(m) AS m FROM ("
                "SELECT MAX(tracking_id) AS m FROM detections "
                "UNION ALL SELECT MAX(tracking_id) AS m FROM tracking_routes)"
            ).fetchone()
        return int(row["m"]) if row["m"] is not None else 0

    def count_detections_since(
        self, camera_id: int, since: datetime, until: datetime | None = None
    ) -> int:
        with self.transaction() as conn:
            if until is None:
                row = conn.execute(
                    "SELECT COUNT(*) AS n FROM detections WHERE camera_id = ? AND timestamp >= ?",
                    (camera_id, _ts(since)),
                ).fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) AS n FROM detections WHERE camera_id = ? "
                    "AND timestamp >= ? AND timestamp <= ?",
                    (camera_id, _ts(since), _ts(until)),
                ).fetchone()
        return int(row["n"])

    # --- Tracking routes ---

    def upsert_tracking_route(self, route: TrackingRoute) -> bool:
        """Insert the route if none exists for its id. Returns True if inserted."""
        with self.transaction() as conn:
            cur = conn.execute(
                "INSERT OR IGNORE INTO tracking_routes "
                "(tracking_id, camera_id, label, start_time, end_time, path) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    route.tracking_id,
                    route.camera_id,
                    route.label,
                    _ts(route.start_time),
                    _ts(route.end_time),
                    json.dumps([[x, y] for x, y in route.path]),
                ),
            )
        return cur.rowcount == 1

    def get_tracking_route(self, tracking_id: int) -> TrackingRoute | None:
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT * FROM tracking_routes WHERE tracking_id = ?", (tracking_id,)
            ).fetchone()
        if row is None:
            return None
        return TrackingRoute(
            tracking_id=row["tracking_id"],
            camera_id=row["camera_id"],
            label=row["label"],
            start_time=_dt(row["start_time"]),
            end_time=_dt(row["end_time"]),
            path=[(float(x), float(y)) for x, y in json.loads(row["path"])],
        )

    def tracking_routes(self, camera_id: int | None = None) -> list[TrackingRoute]:
        with self.transaction() as conn:
            if camera_id is None:
                rows = conn.execute(
                    "SELECT tracking_id FROM tracking_routes ORDER BY tracking_id"
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT tracking_id FROM tracking_routes WHERE camera_id = ? "
                    "ORDER BY tracking_id",
                    (camera_id,),
                ).fetchall()
            return [self.get_tracking_route(row["tracking_id"]) for row in rows]

    # --- Users, alerts and audit log ---

    def add_user(self, user: User) -> None:
        with self.transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO users (user_id, name, email, role) VALUES (?, ?, ?, ?)",
                (user.user_id, user.name, user.email, user.role),
            )

    def save_user_settings(self, settings: UserSettings) -> None:
        with self.transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO user_settings (user_id, notification_preference, "
                "detection_threshold, target_labels, highlight_save_path) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    settings.user_id,
                    settings.notification_preference.value,
                    settings.detection_threshold,
                    json.dumps(sorted(settings.target_labels)),
                    settings.highlight_save_path,
                ),
            )

    def get_user_settings(self, user_id: int) -> UserSettings | None:
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT * FROM user_settings WHERE user_id = ?", (user_id,)
            ).fetchone()
        return self._settings_from_row(row) if row is not None else None

    def subscribers(self) -> list[tuple[User, UserSettings]]:
        """Users whose notification preference is anything but 'None'."""
        with self.transaction() as conn:
            rows = conn.execute(
                "SELECT u.user_id, u.name, u.email, u.role, s.notification_preference, "
                "s.detection_threshold, s.target_labels, s.highlight_save_path "
                "FROM users u JOIN user_settings s ON s.user_id = u.user_id "
                "WHERE s.notification_preference != 'None' ORDER BY u.user_id"
            ).fetchall()
        return [
            (
                User(
                    user_id=row["user_id"],
                    name=row["name"],
                    email=row["email"],
                    role=row["role"],
                ),
                self._settings_from_row(row),
            )
            for row in rows
        ]

    def add_alert(
        self, detection_id: int, user_id: int, message: str, created_at: datetime
    ) -> Alert:
        with self.transaction() as conn:
            cur = conn.execute(
                "INSERT INTO alerts (message, created_at, detection_id, user_id) "
                "VALUES (?, ?, ?, ?)",
                (message, _ts(created_at), detection_id, user_id),
            )
        return Alert(
            alert_id=cur.lastrowid,
            message=message,
            created_at=created_at,
            detection_id=detection_id,
            user_id=user_id,
        )

    def alerts_for_detection(self, detection_id: int) -> list[Alert]:
        with self.transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM alerts WHERE detection_id = ? ORDER BY alert_id",
                (detection_id,),
            ).fetchall()
        return [
            Alert(
                alert_id=row["alert_id"],
                message=row["message"],
                created_at=_dt(row["created_at"]),
                detection_id=row["detection_id"],
                user_id=row["user_id"],
            )
            for row in rows
        ]

    def add_log(
        self,
        user_id: int,
        action_type: str,
        message: str = "",
        level: str = "Info",
        detection_id: int | None = None,
        timestamp: datetime | None = None,
    ) -> AuditLogEntry:
        timestamp = timestamp or datetime.now(timezone.utc)
        with self.transaction() as conn:
            cur = conn.execute(
                "INSERT INTO logs (user_id, action_type, message, level, timestamp, detection_id) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (user_id, action_type, message, level, _ts(timestamp), detection_id),
            )
        return AuditLogEntry(
            log_id=cur.lastrowid,
            user_id=user_id,
            action_type=action_type,
            message=message,
            level=level,
            timestamp=timestamp,
            detection_id=detection_id,
        )

    def logs(
        self,
        action_type: str | None = None,
        level: str | None = None,
        detection_id: int | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> list[AuditLogEntry]:
        """Audit entries, newest first, with optional filters."""
        clauses = []
        params: list = []
        if action_type:
            clauses.append("action_type = ?")
            params.append(action_type)
        if level:
            clauses.append("level = ?")
            params.append(level)
        if detection_id is not None:
            clauses.append("detection_id = ?")
            params.append(detection_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.extend([page_size, (max(page, 1) - 1) * page_size])

        with self.transaction() as conn:
            rows = conn.execute(
                f"SELECT * FROM logs {where} "
                "ORDER BY timestamp DESC, log_id DESC LIMIT ? OFFSET ?",
                params,
            ).fetchall()
        return [
            AuditLogEntry(
                log_id=row["log_id"],
                user_id=row["user_id"],
                action_type=row["action_type"],
                message=row["message"],
                level=row["level"],
                timestamp=_dt(row["timestamp"]),
                detection_id=row["detection_id"],
            )
            for row in rows
        ]

    # --- Row mapping ---

    @staticmethod
    def _media_from_row(row: sqlite3.Row) -> Media:
        return Media(
            media_id=row["media_id"],
            camera_id=row["camera_id"],
            type=row["type"],
            file_path=row["file_path"],
            timestamp=_dt(row["timestamp"]),
        )

    @staticmethod
    def _settings_from_row(row: sqlite3.Row) -> UserSettings:
        return UserSettings(
            user_id=row["user_id"],
            notification_preference=NotificationPreference(
                row["notification_preference"]
            ),
            detection_threshold=row["detection_threshold"],
            target_labels=set(json.loads(row["target_labels"])),
            highlight_save_path=row["highlight_save_path"],
        )

    @staticmethod
    def _detection_from_row(row: sqlite3.Row) -> Detection:
        box = None
        if row["box_w"] is not None:
            box = BoundingBox(
                x=row["box_x"], y=row["box_y"], width=row["box_w"], height=row["box_h"]
            )
        return Detection(
            detection_id=row["detection_id"],
            camera_id=row["camera_id"],
            media_id=row["media_id"],
            event_id=row["event_id"],
            timestamp=_dt(row["timestamp"]),
            confidence=row["confidence"],
            label=row["label"],
            box=box,
            frame_number=row["frame_number"],
            tracking_id=row["tracking_id"],
            severity=Severity(row["severity"]),
        )
