"""
Tracking correlator - links a new detection to a recent, spatially similar
detection on the same camera and assembles tracking routes.

Matching is greedy: candidates are visited closest-in-time first and the
first one that passes the similarity test wins. Tracking ids are minted as
max(existing) + 1 inside a store transaction, so ids are unique and
monotonically increasing.
"""

import logging
import math

from ..errors import CorrelationError
from ..models import Detection, TrackingRoute
from ..storage import DetectionStore
from ..utils.constants import (
    CORRELATION_WINDOW_SECONDS,
    MAX_CENTER_DISTANCE,
    MIN_SIZE_RATIO,
)

logger = logging.getLogger(__name__)


def is_similar(
    a: Detection,
    b: Detection,
    max_center_distance: float = MAX_CENTER_DISTANCE,
    min_size_ratio: float = MIN_SIZE_RATIO,
) -> bool:
    """
    Spatial similarity of two detections.

    Both boxes must have width > 0, their centers must be at most
    `max_center_distance` apart, and min(area)/max(area) must exceed
    `min_size_ratio`.

    Raises:
        CorrelationError: If the geometry is not finite or cannot be compared
    """
    if a.box is None or b.box is None:
        return False
    if not a.box.has_area() or not b.box.has_area():
        return False

    try:
        distance = a.box.distance_to(b.box)
        area_a, area_b = a.box.area, b.box.area
        ratio = min(area_a, area_b) / max(area_a, area_b)
    except (ArithmeticError, TypeError, ValueError) as e:
        raise CorrelationError(
            f"Cannot compare detections {a.detection_id} and {b.detection_id}: {e}"
        ) from e

    if not (math.isfinite(distance) and math.isfinite(ratio)):
        raise CorrelationError(
            f"Non-finite geometry comparing detections {a.detection_id} and {b.detection_id}"
        )

    return distance <= max_center_distance and ratio > min_size_ratio


class TrackingCorrelator:
    """
    Args:
        store: Persistence collaborator
        window_seconds: Half-width of the candidate time window
        max_center_distance: Largest accepted center distance (frame-relative)
        min_size_ratio: Area ratio that must be exceeded
    """

    def __init__(
        self,
        store: DetectionStore,
        window_seconds: float = CORRELATION_WINDOW_SECONDS,
        max_center_distance: float = MAX_CENTER_DISTANCE,
        min_size_ratio: float = MIN_SIZE_RATIO,
    ):
        self.store = store
        self.window_seconds = window_seconds
        self.max_center_distance = max_center_distance
        self.min_size_ratio = min_size_ratio

    def correlate(self, detection: Detection) -> int:
        """
        Assign a tracking id to a persisted detection.

        Returns:
            The detection's tracking id (existing, reused or newly minted)
        """
        with self.store.transaction():
            current = self.store.get_detection(detection.detection_id)
            if current is not None and current.tracking_id is not None:
                detection.tracking_id = current.tracking_id
                return current.tracking_id

            match = self._find_match(detection)

            if match is not None and match.tracking_id is not None:
                tracking_id = match.tracking_id
            else:
                tracking_id = self.store.max_tracking_id() + 1
                if match is not None:
                    self.store.assign_tracking_id(match.detection_id, tracking_id)

            self.store.assign_tracking_id(detection.detection_id, tracking_id)

        detection.tracking_id = tracking_id
        if match is not None:
            logger.debug(
                f"Detection {detection.detection_id} joined track {tracking_id} "
                f"(matched detection {match.detection_id})"
            )
        else:
            logger.debug(f"Detection {detection.detection_id} started track {tracking_id}")
        return tracking_id

    def _find_match(self, detection: Detection) -> Detection | None:
        candidates = self.store.find_recent_detections(
            detection.camera_id,
            detection.timestamp,
            self.window_seconds,
            exclude_id=detection.detection_id,
        )
        try:
            for candidate in candidates:
                if is_similar(
                    detection, candidate, self.max_center_distance, self.min_size_ratio
                ):
                    return candidate
        except CorrelationError as e:
            logger.warning(f"Correlation failed, starting a new track: {e}")
        return None

    def maybe_build_route(self, camera_id: int, tracking_id: int) -> TrackingRoute | None:
        """
        Build the route for a track once it has two or more detections.
        An existing route is never rebuilt.

        Returns:
            The new route, or None if none was created
        """
        with self.store.transaction():
            if self.store.get_tracking_route(tracking_id) is not None:
                return None

            members = self.store.detections_for_track(camera_id, tracking_id)
            if len(members) < 2:
                return None

            route = TrackingRoute(
                tracking_id=tracking_id,
                camera_id=camera_id,
                label=members[0].label,
                start_time=members[0].timestamp,
                end_time=members[-1].timestamp,
                path=[m.center for m in members if m.center is not None],
            )
            if not self.store.upsert_tracking_route(route):
                return None

        logger.info(
            f"Tracking route {tracking_id} created on camera {camera_id}: "
            f"'{route.label}', {len(route.path)} points"
        )
        return route
