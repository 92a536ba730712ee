"""
Media archive - detection snapshots and frame extraction.

Paths handed back to callers are relative to the archive root so the
database stays valid if the root directory moves.
"""

import logging
import os
import shutil
from datetime import datetime

import cv2

from ..models import Media

logger = logging.getLogger(__name__)

DETECTIONS_DIR = "Detections"
EXTRACTED_DIR = "SavedDetections"


class MediaArchive:
    """
    Args:
        root: Archive root directory
    """

    def __init__(self, root: str):
        self.root = root

    def resolve(self, relative_path: str) -> str:
        return os.path.join(self.root, relative_path)

    def save_frame(self, jpeg_bytes: bytes, now: datetime) -> str:
        """
        Write a detection snapshot.

        Returns:
            Path relative to the archive root

        Raises:
            OSError: If the snapshot cannot be written
        """
        filename = (
            f"detection_{now.strftime('%Y%m%d_%H%M%S')}_{now.microsecond // 1000:03d}.jpg"
        )
        relative_path = os.path.join(DETECTIONS_DIR, filename)
        full_path = self.resolve(relative_path)

        os.makedirs(os.path.dirname(full_path), exist_ok=True)
        with open(full_path, "wb") as f:
            f.write(jpeg_bytes)

        logger.debug(f"Saved detection frame: {full_path}")
        return relative_path

    def extract_frames(self, media: Media, sample_fps: float = 1.0) -> list[str]:
        """
        Extract still frames for a media record into SavedDetections/{media_id}/.

        Video media is sampled at roughly `sample_fps`; image media is copied.

        Returns:
            Paths of the extracted frames (empty if the source is missing)
        """
        source = self.resolve(media.file_path) if media.file_path else ""
        if not source or not os.path.isfile(source):
            logger.warning(f"Media {media.media_id}: source file not found: {source or '-'}")
            return []

        output_dir = os.path.join(self.root, EXTRACTED_DIR, str(media.media_id))
        os.makedirs(output_dir, exist_ok=True)

        if media.type != "Video":
            target = os.path.join(output_dir, os.path.basename(source))
            shutil.copyfile(source, target)
            return [target]

        cap = cv2.VideoCapture(source)
        if not cap.isOpened():
            logger.error(f"Media {media.media_id}: cannot open video {source}")
            return []

        saved = []
        try:
            video_fps = cap.get(cv2.CAP_PROP_FPS) or 0.0
            step = max(1, int(round(video_fps / sample_fps))) if video_fps > 0 else 1
            index = 0
            while True:
                ret, frame = cap.read()
                if not ret:
                    break
                if index % step == 0:
                    path = os.path.join(output_dir, f"frame_{len(saved):05d}.jpg")
                    if cv2.imwrite(path, frame):
                        saved.append(path)
                index += 1
        finally:
            cap.release()

        logger.info(f"Media {media.media_id}: extracted {len(saved)} frames to {output_dir}")
        return saved
