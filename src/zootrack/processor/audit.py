"""
Audit log - durable record of what the ingest pipeline did.

Recording never raises: an audit failure must not turn a successful
ingest into a failed one, so it is reported to the Python logger instead.
"""

import logging

from ..models import AuditLogEntry
from ..storage import DetectionStore
from ..utils.constants import SYSTEM_USER_ID

logger = logging.getLogger(__name__)


class AuditLog:
    """
    Writes audit entries through the store on behalf of the system user.

    Args:
        store: Persistence collaborator
        system_user_id: User id recorded for automated actions
    """

    def __init__(self, store: DetectionStore, system_user_id: int = SYSTEM_USER_ID):
        self.store = store
        self.system_user_id = system_user_id

    def record(
        self,
        action_type: str,
        message: str = "",
        level: str = "Info",
        detection_id: int | None = None,
        user_id: int | None = None,
    ) -> AuditLogEntry | None:
        try:
            return self.store.add_log(
                user_id=user_id if user_id is not None else self.system_user_id,
                action_type=action_type,
                message=message,
                level=level,
                detection_id=detection_id,
            )
        except Exception as e:
            logger.error(f"Failed to write audit entry {action_type}: {e}")
            return None

    def entries(
        self,
        action_type: str | None = None,
        level: str | None = None,
        detection_id: int | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> list[AuditLogEntry]:
        """Newest-first entries matching the given filters."""
        return self.store.logs(
            action_type=action_type,
            level=level,
            detection_id=detection_id,
            page=page,
            page_size=page_size,
        )
