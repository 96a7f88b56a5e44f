"""Activity log for task, error, validation and correction events."""

from .models import ActivityCategory, ActivityEntry, ActivityStatus
from .store import ActivityLog

__all__ = [
    "ActivityCategory",
    "ActivityEntry",
    "ActivityLog",
    "ActivityStatus",
]
