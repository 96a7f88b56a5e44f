"""Data models for the activity log."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ..tasks.models import utcnow


class ActivityCategory(Enum):
    """What kind of operation an entry records."""

    TASK = "task"
    ERROR = "error"
    VALIDATION = "validation"
    SELF_HEALING = "self-healing"


class ActivityStatus(Enum):
    """Outcome of the recorded operation."""

    SUCCESS = "success"
    FAILURE = "failure"
    PENDING = "pending"
    SKIPPED = "skipped"


@dataclass
class ActivityEntry:
    """A single activity log entry."""

    task_id: str
    category: ActivityCategory
    status: ActivityStatus
    description: str
    id: int | None = None
    timestamp: datetime = field(default_factory=utcnow)
    metadata: dict[str, Any] = field(default_factory=dict)

    def preview(self, max_len: int = 60) -> str:
        """Get a preview of the description."""
        text = self.description.replace("\n", " ").strip()
        if len(text) > max_len:
            return text[: max_len - 3] + "..."
        return text

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "task_id": self.task_id,
            "category": self.category.value,
            "status": self.status.value,
            "description": self.description,
            "metadata": self.metadata,
        }
