"""Crash-recovery persistence of the execution state."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from ..core.files import atomic_write, safe_read
from .models import ExecutionState

logger = logging.getLogger(__name__)


class StateStore:
    """JSON snapshot of an ``ExecutionState`` on disk."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def save(self, state: ExecutionState) -> bool:
        """Write the full snapshot atomically. Failures are logged, not raised."""
        content = json.dumps(state.to_dict(), indent=2) + "\n"
        result = atomic_write(self.path, content)
        if not result.success:
            logger.warning("Failed to persist execution state to %s: %s", self.path, result.error)
        return result.success

    def load(self) -> ExecutionState | None:
        """Read the snapshot.

        Returns:
            The saved state, or None when the file is missing, corrupt or
            structurally invalid.
        """
        if not self.path.exists():
            return None

        content = safe_read(self.path)
        if content is None:
            logger.warning("Could not read state file %s; starting fresh", self.path)
            return None

        try:
            return ExecutionState.from_dict(json.loads(content))
        except (ValueError, TypeError, KeyError) as e:
            logger.warning("Ignoring invalid state file %s: %s", self.path, e)
            return None

    def clear(self) -> None:
        """Remove the snapshot file if present."""
        self.path.unlink(missing_ok=True)
