"""SQLite storage for the activity log."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from .models import ActivityCategory, ActivityEntry, ActivityStatus


class ActivityLog:
    """SQLite-backed record of task, error, validation and correction events."""

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with sqlite3.connect(self.db_path) as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS activity (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    task_id TEXT NOT NULL,
                    category TEXT NOT NULL,
                    status TEXT NOT NULL,
                    description TEXT NOT NULL,
                    metadata TEXT DEFAULT '{}'
                );

                CREATE INDEX IF NOT EXISTS idx_activity_task ON activity(task_id);
                CREATE INDEX IF NOT EXISTS idx_activity_timestamp ON activity(timestamp);
                CREATE INDEX IF NOT EXISTS idx_activity_category ON activity(category);
            """)

    def record(
        self,
        task_id: str,
        category: ActivityCategory,
        status: ActivityStatus,
        description: str,
        metadata: dict[str, Any] | None = None,
    ) -> ActivityEntry:
        """Append an entry.

        Args:
            task_id: Task the entry belongs to.
            category: Kind of operation.
            status: Outcome of the operation.
            description: Human-readable summary.
            metadata: Extra JSON-serializable detail.

        Returns:
            The stored entry with its id set.
        """
        entry = ActivityEntry(
            task_id=task_id,
            category=category,
            status=status,
            description=description,
            metadata=metadata or {},
        )
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(
                """
                INSERT INTO activity (timestamp, task_id, category, status, description, metadata)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.timestamp.isoformat(),
                    entry.task_id,
                    entry.category.value,
                    entry.status.value,
                    entry.description,
                    json.dumps(entry.metadata, default=str),
                ),
            )
            entry.id = cursor.lastrowid
        return entry

    def query(
        self,
        task_id: str | None = None,
        category: ActivityCategory | None = None,
        status: ActivityStatus | None = None,
        since: datetime | None = None,
        limit: int = 100,
    ) -> list[ActivityEntry]:
        """Entries matching every given filter, oldest first."""
        where, params = self._filters(task_id, category, status, since)
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute(
                f"""
                SELECT * FROM (
                    SELECT * FROM activity{where}
                    ORDER BY id DESC
                    LIMIT ?
                ) ORDER BY id ASC
                """,
                [*params, limit],
            ).fetchall()
            return [self._row_to_entry(row) for row in rows]

    def count(
        self,
        task_id: str | None = None,
        category: ActivityCategory | None = None,
        status: ActivityStatus | None = None,
    ) -> int:
        """Count entries matching the given filters."""
        where, params = self._filters(task_id, category, status, None)
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(f"SELECT COUNT(*) FROM activity{where}", params).fetchone()
            return row[0]

    @staticmethod
    def _filters(
        task_id: str | None,
        category: ActivityCategory | None,
        status: ActivityStatus | None,
        since: datetime | None,
    ) -> tuple[str, list[Any]]:
        conditions = []
        params: list[Any] = []

        if task_id:
            conditions.append("task_id = ?")
            params.append(task_id)
        if category:
            conditions.append("category = ?")
            params.append(category.value)
        if status:
            conditions.append("status = ?")
            params.append(status.value)
        if since:
            conditions.append("timestamp >= ?")
            params.append(since.isoformat())

        where = " WHERE " + " AND ".join(conditions) if conditions else ""
        return where, params

    def _row_to_entry(self, row: sqlite3.Row) -> ActivityEntry:
        """Convert a database row to an ActivityEntry."""
        return ActivityEntry(
            id=row["id"],
            timestamp=datetime.fromisoformat(row["timestamp"]),
            task_id=row["task_id"],
            category=ActivityCategory(row["category"]),
            status=ActivityStatus(row["status"]),
            description=row["description"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
        )
