"""Data models for the task graph and execution state."""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class TaskStatus(Enum):
    """Execution status of a task."""

    NOT_STARTED = "not_started"
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


# Only these edges are legal; COMPLETED has no outbound edge
VALID_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.NOT_STARTED: frozenset({TaskStatus.QUEUED}),
    TaskStatus.QUEUED: frozenset({TaskStatus.IN_PROGRESS}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.COMPLETED, TaskStatus.NOT_STARTED}),
    TaskStatus.COMPLETED: frozenset(),
}


@dataclass
class Task:
    """A single task from the tasks document."""

    id: str
    description: str
    status: TaskStatus = TaskStatus.NOT_STARTED
    is_optional: bool = False
    parent_id: str | None = None
    children: list[Task] = field(default_factory=list)
    requirement_refs: list[str] = field(default_factory=list)
    property_refs: list[str] = field(default_factory=list)

    @property
    def is_leaf(self) -> bool:
        """Whether the task has no sub-tasks."""
        return not self.children

    def walk(self):
        """Yield this task and its descendants in document order."""
        yield self
        for child in self.children:
            yield from child.walk()

    def preview(self, max_len: int = 60) -> str:
        """Short one-line description."""
        text = self.description.replace("\n", " ").strip()
        if len(text) > max_len:
            return text[:max_len] + "..."
        return text


@dataclass(frozen=True)
class StatusTransitionEvent:
    """Emitted after every successful status transition."""

    task_id: str
    previous_status: TaskStatus
    new_status: TaskStatus
    timestamp: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class ErrorContext:
    """Failure captured when a task's execution fails."""

    task_id: str
    error_message: str
    stack_trace: str = ""
    failed_test: str | None = None
    timestamp: datetime = field(default_factory=utcnow)

    @classmethod
    def from_exception(
        cls, task_id: str, error: BaseException, failed_test: str | None = None
    ) -> ErrorContext:
        """Build a context from a raised exception."""
        stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        return cls(
            task_id=task_id,
            error_message=str(error),
            stack_trace=stack if error.__traceback__ else "",
            failed_test=failed_test,
        )


@dataclass
class ExecutionState:
    """Persisted snapshot of an orchestration run."""

    current_spec: str | None = None
    current_task: str | None = None
    completed_tasks: list[str] = field(default_factory=list)
    skipped_tasks: list[str] = field(default_factory=list)
    ralph_loop_attempts: dict[str, int] = field(default_factory=dict)
    execution_start_time: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to JSON-compatible data."""
        return {
            "currentSpec": self.current_spec,
            "currentTask": self.current_task,
            "completedTasks": list(self.completed_tasks),
            "skippedTasks": list(self.skipped_tasks),
            "ralphLoopAttempts": dict(self.ralph_loop_attempts),
            "executionStartTime": (
                self.execution_start_time.isoformat() if self.execution_start_time else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExecutionState:
        """Deserialize; raises ValueError/TypeError on a malformed snapshot."""
        if not isinstance(data, dict):
            raise TypeError("state must be an object")

        current_spec = data["currentSpec"]
        current_task = data["currentTask"]
        completed = data["completedTasks"]
        skipped = data["skippedTasks"]
        attempts = data["ralphLoopAttempts"]
        start = data["executionStartTime"]

        if current_spec is not None and not isinstance(current_spec, str):
            raise TypeError("currentSpec must be a string or null")
        if current_task is not None and not isinstance(current_task, str):
            raise TypeError("currentTask must be a string or null")
        if not isinstance(completed, list) or not all(isinstance(t, str) for t in completed):
            raise TypeError("completedTasks must be a list of ids")
        if not isinstance(skipped, list) or not all(isinstance(t, str) for t in skipped):
            raise TypeError("skippedTasks must be a list of ids")
        if not isinstance(attempts, dict) or not all(
            isinstance(k, str) and isinstance(v, int) and not isinstance(v, bool) and v >= 0
            for k, v in attempts.items()
        ):
            raise TypeError("ralphLoopAttempts must map ids to non-negative counts")
        if start is not None and not isinstance(start, str):
            raise TypeError("executionStartTime must be an ISO string or null")

        return cls(
            current_spec=current_spec,
            current_task=current_task,
            completed_tasks=list(completed),
            skipped_tasks=list(skipped),
            ralph_loop_attempts=dict(attempts),
            execution_start_time=datetime.fromisoformat(start) if start else None,
        )


@dataclass
class DependencyNode:
    """Prerequisites and dependents of one task."""

    task_id: str
    prerequisites: list[str] = field(default_factory=list)
    dependents: list[str] = field(default_factory=list)


@dataclass
class ExecutionStatus:
    """Progress snapshot for display."""

    current_task: Task | None = None
    completed_count: int = 0
    total_count: int = 0
    is_running: bool = False
    progress: float = 0.0
