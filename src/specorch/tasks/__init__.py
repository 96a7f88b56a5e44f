"""Task graph, scheduling and execution state."""

from .document import parse_tasks, render_status, render_tasks
from .graph import StatusListener, TaskGraph
from .manager import TaskManager
from .models import (
    DependencyNode,
    ErrorContext,
    ExecutionState,
    ExecutionStatus,
    StatusTransitionEvent,
    Task,
    TaskStatus,
)
from .state import StateStore

__all__ = [
    "TaskManager",
    "TaskGraph",
    "StatusListener",
    "StateStore",
    "Task",
    "TaskStatus",
    "StatusTransitionEvent",
    "ErrorContext",
    "ExecutionState",
    "ExecutionStatus",
    "DependencyNode",
    "parse_tasks",
    "render_status",
    "render_tasks",
]
