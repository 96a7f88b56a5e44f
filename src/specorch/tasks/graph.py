"""Task graph and status state machine."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator

from ..core.errors import SpecLoadError, TaskNotFoundError
from .models import VALID_TRANSITIONS, StatusTransitionEvent, Task, TaskStatus

logger = logging.getLogger(__name__)

StatusListener = Callable[[StatusTransitionEvent], None]


class TaskGraph:
    """Arena of tasks addressed by id.

    The tree shape is fixed once built; only statuses change. At most one
    task is ``in_progress`` at any time, checked and set under one lock.
    """

    def __init__(self):
        self._tasks: dict[str, Task] = {}
        self._roots: list[str] = []
        self._lock = threading.RLock()
        self._in_progress: str | None = None
        self._listeners: list[StatusListener] = []

    @classmethod
    def from_tasks(cls, roots: list[Task]) -> TaskGraph:
        """Build a graph from a task tree.

        Raises:
            SpecLoadError: If ids are duplicated or more than one task is in progress.
        """
        graph = cls()
        for root in roots:
            graph._roots.append(root.id)
            for task in root.walk():
                if task.id in graph._tasks:
                    raise SpecLoadError(f"Duplicate task id: {task.id}")
                graph._tasks[task.id] = task
                if task.status == TaskStatus.IN_PROGRESS:
                    if graph._in_progress is not None:
                        raise SpecLoadError(
                            f"Tasks {graph._in_progress} and {task.id} are both in progress"
                        )
                    graph._in_progress = task.id
        return graph

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def __contains__(self, task_id: str) -> bool:
        return task_id in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    @property
    def roots(self) -> list[Task]:
        return [self._tasks[task_id] for task_id in self._roots]

    def get(self, task_id: str) -> Task:
        """Look up a task.

        Raises:
            TaskNotFoundError: If the id is unknown.
        """
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def parent_of(self, task_id: str) -> Task | None:
        parent_id = self.get(task_id).parent_id
        return self._tasks.get(parent_id) if parent_id else None

    def siblings_of(self, task_id: str) -> list[Task]:
        """Tasks sharing this task's parent, in document order, including itself."""
        parent = self.parent_of(task_id)
        return parent.children if parent else self.roots

    def walk(self) -> Iterator[Task]:
        """All tasks, depth-first in document order."""
        for root in self.roots:
            yield from root.walk()

    def in_progress(self) -> Task | None:
        with self._lock:
            return self._tasks[self._in_progress] if self._in_progress else None

    def summary(self) -> dict[str, int]:
        """Task counts per status."""
        counts = {status.value: 0 for status in TaskStatus}
        optional = 0
        for task in self.walk():
            counts[task.status.value] += 1
            if task.is_optional:
                optional += 1
        return {"total": len(self._tasks), **counts, "optional": optional}

    def is_complete(self) -> bool:
        """Whether every non-optional task is completed."""
        return all(
            task.status == TaskStatus.COMPLETED for task in self.walk() if not task.is_optional
        )

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def can_transition(self, task_id: str, new_status: TaskStatus) -> bool:
        return new_status in VALID_TRANSITIONS[self.get(task_id).status]

    def transition(self, task_id: str, new_status: TaskStatus) -> bool:
        """Move a task to a new status.

        Returns:
            True if the transition happened. False leaves the graph untouched
            and emits nothing.

        Raises:
            TaskNotFoundError: If the id is unknown.
        """
        with self._lock:
            task = self.get(task_id)
            previous = task.status

            if new_status not in VALID_TRANSITIONS[previous]:
                logger.warning(
                    "Invalid status transition for task %s: %s -> %s",
                    task_id,
                    previous.value,
                    new_status.value,
                )
                return False

            if new_status == TaskStatus.IN_PROGRESS and self._in_progress is not None:
                logger.warning(
                    "Cannot start task %s: task %s is already in progress",
                    task_id,
                    self._in_progress,
                )
                return False

            task.status = new_status
            if new_status == TaskStatus.IN_PROGRESS:
                self._in_progress = task_id
            elif previous == TaskStatus.IN_PROGRESS:
                self._in_progress = None

            event = StatusTransitionEvent(
                task_id=task_id, previous_status=previous, new_status=new_status
            )

        logger.info("Task %s: %s -> %s", task_id, previous.value, new_status.value)
        self._emit(event)
        return True

    def restore_completed(self, task_ids: list[str]) -> list[str]:
        """Mark tasks completed from a saved snapshot, without events.

        Unknown ids are ignored. Returns the ids that were applied.
        """
        applied = []
        with self._lock:
            for task_id in task_ids:
                task = self._tasks.get(task_id)
                if task is None:
                    logger.warning("Saved state references unknown task %s", task_id)
                    continue
                if task.status == TaskStatus.IN_PROGRESS:
                    self._in_progress = None
                task.status = TaskStatus.COMPLETED
                applied.append(task_id)
        return applied

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def add_listener(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: StatusListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, event: StatusTransitionEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning("Status listener %r failed for task %s: %s", listener, event.task_id, e)
