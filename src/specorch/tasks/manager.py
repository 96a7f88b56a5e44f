"""Task manager: dependency-aware scheduling over the task graph.

The manager owns the ``TaskGraph`` for one spec, derives prerequisites from
document order, selects the next runnable task, and persists the
``ExecutionState`` after every mutating call. When the graph was loaded from a
spec directory, each status transition is also written back to the checkbox
marker of that task in ``tasks.md``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from ..core import defaults as D
from ..core.errors import (
    InvalidTransitionError,
    ParentTaskError,
    PrerequisiteError,
    SpecLoadError,
    SpecorchError,
)
from ..core.files import atomic_write, safe_read
from .document import parse_tasks, render_status
from .graph import StatusListener, TaskGraph
from .models import (
    DependencyNode,
    ErrorContext,
    ExecutionState,
    ExecutionStatus,
    Task,
    TaskStatus,
    utcnow,
)
from .state import StateStore

logger = logging.getLogger(__name__)


class TaskManager:
    """Manages task state, execution flow and persistence."""

    def __init__(self, state_path: Path | str | None = D.DEFAULT_STATE_PATH):
        self.store = StateStore(state_path) if state_path is not None else None
        self.graph: TaskGraph | None = None
        self.spec_path: Path | None = None
        self.state = ExecutionState()
        self._listeners: list[StatusListener] = []
        self._dependencies: dict[str, DependencyNode] | None = None

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def load_spec(self, spec_path: Path | str) -> TaskGraph:
        """Load a spec directory and initialise a fresh execution state.

        Raises:
            SpecLoadError: If ``tasks.md`` is missing, unreadable or malformed.
        """
        spec_path = Path(spec_path)
        tasks_file = spec_path / D.TASKS_FILE

        content = safe_read(tasks_file)
        if content is None:
            raise SpecLoadError("Tasks document does not exist or cannot be read", file=str(tasks_file))

        roots = parse_tasks(content, source=str(tasks_file))
        if not roots:
            raise SpecLoadError("Tasks document contains no tasks", file=str(tasks_file))

        graph = self.load_graph(TaskGraph.from_tasks(roots), spec_path.name)
        self.spec_path = spec_path
        return graph

    def load_graph(self, graph: TaskGraph, spec_name: str | None = None) -> TaskGraph:
        """Adopt an in-memory graph; no document sync happens for it."""
        if self.graph is not None:
            for listener in self._listeners:
                self.graph.remove_listener(listener)

        self.graph = graph
        self.spec_path = None
        self._dependencies = None
        for listener in self._listeners:
            graph.add_listener(listener)

        completed = [t.id for t in graph.walk() if t.status == TaskStatus.COMPLETED]
        current = graph.in_progress()
        self.state = ExecutionState(
            current_spec=spec_name,
            current_task=current.id if current else None,
            completed_tasks=completed,
        )
        return graph

    def restore_state(self) -> bool:
        """Re-apply a saved snapshot for the loaded spec.

        Returns:
            True if a matching snapshot was restored.
        """
        if self.store is None:
            return False

        saved = self.store.load()
        if saved is None:
            return False

        if self.graph is not None and saved.current_spec != self.state.current_spec:
            logger.info(
                "Saved state belongs to spec %r, not %r; starting fresh",
                saved.current_spec,
                self.state.current_spec,
            )
            return False

        if self.graph is not None:
            saved.completed_tasks = self.graph.restore_completed(saved.completed_tasks)
            for task in self.graph.walk():
                if task.status == TaskStatus.COMPLETED and task.id not in saved.completed_tasks:
                    saved.completed_tasks.append(task.id)

        self.state = saved
        self._persist()
        return True

    def _require_graph(self) -> TaskGraph:
        if self.graph is None:
            raise SpecorchError("No spec loaded")
        return self.graph

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def add_listener(self, listener: StatusListener) -> None:
        """Subscribe to status transitions, across spec reloads."""
        self._listeners.append(listener)
        if self.graph is not None:
            self.graph.add_listener(listener)

    def remove_listener(self, listener: StatusListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)
        if self.graph is not None:
            self.graph.remove_listener(listener)

    # -------------------------------------------------------------------------
    # Dependencies
    # -------------------------------------------------------------------------

    def _dependency_graph(self) -> dict[str, DependencyNode]:
        if self._dependencies is not None:
            return self._dependencies

        graph = self._require_graph()
        nodes = {task.id: DependencyNode(task_id=task.id) for task in graph.walk()}

        for task in graph.walk():
            prerequisites = self._sibling_prerequisites(graph, task)
            prerequisites += [c.id for c in task.children if not c.is_optional]
            for prereq in prerequisites:
                if prereq not in nodes[task.id].prerequisites:
                    nodes[task.id].prerequisites.append(prereq)
                    nodes[prereq].dependents.append(task.id)

        self._dependencies = nodes
        return nodes

    @staticmethod
    def _sibling_prerequisites(graph: TaskGraph, task: Task) -> list[str]:
        """Closest preceding non-optional sibling, else the parent's."""
        current: Task | None = task
        while current is not None:
            siblings = graph.siblings_of(current.id)
            index = next(i for i, s in enumerate(siblings) if s.id == current.id)
            for sibling in reversed(siblings[:index]):
                if not sibling.is_optional:
                    return [sibling.id]
            current = graph.parent_of(current.id)
        return []

    def get_dependency_node(self, task_id: str) -> DependencyNode:
        self._require_graph().get(task_id)
        return self._dependency_graph()[task_id]

    def get_prerequisites(self, task_id: str) -> list[str]:
        return list(self.get_dependency_node(task_id).prerequisites)

    def get_dependents(self, task_id: str) -> list[str]:
        return list(self.get_dependency_node(task_id).dependents)

    def incomplete_prerequisites(self, task_id: str) -> list[str]:
        graph = self._require_graph()
        return [
            prereq
            for prereq in self.get_prerequisites(task_id)
            if not graph.get(prereq).is_optional
            and graph.get(prereq).status != TaskStatus.COMPLETED
        ]

    def are_prerequisites_completed(self, task_id: str) -> bool:
        """True if every non-optional prerequisite is completed."""
        return not self.incomplete_prerequisites(task_id)

    def validate_prerequisites(self, task_id: str) -> bool:
        """Raise ``PrerequisiteError`` naming incomplete prerequisites."""
        incomplete = self.incomplete_prerequisites(task_id)
        if incomplete:
            raise PrerequisiteError(task_id, incomplete)
        return True

    # -------------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------------

    def select_next_task(self, include_optional: bool = D.DEFAULT_INCLUDE_OPTIONAL) -> Task | None:
        """First runnable task in document order, sub-tasks before parents.

        Returns None while any task is in progress.
        """
        if self.graph is None or self.graph.in_progress() is not None:
            return None
        return self._find_next(self.graph.roots, include_optional)

    def _find_next(self, tasks: list[Task], include_optional: bool) -> Task | None:
        for task in tasks:
            if task.status == TaskStatus.COMPLETED:
                continue
            if task.is_optional and not include_optional:
                continue
            if task.children:
                child = self._find_next(task.children, include_optional)
                if child is not None:
                    return child
                if not self._children_completed(task):
                    continue
            if self._is_eligible(task):
                return task
        return None

    def _is_eligible(self, task: Task) -> bool:
        if task.status not in (TaskStatus.NOT_STARTED, TaskStatus.QUEUED):
            return False
        return self.are_prerequisites_completed(task.id)

    def _children_completed(self, task: Task) -> bool:
        for child in task.children:
            if child.is_optional:
                continue
            if child.status != TaskStatus.COMPLETED or not self._children_completed(child):
                return False
        return True

    def can_complete_parent_task(self, task_id: str) -> bool:
        """Leaf tasks always; parents once all non-optional sub-tasks are done."""
        task = self._require_graph().get(task_id)
        return task.is_leaf or self._children_completed(task)

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def _update_status(self, task_id: str, new_status: TaskStatus) -> bool:
        graph = self._require_graph()
        if not graph.transition(task_id, new_status):
            return False
        self._sync_document(task_id, new_status)
        self._persist()
        return True

    def queue_task(self, task_id: str) -> bool:
        return self._update_status(task_id, TaskStatus.QUEUED)

    def start_task(self, task_id: str) -> bool:
        """Start a queued task.

        Raises:
            PrerequisiteError: If any prerequisite is incomplete.
        """
        self.validate_prerequisites(task_id)
        if not self._update_status(task_id, TaskStatus.IN_PROGRESS):
            return False
        self.state.current_task = task_id
        self._persist()
        return True

    def complete_task(self, task_id: str) -> bool:
        if not self._update_status(task_id, TaskStatus.COMPLETED):
            return False
        if task_id not in self.state.completed_tasks:
            self.state.completed_tasks.append(task_id)
        if self.state.current_task == task_id:
            self.state.current_task = None
        self._persist()
        return True

    def complete_task_with_validation(self, task_id: str) -> bool:
        """Complete a task, refusing parents with open sub-tasks.

        Raises:
            ParentTaskError: If non-optional sub-tasks are incomplete.
        """
        if not self.can_complete_parent_task(task_id):
            raise ParentTaskError(task_id)
        return self.complete_task(task_id)

    def reset_task(self, task_id: str) -> bool:
        """Return an in-progress task to not started for a retry."""
        if not self._update_status(task_id, TaskStatus.NOT_STARTED):
            return False
        if self.state.current_task == task_id:
            self.state.current_task = None
            self._persist()
        return True

    def complete_and_queue_next(
        self, task_id: str, include_optional: bool = D.DEFAULT_INCLUDE_OPTIONAL
    ) -> Task | None:
        """Complete a task, then queue and return the next one.

        Raises:
            InvalidTransitionError: If the task could not be completed.
        """
        graph = self._require_graph()
        current = graph.get(task_id).status
        if not self.complete_task(task_id):
            raise InvalidTransitionError(task_id, current.value, TaskStatus.COMPLETED.value)

        self.state.current_task = None
        self._persist()

        next_task = self.select_next_task(include_optional)
        if next_task is None:
            return None
        if next_task.status == TaskStatus.NOT_STARTED and not self.queue_task(next_task.id):
            raise InvalidTransitionError(
                next_task.id, next_task.status.value, TaskStatus.QUEUED.value
            )
        return next_task

    def halt_on_failure(
        self,
        task_id: str,
        error: BaseException | str,
        failed_test: str | None = None,
        stack_trace: str = "",
    ) -> ErrorContext:
        """Capture a failure and halt execution of the task."""
        self._require_graph().get(task_id)

        if isinstance(error, BaseException):
            context = ErrorContext.from_exception(task_id, error, failed_test=failed_test)
            if stack_trace and not context.stack_trace:
                context = ErrorContext(
                    task_id=task_id,
                    error_message=context.error_message,
                    stack_trace=stack_trace,
                    failed_test=failed_test,
                    timestamp=context.timestamp,
                )
        else:
            context = ErrorContext(
                task_id=task_id,
                error_message=error,
                stack_trace=stack_trace,
                failed_test=failed_test,
            )

        self.state.current_task = None
        self._persist()
        logger.info("Task %s halted: %s", task_id, context.error_message[:200])
        return context

    # -------------------------------------------------------------------------
    # Attempt counters
    # -------------------------------------------------------------------------

    def increment_ralph_loop_attempts(self, task_id: str) -> int:
        count = self.state.ralph_loop_attempts.get(task_id, 0) + 1
        self.state.ralph_loop_attempts[task_id] = count
        self._persist()
        return count

    def get_ralph_loop_attempts(self, task_id: str) -> int:
        return self.state.ralph_loop_attempts.get(task_id, 0)

    def reset_ralph_loop_attempts(self, task_id: str) -> None:
        self.state.ralph_loop_attempts.pop(task_id, None)
        self._persist()

    # -------------------------------------------------------------------------
    # Execution state
    # -------------------------------------------------------------------------

    def mark_task_skipped(self, task_id: str) -> None:
        if task_id not in self.state.skipped_tasks:
            self.state.skipped_tasks.append(task_id)
        self._persist()

    def start_execution(self) -> None:
        self.state.execution_start_time = utcnow()
        self._persist()

    def clear_execution(self) -> None:
        """Reset the execution state after a finished run."""
        self.state = ExecutionState()
        self._persist()

    def get_state(self) -> ExecutionState:
        """Copy of the current execution state."""
        return ExecutionState.from_dict(self.state.to_dict())

    def get_status(self) -> ExecutionStatus:
        if self.graph is None:
            return ExecutionStatus()

        total = len(self.graph)
        completed = sum(1 for t in self.graph.walk() if t.status == TaskStatus.COMPLETED)
        current = None
        if self.state.current_task and self.state.current_task in self.graph:
            current = self.graph.get(self.state.current_task)

        return ExecutionStatus(
            current_task=current,
            completed_count=completed,
            total_count=total,
            is_running=self.state.current_task is not None,
            progress=(completed / total) * 100 if total else 0.0,
        )

    def is_execution_complete(self) -> bool:
        return self.graph is not None and self.graph.is_complete()

    def get_execution_summary(self) -> dict[str, Any]:
        if self.graph is None:
            return {"total": 0, **{s.value: 0 for s in TaskStatus}, "optional": 0}
        return self.graph.summary()

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _persist(self) -> None:
        if self.store is not None:
            self.store.save(self.state)

    def _sync_document(self, task_id: str, status: TaskStatus) -> None:
        if self.spec_path is None:
            return

        tasks_file = self.spec_path / D.TASKS_FILE
        content = safe_read(tasks_file)
        if content is None:
            logger.warning("Cannot sync status of task %s: %s is unreadable", task_id, tasks_file)
            return

        updated = render_status(content, task_id, status)
        if updated == content:
            return

        result = atomic_write(tasks_file, updated)
        if not result.success:
            logger.warning("Failed to sync status of task %s: %s", task_id, result.error)

