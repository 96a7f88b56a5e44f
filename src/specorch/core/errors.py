"""Exception hierarchy for specorch."""

from __future__ import annotations


class SpecorchError(Exception):
    """Base class for all orchestrator errors."""


class SpecLoadError(SpecorchError):
    """Spec documents are missing, unreadable or structurally invalid."""

    def __init__(self, message: str, file: str | None = None, line_number: int | None = None):
        self.file = file
        self.line_number = line_number
        location = ""
        if file:
            location = f" ({file}"
            if line_number is not None:
                location += f":{line_number}"
            location += ")"
        super().__init__(f"{message}{location}")


class TaskNotFoundError(SpecorchError):
    """A task id does not exist in the loaded graph."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")


class PrerequisiteError(SpecorchError):
    """A task was started before its prerequisites completed."""

    def __init__(self, task_id: str, incomplete: list[str]):
        self.task_id = task_id
        self.incomplete = incomplete
        super().__init__(
            f"Cannot start task {task_id}: incomplete prerequisites: {', '.join(incomplete)}"
        )


class ParentTaskError(SpecorchError):
    """A parent task was completed while non-optional children are open."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(
            f"Cannot complete parent task {task_id}: not all non-optional sub-tasks are completed"
        )


class InvalidTransitionError(SpecorchError):
    """A status transition outside the transition table was requested."""

    def __init__(self, task_id: str, current: str, requested: str):
        self.task_id = task_id
        super().__init__(f"Invalid status transition for task {task_id}: {current} -> {requested}")


class CorrectionError(SpecorchError):
    """A step of the correction pipeline failed."""


class UnsafeCommandError(SpecorchError):
    """A shell command was blocked by the safety checker."""

    def __init__(self, command: str, violations: list[str]):
        self.command = command
        self.violations = violations
        super().__init__(f"Unsafe command blocked: {command}\nViolations: {', '.join(violations)}")
