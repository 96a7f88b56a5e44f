"""Data models for the self-correction loop."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from ..core import defaults as D


class ErrorType(Enum):
    """Classification of a task failure."""

    TEST_FAILURE = "test_failure"
    COMPILATION_ERROR = "compilation_error"
    RUNTIME_ERROR = "runtime_error"
    MISSING_DEPENDENCY = "missing_dependency"
    INVALID_SPEC = "invalid_spec"
    TIMEOUT_ERROR = "timeout_error"
    UNKNOWN_ERROR = "unknown_error"


class TargetFile(Enum):
    """Spec document a correction is written to."""

    REQUIREMENTS = "requirements"
    DESIGN = "design"
    TASKS = "tasks"

    @property
    def filename(self) -> str:
        return {
            TargetFile.REQUIREMENTS: D.REQUIREMENTS_FILE,
            TargetFile.DESIGN: D.DESIGN_FILE,
            TargetFile.TASKS: D.TASKS_FILE,
        }[self]

    @classmethod
    def parse(cls, value: str | TargetFile) -> TargetFile:
        """Accept ``design`` as well as ``design.md``.

        Raises:
            ValueError: For anything else.
        """
        if isinstance(value, cls):
            return value
        name = str(value).strip().lower()
        if name.endswith(".md"):
            name = name[:-3]
        return cls(name)


@dataclass
class AnalysisContext:
    """Extra detail extracted from a failure."""

    property_ref: str | None = None
    requirement_ref: str | None = None
    error_location: str | None = None
    suggestion: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "property_ref": self.property_ref,
            "requirement_ref": self.requirement_ref,
            "error_location": self.error_location,
            "suggestion": self.suggestion,
        }


@dataclass
class ErrorAnalysis:
    """Classification of a failure and where to correct it."""

    error_type: ErrorType
    root_cause: str
    target_file: TargetFile
    confidence: int
    context: AnalysisContext = field(default_factory=AnalysisContext)

    def to_context(self) -> str:
        """Format analysis for display."""
        lines = [
            f"Error Type: {self.error_type.value}",
            f"Root Cause: {self.root_cause}",
            f"Target File: {self.target_file.filename}",
            f"Confidence: {self.confidence}",
        ]
        if self.context.error_location:
            lines.append(f"Location: {self.context.error_location}")
        if self.context.property_ref:
            lines.append(f"Property: {self.context.property_ref}")
        if self.context.requirement_ref:
            lines.append(f"Requirement: {self.context.requirement_ref}")
        if self.context.suggestion:
            lines.append(f"Suggestion: {self.context.suggestion}")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": self.error_type.value,
            "root_cause": self.root_cause,
            "target_file": self.target_file.value,
            "confidence": self.confidence,
            "context": self.context.to_dict(),
        }


@dataclass
class CorrectionPlan:
    """Replacement content proposed for one spec document."""

    error_type: ErrorType | str
    target_file: TargetFile | str
    correction: str
    updated_content: str
    attempt_number: int
    confidence: int = 0


@dataclass
class ApplyResult:
    """Outcome of committing a correction plan."""

    success: bool
    file_path: Path
    error: str | None = None
    backup_path: Path | None = None


class RetryPhase(Enum):
    """Tag of a task's retry state."""

    IDLE = "idle"
    ATTEMPTING = "attempting"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class RetryState:
    """Per-task retry state derived from the attempt counter."""

    phase: RetryPhase
    attempts: int
    max_attempts: int

    @classmethod
    def from_attempts(cls, attempts: int, max_attempts: int) -> RetryState:
        if attempts <= 0:
            phase = RetryPhase.IDLE
        elif attempts < max_attempts:
            phase = RetryPhase.ATTEMPTING
        else:
            phase = RetryPhase.EXHAUSTED
        return cls(phase=phase, attempts=max(attempts, 0), max_attempts=max_attempts)

    @property
    def remaining(self) -> int:
        return max(0, self.max_attempts - self.attempts)

    def __str__(self) -> str:
        if self.phase == RetryPhase.ATTEMPTING:
            return f"Attempting({self.attempts})"
        return self.phase.value.capitalize()


@dataclass
class RalphLoopResult:
    """Outcome of one ``execute_correction`` call."""

    success: bool
    attempt_number: int
    exhausted: bool
    plan: CorrectionPlan | None = None
    analysis: ErrorAnalysis | None = None
    error: str | None = None
