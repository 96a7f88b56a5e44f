"""Sandboxed execution, command safety and task test runners."""

from .executor import PassthroughExecutor, SandboxExecutor, SubprocessExecutor
from .models import (
    ExecutionResult,
    IsolationConfig,
    Recommendation,
    ResourceUsage,
    SafetyAnalysis,
    SafetyViolation,
    Severity,
    ViolationKind,
)
from .runner import CommandTestRunner, TaskOutcome, TestRunner
from .safety import CommandSafetyChecker, SafetyRule

__all__ = [
    "CommandSafetyChecker",
    "CommandTestRunner",
    "ExecutionResult",
    "IsolationConfig",
    "PassthroughExecutor",
    "Recommendation",
    "ResourceUsage",
    "SafetyAnalysis",
    "SafetyRule",
    "SafetyViolation",
    "SandboxExecutor",
    "Severity",
    "SubprocessExecutor",
    "TaskOutcome",
    "TestRunner",
    "ViolationKind",
]
