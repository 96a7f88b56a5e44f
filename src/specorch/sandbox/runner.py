"""Test runners: execute a task's acceptance check and report the outcome."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Protocol

from ..core.errors import UnsafeCommandError
from ..tasks.models import Task
from .executor import SandboxExecutor, SubprocessExecutor
from .models import IsolationConfig, Recommendation
from .safety import CommandSafetyChecker

logger = logging.getLogger(__name__)

FAILED_TEST = re.compile(r"^(?:FAILED|FAIL)\s+(\S+)", re.MULTILINE)
ERROR_LINE = re.compile(
    r"^\s*(?:E\s+)?(\w*(?:Error|Exception)\b.*|AssertionError.*|assert .*)$", re.MULTILINE
)


@dataclass
class TaskOutcome:
    """Result of running a task's tests."""

    success: bool
    error_message: str = ""
    stack_trace: str = ""
    failed_test: str | None = None
    output: str = ""


class TestRunner(Protocol):
    """Runs the acceptance tests of one task."""

    async def run(self, task: Task) -> TaskOutcome: ...


class CommandTestRunner:
    """Runs a shell command per task through the safety checker and sandbox.

    ``{task_id}`` in the command is replaced by the id of the task under test.
    """

    def __init__(
        self,
        command: str,
        executor: SandboxExecutor | None = None,
        isolation: IsolationConfig | None = None,
        checker: CommandSafetyChecker | None = None,
        enforce_safety: bool = True,
    ):
        self.command = command
        self.executor = executor or SubprocessExecutor()
        self.isolation = isolation or IsolationConfig()
        self.checker = checker or CommandSafetyChecker()
        self.enforce_safety = enforce_safety

    def command_for(self, task: Task) -> str:
        return self.command.replace("{task_id}", task.id)

    async def run(self, task: Task) -> TaskOutcome:
        """Run the command for a task.

        Raises:
            UnsafeCommandError: If the safety checker blocks the command.
        """
        command = self.command_for(task)

        analysis = self.checker.analyze(command)
        if analysis.recommendation == Recommendation.BLOCK and self.enforce_safety:
            raise UnsafeCommandError(command, [v.description for v in analysis.violations])
        if not analysis.safe:
            logger.warning(
                "Running command with %s risk: %s (%s)",
                analysis.risk_level.value,
                command,
                ", ".join(v.description for v in analysis.violations),
            )

        result = await self.executor.execute(command, self.isolation)
        output = "\n".join(part for part in (result.stdout, result.stderr) if part)
        if result.success:
            return TaskOutcome(success=True, output=output)

        failed = FAILED_TEST.search(output)
        return TaskOutcome(
            success=False,
            error_message=_error_message(output, result.error, result.exit_code),
            stack_trace=result.stderr,
            failed_test=failed.group(1) if failed else None,
            output=output,
        )


def _error_message(output: str, error: str | None, exit_code: int) -> str:
    """Most informative single line of a failed run."""
    match = ERROR_LINE.search(output)
    if match:
        return match.group(1).strip()
    if error and error.startswith("Execution timeout"):
        return error
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    if lines:
        return lines[-1]
    return error or f"Command exited with code {exit_code}"
