"""Orchestrator: drives a spec's tasks through tests and self-correction."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from rich.console import Console

from .core.config import Config
from .core.errors import SpecLoadError, SpecorchError, UnsafeCommandError
from .correction.applier import CorrectionApplier
from .correction.generator import NoteCorrectionGenerator
from .correction.loop import RalphLoop
from .logs.models import ActivityCategory, ActivityStatus
from .logs.store import ActivityLog
from .sandbox.runner import TestRunner
from .tasks.manager import TaskManager
from .tasks.models import ErrorContext, Task, TaskStatus

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    """Outcome of an orchestrator run."""

    success: bool
    completed_tasks: list[str] = field(default_factory=list)
    failed_task: str | None = None
    error: ErrorContext | None = None
    duration: float = 0.0  # milliseconds

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "completed_tasks": self.completed_tasks,
            "failed_task": self.failed_task,
            "error": self.error.error_message if self.error else None,
            "duration": self.duration,
        }


class Orchestrator:
    """Runs every task of a spec, correcting the spec when a task fails.

    Each round selects the next runnable task, runs its tests and either
    completes it or hands the failure to the Ralph-Loop. A successful
    correction resets the task so the next round retries it. The run stops
    when no task is selectable or a task exhausts its correction attempts.
    """

    def __init__(
        self,
        spec_path: Path | str,
        test_runner: TestRunner,
        config: Config | None = None,
        task_manager: TaskManager | None = None,
        loop: RalphLoop | None = None,
        activity_log: ActivityLog | None = None,
        console: Console | None = None,
        project_dir: Path | None = None,
    ):
        self.spec_path = Path(spec_path)
        self.test_runner = test_runner
        self.config = config or Config()
        self.console = console or Console(quiet=True)
        self.activity_log = activity_log

        base = project_dir or Path.cwd()
        self.task_manager = task_manager or TaskManager(
            state_path=base / self.config.state.state_path
        )
        self.loop = loop or RalphLoop(
            self.task_manager,
            NoteCorrectionGenerator(),
            CorrectionApplier(
                self.spec_path,
                create_backup=self.config.mutator.create_backup,
                backup_dir=base / self.config.mutator.backup_dir,
                strict_validation=self.config.mutator.strict_validation,
                max_backups=self.config.mutator.max_backups,
            ),
            max_attempts=self.config.loop.max_attempts,
            activity_log=activity_log,
        )

    async def run(self) -> RunSummary:
        """Execute all tasks until done, stuck or exhausted."""
        start = time.monotonic()

        try:
            self.task_manager.load_spec(self.spec_path)
        except SpecLoadError as e:
            logger.error("Failed to load spec: %s", e)
            return self._summary(
                start, success=False, error=ErrorContext(task_id="load-spec", error_message=str(e))
            )

        if self.task_manager.restore_state():
            self.console.print("[dim]Resuming from saved execution state[/dim]")
        self._recover_stale_task()
        self.task_manager.start_execution()

        try:
            return await self._run_tasks(start)
        except SpecorchError as e:
            logger.error("Orchestrator halted: %s", e)
            return self._summary(
                start,
                success=False,
                error=ErrorContext.from_exception("orchestrator", e),
            )

    async def _run_tasks(self, start: float) -> RunSummary:
        include_optional = self.config.loop.include_optional

        while True:
            task = self.task_manager.select_next_task(include_optional)
            if task is None:
                break

            if task.status == TaskStatus.NOT_STARTED:
                self.task_manager.queue_task(task.id)
            self.task_manager.start_task(task.id)
            self.console.print(f"[cyan]▶[/cyan] {task.id} {task.preview()}")

            try:
                error = await self._execute_task(task)
            except UnsafeCommandError as e:
                context = self.task_manager.halt_on_failure(task.id, e)
                self.task_manager.reset_task(task.id)
                self._record(task.id, ActivityCategory.ERROR, ActivityStatus.FAILURE, str(e))
                self.console.print(f"[red]Blocked command for task {task.id}: {e}[/red]")
                return self._summary(start, success=False, failed_task=task.id, error=context)
            if error is None:
                continue

            if not await self._correct(error):
                return self._summary(start, success=False, failed_task=task.id, error=error)

        if not self.task_manager.is_execution_complete():
            logger.warning("No runnable task left but the spec is not complete")
            return self._summary(start, success=False)

        summary = self._summary(start, success=True)
        self.task_manager.clear_execution()
        return summary

    async def _execute_task(self, task: Task) -> ErrorContext | None:
        """Run a started task's tests; complete it or return its failure."""
        outcome = await self.test_runner.run(task)

        if outcome.success:
            self.task_manager.complete_task_with_validation(task.id)
            self.task_manager.reset_ralph_loop_attempts(task.id)
            self.console.print(f"[green]✓[/green] {task.id}")
            self._record(task.id, ActivityCategory.TASK, ActivityStatus.SUCCESS, "Task completed")
            return None

        context = self.task_manager.halt_on_failure(
            task.id,
            outcome.error_message or "Task tests failed",
            failed_test=outcome.failed_test,
            stack_trace=outcome.stack_trace,
        )
        self.console.print(f"[red]✗[/red] {task.id}: {context.error_message}")
        self._record(
            task.id,
            ActivityCategory.TASK,
            ActivityStatus.FAILURE,
            context.error_message,
            {"failed_test": context.failed_test},
        )
        return context

    async def _correct(self, error: ErrorContext) -> bool:
        """Retry corrections until one succeeds or the task is exhausted."""
        while True:
            result = await self.loop.execute_correction(error)
            if result.success:
                self.console.print(
                    f"[yellow]↻[/yellow] Corrected task {error.task_id} "
                    f"(attempt {result.attempt_number})"
                )
                return True
            if result.exhausted:
                self.console.print(f"[red]Task {error.task_id}: {result.error}[/red]")
                return False
            self.console.print(
                f"[dim]Correction attempt {result.attempt_number} failed: {result.error}[/dim]"
            )

    def _recover_stale_task(self) -> None:
        """Return a task left in progress by an interrupted run to not started."""
        graph = self.task_manager.graph
        stale = graph.in_progress() if graph is not None else None
        if stale is not None:
            logger.info("Resetting task %s left in progress by a previous run", stale.id)
            self.task_manager.reset_task(stale.id)

    def _record(
        self,
        task_id: str,
        category: ActivityCategory,
        status: ActivityStatus,
        description: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        if self.activity_log is not None:
            self.activity_log.record(task_id, category, status, description, metadata)

    def _summary(
        self,
        start: float,
        success: bool,
        failed_task: str | None = None,
        error: ErrorContext | None = None,
    ) -> RunSummary:
        return RunSummary(
            success=success,
            completed_tasks=list(self.task_manager.state.completed_tasks),
            failed_task=failed_task,
            error=error,
            duration=(time.monotonic() - start) * 1000,
        )
