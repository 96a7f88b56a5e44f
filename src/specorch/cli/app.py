"""Main CLI application using Typer."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.panel import Panel

from ..core.config import Config
from ..core.errors import SpecorchError
from ..correction.analyzer import ErrorAnalyzer
from ..correction.models import RetryState
from ..logs.models import ActivityCategory
from ..logs.store import ActivityLog
from ..orchestrator import Orchestrator
from ..sandbox.executor import SubprocessExecutor
from ..sandbox.models import IsolationConfig, Recommendation
from ..sandbox.runner import CommandTestRunner
from ..sandbox.safety import CommandSafetyChecker
from ..tasks.manager import TaskManager
from ..tasks.models import ErrorContext
from .commands import backups, config, validate
from .output import (
    console,
    create_table,
    print_error,
    print_info,
    print_safety_analysis,
    print_success,
    print_task_table,
    print_warning,
)

app = typer.Typer(
    name="specorch",
    help="Self-correcting orchestrator for spec-driven task execution",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Register command groups
app.add_typer(config.app, name="config")
app.add_typer(backups.app, name="backups")
app.add_typer(validate.app, name="validate")


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Verbose logging"),
    ] = False,
):
    """Run spec tasks in dependency order and self-correct failures.

    Examples:
        specorch status specs/auth                       # Task table
        specorch next specs/auth                         # Next runnable task
        specorch run specs/auth -t "pytest -k {task_id}" # Run with Ralph-Loop
        specorch check-command "rm -rf build"            # Safety analysis
    """
    log_format = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING, format=log_format)


def load_manager(spec_dir: Path, cfg: Config) -> TaskManager:
    """Load a spec and its saved execution state, exiting on load errors."""
    manager = TaskManager(state_path=Path.cwd() / cfg.state.state_path)
    try:
        manager.load_spec(spec_dir)
    except SpecorchError as e:
        print_error(str(e))
        raise typer.Exit(1)
    manager.restore_state()
    return manager


def get_activity_log(cfg: Config) -> ActivityLog:
    return ActivityLog(Path.cwd() / cfg.state.activity_db)


@app.command("status")
def status(
    spec_dir: Annotated[Path, typer.Argument(help="Spec directory containing tasks.md")],
):
    """Show tasks with their status and prerequisites."""
    cfg = Config.load()
    manager = load_manager(spec_dir, cfg)
    graph = manager.graph

    rows = []

    def collect(tasks, depth: int) -> None:
        for task in tasks:
            rows.append((task, depth, manager.get_prerequisites(task.id)))
            collect(task.children, depth + 1)

    collect(graph.roots, 0)
    print_task_table(rows, title=f"Tasks: {spec_dir.name}")

    progress = manager.get_status()
    console.print(
        f"\n[bold]Progress:[/bold] {progress.completed_count}/{progress.total_count} "
        f"({progress.progress:.0f}%)"
    )
    if progress.current_task:
        console.print(f"[bold]Current:[/bold] {progress.current_task.id}")


@app.command("next")
def next_task(
    spec_dir: Annotated[Path, typer.Argument(help="Spec directory containing tasks.md")],
    include_optional: Annotated[
        bool,
        typer.Option("--include-optional", "-o", help="Consider optional tasks"),
    ] = False,
):
    """Show the next task that would run."""
    cfg = Config.load()
    manager = load_manager(spec_dir, cfg)

    task = manager.select_next_task(include_optional or cfg.loop.include_optional)
    if task is None:
        if manager.is_execution_complete():
            print_success("All tasks completed")
        else:
            print_info("No runnable task")
        return

    console.print(f"[cyan]{task.id}[/cyan] {task.description}")
    if task.requirement_refs:
        print_info(f"Requirements: {', '.join(task.requirement_refs)}")


@app.command("run")
def run(
    spec_dir: Annotated[Path, typer.Argument(help="Spec directory containing tasks.md")],
    test_command: Annotated[
        str,
        typer.Option("--test-command", "-t", help="Shell command testing a task ({task_id} is replaced)"),
    ],
    max_attempts: Annotated[
        Optional[int],
        typer.Option("--max-attempts", "-n", help="Correction attempts per task"),
    ] = None,
    include_optional: Annotated[
        bool,
        typer.Option("--include-optional", "-o", help="Also run optional tasks"),
    ] = False,
    unsafe: Annotated[
        bool,
        typer.Option("--unsafe", help="Run commands the safety check would block"),
    ] = False,
):
    """Run all tasks, self-correcting the spec on failures."""
    cfg = Config.load()
    if max_attempts is not None:
        cfg.loop.max_attempts = max_attempts
    if include_optional:
        cfg.loop.include_optional = True

    runner = CommandTestRunner(
        test_command,
        executor=SubprocessExecutor(cwd=str(Path.cwd())),
        isolation=IsolationConfig(
            max_cpu=cfg.sandbox.max_cpu,
            max_memory=cfg.sandbox.max_memory,
            max_time=cfg.sandbox.max_time,
            allowed_paths=cfg.sandbox.allowed_paths,
            allowed_networks=cfg.sandbox.allowed_networks,
        ),
        enforce_safety=cfg.sandbox.enforce_safety and not unsafe,
    )
    orchestrator = Orchestrator(
        spec_dir,
        runner,
        config=cfg,
        activity_log=get_activity_log(cfg),
        console=console,
    )

    summary = asyncio.run(orchestrator.run())

    console.print()
    if summary.success:
        print_success(
            f"✓ Completed {len(summary.completed_tasks)} tasks in {summary.duration / 1000:.1f}s"
        )
        return

    if summary.failed_task:
        print_error(f"Task {summary.failed_task} failed")
    if summary.error:
        console.print(Panel(summary.error.error_message, title="Error", border_style="red"))
    print_info(f"Completed: {', '.join(summary.completed_tasks) or 'none'}")
    raise typer.Exit(1)


@app.command("analyze")
def analyze(
    message: Annotated[str, typer.Option("--message", "-m", help="Error message")],
    failed_test: Annotated[
        Optional[str],
        typer.Option("--failed-test", "-f", help="Name of the failing test"),
    ] = None,
    stack: Annotated[
        str,
        typer.Option("--stack", "-s", help="Stack trace"),
    ] = "",
    task_id: Annotated[str, typer.Option("--task", help="Task id")] = "cli",
    as_json: Annotated[bool, typer.Option("--json", help="Print JSON")] = False,
):
    """Classify an error and show where it would be corrected."""
    analysis = ErrorAnalyzer().analyze(
        ErrorContext(
            task_id=task_id,
            error_message=message,
            stack_trace=stack,
            failed_test=failed_test,
        )
    )

    if as_json:
        console.print_json(json.dumps(analysis.to_dict()))
        return

    console.print(Panel(analysis.to_context(), title="Error Analysis", border_style="cyan"))


@app.command("attempts")
def attempts(
    task_id: Annotated[str, typer.Argument(help="Task id")],
):
    """Show the correction attempts used by a task."""
    cfg = Config.load()
    manager = TaskManager(state_path=Path.cwd() / cfg.state.state_path)
    manager.restore_state()

    state = RetryState.from_attempts(
        manager.get_ralph_loop_attempts(task_id), cfg.loop.max_attempts
    )
    console.print(f"[cyan]{task_id}[/cyan]: {state}")
    console.print(f"  attempts: {state.attempts}/{state.max_attempts}")
    console.print(f"  remaining: {state.remaining}")


@app.command("reset-attempts")
def reset_attempts(
    task_id: Annotated[str, typer.Argument(help="Task id")],
):
    """Clear a task's attempt counter so it can be corrected again."""
    cfg = Config.load()
    manager = TaskManager(state_path=Path.cwd() / cfg.state.state_path)
    if not manager.restore_state():
        print_warning("No saved execution state")
        return

    if manager.get_ralph_loop_attempts(task_id) == 0:
        print_info(f"Task {task_id} has no correction attempts")
        return

    manager.reset_ralph_loop_attempts(task_id)
    print_success(f"Reset correction attempts for task {task_id}")


@app.command("check-command")
def check_command(
    command: Annotated[str, typer.Argument(help="Shell command to analyze")],
):
    """Analyze a shell command for safety violations."""
    analysis = CommandSafetyChecker().analyze(command)
    print_safety_analysis(command, analysis)

    if analysis.recommendation == Recommendation.BLOCK:
        raise typer.Exit(1)


@app.command("log")
def log(
    task: Annotated[
        Optional[str],
        typer.Option("--task", help="Filter by task id"),
    ] = None,
    category: Annotated[
        Optional[str],
        typer.Option("--category", "-c", help="Filter by category (task, error, validation, self-healing)"),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Maximum entries to show"),
    ] = 20,
):
    """Show the activity log."""
    cfg = Config.load()
    store = get_activity_log(cfg)

    try:
        entry_category = ActivityCategory(category) if category else None
    except ValueError:
        print_error(f"Unknown category: {category}")
        raise typer.Exit(1)

    entries = store.query(task_id=task, category=entry_category, limit=limit)
    if not entries:
        print_info("No activity recorded")
        return

    table = create_table(
        "Activity",
        [("Time", "dim"), ("Task", "cyan"), ("Category", "magenta"), ("Status", ""), ("Description", "")],
    )
    for entry in entries:
        style = {"success": "green", "failure": "red"}.get(entry.status.value, "yellow")
        table.add_row(
            entry.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            entry.task_id,
            entry.category.value,
            f"[{style}]{entry.status.value}[/{style}]",
            entry.preview(),
        )
    console.print(table)

    total = store.count(task_id=task, category=entry_category)
    if total > limit:
        print_info(f"Showing {limit} of {total} entries")


@app.command("version")
def version():
    """Show version information."""
    from .. import __version__

    console.print(f"specorch version: {__version__}")


if __name__ == "__main__":
    app()
