"""Rich console output helpers."""

from __future__ import annotations

from rich.console import Console
from rich.table import Table

from ..sandbox.models import SafetyAnalysis, Severity
from ..tasks.models import Task, TaskStatus

# Shared console instance
console = Console()
error_console = Console(stderr=True)

STATUS_STYLES = {
    TaskStatus.NOT_STARTED: ("○", "dim"),
    TaskStatus.QUEUED: ("◐", "yellow"),
    TaskStatus.IN_PROGRESS: ("▶", "cyan"),
    TaskStatus.COMPLETED: ("✓", "green"),
}

RISK_STYLES = {
    Severity.LOW: "green",
    Severity.MEDIUM: "yellow",
    Severity.HIGH: "red",
    Severity.CRITICAL: "bold red",
}


def print_error(message: str) -> None:
    """Print an error message."""
    error_console.print(f"[red]Error:[/red] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]Warning:[/yellow] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]{message}[/green]")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[dim]{message}[/dim]")


def create_table(title: str, columns: list[tuple[str, str]]) -> Table:
    """Create a styled table.

    Args:
        title: Table title
        columns: List of (name, style) tuples
    """
    table = Table(title=title, show_header=True, header_style="bold")
    for name, style in columns:
        table.add_column(name, style=style)
    return table


def format_status(status: TaskStatus) -> str:
    icon, style = STATUS_STYLES[status]
    return f"[{style}]{icon} {status.value}[/{style}]"


def print_task_table(
    tasks: list[tuple[Task, int, list[str]]],
    title: str = "Tasks",
) -> None:
    """Print tasks as (task, depth, prerequisites) rows."""
    table = create_table(
        title,
        [("ID", "cyan"), ("Task", ""), ("Status", ""), ("Optional", "dim"), ("Prerequisites", "dim")],
    )
    for task, depth, prerequisites in tasks:
        table.add_row(
            task.id,
            "  " * depth + task.preview(),
            format_status(task.status),
            "*" if task.is_optional else "",
            ", ".join(prerequisites) or "-",
        )
    console.print(table)


def print_safety_analysis(command: str, analysis: SafetyAnalysis) -> None:
    """Print a command's safety verdict."""
    style = RISK_STYLES[analysis.risk_level]
    console.print(f"[bold]Command:[/bold] {command}")
    console.print(f"[bold]Risk:[/bold] [{style}]{analysis.risk_level.value}[/{style}]")
    console.print(f"[bold]Recommendation:[/bold] {analysis.recommendation.value}")

    if analysis.violations:
        table = create_table(
            "Violations", [("Type", "magenta"), ("Severity", ""), ("Description", "")]
        )
        for v in analysis.violations:
            sev = RISK_STYLES[v.severity]
            table.add_row(v.kind.value, f"[{sev}]{v.severity.value}[/{sev}]", v.description)
        console.print(table)

    if analysis.alternative:
        console.print("\n[bold]Suggested alternative:[/bold]")
        console.print(analysis.alternative, markup=False)
