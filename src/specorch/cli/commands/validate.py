"""Completion-proof validation commands."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Annotated

import typer

from ...core.config import Config
from ...core.validator import ValidationResult, Validator
from ..output import console

app = typer.Typer(help="Check files, ports and endpoints")


def get_validator() -> Validator:
    config = Config.load()
    return Validator(
        cache_ttl=config.validator.cache_ttl,
        timeout=config.validator.timeout,
        performance_threshold_ms=config.validator.performance_threshold_ms,
    )


def report(check: Callable[[Validator], Awaitable[ValidationResult]]) -> None:
    """Run a check, print its result and exit non-zero on failure."""
    result = asyncio.run(check(get_validator()))

    mark = "[green]✓[/green]" if result.passed else "[red]✗[/red]"
    console.print(f"{mark} {result.evidence}")
    console.print(f"[dim]confidence {result.confidence}%, {result.duration:.0f}ms[/dim]")
    if result.error:
        console.print(f"[red]{result.error}[/red]")

    if not result.passed:
        raise typer.Exit(1)


@app.command("file")
def validate_file(path: Annotated[Path, typer.Argument(help="File that must exist")]):
    """Check that a file exists and is readable."""
    report(lambda v: v.validate_file_exists(path))


@app.command("port")
def validate_port(
    port: Annotated[int, typer.Argument(help="Port number")],
    host: Annotated[str, typer.Option("--host", "-H", help="Host to connect to")] = "localhost",
):
    """Check that a port is listening."""
    report(lambda v: v.validate_network_port(port, host))


@app.command("url")
def validate_url(
    url: Annotated[str, typer.Argument(help="Endpoint URL")],
    status: Annotated[int, typer.Option("--status", "-s", help="Expected status code")] = 200,
):
    """Check that an HTTP endpoint answers with the expected status."""
    report(lambda v: v.validate_api_endpoint(url, status))


@app.command("process")
def validate_process(name: Annotated[str, typer.Argument(help="Process name pattern")]):
    """Check that a process is running."""
    report(lambda v: v.validate_process(name))
