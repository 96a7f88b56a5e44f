"""Spec document backup commands."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from ...core.config import Config
from ...correction.applier import CorrectionApplier
from ...correction.models import TargetFile
from ..output import console, create_table, print_error, print_info, print_success

app = typer.Typer(help="List and restore spec document backups")


def get_applier(spec_dir: Path) -> CorrectionApplier:
    config = Config.load()
    return CorrectionApplier(
        spec_dir,
        backup_dir=Path.cwd() / config.mutator.backup_dir,
        max_backups=config.mutator.max_backups,
    )


def parse_target(target: str) -> TargetFile:
    try:
        return TargetFile.parse(target)
    except ValueError:
        print_error(f"Unknown document: {target} (use requirements, design or tasks)")
        raise typer.Exit(1)


@app.command("list")
def list_backups(
    spec_dir: Annotated[Path, typer.Argument(help="Spec directory")],
    target: Annotated[str, typer.Argument(help="Document: requirements, design or tasks")],
):
    """List backups of a spec document, newest first."""
    target_file = parse_target(target)
    backups = get_applier(spec_dir).list_backups(target_file)

    if not backups:
        print_info(f"No backups of {target_file.filename}")
        return

    table = create_table(f"Backups of {target_file.filename}", [("#", "dim"), ("File", "cyan")])
    for i, path in enumerate(backups, 1):
        table.add_row(str(i), str(path))
    console.print(table)


@app.command("restore")
def restore_backup(
    spec_dir: Annotated[Path, typer.Argument(help="Spec directory")],
    target: Annotated[str, typer.Argument(help="Document: requirements, design or tasks")],
):
    """Restore a spec document from its newest backup."""
    target_file = parse_target(target)
    result = get_applier(spec_dir).rollback(target_file)

    if not result.success:
        print_error(result.error or "Restore failed")
        raise typer.Exit(1)

    print_success(f"Restored {result.file_path} from {result.backup_path}")
