"""Config subcommands: inspect and initialise .specorch/config.yaml."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import typer
import yaml

from ...core.config import Config
from ..output import console, create_table, print_error, print_info, print_success

app = typer.Typer(help="Inspect and initialise specorch settings")


@app.command("show")
def show(
    section: Annotated[
        Optional[str],
        typer.Argument(help="loop, mutator, validator, state or sandbox"),
    ] = None,
    as_yaml: Annotated[bool, typer.Option("--yaml", help="Print as YAML")] = False,
):
    """Show the effective settings after files and environment are merged."""
    settings = Config.load().to_dict()

    if section is not None:
        name = section.lower()
        if name not in settings:
            print_error(f"No config section named {section!r}")
            print_info(f"Sections: {', '.join(settings)}")
            raise typer.Exit(1)
        settings = {name: settings[name]}

    if as_yaml:
        console.print(yaml.safe_dump(settings, sort_keys=False).rstrip(), markup=False)
        return

    for name, values in settings.items():
        table = create_table(name, [("Setting", "cyan"), ("Value", "")])
        for key, value in values.items():
            shown = ", ".join(value) if isinstance(value, list) else str(value)
            table.add_row(key, shown or "-")
        console.print(table)

    if section is None:
        user_file = Config.USER_CONFIG_FILE
        print_info(f"User file: {user_file}{'' if user_file.exists() else ' (absent)'}")
        print_info(f"Project file: {Config.PROJECT_CONFIG_FILE}")


@app.command("init")
def init(
    project_dir: Annotated[
        Optional[Path],
        typer.Option("--dir", "-d", help="Project directory (defaults to cwd)"),
    ] = None,
    force: Annotated[bool, typer.Option("--force", "-f", help="Overwrite an existing file")] = False,
):
    """Write the effective settings to the project config file."""
    target = (project_dir or Path.cwd()) / Config.PROJECT_CONFIG_FILE
    if target.exists() and not force:
        print_error(f"{target} already exists (use --force to overwrite)")
        raise typer.Exit(1)

    path = Config.load(project_dir).save_project_config(project_dir)
    print_success(f"Wrote {path}")
