#!/usr/bin/env python3
# /// script
# requires-python = ">=3.11"
# dependencies = [
#     "typer",
#     "click",
#     "rich",
#     "ruamel.yaml",
#     "packaging",
# ]
# ///
"""
monoexec - run commands across the packages of a multi-package workspace.

Usage:
    monoexec exec <command> [-- <args>...]
    monoexec exec --stream --since -- python -m pytest
    monoexec --cwd path/to/workspace exec --parallel ls
"""

from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console

from monoexec.cli import configure_logging
from monoexec.cli.commands import register_commands

__version__ = "0.1.0"

console = Console()

app = typer.Typer(
    name="monoexec",
    help="Run commands in every package of a workspace, in dependency order.",
    add_completion=False,
    no_args_is_help=True,
)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"monoexec {__version__}")
        raise typer.Exit()


@app.callback()
def callback(
    ctx: typer.Context,
    loglevel: str = typer.Option(
        "info",
        "--loglevel",
        help="What level of logs to report (silent, error, warn, info, verbose, debug)",
    ),
    cwd: Optional[str] = typer.Option(
        None,
        "--cwd",
        help="Directory to start looking for monoexec.yaml in",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit",
    ),
) -> None:
    """Configure logging and the working directory shared by every command."""
    try:
        configure_logging(loglevel)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--loglevel")
    ctx.obj = {"cwd": cwd}


register_commands(app)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
