"""CLI command modules for monoexec."""

from __future__ import annotations

import typer

from .exec_cmd import ExecCommand, exec_command


def register_commands(app: typer.Typer) -> None:
    """Attach every command to the root app."""
    app.command(
        "exec",
        cls=ExecCommand,
        help="Execute an arbitrary command in each package.",
    )(exec_command)


__all__ = ["register_commands", "exec_command", "ExecCommand"]
