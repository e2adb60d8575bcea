"""``monoexec exec``: run an arbitrary command in every package.

USAGE EXAMPLES:
    monoexec exec ls
    monoexec exec -- ls -la
    monoexec exec --scope "plugin-*" --stream -- python -m pytest
    monoexec exec --since main --no-bail make lint
    monoexec exec --parallel --ignore docs -- npm run watch
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import click
import typer
from rich.console import Console
from rich.markup import escape
from typer.core import TyperCommand

from monoexec.core.config import find_workspace_root
from monoexec.errors import CommandRequiredError, ExecutionError, MonoexecError
from monoexec.orchestrator.filters import FilterOptions
from monoexec.orchestrator.integration import ExecRequest, exec_in_workspace
from monoexec.orchestrator.results import shell_exit_code

console = Console()

# Value given to a bare --since: compare against the latest release tag
LATEST_RELEASE = ""


def normalize_since(args: list[str]) -> list[str]:
    """Give a bare ``--since`` (end of args, or followed by an option) an empty value."""
    normalized: list[str] = []
    for index, arg in enumerate(args):
        if arg == "--":
            normalized.extend(args[index:])
            break
        normalized.append(arg)
        if arg == "--since":
            following = args[index + 1] if index + 1 < len(args) else None
            if following is None or following.startswith("-"):
                normalized.append(LATEST_RELEASE)
    return normalized


class ExecCommand(TyperCommand):
    """Lets --since be used with or without a ref."""

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        return super().parse_args(ctx, normalize_since(args))


def exec_command(
    ctx: typer.Context,
    command: Optional[str] = typer.Argument(
        None,
        help="Command to run in each package",
        show_default=False,
    ),
    args: Optional[List[str]] = typer.Argument(
        None,
        help="Arguments passed verbatim to the command (put them after --)",
        show_default=False,
    ),
    scope: Optional[List[str]] = typer.Option(
        None,
        "--scope",
        help="Only include packages whose name matches this glob (repeatable)",
    ),
    ignore: Optional[List[str]] = typer.Option(
        None,
        "--ignore",
        help="Exclude packages whose name matches this glob (repeatable)",
    ),
    since: Optional[str] = typer.Option(
        None,
        "--since",
        help="Only include packages changed since REF (default: latest release tag)",
        metavar="[REF]",
    ),
    include_dependents: bool = typer.Option(
        False,
        "--include-dependents",
        help="With --since, also include packages that depend on changed packages",
    ),
    include_filtered_dependencies: bool = typer.Option(
        False,
        "--include-filtered-dependencies",
        help="Also include every dependency of the selected packages",
    ),
    parallel: bool = typer.Option(
        False,
        "--parallel",
        help="Run in every package at once, ignoring dependency order",
    ),
    stream: bool = typer.Option(
        False,
        "--stream",
        help="Stream prefixed output, one dependency batch at a time",
    ),
    bail: Optional[bool] = typer.Option(
        None,
        "--bail/--no-bail",
        help="Stop when a command fails in a package (default), or keep going and exit non-zero at the end",
        show_default=False,
    ),
    reject_cycles: bool = typer.Option(
        False,
        "--reject-cycles",
        help="Fail if a dependency cycle is found",
    ),
    no_prefix: bool = typer.Option(
        False,
        "--no-prefix",
        help="Do not prefix streamed output with the package name",
    ),
    concurrency: Optional[int] = typer.Option(
        None,
        "--concurrency",
        min=1,
        help="How many processes to run at once within a --stream batch",
    ),
) -> None:
    """Execute an arbitrary command in each package."""
    try:
        if not command:
            raise CommandRequiredError()

        start = ctx.obj.get("cwd") if isinstance(ctx.obj, dict) else None
        root = find_workspace_root(Path(start) if start else None)

        request = ExecRequest(
            command=command,
            args=tuple(args or ()),
            filters=FilterOptions(
                scope=list(scope or []),
                ignore=list(ignore or []),
                since=since,
                include_dependents=include_dependents,
                include_dependencies=include_filtered_dependencies,
            ),
            overrides={
                "parallel": True if parallel else None,
                "stream": True if stream else None,
                "bail": bail,
                "reject_cycles": True if reject_cycles else None,
                "prefix": False if no_prefix else None,
                "concurrency": concurrency,
            },
        )
        result = exec_in_workspace(root, request)
    except ExecutionError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(shell_exit_code(e.exit_code) or 1)
    except MonoexecError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    if not result.ok:
        raise typer.Exit(result.exit_code)
