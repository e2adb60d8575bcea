"""Console rendering of child process output.

Child output is printed as plain text: markup and highlighting are off so
nothing a command prints is reinterpreted. Streamed lines get a colored
``name:`` prefix, one color per package.
"""

from __future__ import annotations

from typing import Protocol

from rich.console import Console
from rich.text import Text

from monoexec.core.child_process import ProcessResult

__all__ = ["OutputSink", "ConsoleOutput"]

_PREFIX_COLORS = ["cyan", "magenta", "green", "yellow", "blue", "bright_cyan", "bright_magenta"]


class OutputSink(Protocol):
    """Where the executor sends child output."""

    def write_captured(self, package: str, result: ProcessResult) -> None: ...

    def write_line(self, prefix: str | None, line: str, is_stderr: bool) -> None: ...


class ConsoleOutput:
    """OutputSink backed by two rich consoles (stdout and stderr)."""

    def __init__(self, console: Console | None = None, err_console: Console | None = None):
        self.console = console or Console(highlight=False, soft_wrap=True)
        self.err_console = err_console or Console(stderr=True, highlight=False, soft_wrap=True)
        self._colors: dict[str, str] = {}

    def _color_for(self, prefix: str) -> str:
        if prefix not in self._colors:
            self._colors[prefix] = _PREFIX_COLORS[len(self._colors) % len(_PREFIX_COLORS)]
        return self._colors[prefix]

    def write_captured(self, package: str, result: ProcessResult) -> None:
        if result.stdout:
            self.console.out(result.stdout.rstrip("\n"), highlight=False)
        if result.stderr:
            self.err_console.out(result.stderr.rstrip("\n"), highlight=False)

    def write_line(self, prefix: str | None, line: str, is_stderr: bool) -> None:
        text = Text()
        if prefix:
            text.append(f"{prefix}: ", style=self._color_for(prefix))
        text.append(line)
        target = self.err_console if is_stderr else self.console
        target.print(text, highlight=False)
