"""Child process primitives.

Two ways to run a package command:
    - spawn(): capture stdout/stderr, return them once the process exits
    - spawn_streaming(): forward every output line to a callback as it arrives

Both run the command through the shell by default. With ``reject=True`` a
non-zero exit raises ExecutionError; with ``reject=False`` it is returned as
a ProcessResult. Failing to start the process always raises.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Sequence

from monoexec.errors import ExecutionError

logger = logging.getLogger(__name__)

__all__ = [
    "ProcessResult",
    "LineHandler",
    "build_command_line",
    "spawn",
    "spawn_streaming",
]

# Called with (prefix, line, is_stderr) for each streamed line
LineHandler = Callable[[str | None, str, bool], None]

# Longest line forwarded whole; longer ones (minified bundles, \r progress bars) are split
_STREAM_LIMIT = 1024 * 1024
_READ_CHUNK = 64 * 1024


@dataclass
class ProcessResult:
    """Outcome of one finished child process."""

    command: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def failed(self) -> bool:
        return self.exit_code != 0


def build_command_line(command: str, args: Sequence[str]) -> str:
    """Join the command token and its arguments for the shell.

    The command token is passed through untouched so it may carry shell
    syntax; each argument is quoted so it reaches the child verbatim.
    """
    return " ".join([command, *(shlex.quote(arg) for arg in args)])


async def _create_process(
    command: str,
    args: Sequence[str],
    cwd: Path,
    env: Mapping[str, str] | None,
    shell: bool,
) -> tuple[asyncio.subprocess.Process, str]:
    command_line = build_command_line(command, args)
    try:
        if shell:
            process = await asyncio.create_subprocess_shell(
                command_line,
                cwd=str(cwd),
                env=dict(env) if env is not None else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=_STREAM_LIMIT,
            )
        else:
            process = await asyncio.create_subprocess_exec(
                command,
                *args,
                cwd=str(cwd),
                env=dict(env) if env is not None else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=_STREAM_LIMIT,
            )
    except OSError as e:
        raise ExecutionError(
            f"Failed to spawn '{command_line}': {e}",
            exit_code=127,
            command=command_line,
        ) from e
    return process, command_line


def _check_exit(result: ProcessResult, reject: bool) -> ProcessResult:
    if reject and result.failed:
        raise ExecutionError(
            f"Command failed with exit code {result.exit_code}: {result.command}",
            exit_code=result.exit_code,
            command=result.command,
            stdout=result.stdout,
            stderr=result.stderr,
        )
    return result


async def spawn(
    command: str,
    args: Sequence[str],
    *,
    cwd: Path,
    env: Mapping[str, str] | None = None,
    shell: bool = True,
    reject: bool = True,
) -> ProcessResult:
    """Run a command to completion, capturing its output.

    Raises:
        ExecutionError: If the process cannot be started, or exits non-zero
            while ``reject`` is set.
    """
    process, command_line = await _create_process(command, args, cwd, env, shell)
    stdout_bytes, stderr_bytes = await process.communicate()
    result = ProcessResult(
        command=command_line,
        exit_code=process.returncode if process.returncode is not None else 1,
        stdout=stdout_bytes.decode("utf-8", errors="replace") if stdout_bytes else "",
        stderr=stderr_bytes.decode("utf-8", errors="replace") if stderr_bytes else "",
    )
    return _check_exit(result, reject)


def _emit(raw: bytes, prefix: str | None, on_line: LineHandler, is_stderr: bool) -> None:
    for start in range(0, max(len(raw), 1), _STREAM_LIMIT):
        piece = raw[start : start + _STREAM_LIMIT]
        on_line(prefix, piece.decode("utf-8", errors="replace").rstrip("\r"), is_stderr)


async def _pump(
    stream: asyncio.StreamReader | None,
    prefix: str | None,
    on_line: LineHandler,
    is_stderr: bool,
) -> None:
    """Forward ``stream`` line by line.

    A line longer than ``_STREAM_LIMIT`` is forwarded in limit-sized pieces
    rather than dropped.
    """
    if stream is None:
        return
    pending = b""
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            break
        *lines, pending = (pending + chunk).split(b"\n")
        for raw in lines:
            _emit(raw, prefix, on_line, is_stderr)
        if len(pending) >= _STREAM_LIMIT:
            cut = len(pending) - len(pending) % _STREAM_LIMIT
            _emit(pending[:cut], prefix, on_line, is_stderr)
            pending = pending[cut:]
    if pending:
        _emit(pending, prefix, on_line, is_stderr)


async def spawn_streaming(
    command: str,
    args: Sequence[str],
    *,
    cwd: Path,
    env: Mapping[str, str] | None = None,
    prefix: str | None = None,
    on_line: LineHandler,
    shell: bool = True,
    reject: bool = True,
) -> ProcessResult:
    """Run a command, forwarding each output line to ``on_line`` as it arrives.

    Lines of one stream keep their order. The returned result carries no
    captured output.

    Raises:
        ExecutionError: If the process cannot be started, or exits non-zero
            while ``reject`` is set.
    """
    process, command_line = await _create_process(command, args, cwd, env, shell)
    pumps = [
        asyncio.create_task(_pump(process.stdout, prefix, on_line, False)),
        asyncio.create_task(_pump(process.stderr, prefix, on_line, True)),
    ]
    try:
        await asyncio.gather(*pumps)
    except BaseException:
        # Nothing drains the pipes any more, so the child must not outlive us
        for task in pumps:
            task.cancel()
        await asyncio.gather(*pumps, return_exceptions=True)
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        await process.wait()
        raise
    exit_code = await process.wait()
    return _check_exit(ProcessResult(command=command_line, exit_code=exit_code), reject)
