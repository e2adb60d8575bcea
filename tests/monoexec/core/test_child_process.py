"""Tests for the child process primitives, using real shell commands."""

import asyncio

import pytest

from monoexec.core.child_process import _STREAM_LIMIT, ProcessResult, build_command_line, spawn, spawn_streaming
from monoexec.errors import ExecutionError


class TestBuildCommandLine:
    def test_command_token_is_raw_args_are_quoted(self):
        assert build_command_line("echo $HOME", ["a b", "it's"]) == "echo $HOME 'a b' 'it'\"'\"'s'"

    def test_no_args(self):
        assert build_command_line("ls", []) == "ls"


class TestSpawn:
    @pytest.mark.asyncio
    async def test_captures_output(self, tmp_path):
        result = await spawn("echo", ["hello"], cwd=tmp_path)

        assert result == ProcessResult(command="echo hello", exit_code=0, stdout="hello\n", stderr="")
        assert not result.failed

    @pytest.mark.asyncio
    async def test_runs_in_cwd_with_env(self, tmp_path):
        result = await spawn(
            "pwd && echo $MONOEXEC_PACKAGE_NAME",
            [],
            cwd=tmp_path,
            env={"PATH": "/usr/bin:/bin", "MONOEXEC_PACKAGE_NAME": "alpha"},
        )

        assert result.stdout.splitlines() == [str(tmp_path.resolve()), "alpha"]

    @pytest.mark.asyncio
    async def test_non_zero_exit_rejects(self, tmp_path):
        with pytest.raises(ExecutionError) as exc_info:
            await spawn("echo oops >&2; exit 3", [], cwd=tmp_path)

        assert exc_info.value.exit_code == 3
        assert str(exc_info.value) == "Command failed with exit code 3: echo oops >&2; exit 3"
        assert exc_info.value.stderr == "oops\n"

    @pytest.mark.asyncio
    async def test_non_zero_exit_returned_without_reject(self, tmp_path):
        result = await spawn("exit", ["2"], cwd=tmp_path, reject=False)

        assert result.exit_code == 2
        assert result.failed

    @pytest.mark.asyncio
    async def test_spawn_failure_without_shell(self, tmp_path):
        with pytest.raises(ExecutionError) as exc_info:
            await spawn("definitely-not-a-real-binary", [], cwd=tmp_path, shell=False, reject=False)

        assert exc_info.value.exit_code == 127
        assert "Failed to spawn" in str(exc_info.value)


class TestSpawnStreaming:
    @pytest.mark.asyncio
    async def test_forwards_lines_with_prefix(self, tmp_path):
        lines = []

        result = await spawn_streaming(
            "echo one; echo two; echo three >&2",
            [],
            cwd=tmp_path,
            prefix="alpha",
            on_line=lambda prefix, line, is_stderr: lines.append((prefix, line, is_stderr)),
        )

        assert result.exit_code == 0
        assert result.stdout == ""
        stdout_lines = [entry for entry in lines if not entry[2]]
        assert stdout_lines == [("alpha", "one", False), ("alpha", "two", False)]
        assert ("alpha", "three", True) in lines

    @pytest.mark.asyncio
    async def test_non_zero_exit_rejects(self, tmp_path):
        with pytest.raises(ExecutionError) as exc_info:
            await spawn_streaming("exit 4", [], cwd=tmp_path, on_line=lambda *_: None)

        assert exc_info.value.exit_code == 4

    @pytest.mark.asyncio
    async def test_line_longer_than_limit_is_split(self, tmp_path):
        lines = []
        length = 2 * _STREAM_LIMIT + 100

        result = await spawn_streaming(
            f"head -c {length} /dev/zero | tr '\\0' x; echo; echo after",
            [],
            cwd=tmp_path,
            on_line=lambda prefix, line, is_stderr: lines.append(line),
        )

        assert result.exit_code == 0
        assert [len(line) for line in lines] == [_STREAM_LIMIT, _STREAM_LIMIT, 100, 5]
        assert set("".join(lines[:3])) == {"x"}
        assert lines[-1] == "after"

    @pytest.mark.asyncio
    async def test_trailing_partial_line_and_crlf(self, tmp_path):
        lines = []

        await spawn_streaming(
            "printf 'one\\r\\ntwo'",
            [],
            cwd=tmp_path,
            on_line=lambda prefix, line, is_stderr: lines.append(line),
        )

        assert lines == ["one", "two"]

    @pytest.mark.asyncio
    async def test_failing_line_handler_reaps_child(self, tmp_path, monkeypatch):
        processes = []
        original = asyncio.create_subprocess_shell

        async def _recording_create(*args, **kwargs):
            process = await original(*args, **kwargs)
            processes.append(process)
            return process

        def _explode(prefix, line, is_stderr):
            raise RuntimeError("sink closed")

        monkeypatch.setattr(asyncio, "create_subprocess_shell", _recording_create)

        with pytest.raises(RuntimeError, match="sink closed"):
            await spawn_streaming("echo first; sleep 30", [], cwd=tmp_path, on_line=_explode)

        assert processes[0].returncode is not None
