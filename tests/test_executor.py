"""Tests for sandboxed command execution."""

from __future__ import annotations

import pytest

from specorch.sandbox.executor import (
    TIMEOUT_EXIT_CODE,
    PassthroughExecutor,
    SubprocessExecutor,
)
from specorch.sandbox.models import ExecutionResult, IsolationConfig


class TestSubprocessExecutor:
    @pytest.mark.asyncio
    async def test_captures_output(self):
        result = await SubprocessExecutor().execute("echo hello", IsolationConfig())

        assert result.success
        assert result.exit_code == 0
        assert result.stdout.strip() == "hello"
        assert result.error is None
        assert result.resource_usage.time >= 0

    @pytest.mark.asyncio
    async def test_nonzero_exit(self):
        result = await SubprocessExecutor().execute("echo oops >&2; exit 3", IsolationConfig())

        assert not result.success
        assert result.exit_code == 3
        assert result.stderr.strip() == "oops"
        assert result.error == "Exit code: 3"

    @pytest.mark.asyncio
    async def test_timeout_kills_command(self):
        result = await SubprocessExecutor().execute("sleep 5", IsolationConfig(max_time=200))

        assert not result.success
        assert result.exit_code == TIMEOUT_EXIT_CODE
        assert result.error == "Execution timeout after 200ms"
        assert result.resource_usage.time < 5000

    @pytest.mark.asyncio
    async def test_timeout_kills_background_children(self):
        result = await SubprocessExecutor().execute(
            "(sleep 5; echo late) & sleep 5; wait", IsolationConfig(max_time=200)
        )

        assert result.exit_code == TIMEOUT_EXIT_CODE
        assert result.resource_usage.time < 2000

    @pytest.mark.asyncio
    async def test_first_allowed_path_is_cwd(self, tmp_path):
        config = IsolationConfig(allowed_paths=[str(tmp_path)])

        result = await SubprocessExecutor().execute("pwd -P", config)

        assert result.stdout.strip() == str(tmp_path.resolve())

    @pytest.mark.asyncio
    async def test_extra_environment(self):
        executor = SubprocessExecutor(env={"SPECORCH_PROBE": "42"})

        result = await executor.execute("echo $SPECORCH_PROBE", IsolationConfig())

        assert result.stdout.strip() == "42"


class TestPassthroughExecutor:
    @pytest.mark.asyncio
    async def test_records_commands(self):
        canned = ExecutionResult(success=False, stdout="FAILED test_a", exit_code=1)
        executor = PassthroughExecutor(canned)

        result = await executor.execute("pytest", IsolationConfig())

        assert result is canned
        assert executor.commands == ["pytest"]


class TestIsolationConfig:
    @pytest.mark.parametrize(
        "max_time,max_cpu,expected",
        [(60_000, 80, 48), (1_000, 50, 1), (200, 100, 1), (10_500, 100, 11)],
    )
    def test_cpu_seconds(self, max_time, max_cpu, expected):
        assert IsolationConfig(max_time=max_time, max_cpu=max_cpu).cpu_seconds == expected
