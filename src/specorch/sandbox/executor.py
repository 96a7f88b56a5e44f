"""Sandboxed command execution."""

from __future__ import annotations

import asyncio
import logging
import os
import resource
import signal
import time
from typing import Protocol

from .models import ExecutionResult, IsolationConfig, ResourceUsage

logger = logging.getLogger(__name__)

# Conventional exit codes for a killed child
TIMEOUT_EXIT_CODE = 124
KILLED_EXIT_CODE = 137


class SandboxExecutor(Protocol):
    """Runs a shell command under resource ceilings."""

    async def execute(self, command: str, config: IsolationConfig) -> ExecutionResult: ...


class SubprocessExecutor:
    """Runs commands in a child process with POSIX resource limits.

    CPU time and address space are capped with ``setrlimit`` in the child
    before the shell starts; wall-clock time is capped by killing the child.
    The first of ``allowed_paths`` becomes the working directory. Network
    restrictions are not enforced by this executor.
    """

    def __init__(self, cwd: str | None = None, env: dict[str, str] | None = None):
        self.cwd = cwd
        self.env = env

    async def execute(self, command: str, config: IsolationConfig) -> ExecutionResult:
        start = time.monotonic()
        cwd = config.allowed_paths[0] if config.allowed_paths else self.cwd
        usage_before = _children_usage()

        try:
            process = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env={**os.environ, "TERM": "dumb", **(self.env or {})},
                preexec_fn=_limits(config),
                start_new_session=True,
            )
        except OSError as e:
            return ExecutionResult(
                success=False,
                exit_code=1,
                stderr=str(e),
                error=f"Failed to start command: {e}",
                resource_usage=ResourceUsage(time=_elapsed_ms(start)),
            )

        timeout = config.max_time / 1000
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except TimeoutError:
            _kill_group(process)
            await process.wait()
            logger.warning("Sandboxed command timed out after %sms: %s", config.max_time, command)
            return ExecutionResult(
                success=False,
                exit_code=TIMEOUT_EXIT_CODE,
                error=f"Execution timeout after {config.max_time}ms",
                resource_usage=self._usage(usage_before, start),
            )

        exit_code = process.returncode if process.returncode is not None else 1
        error = None
        if exit_code < 0:
            # Killed by a signal, typically the CPU or memory ceiling
            error = f"Process killed by signal {-exit_code}"
            exit_code = KILLED_EXIT_CODE
        elif exit_code != 0:
            error = f"Exit code: {exit_code}"

        return ExecutionResult(
            success=exit_code == 0,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            exit_code=exit_code,
            resource_usage=self._usage(usage_before, start),
            error=error,
        )

    @staticmethod
    def _usage(before: tuple[float, int], start: float) -> ResourceUsage:
        cpu, memory = _children_usage()
        return ResourceUsage(cpu=max(0.0, cpu - before[0]), memory=memory, time=_elapsed_ms(start))


class PassthroughExecutor:
    """Records commands and returns a fixed result without running anything."""

    def __init__(self, result: ExecutionResult | None = None):
        self.result = result or ExecutionResult(success=True)
        self.commands: list[str] = []

    async def execute(self, command: str, config: IsolationConfig) -> ExecutionResult:
        self.commands.append(command)
        return self.result


def _limits(config: IsolationConfig):
    """Build a preexec hook applying the config's rlimits in the child."""

    def apply() -> None:
        cpu = config.cpu_seconds
        resource.setrlimit(resource.RLIMIT_CPU, (cpu, cpu))
        resource.setrlimit(resource.RLIMIT_AS, (config.max_memory, config.max_memory))

    return apply


def _children_usage() -> tuple[float, int]:
    usage = resource.getrusage(resource.RUSAGE_CHILDREN)
    # ru_maxrss is in kilobytes on Linux
    return usage.ru_utime + usage.ru_stime, usage.ru_maxrss * 1024


def _elapsed_ms(start: float) -> float:
    return (time.monotonic() - start) * 1000


def _kill_group(process: asyncio.subprocess.Process) -> None:
    """Kill the child and everything it started in its session."""
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
