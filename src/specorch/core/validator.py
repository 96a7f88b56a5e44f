"""Proof-of-completion checks.

Each check returns a ``ValidationResult`` and never raises. Results are cached
per ``Validator`` instance for a short TTL so repeated probes within the window
return the same object, and every probe is bounded by a hard timeout.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx

from . import defaults as D

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Outcome of a single check."""

    passed: bool
    evidence: str
    confidence: int = 100
    duration: float = 0.0
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "passed": self.passed,
            "evidence": self.evidence,
            "confidence": self.confidence,
            "duration": self.duration,
            "timestamp": self.timestamp,
            "error": self.error,
        }

    def to_context(self) -> str:
        """Format result for display."""
        symbol = "[green]PASS[/green]" if self.passed else "[red]FAIL[/red]"
        line = f"{symbol} {self.evidence} ({self.duration:.0f}ms, confidence {self.confidence})"
        if self.error:
            line += f"\n  {self.error}"
        return line


class Validator:
    """Cached, timeout-bounded system checks."""

    def __init__(
        self,
        cache_ttl: float = D.DEFAULT_CACHE_TTL,
        timeout: float = D.DEFAULT_VALIDATION_TIMEOUT,
        performance_threshold_ms: int = D.DEFAULT_PERFORMANCE_THRESHOLD_MS,
    ):
        self.cache_ttl = cache_ttl
        self.timeout = timeout
        self.performance_threshold_ms = performance_threshold_ms
        self._cache: dict[str, tuple[float, ValidationResult]] = {}

    # -------------------------------------------------------------------------
    # Checks
    # -------------------------------------------------------------------------

    async def validate_file_exists(self, path: str | Path) -> ValidationResult:
        """Check that a file exists and is readable."""
        path = str(path)

        async def probe() -> ValidationResult:
            if os.path.isfile(path) and os.access(path, os.R_OK):
                return ValidationResult(passed=True, evidence=f"File '{path}' exists and is readable")
            return ValidationResult(
                passed=False,
                evidence=f"File '{path}' does not exist or is not readable",
                error=f"No readable file at {path}",
            )

        return await self._run(f"file:{path}", "validate_file_exists", probe)

    async def validate_network_port(self, port: int, host: str = "localhost") -> ValidationResult:
        """Check that something is listening on host:port."""

        async def probe() -> ValidationResult:
            try:
                _, writer = await asyncio.open_connection(host, port)
            except OSError as e:
                return ValidationResult(
                    passed=False,
                    evidence=f"Port {port} on {host} is not listening",
                    error=str(e),
                )
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass
            return ValidationResult(passed=True, evidence=f"Port {port} on {host} is listening")

        return await self._run(f"port:{host}:{port}", "validate_network_port", probe)

    async def validate_api_endpoint(self, url: str, expected_status: int = 200) -> ValidationResult:
        """Check that an HTTP endpoint answers with the expected status."""

        async def probe() -> ValidationResult:
            try:
                async with httpx.AsyncClient() as client:
                    response = await client.get(url)
            except httpx.HTTPError as e:
                return ValidationResult(
                    passed=False,
                    evidence=f"Failed to reach API endpoint {url}",
                    error=str(e) or type(e).__name__,
                )

            if response.status_code == expected_status:
                return ValidationResult(
                    passed=True,
                    evidence=f"API endpoint {url} responded with status {response.status_code}",
                )
            return ValidationResult(
                passed=False,
                evidence=(
                    f"API endpoint {url} responded with status {response.status_code}, "
                    f"expected {expected_status}"
                ),
                error=f"Expected status {expected_status}, got {response.status_code}",
            )

        return await self._run(f"api:{url}:{expected_status}", "validate_api_endpoint", probe)

    async def validate_process(self, name: str) -> ValidationResult:
        """Check that a process whose command line matches ``name`` is running."""

        async def probe() -> ValidationResult:
            stdout = await self._exec("pgrep", "-f", name)
            if stdout is None:
                return ValidationResult(
                    passed=False,
                    evidence=f"Process '{name}' is not running",
                    error="No matching process",
                )
            pids = stdout.split()
            return ValidationResult(
                passed=True,
                evidence=f"Process '{name}' is running (pid {', '.join(pids)})",
            )

        return await self._run(f"process:{name}", "validate_process", probe)

    async def validate_docker_container(self, name: str) -> ValidationResult:
        """Check that a docker container is running."""

        async def probe() -> ValidationResult:
            stdout = await self._exec(
                "docker", "ps", "--filter", f"name={name}", "--format", "{{.Names}}"
            )
            if not stdout:
                return ValidationResult(
                    passed=False,
                    evidence=f"Container '{name}' is not running",
                    error="Container not found in running containers",
                )
            return ValidationResult(passed=True, evidence=f"Container '{name}' is running")

        return await self._run(f"docker:{name}", "validate_docker_container", probe)

    async def validate_custom(
        self,
        predicate: Callable[[], Awaitable[bool] | bool],
        cache_key: str | None = None,
    ) -> ValidationResult:
        """Run a caller-supplied predicate.

        Only cached when ``cache_key`` is given; anonymous predicates always run.
        """

        async def probe() -> ValidationResult:
            if inspect.iscoroutinefunction(predicate):
                outcome = predicate()
            else:
                # Blocking predicates run in a worker thread
                outcome = await asyncio.to_thread(predicate)
            if asyncio.iscoroutine(outcome) or isinstance(outcome, asyncio.Future):
                outcome = await outcome
            passed = bool(outcome)
            return ValidationResult(
                passed=passed,
                evidence="Custom validation passed" if passed else "Custom validation failed",
            )

        key = f"custom:{cache_key}" if cache_key is not None else None
        return await self._run(key, "validate_custom", probe)

    async def validate_parallel(
        self, checks: list[Callable[[], Awaitable[ValidationResult]]]
    ) -> list[ValidationResult]:
        """Run independent checks concurrently; results keep input order."""
        return list(await asyncio.gather(*(check() for check in checks)))

    def clear_cache(self) -> None:
        """Drop every cached result."""
        self._cache.clear()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _run(
        self,
        key: str | None,
        operation: str,
        probe: Callable[[], Awaitable[ValidationResult]],
    ) -> ValidationResult:
        if key is not None:
            cached = self._get_cached(key)
            if cached is not None:
                return cached

        start = time.monotonic()
        try:
            result = await asyncio.wait_for(probe(), timeout=self.timeout)
        except TimeoutError:
            result = ValidationResult(
                passed=False,
                evidence=f"{operation} did not finish within {self.timeout:g}s",
                confidence=0,
                error=f"Validation timeout after {self.timeout:g}s",
            )
        except Exception as e:
            result = ValidationResult(
                passed=False,
                evidence=f"{operation} raised an error",
                confidence=0,
                error=str(e) or type(e).__name__,
            )

        result.duration = (time.monotonic() - start) * 1000
        self._log_performance(operation, result.duration)

        if key is not None:
            self._cache[key] = (time.monotonic(), result)
        return result

    def _get_cached(self, key: str) -> ValidationResult | None:
        entry = self._cache.get(key)
        if entry is None:
            return None
        stored_at, result = entry
        if time.monotonic() - stored_at > self.cache_ttl:
            del self._cache[key]
            return None
        return result

    def _log_performance(self, operation: str, duration_ms: float) -> None:
        if duration_ms > self.performance_threshold_ms:
            logger.warning(
                "Performance warning: %s took %.0fms (threshold: %dms)",
                operation,
                duration_ms,
                self.performance_threshold_ms,
            )

    async def _exec(self, *args: str) -> str | None:
        """Run a command; stdout on exit 0, None otherwise."""
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            logger.debug("Command not available: %s", args[0])
            return None

        try:
            stdout, _ = await process.communicate()
        except asyncio.CancelledError:
            process.kill()
            await process.wait()
            raise

        if process.returncode != 0:
            return None
        return stdout.decode(errors="replace").strip()
