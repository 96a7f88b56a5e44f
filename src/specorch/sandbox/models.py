"""Data models for sandboxed execution and command safety."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..core import defaults as D


class ViolationKind(Enum):
    """Category of an unsafe command pattern."""

    FILE_DELETION = "file_deletion"
    DB_MODIFICATION = "db_modification"
    CREDENTIAL_EXPOSURE = "credential_exposure"
    NETWORK_EXPOSURE = "network_exposure"


class Severity(Enum):
    """Severity of a single violation, also used as overall risk level."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return list(Severity).index(self)


class Recommendation(Enum):
    """What to do with an analyzed command."""

    ALLOW = "allow"
    WARN = "warn"
    BLOCK = "block"


@dataclass(frozen=True)
class SafetyViolation:
    kind: ViolationKind
    severity: Severity
    description: str
    pattern: str


@dataclass
class SafetyAnalysis:
    """Safety verdict for a shell command."""

    safe: bool
    violations: list[SafetyViolation]
    risk_level: Severity
    recommendation: Recommendation
    alternative: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "safe": self.safe,
            "violations": [
                {
                    "type": v.kind.value,
                    "severity": v.severity.value,
                    "description": v.description,
                    "pattern": v.pattern,
                }
                for v in self.violations
            ],
            "risk_level": self.risk_level.value,
            "recommendation": self.recommendation.value,
            "alternative": self.alternative,
        }


@dataclass
class IsolationConfig:
    """Resource ceilings for one sandboxed command.

    ``max_cpu`` is a percentage of one core over the ``max_time`` window,
    ``max_memory`` is in bytes and ``max_time`` in milliseconds.
    """

    max_cpu: int = D.DEFAULT_SANDBOX_MAX_CPU
    max_memory: int = D.DEFAULT_SANDBOX_MAX_MEMORY
    max_time: int = D.DEFAULT_SANDBOX_MAX_TIME
    allowed_paths: list[str] = field(default_factory=list)
    allowed_networks: list[str] = field(default_factory=list)

    @property
    def cpu_seconds(self) -> int:
        """CPU-time ceiling derived from the CPU share and wall-clock limit."""
        return max(1, -(-self.max_time * self.max_cpu // 100_000))


@dataclass
class ResourceUsage:
    cpu: float = 0.0
    memory: int = 0
    time: float = 0.0


@dataclass
class ExecutionResult:
    """Outcome of a sandboxed command."""

    success: bool
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0
    resource_usage: ResourceUsage = field(default_factory=ResourceUsage)
    error: str | None = None
