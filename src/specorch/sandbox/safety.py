"""Rule-based safety analysis of shell commands."""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass

from .models import (
    Recommendation,
    SafetyAnalysis,
    SafetyViolation,
    Severity,
    ViolationKind,
)


@dataclass(frozen=True)
class SafetyRule:
    """A command pattern and the violation it raises."""

    pattern: re.Pattern[str]
    kind: ViolationKind
    severity: Severity
    description: str


def _rule(pattern: str, kind: ViolationKind, severity: Severity, description: str) -> SafetyRule:
    return SafetyRule(re.compile(pattern, re.IGNORECASE), kind, severity, description)


_DEL = ViolationKind.FILE_DELETION
_DB = ViolationKind.DB_MODIFICATION
_CRED = ViolationKind.CREDENTIAL_EXPOSURE
_NET = ViolationKind.NETWORK_EXPOSURE

SAFETY_RULES: list[SafetyRule] = [
    _rule(r"rm\s+-rf", _DEL, Severity.CRITICAL, "Recursive force deletion (rm -rf)"),
    _rule(r"del\s+/[fs]", _DEL, Severity.CRITICAL, "Force deletion (del /f or /s)"),
    _rule(
        r"Remove-Item\s+-Recurse\s+-Force",
        _DEL,
        Severity.CRITICAL,
        "PowerShell recursive force deletion",
    ),
    _rule(r"\brm\s+[^-\s]", _DEL, Severity.HIGH, "File deletion without confirmation"),
    _rule(r"rmdir\s+/s", _DEL, Severity.HIGH, "Directory deletion"),
    _rule(r"DROP\s+(TABLE|DATABASE|SCHEMA)", _DB, Severity.CRITICAL, "Database DROP operation"),
    _rule(r"TRUNCATE\s+TABLE", _DB, Severity.CRITICAL, "Table truncation"),
    _rule(r"DELETE\s+FROM\s+\w+\s*;", _DB, Severity.CRITICAL, "DELETE without WHERE clause"),
    _rule(
        r"UPDATE\s+\w+\s+SET\s+(?:(?!\bWHERE\b)[^;])*;",
        _DB,
        Severity.HIGH,
        "UPDATE without WHERE clause",
    ),
    _rule(r"[A-Za-z0-9]{32,}", _CRED, Severity.HIGH, "Potential API key or token"),
    _rule(r"password\s*=\s*['\"][^'\"]+['\"]", _CRED, Severity.CRITICAL, "Password in command"),
    _rule(r"token\s*=\s*['\"][^'\"]+['\"]", _CRED, Severity.CRITICAL, "Token in command"),
    _rule(r"api[_-]?key\s*=\s*['\"][^'\"]+['\"]", _CRED, Severity.CRITICAL, "API key in command"),
    _rule(r"secret\s*=\s*['\"][^'\"]+['\"]", _CRED, Severity.CRITICAL, "Secret in command"),
    _rule(r"0\.0\.0\.0", _NET, Severity.HIGH, "Binding to all network interfaces (0.0.0.0)"),
    _rule(r"--host\s+0\.0\.0\.0", _NET, Severity.HIGH, "Exposing service to all interfaces"),
    _rule(r"\*:\d+", _NET, Severity.MEDIUM, "Wildcard host binding"),
]


def _replace(pattern: str, replacement: str) -> Callable[[str], str | None]:
    regex = re.compile(pattern, re.IGNORECASE)

    def rewrite(command: str) -> str | None:
        if not regex.search(command):
            return None
        return regex.sub(replacement, command, count=1)

    return rewrite


def _review_manually(command: str) -> str | None:
    if re.search(r"DROP\s+(TABLE|DATABASE)", command, re.IGNORECASE):
        return f"-- {command}\n-- Please review and execute manually with confirmation"
    return None


def _add_where_clause(command: str) -> str | None:
    match = re.search(r"DELETE\s+FROM\s+(\w+)\s*;", command, re.IGNORECASE)
    if match:
        return f"DELETE FROM {match.group(1)} WHERE id = ?; -- Add WHERE clause"
    return None


def _localhost_only(command: str) -> str | None:
    if "0.0.0.0" not in command:
        return None
    return command.replace("0.0.0.0", "127.0.0.1")


# Tried in order; the first rewrite that applies wins
ALTERNATIVES: list[Callable[[str], str | None]] = [
    _replace(r"rm\s+-rf", "rm -ri"),
    _replace(r"del\s+/[fs]", "del /p"),
    _replace(r"(Remove-Item\s+-Recurse\s+)-Force", r"\1-Confirm"),
    _review_manually,
    _add_where_clause,
    _replace(r"password\s*=\s*['\"][^'\"]+['\"]", "password=$PASSWORD_ENV_VAR"),
    _replace(r"token\s*=\s*['\"][^'\"]+['\"]", "token=$TOKEN_ENV_VAR"),
    _localhost_only,
]


class CommandSafetyChecker:
    """Checks shell commands against a table of unsafe patterns."""

    def __init__(self, rules: list[SafetyRule] | None = None):
        self.rules = rules if rules is not None else SAFETY_RULES

    def analyze(self, command: str) -> SafetyAnalysis:
        """Analyze a command for safety violations."""
        violations = [
            SafetyViolation(
                kind=rule.kind,
                severity=rule.severity,
                description=rule.description,
                pattern=rule.pattern.pattern,
            )
            for rule in self.rules
            if rule.pattern.search(command)
        ]

        risk_level = max((v.severity for v in violations), key=lambda s: s.rank, default=Severity.LOW)
        recommendation = self._recommend(risk_level, violations)

        return SafetyAnalysis(
            safe=not violations,
            violations=violations,
            risk_level=risk_level,
            recommendation=recommendation,
            alternative=(
                self.suggest_alternative(command)
                if recommendation == Recommendation.BLOCK
                else None
            ),
        )

    def suggest_alternative(self, command: str) -> str:
        """A safer rewrite of a command, or a review template."""
        for rewrite in ALTERNATIVES:
            alternative = rewrite(command)
            if alternative is not None:
                return alternative
        return f"# Review and modify this command:\n# {command}\n# Add appropriate safety measures"

    @staticmethod
    def _recommend(risk_level: Severity, violations: list[SafetyViolation]) -> Recommendation:
        if risk_level == Severity.CRITICAL:
            return Recommendation.BLOCK
        if risk_level == Severity.HIGH:
            high = sum(1 for v in violations if v.severity == Severity.HIGH)
            return Recommendation.BLOCK if high > 1 else Recommendation.WARN
        if risk_level == Severity.MEDIUM:
            return Recommendation.WARN
        return Recommendation.ALLOW
