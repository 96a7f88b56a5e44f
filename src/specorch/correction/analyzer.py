"""Failure classification for the self-correction loop."""

from __future__ import annotations

import re
from dataclasses import dataclass

from ..tasks.models import ErrorContext
from .models import AnalysisContext, ErrorAnalysis, ErrorType, TargetFile

ROOT_CAUSE_LIMIT = 200


@dataclass(frozen=True)
class ClassificationRule:
    """A message pattern and the error type it indicates."""

    pattern: re.Pattern[str]
    error_type: ErrorType
    confidence_boost: int


# Evaluated in order; the first matching rule wins
CLASSIFICATION_RULES: list[ClassificationRule] = [
    ClassificationRule(
        re.compile(r"property.*failed|counterexample|failed after \d+ tests", re.IGNORECASE),
        ErrorType.TEST_FAILURE,
        50,
    ),
    ClassificationRule(
        re.compile(
            r"\btests?\b.*failed|assertion.*failed|AssertionError|expect.*to.*but", re.IGNORECASE
        ),
        ErrorType.TEST_FAILURE,
        45,
    ),
    ClassificationRule(
        re.compile(r"typescript error|\bTS\d+:|error TS\d+", re.IGNORECASE),
        ErrorType.COMPILATION_ERROR,
        50,
    ),
    ClassificationRule(
        re.compile(r"SyntaxError|unexpected token", re.IGNORECASE),
        ErrorType.COMPILATION_ERROR,
        45,
    ),
    ClassificationRule(
        re.compile(r"cannot find name", re.IGNORECASE),
        ErrorType.COMPILATION_ERROR,
        40,
    ),
    ClassificationRule(
        re.compile(r"cannot read propert(?:y|ies).*of (?:undefined|null)", re.IGNORECASE),
        ErrorType.RUNTIME_ERROR,
        50,
    ),
    ClassificationRule(
        re.compile(r"TypeError:|ReferenceError:|RangeError:", re.IGNORECASE),
        ErrorType.RUNTIME_ERROR,
        45,
    ),
    ClassificationRule(
        re.compile(r"cannot find module|module not found|no module named", re.IGNORECASE),
        ErrorType.MISSING_DEPENDENCY,
        50,
    ),
    ClassificationRule(
        re.compile(r"ENOENT|no such file or directory", re.IGNORECASE),
        ErrorType.MISSING_DEPENDENCY,
        45,
    ),
    ClassificationRule(
        re.compile(r"invalid spec|malformed|parse.*spec.*failed", re.IGNORECASE),
        ErrorType.INVALID_SPEC,
        50,
    ),
    ClassificationRule(
        re.compile(r"timeout|timed out|exceeded.*time|time.*exceeded", re.IGNORECASE),
        ErrorType.TIMEOUT_ERROR,
        45,
    ),
]

TARGET_FILES: dict[ErrorType, TargetFile] = {
    ErrorType.TEST_FAILURE: TargetFile.DESIGN,
    ErrorType.COMPILATION_ERROR: TargetFile.DESIGN,
    ErrorType.RUNTIME_ERROR: TargetFile.TASKS,
    ErrorType.MISSING_DEPENDENCY: TargetFile.REQUIREMENTS,
    ErrorType.INVALID_SPEC: TargetFile.REQUIREMENTS,
    ErrorType.TIMEOUT_ERROR: TargetFile.TASKS,
    ErrorType.UNKNOWN_ERROR: TargetFile.TASKS,
}

SUGGESTIONS: dict[ErrorType, str] = {
    ErrorType.TEST_FAILURE: (
        "Review the property definition in design.md. The property may be too strict "
        "or the implementation may need adjustment."
    ),
    ErrorType.COMPILATION_ERROR: (
        "Add missing type definitions or interfaces to design.md. Ensure all referenced "
        "types are defined."
    ),
    ErrorType.RUNTIME_ERROR: (
        "Add implementation guidance to tasks.md. Include null checks, error handling, "
        "or validation steps."
    ),
    ErrorType.MISSING_DEPENDENCY: (
        "Add a requirement for the missing dependency in requirements.md. Specify the "
        "dependency and its purpose."
    ),
    ErrorType.INVALID_SPEC: (
        "Review and fix the specification file. Ensure all markdown syntax is correct "
        "and all references are valid."
    ),
    ErrorType.TIMEOUT_ERROR: (
        "Add performance optimization guidance to tasks.md. Consider caching, "
        "pagination, or async processing."
    ),
    ErrorType.UNKNOWN_ERROR: (
        "Add clarification or additional context to tasks.md to help resolve this issue."
    ),
}

PROPERTY_TEST = re.compile(r"counterexample|failed after \d+ tests|property.*failed", re.IGNORECASE)
COUNTEREXAMPLE = re.compile(r"counterexample:?\s*(.+)", re.IGNORECASE)
FAILED_AFTER = re.compile(r"failed after (\d+) tests", re.IGNORECASE)
ASSERTION = re.compile(r"expected.*to.*but.*|received.*expected.*|assertion failed:?\s*(.+)", re.IGNORECASE)

TS_DIAGNOSTIC = re.compile(r"TS(\d+):\s*(.+)", re.IGNORECASE)
SYNTAX_ERROR = re.compile(r"SyntaxError:\s*(.+)", re.IGNORECASE)
UNEXPECTED_TOKEN = re.compile(r"unexpected token\s*(\S*)", re.IGNORECASE)
CANNOT_FIND_NAME = re.compile(r"cannot find name\s+['\"`]?([\w$]+)", re.IGNORECASE)

RUNTIME_EXCEPTION = re.compile(r"(TypeError|ReferenceError|RangeError):\s*(.+)", re.IGNORECASE)
NULL_ACCESS = re.compile(
    r"cannot read propert(?:y|ies)\s*['\"]?([\w$]*)['\"]?\s*of (undefined|null)", re.IGNORECASE
)

MISSING_MODULE = re.compile(
    r"(?:cannot find module|no module named)\s+['\"]([^'\"]+)['\"]", re.IGNORECASE
)
MISSING_FILE = re.compile(
    r"(?:ENOENT|no such file or directory)[^'\"]*['\"]([^'\"]+)['\"]", re.IGNORECASE
)
NAMED_DOCUMENT = re.compile(r"\b(requirements|design|tasks)(?:\.md)?\b", re.IGNORECASE)
DURATION = re.compile(
    r"(\d+(?:\.\d+)?)\s*(ms|milliseconds?|seconds?|secs?|s|minutes?|mins?)\b", re.IGNORECASE
)

STACK_FRAME = re.compile(r"at\s+.+?\s+\((.+?):(\d+):\d+\)")
BARE_STACK_FRAME = re.compile(r"at\s+([^\s()]+?):(\d+)(?::\d+)?")
PYTHON_FRAME = re.compile(r'File "(.+?)", line (\d+)')
PROPERTY_REF = re.compile(r"Property\s+(\d+)", re.IGNORECASE)
REQUIREMENT_REF = re.compile(r"Requirements?\s+(\d+(?:\.\d+)*)", re.IGNORECASE)


class ErrorAnalyzer:
    """Classifies failures and routes them to the spec document to correct."""

    def __init__(self, rules: list[ClassificationRule] | None = None):
        self.rules = rules if rules is not None else CLASSIFICATION_RULES

    def analyze(self, error: ErrorContext) -> ErrorAnalysis:
        """Classify a captured failure.

        Pure: the same context always yields the same analysis.
        """
        error_type, rule = self.classify(error)
        context = self._extract_context(error, error_type)

        return ErrorAnalysis(
            error_type=error_type,
            root_cause=_truncate(self._root_cause(error, error_type)),
            target_file=self._target_file(error, error_type),
            confidence=self._confidence(error, error_type, rule, context),
            context=context,
        )

    def classify(self, error: ErrorContext) -> tuple[ErrorType, ClassificationRule | None]:
        """Error type plus the rule that matched, if any."""
        if error.failed_test:
            for rule in self.rules:
                if rule.error_type == ErrorType.TEST_FAILURE and rule.pattern.search(
                    error.error_message
                ):
                    return ErrorType.TEST_FAILURE, rule
            return ErrorType.TEST_FAILURE, None

        for rule in self.rules:
            if rule.pattern.search(error.error_message):
                return rule.error_type, rule
        return ErrorType.UNKNOWN_ERROR, None

    # -------------------------------------------------------------------------
    # Root cause
    # -------------------------------------------------------------------------

    def _root_cause(self, error: ErrorContext, error_type: ErrorType) -> str:
        message = error.error_message
        first_line = message.strip().split("\n")[0] if message.strip() else ""

        if error_type == ErrorType.TEST_FAILURE:
            name = error.failed_test or "Unknown test"
            if PROPERTY_TEST.search(message):
                if match := COUNTEREXAMPLE.search(message):
                    return f'Property test "{name}" found counterexample: {match.group(1).strip()}'
                if match := FAILED_AFTER.search(message):
                    return f'Property test "{name}" failed after {match.group(1)} tests'
                return f'Property test "{name}" failed: {first_line}'
            if match := ASSERTION.search(message):
                return f'Test "{name}" failed: {match.group(0).strip()}'
            return f'Test "{name}" failed: {first_line}'

        if error_type == ErrorType.COMPILATION_ERROR:
            if match := TS_DIAGNOSTIC.search(message):
                return f"TypeScript compilation error: TS{match.group(1)}: {match.group(2).strip()}"
            if match := SYNTAX_ERROR.search(message):
                return f"Syntax error: {match.group(1).strip()}"
            if match := UNEXPECTED_TOKEN.search(message):
                return f"Syntax error: Unexpected token {match.group(1)}".rstrip()
            if match := CANNOT_FIND_NAME.search(message):
                return f'Undefined reference: "{match.group(1)}" is not defined'
            return f"Compilation error: {first_line}"

        if error_type == ErrorType.RUNTIME_ERROR:
            if match := RUNTIME_EXCEPTION.search(message):
                return f"Runtime {_canonical_exception(match.group(1))}: {match.group(2).strip()}"
            if match := NULL_ACCESS.search(message):
                return (
                    f"Runtime TypeError: attempted to access property "
                    f"'{match.group(1)}' of {match.group(2).lower()}"
                )
            return f"Runtime error: {first_line}"

        if error_type == ErrorType.MISSING_DEPENDENCY:
            if match := MISSING_MODULE.search(message):
                return f"Missing module {match.group(1)}: not installed or cannot be found"
            if match := MISSING_FILE.search(message):
                return f"Missing file {match.group(1)}: does not exist"
            return f"Missing dependency: {first_line}"

        if error_type == ErrorType.INVALID_SPEC:
            return f"Invalid specification: {first_line}"

        if error_type == ErrorType.TIMEOUT_ERROR:
            if match := DURATION.search(message):
                value, unit = match.groups()
                separator = "" if unit.lower() == "ms" else " "
                return f"Operation timed out after {value}{separator}{unit}"
            return f"Operation timed out: {first_line}"

        return message

    # -------------------------------------------------------------------------
    # Routing and confidence
    # -------------------------------------------------------------------------

    def _target_file(self, error: ErrorContext, error_type: ErrorType) -> TargetFile:
        if error_type == ErrorType.INVALID_SPEC:
            if match := NAMED_DOCUMENT.search(error.error_message):
                return TargetFile.parse(match.group(1))
        return TARGET_FILES[error_type]

    def _confidence(
        self,
        error: ErrorContext,
        error_type: ErrorType,
        rule: ClassificationRule | None,
        context: AnalysisContext,
    ) -> int:
        words = error.error_message.split()

        confidence = rule.confidence_boost if rule else (45 if error.failed_test else 20)
        if error.failed_test:
            confidence += 30
        if context.property_ref:
            confidence += 25
        if len(error.error_message.strip()) > 20:
            confidence += 10
        if error.stack_trace.strip():
            confidence += 5
        # A recognised pattern with some detail is never a low-confidence guess
        if rule is not None and len(words) > 1:
            confidence = max(confidence, 50)

        if error_type == ErrorType.UNKNOWN_ERROR:
            confidence = min(confidence, 45)
        if len(words) <= 1 and not error.failed_test and not context.property_ref:
            confidence = min(confidence, 45 if words else 10)

        return max(0, min(confidence, 100))

    # -------------------------------------------------------------------------
    # Context
    # -------------------------------------------------------------------------

    def _extract_context(self, error: ErrorContext, error_type: ErrorType) -> AnalysisContext:
        context = AnalysisContext(suggestion=SUGGESTIONS[error_type])

        context.error_location = _error_location(error.stack_trace) or _error_location(
            error.error_message
        )

        refs_text = f"{error.error_message} {error.failed_test or ''}"
        if match := PROPERTY_REF.search(refs_text):
            context.property_ref = f"Property {match.group(1)}"
        if match := REQUIREMENT_REF.search(refs_text):
            context.requirement_ref = match.group(1)

        return context


def _error_location(text: str) -> str | None:
    """First ``file:line`` in a stack trace."""
    if not text:
        return None
    for pattern in (STACK_FRAME, BARE_STACK_FRAME, PYTHON_FRAME):
        if match := pattern.search(text):
            return f"{match.group(1)}:{match.group(2)}"
    return None


def _canonical_exception(name: str) -> str:
    for canonical in ("TypeError", "ReferenceError", "RangeError"):
        if name.lower() == canonical.lower():
            return canonical
    return name


def _truncate(text: str) -> str:
    if len(text) > ROOT_CAUSE_LIMIT:
        return text[:ROOT_CAUSE_LIMIT] + "..."
    return text
