"""Tests for failure classification."""

from __future__ import annotations

import pytest

from specorch.correction.analyzer import ErrorAnalyzer
from specorch.correction.models import ErrorType, TargetFile
from specorch.tasks.models import ErrorContext


@pytest.fixture
def analyzer():
    return ErrorAnalyzer()


def ctx(message: str, failed_test: str | None = None, stack: str = "") -> ErrorContext:
    return ErrorContext(
        task_id="1", error_message=message, stack_trace=stack, failed_test=failed_test
    )


class TestClassification:
    def test_null_property_access(self, analyzer):
        analysis = analyzer.analyze(
            ctx("TypeError: Cannot read property 'x' of undefined", stack="at f (a.ts:10:1)")
        )

        assert analysis.error_type == ErrorType.RUNTIME_ERROR
        assert analysis.target_file == TargetFile.TASKS
        assert analysis.context.error_location == "a.ts:10"
        assert analysis.root_cause == "Runtime TypeError: Cannot read property 'x' of undefined"
        assert analysis.confidence == 65

    def test_failed_test_wins(self, analyzer):
        analysis = analyzer.analyze(
            ctx("TypeError: x is not a function", failed_test="parser handles empty input")
        )

        assert analysis.error_type == ErrorType.TEST_FAILURE
        assert analysis.target_file == TargetFile.DESIGN
        assert analysis.confidence > 70

    def test_property_counterexample(self, analyzer):
        analysis = analyzer.analyze(
            ctx(
                "Property failed after 12 tests\nCounterexample: [0, -1]",
                failed_test="Property 3: sort is idempotent",
            )
        )

        assert analysis.error_type == ErrorType.TEST_FAILURE
        assert analysis.context.property_ref == "Property 3"
        assert analysis.root_cause == (
            'Property test "Property 3: sort is idempotent" found counterexample: [0, -1]'
        )
        assert analysis.confidence == 100

    def test_word_latest_is_not_a_test_failure(self, analyzer):
        analysis = analyzer.analyze(ctx("fetching latest release failed with status 500"))

        assert analysis.error_type == ErrorType.UNKNOWN_ERROR

    @pytest.mark.parametrize(
        "message,error_type,target",
        [
            ("src/a.ts(3,5): error TS2304: Cannot find name 'foo'.", ErrorType.COMPILATION_ERROR, TargetFile.DESIGN),
            ("SyntaxError: Unexpected token '}'", ErrorType.COMPILATION_ERROR, TargetFile.DESIGN),
            ("Error: Cannot find module 'lodash'", ErrorType.MISSING_DEPENDENCY, TargetFile.REQUIREMENTS),
            ("ModuleNotFoundError: No module named 'yaml'", ErrorType.MISSING_DEPENDENCY, TargetFile.REQUIREMENTS),
            ("ENOENT: no such file or directory, open 'config.json'", ErrorType.MISSING_DEPENDENCY, TargetFile.REQUIREMENTS),
            ("Invalid spec: design.md has no sections", ErrorType.INVALID_SPEC, TargetFile.DESIGN),
            ("Malformed specification", ErrorType.INVALID_SPEC, TargetFile.REQUIREMENTS),
            ("Operation timed out after 5000ms", ErrorType.TIMEOUT_ERROR, TargetFile.TASKS),
            ("something odd happened here", ErrorType.UNKNOWN_ERROR, TargetFile.TASKS),
        ],
    )
    def test_routing(self, analyzer, message, error_type, target):
        analysis = analyzer.analyze(ctx(message))

        assert analysis.error_type == error_type
        assert analysis.target_file == target

    def test_is_deterministic(self, analyzer):
        error = ctx("SyntaxError: Unexpected token '}'", stack="at x (b.js:2:3)")

        assert analyzer.analyze(error) == analyzer.analyze(error)


class TestRootCause:
    def test_typescript_diagnostic(self, analyzer):
        analysis = analyzer.analyze(ctx("error TS2304: Cannot find name 'foo'."))

        assert analysis.root_cause == "TypeScript compilation error: TS2304: Cannot find name 'foo'."

    def test_missing_module(self, analyzer):
        analysis = analyzer.analyze(ctx("Error: Cannot find module 'lodash'"))

        assert analysis.root_cause == "Missing module lodash: not installed or cannot be found"

    def test_timeout_duration(self, analyzer):
        assert analyzer.analyze(ctx("Test timed out after 5 seconds")).root_cause == (
            "Operation timed out after 5 seconds"
        )

    def test_root_cause_truncated(self, analyzer):
        analysis = analyzer.analyze(ctx("x" * 500))

        assert len(analysis.root_cause) == 203
        assert analysis.root_cause.endswith("...")


class TestConfidence:
    def test_unknown_is_capped(self, analyzer):
        analysis = analyzer.analyze(
            ctx("a long and rather unhelpful message", stack="at f (a.js:1:1)")
        )

        assert analysis.confidence <= 45

    @pytest.mark.parametrize("message", ["SyntaxError: bad", "Request timed out", "ENOENT: cfg"])
    def test_short_recognised_message_is_confident(self, analyzer, message):
        confidence = analyzer.analyze(ctx(message)).confidence

        assert 50 <= confidence <= 90

    def test_single_word_is_low(self, analyzer):
        assert analyzer.analyze(ctx("timeout")).confidence <= 45

    def test_empty_message(self, analyzer):
        analysis = analyzer.analyze(ctx(""))

        assert analysis.error_type == ErrorType.UNKNOWN_ERROR
        assert analysis.confidence == 10

    def test_always_in_range(self, analyzer):
        for message in ["", "x", "TypeError: y", "AssertionError: " + "z" * 300]:
            confidence = analyzer.analyze(ctx(message, failed_test="t", stack="s")).confidence
            assert 0 <= confidence <= 100


class TestContext:
    def test_python_traceback_location(self, analyzer):
        stack = 'Traceback (most recent call last):\n  File "pkg/mod.py", line 42, in f\n'

        analysis = analyzer.analyze(ctx("ValueError: bad", stack=stack))

        assert analysis.context.error_location == "pkg/mod.py:42"

    def test_requirement_reference(self, analyzer):
        analysis = analyzer.analyze(ctx("AssertionError: Requirement 2.3 not satisfied"))

        assert analysis.context.requirement_ref == "2.3"

    def test_suggestion_matches_type(self, analyzer):
        analysis = analyzer.analyze(ctx("Error: Cannot find module 'lodash'"))

        assert "requirements.md" in analysis.context.suggestion

    def test_display_context(self, analyzer):
        text = analyzer.analyze(ctx("SyntaxError: bad", stack="at f (a.js:1:2)")).to_context()

        assert "Error Type: compilation_error" in text
        assert "Target File: design.md" in text
        assert "Location: a.js:1" in text
