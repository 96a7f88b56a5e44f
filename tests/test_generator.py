"""Tests for the built-in note generator."""

from __future__ import annotations

import pytest

from specorch.core.errors import CorrectionError
from specorch.correction.analyzer import ErrorAnalyzer
from specorch.correction.applier import structure_error
from specorch.correction.generator import NOTES_HEADING, NoteCorrectionGenerator
from specorch.correction.models import ErrorType, TargetFile
from specorch.tasks.document import parse_tasks
from specorch.tasks.models import ErrorContext


@pytest.fixture
def generator():
    return NoteCorrectionGenerator()


def analyze(message: str, task_id: str = "2.1", failed_test: str | None = None):
    error = ErrorContext(task_id=task_id, error_message=message, failed_test=failed_test)
    return error, ErrorAnalyzer().analyze(error)


class TestDesignNotes:
    @pytest.mark.asyncio
    async def test_appends_notes_section(self, generator, spec_dir):
        original = (spec_dir / "design.md").read_text()
        error, analysis = analyze("AssertionError: expected 1 to equal 2", failed_test="tokenizes")

        plan = await generator.generate(error, analysis, spec_dir, 1)

        assert plan.target_file == TargetFile.DESIGN
        assert plan.error_type == ErrorType.TEST_FAILURE
        assert plan.attempt_number == 1
        assert plan.updated_content.startswith(original)
        assert f"\n{NOTES_HEADING}\n" in plan.updated_content
        assert "### Task 2.1, attempt 1 (test_failure)" in plan.updated_content
        assert structure_error(plan.updated_content, TargetFile.DESIGN) is None

    @pytest.mark.asyncio
    async def test_reuses_existing_section(self, generator, spec_dir):
        error, analysis = analyze("AssertionError: boom", failed_test="tokenizes")
        first = await generator.generate(error, analysis, spec_dir, 1)
        (spec_dir / "design.md").write_text(first.updated_content)

        second = await generator.generate(error, analysis, spec_dir, 2)

        assert second.updated_content.count(NOTES_HEADING) == 1
        assert second.updated_content.startswith(first.updated_content)
        assert "attempt 2" in second.updated_content

    @pytest.mark.asyncio
    async def test_keeps_crlf(self, generator, spec_dir):
        design = (spec_dir / "design.md").read_text()
        (spec_dir / "design.md").write_bytes(design.replace("\n", "\r\n").encode())
        error, analysis = analyze("AssertionError: boom", failed_test="tokenizes")

        plan = await generator.generate(error, analysis, spec_dir, 1)

        assert "\n" not in plan.updated_content.replace("\r\n", "")

    @pytest.mark.asyncio
    async def test_missing_document(self, generator, tmp_path):
        error, analysis = analyze("AssertionError: boom", failed_test="tokenizes")

        with pytest.raises(CorrectionError, match="design.md"):
            await generator.generate(error, analysis, tmp_path, 1)


class TestTaskNotes:
    @pytest.mark.asyncio
    async def test_note_goes_under_task(self, generator, spec_dir):
        error, analysis = analyze("TypeError: tokens is undefined")

        plan = await generator.generate(error, analysis, spec_dir, 1)

        lines = plan.updated_content.splitlines()
        index = lines.index("  - [ ] 2.1 Tokenizer")
        assert lines[index + 1].startswith("    - Correction (attempt 1, runtime_error): ")
        assert lines[index + 2] == "  - [ ] 2.2 Grammar"

    @pytest.mark.asyncio
    async def test_tasks_still_parse(self, generator, spec_dir):
        before = parse_tasks((spec_dir / "tasks.md").read_text())
        error, analysis = analyze("TypeError: tokens is undefined")

        plan = await generator.generate(error, analysis, spec_dir, 1)

        after = parse_tasks(plan.updated_content)
        assert [t.id for t in after] == [t.id for t in before]
        assert [c.id for c in after[1].children] == ["2.1", "2.2"]

    @pytest.mark.asyncio
    async def test_unknown_task_appends(self, generator, spec_dir):
        error, analysis = analyze("TypeError: nope", task_id="9.9")

        plan = await generator.generate(error, analysis, spec_dir, 1)

        assert plan.updated_content.rstrip().endswith(analysis.context.suggestion)
        assert NOTES_HEADING in plan.updated_content
