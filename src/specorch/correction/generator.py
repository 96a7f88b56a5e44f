"""Correction generators: produce replacement content for a spec document."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Protocol

from ..core.errors import CorrectionError
from ..core.files import safe_read
from ..tasks.models import ErrorContext
from .models import CorrectionPlan, ErrorAnalysis, TargetFile

NOTES_HEADING = "## Correction Notes"


class CorrectionGenerator(Protocol):
    """Protocol for correction generators (an LLM, a human, or a rule)."""

    async def generate(
        self,
        error: ErrorContext,
        analysis: ErrorAnalysis,
        spec_path: Path,
        attempt_number: int,
    ) -> CorrectionPlan: ...


class NoteCorrectionGenerator:
    """Records the analysis as a note in the target document.

    Design and requirements documents get an entry under a trailing
    "Correction Notes" section. In the tasks document the note goes directly
    beneath the failing task line. Every other byte of the document is kept.
    """

    async def generate(
        self,
        error: ErrorContext,
        analysis: ErrorAnalysis,
        spec_path: Path,
        attempt_number: int,
    ) -> CorrectionPlan:
        target = analysis.target_file
        path = Path(spec_path) / target.filename

        current = safe_read(path)
        if current is None:
            raise CorrectionError(f"Cannot correct {target.filename}: document not found at {path}")

        if target == TargetFile.TASKS:
            updated = self._note_under_task(current, error.task_id, analysis, attempt_number)
        else:
            updated = self._append_note(current, error.task_id, analysis, attempt_number)

        return CorrectionPlan(
            error_type=analysis.error_type,
            target_file=target,
            correction=(
                f"Recorded {analysis.error_type.value} for task {error.task_id} "
                f"in {target.filename}: {analysis.root_cause}"
            ),
            updated_content=updated,
            attempt_number=attempt_number,
            confidence=analysis.confidence,
        )

    def _append_note(
        self, content: str, task_id: str, analysis: ErrorAnalysis, attempt_number: int
    ) -> str:
        lines = [
            f"### Task {task_id}, attempt {attempt_number} ({analysis.error_type.value})",
            "",
            f"- Root cause: {analysis.root_cause}",
        ]
        if analysis.context.error_location:
            lines.append(f"- Location: {analysis.context.error_location}")
        if analysis.context.property_ref:
            lines.append(f"- Property: {analysis.context.property_ref}")
        if analysis.context.requirement_ref:
            lines.append(f"- Requirement: {analysis.context.requirement_ref}")
        if analysis.context.suggestion:
            lines.append(f"- Suggestion: {analysis.context.suggestion}")
        note = "\n".join(lines) + "\n"

        newline = "\r\n" if "\r\n" in content else "\n"
        if newline != "\n":
            note = note.replace("\n", newline)

        body = content if content.endswith(("\n", "\r")) or not content else content + newline
        if NOTES_HEADING not in content:
            body += f"{newline}{NOTES_HEADING}{newline}"
        return f"{body}{newline}{note}"

    def _note_under_task(
        self, content: str, task_id: str, analysis: ErrorAnalysis, attempt_number: int
    ) -> str:
        pattern = re.compile(
            r"^([ \t]*)- \[[^\]]*\]\*?\s+" + re.escape(task_id) + r"\.?\s.*$", re.MULTILINE
        )
        match = pattern.search(content)
        if match is None:
            return self._append_note(content, task_id, analysis, attempt_number)

        indent = match.group(1) + "  "
        note = (
            f"{indent}- Correction (attempt {attempt_number}, {analysis.error_type.value}): "
            f"{analysis.root_cause}"
        )
        if analysis.context.suggestion:
            note += f" {analysis.context.suggestion}"

        # The match may end with the \r of a CRLF line ending
        line_end = match.end()
        newline = "\n"
        if content[line_end - 1 : line_end] == "\r":
            line_end -= 1
            newline = "\r\n"
        return f"{content[:line_end]}{newline}{note}{content[line_end:]}"
