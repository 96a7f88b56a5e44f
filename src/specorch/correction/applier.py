"""Validated, atomic application of correction plans to spec documents.

Only the shape of a document is checked (required sections or checkbox lines
are present). Whether a correction is semantically right is left to the
confirmation step that follows it.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from ..core import defaults as D
from ..core.files import (
    atomic_write,
    atomic_write_with_backup,
    list_backups,
    normalize_line_endings,
    restore_from_backup,
    safe_read,
)
from .models import ApplyResult, CorrectionPlan, ErrorType, TargetFile

logger = logging.getLogger(__name__)


STRUCTURE_RULES: dict[TargetFile, list[tuple[re.Pattern[str], str]]] = {
    TargetFile.REQUIREMENTS: [
        (
            re.compile(r"### Requirement \d+:", re.IGNORECASE),
            "requirements.md must contain at least one requirement section (### Requirement N:)",
        ),
        (
            re.compile(r"#### Acceptance Criteria", re.IGNORECASE),
            "requirements.md must contain acceptance criteria sections",
        ),
    ],
    TargetFile.DESIGN: [
        (
            re.compile(r"^## \w+", re.MULTILINE),
            "design.md must contain at least one major section (## Header)",
        ),
    ],
    TargetFile.TASKS: [
        (
            re.compile(r"- \[[^\]]\]\*?\s+[\d.]+\s+"),
            "tasks.md must contain at least one task with checkbox marker (- [ ] N.N Task)",
        ),
    ],
}


def structure_error(content: str, target: TargetFile) -> str | None:
    """First structural rule the content breaks, if any."""
    for pattern, message in STRUCTURE_RULES.get(target, []):
        if not pattern.search(content):
            return message
    return None


class CorrectionApplier:
    """Commits correction plans into a spec directory."""

    def __init__(
        self,
        spec_path: Path | str,
        create_backup: bool = D.DEFAULT_CREATE_BACKUP,
        backup_dir: Path | str = D.DEFAULT_BACKUP_DIR,
        strict_validation: bool = D.DEFAULT_STRICT_VALIDATION,
        max_backups: int = D.DEFAULT_MAX_BACKUPS,
    ):
        self.spec_path = Path(spec_path)
        self.create_backup = create_backup
        self.backup_dir = Path(backup_dir)
        self.strict_validation = strict_validation
        self.max_backups = max_backups

    def apply(self, plan: CorrectionPlan) -> ApplyResult:
        """Validate a plan, then back up and atomically replace its target.

        On any failure the target file keeps its previous bytes.
        """
        error = self.validate_plan(plan)
        if error:
            logger.warning("Rejected correction plan: %s", error)
            return ApplyResult(success=False, file_path=self._path_for(plan.target_file), error=error)

        target = TargetFile.parse(plan.target_file)
        file_path = self.spec_path / target.filename

        def validate(content: str) -> bool:
            return bool(content.strip()) and (
                not self.strict_validation or structure_error(content, target) is None
            )

        if self.create_backup:
            result = atomic_write_with_backup(
                file_path,
                plan.updated_content,
                self.backup_dir,
                max_backups=self.max_backups,
                validate=validate,
            )
        else:
            result = atomic_write(file_path, plan.updated_content, validate=validate)

        if not result.success:
            logger.warning("Failed to apply correction to %s: %s", file_path, result.error)
            return ApplyResult(
                success=False,
                file_path=file_path,
                error=result.error,
                backup_path=result.backup_path,
            )

        if not self.verify_correction(file_path, plan.updated_content):
            return ApplyResult(
                success=False,
                file_path=file_path,
                error="Post-write verification failed: file content does not match correction",
                backup_path=result.backup_path,
            )

        logger.info("Applied correction to %s (attempt %d)", file_path, plan.attempt_number)
        return ApplyResult(success=True, file_path=file_path, backup_path=result.backup_path)

    def validate_plan(self, plan: CorrectionPlan) -> str | None:
        """Reason the plan is rejected, or None if it may be committed."""
        try:
            target = TargetFile.parse(plan.target_file)
        except ValueError:
            allowed = ", ".join(t.filename for t in TargetFile)
            return f"Invalid target file: {plan.target_file}. Must be one of: {allowed}"

        if not isinstance(plan.error_type, ErrorType):
            try:
                ErrorType(plan.error_type)
            except ValueError:
                return f"Invalid error type: {plan.error_type}"

        if not isinstance(plan.attempt_number, int) or plan.attempt_number < 1:
            return f"Invalid attempt number: {plan.attempt_number}. Must be at least 1"

        if not plan.correction or not plan.correction.strip():
            return "Correction description is empty"

        if not plan.updated_content or not plan.updated_content.strip():
            return "Updated content is empty"

        if self.strict_validation:
            error = structure_error(plan.updated_content, target)
            if error:
                return f"Content validation failed: {error}"

        return None

    def verify_correction(self, file_path: Path | str, expected_content: str) -> bool:
        """Whether the file holds the expected content, ignoring line endings."""
        actual = safe_read(Path(file_path))
        if actual is None:
            return False
        return normalize_line_endings(actual) == normalize_line_endings(expected_content)

    def list_backups(self, target: TargetFile | str) -> list[Path]:
        """Backups of a spec document, newest first."""
        return list_backups(self._path_for(target), self.backup_dir)

    def rollback(self, target: TargetFile | str) -> ApplyResult:
        """Restore a spec document from its newest backup."""
        file_path = self._path_for(target)
        backups = self.list_backups(target)
        if not backups:
            return ApplyResult(success=False, file_path=file_path, error="No backup available")

        result = restore_from_backup(backups[0], file_path)
        if result.success:
            logger.info("Restored %s from %s", file_path, backups[0])
        return ApplyResult(
            success=result.success,
            file_path=file_path,
            error=result.error,
            backup_path=backups[0],
        )

    def _path_for(self, target: TargetFile | str) -> Path:
        try:
            return self.spec_path / TargetFile.parse(target).filename
        except ValueError:
            return self.spec_path / str(target)
