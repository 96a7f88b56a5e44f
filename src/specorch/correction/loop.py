"""Ralph-Loop: bounded self-correction of failing tasks."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from ..core import defaults as D
from ..core.errors import SpecorchError
from ..logs.models import ActivityCategory, ActivityStatus
from ..tasks.models import ErrorContext
from .analyzer import ErrorAnalyzer
from .applier import CorrectionApplier
from .generator import CorrectionGenerator
from .models import CorrectionPlan, ErrorAnalysis, RalphLoopResult, RetryPhase, RetryState

if TYPE_CHECKING:
    from ..logs.store import ActivityLog
    from ..tasks.manager import TaskManager

logger = logging.getLogger(__name__)

# Re-checks the corrected spec, e.g. by re-running the task's tests
ConfirmFn = Callable[[ErrorContext, CorrectionPlan], Awaitable[bool]]


class RalphLoop:
    """Analyzes a task failure, corrects the spec, and confirms the fix.

    Every call consumes one attempt for the task, counted before the pipeline
    runs so a crash midway still uses the attempt up on resume. After
    ``max_attempts`` failed attempts the task is exhausted and further calls
    return immediately until ``reset_attempts`` is called.
    """

    def __init__(
        self,
        task_manager: TaskManager,
        generator: CorrectionGenerator,
        applier: CorrectionApplier,
        validator_fn: ConfirmFn | None = None,
        max_attempts: int = D.DEFAULT_MAX_ATTEMPTS,
        analyzer: ErrorAnalyzer | None = None,
        activity_log: ActivityLog | None = None,
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        self.task_manager = task_manager
        self.generator = generator
        self.applier = applier
        self.validator_fn = validator_fn
        self.max_attempts = max_attempts
        self.analyzer = analyzer or ErrorAnalyzer()
        self.activity_log = activity_log

    async def execute_correction(self, error: ErrorContext) -> RalphLoopResult:
        """Run one correction attempt for a failed task."""
        task_id = error.task_id

        if self.is_exhausted(task_id):
            current = self.task_manager.get_ralph_loop_attempts(task_id)
            message = f"Ralph-Loop exhausted after {self.max_attempts} attempts"
            logger.warning("Task %s: %s", task_id, message)
            return RalphLoopResult(
                success=False, attempt_number=current, exhausted=True, error=message
            )

        attempt = self.task_manager.increment_ralph_loop_attempts(task_id)
        logger.info("Task %s: correction attempt %d/%d", task_id, attempt, self.max_attempts)

        analysis: ErrorAnalysis | None = None
        plan: CorrectionPlan | None = None
        failure: str | None = None

        try:
            analysis = self.analyzer.analyze(error)
            plan = await self.generator.generate(
                error, analysis, self.applier.spec_path, attempt
            )

            applied = self.applier.apply(plan)
            if not applied.success:
                failure = applied.error or "Correction could not be applied"
            elif self.validator_fn is not None and not await self.validator_fn(error, plan):
                failure = "Correction applied but confirmation failed"
        except (SpecorchError, OSError) as e:
            failure = str(e)
        except Exception as e:
            logger.exception("Task %s: correction attempt %d raised", task_id, attempt)
            failure = f"{type(e).__name__}: {e}"

        success = failure is None
        if success:
            self.task_manager.reset_task(task_id)

        result = RalphLoopResult(
            success=success,
            attempt_number=attempt,
            exhausted=not success and attempt >= self.max_attempts,
            plan=plan,
            analysis=analysis,
            error=failure,
        )
        self._record(error, result)
        return result

    def _record(self, error: ErrorContext, result: RalphLoopResult) -> None:
        success = result.success
        if success:
            logger.info(
                "Task %s: correction attempt %d succeeded", error.task_id, result.attempt_number
            )
        else:
            logger.warning(
                "Task %s: correction attempt %d failed: %s",
                error.task_id,
                result.attempt_number,
                result.error,
            )

        if self.activity_log is None:
            return

        metadata = {
            "attempt": result.attempt_number,
            "max_attempts": self.max_attempts,
            "exhausted": result.exhausted,
            "error_message": error.error_message,
        }
        if result.analysis:
            metadata["analysis"] = result.analysis.to_dict()
        if result.plan:
            metadata["correction"] = result.plan.correction
        if result.error:
            metadata["error"] = result.error

        self.activity_log.record(
            task_id=error.task_id,
            category=ActivityCategory.SELF_HEALING,
            status=ActivityStatus.SUCCESS if success else ActivityStatus.FAILURE,
            description=(
                f"Correction attempt {result.attempt_number} "
                f"{'succeeded' if success else 'failed'}"
            ),
            metadata=metadata,
        )

    # -------------------------------------------------------------------------
    # Retry state
    # -------------------------------------------------------------------------

    def retry_state(self, task_id: str) -> RetryState:
        attempts = self.task_manager.get_ralph_loop_attempts(task_id)
        return RetryState.from_attempts(attempts, self.max_attempts)

    def is_exhausted(self, task_id: str) -> bool:
        return self.retry_state(task_id).phase == RetryPhase.EXHAUSTED

    def get_remaining_attempts(self, task_id: str) -> int:
        return self.retry_state(task_id).remaining

    def reset_attempts(self, task_id: str) -> None:
        """Clear the attempt counter so the task may be retried."""
        self.task_manager.reset_ralph_loop_attempts(task_id)
        logger.info("Task %s: correction attempts reset", task_id)
