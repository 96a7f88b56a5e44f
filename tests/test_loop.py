"""Tests for the Ralph-Loop."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from specorch.core.errors import CorrectionError
from specorch.correction.applier import CorrectionApplier
from specorch.correction.generator import NoteCorrectionGenerator
from specorch.correction.loop import RalphLoop
from specorch.correction.models import CorrectionPlan, ErrorType, RetryPhase
from specorch.logs.models import ActivityCategory, ActivityStatus
from specorch.logs.store import ActivityLog
from specorch.tasks.manager import TaskManager
from specorch.tasks.models import ErrorContext, TaskStatus


@pytest.fixture
def manager(linear_spec_dir, state_path):
    manager = TaskManager(state_path=state_path)
    manager.load_spec(linear_spec_dir)
    manager.queue_task("1")
    manager.start_task("1")
    return manager


@pytest.fixture
def applier(linear_spec_dir, tmp_path):
    return CorrectionApplier(linear_spec_dir, backup_dir=tmp_path / "backups")


@pytest.fixture
def error():
    return ErrorContext(task_id="1", error_message="TypeError: config is undefined")


def make_loop(manager, applier, confirm=None, max_attempts=3, activity_log=None):
    return RalphLoop(
        manager,
        NoteCorrectionGenerator(),
        applier,
        validator_fn=confirm,
        max_attempts=max_attempts,
        activity_log=activity_log,
    )


class TestRalphLoop:
    def test_rejects_zero_attempts(self, manager, applier):
        with pytest.raises(ValueError):
            make_loop(manager, applier, max_attempts=0)

    @pytest.mark.asyncio
    async def test_success_resets_task(self, manager, applier, error, linear_spec_dir):
        loop = make_loop(manager, applier)

        result = await loop.execute_correction(error)

        assert result.success
        assert result.attempt_number == 1
        assert not result.exhausted
        assert result.analysis.error_type == ErrorType.RUNTIME_ERROR
        assert manager.graph.get("1").status == TaskStatus.NOT_STARTED
        assert "Correction (attempt 1, runtime_error)" in (linear_spec_dir / "tasks.md").read_text()

    @pytest.mark.asyncio
    async def test_exhausts_after_max_attempts(self, manager, applier, error):
        loop = make_loop(manager, applier, confirm=AsyncMock(return_value=False))

        results = [await loop.execute_correction(error) for _ in range(3)]

        assert [r.attempt_number for r in results] == [1, 2, 3]
        assert [r.exhausted for r in results] == [False, False, True]
        assert all(r.error == "Correction applied but confirmation failed" for r in results)
        assert loop.is_exhausted("1")
        assert loop.retry_state("1").phase == RetryPhase.EXHAUSTED

        fourth = await loop.execute_correction(error)

        assert not fourth.success
        assert fourth.exhausted
        assert fourth.attempt_number == 3
        assert fourth.error == "Ralph-Loop exhausted after 3 attempts"
        assert manager.get_ralph_loop_attempts("1") == 3
        assert loop.get_remaining_attempts("1") == 0

    @pytest.mark.asyncio
    async def test_remaining_attempts(self, manager, applier, error):
        loop = make_loop(manager, applier, confirm=AsyncMock(return_value=False))

        assert loop.get_remaining_attempts("1") == 3
        await loop.execute_correction(error)
        assert loop.get_remaining_attempts("1") == 2
        assert str(loop.retry_state("1")) == "Attempting(1)"

    @pytest.mark.asyncio
    async def test_reset_attempts(self, manager, applier, error):
        loop = make_loop(manager, applier, confirm=AsyncMock(return_value=False), max_attempts=1)
        await loop.execute_correction(error)
        assert loop.is_exhausted("1")

        loop.reset_attempts("1")

        assert loop.retry_state("1").phase == RetryPhase.IDLE
        assert (await loop.execute_correction(error)).attempt_number == 1

    @pytest.mark.asyncio
    async def test_generator_error_counts_as_attempt(self, manager, applier, error):
        generator = AsyncMock()
        generator.generate.side_effect = CorrectionError("model unavailable")
        loop = RalphLoop(manager, generator, applier)

        result = await loop.execute_correction(error)

        assert not result.success
        assert result.error == "model unavailable"
        assert manager.get_ralph_loop_attempts("1") == 1
        assert manager.graph.get("1").status == TaskStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_unexpected_confirmation_error_is_recorded(self, manager, applier, error, tmp_path):
        log = ActivityLog(tmp_path / "activity.db")
        confirm = AsyncMock(side_effect=KeyError("verdict"))
        loop = make_loop(manager, applier, confirm=confirm, activity_log=log)

        result = await loop.execute_correction(error)

        assert not result.success
        assert result.error.startswith("KeyError")
        assert not result.exhausted
        entries = log.query(task_id="1", category=ActivityCategory.SELF_HEALING)
        assert [e.status for e in entries] == [ActivityStatus.FAILURE]

    @pytest.mark.asyncio
    async def test_rejected_plan_leaves_spec_untouched(self, manager, applier, error, linear_spec_dir):
        before = (linear_spec_dir / "design.md").read_bytes()
        generator = AsyncMock()
        generator.generate.return_value = CorrectionPlan(
            error_type=ErrorType.TEST_FAILURE,
            target_file="design",
            correction="Drop every section",
            updated_content="nothing left\n",
            attempt_number=1,
        )
        loop = RalphLoop(manager, generator, applier)

        result = await loop.execute_correction(error)

        assert not result.success
        assert "Content validation failed" in result.error
        assert (linear_spec_dir / "design.md").read_bytes() == before

    @pytest.mark.asyncio
    async def test_confirmation_receives_plan(self, manager, applier, error):
        confirm = AsyncMock(return_value=True)
        loop = make_loop(manager, applier, confirm=confirm)

        result = await loop.execute_correction(error)

        assert result.success
        confirm.assert_awaited_once_with(error, result.plan)

    @pytest.mark.asyncio
    async def test_records_activity(self, manager, applier, error, tmp_path):
        log = ActivityLog(tmp_path / "activity.db")
        loop = make_loop(manager, applier, activity_log=log)

        await loop.execute_correction(error)

        entries = log.query(task_id="1", category=ActivityCategory.SELF_HEALING)
        assert len(entries) == 1
        assert entries[0].status == ActivityStatus.SUCCESS
        assert entries[0].metadata["attempt"] == 1
        assert entries[0].metadata["analysis"]["error_type"] == "runtime_error"

    @pytest.mark.asyncio
    async def test_attempts_survive_restart(self, manager, applier, error, linear_spec_dir, state_path):
        loop = make_loop(manager, applier, confirm=AsyncMock(return_value=False))
        await loop.execute_correction(error)

        resumed = TaskManager(state_path=state_path)
        resumed.load_spec(linear_spec_dir)
        assert resumed.restore_state()

        assert make_loop(resumed, applier).get_remaining_attempts("1") == 2
