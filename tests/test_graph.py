"""Tests for the task graph state machine."""

from __future__ import annotations

import itertools
import threading

import pytest

from specorch.core.errors import SpecLoadError, TaskNotFoundError
from specorch.tasks.graph import TaskGraph
from specorch.tasks.models import VALID_TRANSITIONS, Task, TaskStatus

ALLOWED = {
    (TaskStatus.NOT_STARTED, TaskStatus.QUEUED),
    (TaskStatus.QUEUED, TaskStatus.IN_PROGRESS),
    (TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED),
    (TaskStatus.IN_PROGRESS, TaskStatus.NOT_STARTED),
}


def make_graph(*ids: str, status: TaskStatus = TaskStatus.NOT_STARTED) -> TaskGraph:
    return TaskGraph.from_tasks([Task(id=i, description=f"Task {i}", status=status) for i in ids])


class TestConstruction:
    def test_duplicate_ids_rejected(self):
        with pytest.raises(SpecLoadError, match="Duplicate task id: 1"):
            TaskGraph.from_tasks([Task(id="1", description="a"), Task(id="1", description="b")])

    def test_two_in_progress_rejected(self):
        with pytest.raises(SpecLoadError, match="both in progress"):
            make_graph("1", "2", status=TaskStatus.IN_PROGRESS)

    def test_nested_tasks_addressable(self):
        child = Task(id="1.1", description="child", parent_id="1")
        graph = TaskGraph.from_tasks([Task(id="1", description="parent", children=[child])])

        assert "1.1" in graph
        assert len(graph) == 2
        assert graph.parent_of("1.1").id == "1"
        assert graph.siblings_of("1") == graph.roots

    def test_unknown_task(self):
        graph = make_graph("1")
        with pytest.raises(TaskNotFoundError):
            graph.get("9")


class TestTransitions:
    def test_transition_table_matches_allowed_edges(self):
        table = {(src, dst) for src, targets in VALID_TRANSITIONS.items() for dst in targets}
        assert table == ALLOWED

    @pytest.mark.parametrize(
        "current,requested",
        [
            pair
            for pair in itertools.product(TaskStatus, TaskStatus)
            if pair not in ALLOWED
        ],
    )
    def test_disallowed_transition_rejected(self, current, requested):
        graph = make_graph("1", status=current)

        assert graph.transition("1", requested) is False
        assert graph.get("1").status == current

    def test_completed_is_absorbing(self):
        graph = make_graph("1", status=TaskStatus.COMPLETED)

        for status in TaskStatus:
            assert graph.transition("1", status) is False
        assert graph.get("1").status == TaskStatus.COMPLETED

    def test_full_lifecycle(self):
        graph = make_graph("1")

        assert graph.transition("1", TaskStatus.QUEUED)
        assert graph.transition("1", TaskStatus.IN_PROGRESS)
        assert graph.in_progress().id == "1"
        assert graph.transition("1", TaskStatus.COMPLETED)
        assert graph.in_progress() is None

    def test_reset_clears_in_progress(self):
        graph = make_graph("1", status=TaskStatus.IN_PROGRESS)

        assert graph.transition("1", TaskStatus.NOT_STARTED)
        assert graph.in_progress() is None


class TestSingleInProgress:
    def test_second_start_rejected(self):
        graph = make_graph("1", "2", status=TaskStatus.QUEUED)

        assert graph.transition("1", TaskStatus.IN_PROGRESS)
        assert graph.transition("2", TaskStatus.IN_PROGRESS) is False
        assert graph.get("2").status == TaskStatus.QUEUED

    def test_concurrent_starts_admit_one(self):
        ids = [str(i) for i in range(1, 21)]
        graph = make_graph(*ids, status=TaskStatus.QUEUED)
        barrier = threading.Barrier(len(ids))
        results: list[bool] = []

        def start(task_id: str) -> None:
            barrier.wait()
            results.append(graph.transition(task_id, TaskStatus.IN_PROGRESS))

        threads = [threading.Thread(target=start, args=(i,)) for i in ids]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1
        in_progress = [t for t in graph.walk() if t.status == TaskStatus.IN_PROGRESS]
        assert len(in_progress) == 1


class TestListeners:
    def test_listener_receives_events(self):
        graph = make_graph("1")
        events = []
        graph.add_listener(events.append)

        graph.transition("1", TaskStatus.QUEUED)

        assert len(events) == 1
        assert events[0].task_id == "1"
        assert events[0].previous_status == TaskStatus.NOT_STARTED
        assert events[0].new_status == TaskStatus.QUEUED

    def test_rejected_transition_emits_nothing(self):
        graph = make_graph("1")
        events = []
        graph.add_listener(events.append)

        graph.transition("1", TaskStatus.COMPLETED)

        assert events == []

    def test_failing_listener_does_not_block_others(self):
        graph = make_graph("1")
        events = []

        def broken(event):
            raise RuntimeError("boom")

        graph.add_listener(broken)
        graph.add_listener(events.append)

        assert graph.transition("1", TaskStatus.QUEUED)
        assert len(events) == 1

    def test_removed_listener_not_called(self):
        graph = make_graph("1")
        events = []
        graph.add_listener(events.append)
        graph.remove_listener(events.append)

        graph.transition("1", TaskStatus.QUEUED)

        assert events == []


class TestRestoreAndSummary:
    def test_restore_completed_skips_unknown(self):
        graph = make_graph("1", "2")

        applied = graph.restore_completed(["1", "9"])

        assert applied == ["1"]
        assert graph.get("1").status == TaskStatus.COMPLETED

    def test_summary_and_completion(self):
        tasks = [
            Task(id="1", description="a", status=TaskStatus.COMPLETED),
            Task(id="2", description="b", is_optional=True),
        ]
        graph = TaskGraph.from_tasks(tasks)

        summary = graph.summary()
        assert summary["total"] == 2
        assert summary["completed"] == 1
        assert summary["not_started"] == 1
        assert summary["optional"] == 1
        assert graph.is_complete()
