"""Tests for the reviewer task lifecycle record."""

import pytest

from prpanel_core.tasks import InvalidTransition, TaskBoard, TaskRecord, TaskState


class TestTaskRecord:
    def test_happy_path(self):
        record = TaskRecord(name="security")
        record.transition(TaskState.RUNNING)
        record.transition(TaskState.COMPLETED)
        assert record.state is TaskState.COMPLETED
        assert record.is_terminal
        assert record.duration_ms >= 0

    def test_failure_keeps_error(self):
        record = TaskRecord(name="r")
        record.transition(TaskState.RUNNING)
        record.transition(TaskState.FAILED, "timed out")
        assert record.error == "timed out"

    def test_pending_can_be_cancelled(self):
        record = TaskRecord(name="r")
        record.transition(TaskState.CANCELLED)
        assert record.is_terminal

    @pytest.mark.parametrize(
        "path",
        [
            [TaskState.COMPLETED],
            [TaskState.FAILED],
            [TaskState.RUNNING, TaskState.PENDING],
            [TaskState.RUNNING, TaskState.COMPLETED, TaskState.FAILED],
            [TaskState.CANCELLED, TaskState.RUNNING],
        ],
    )
    def test_illegal_transitions(self, path):
        record = TaskRecord(name="r")
        with pytest.raises(InvalidTransition):
            for state in path:
                record.transition(state)

    def test_duration_zero_before_start(self):
        assert TaskRecord(name="r").duration_ms == 0


class TestTaskBoard:
    def test_add_and_query(self):
        board = TaskBoard()
        a = board.add("a")
        board.add("b")
        a.transition(TaskState.RUNNING)
        assert board.get("a") is a
        assert board.in_state(TaskState.RUNNING) == ["a"]
        assert board.in_state(TaskState.PENDING) == ["b"]
        assert not board.all_settled

    def test_all_settled(self):
        board = TaskBoard()
        for name in ("a", "b"):
            record = board.add(name)
            record.transition(TaskState.RUNNING)
            record.transition(TaskState.COMPLETED)
        assert board.all_settled

    def test_duplicate_name_rejected(self):
        board = TaskBoard()
        board.add("a")
        with pytest.raises(ValueError, match="Duplicate"):
            board.add("a")
