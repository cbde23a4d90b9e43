"""Explicit lifecycle record for reviewer tasks.

A ``TaskBoard`` is created per fan-out and handed to the orchestrator; nothing
about running work is kept in module globals.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum


class TaskState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


_TRANSITIONS: dict[TaskState, frozenset[TaskState]] = {
    TaskState.PENDING: frozenset({TaskState.RUNNING, TaskState.CANCELLED}),
    TaskState.RUNNING: frozenset({TaskState.COMPLETED, TaskState.FAILED, TaskState.CANCELLED}),
    TaskState.COMPLETED: frozenset(),
    TaskState.FAILED: frozenset(),
    TaskState.CANCELLED: frozenset(),
}


class InvalidTransition(RuntimeError):
    pass


@dataclass
class TaskRecord:
    name: str
    state: TaskState = TaskState.PENDING
    error: str | None = None
    started_at: float | None = None
    finished_at: float | None = None

    def transition(self, new_state: TaskState, error: str | None = None) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.name}: {self.state.value} -> {new_state.value} is not allowed")
        self.state = new_state
        now = time.monotonic()
        if new_state is TaskState.RUNNING:
            self.started_at = now
        else:
            self.finished_at = now
        if error is not None:
            self.error = error

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self.state]

    @property
    def duration_ms(self) -> int:
        if self.started_at is None:
            return 0
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return int((end - self.started_at) * 1000)


@dataclass
class TaskBoard:
    tasks: dict[str, TaskRecord] = field(default_factory=dict)

    def add(self, name: str) -> TaskRecord:
        if name in self.tasks:
            raise ValueError(f"Duplicate task name: {name!r}")
        record = TaskRecord(name=name)
        self.tasks[name] = record
        return record

    def get(self, name: str) -> TaskRecord:
        return self.tasks[name]

    def in_state(self, state: TaskState) -> list[str]:
        return [name for name, t in self.tasks.items() if t.state is state]

    @property
    def all_settled(self) -> bool:
        return all(t.is_terminal for t in self.tasks.values())
