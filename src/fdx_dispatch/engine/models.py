"""Domain models for the task queue and execution."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from fdx_dispatch.engine.errors import ErrorKind


class TaskStatus(str, Enum):
    """In-memory task lifecycle states."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def terminal(self) -> bool:
        return self in {TaskStatus.SUCCEEDED, TaskStatus.FAILED, TaskStatus.CANCELED}


@dataclass(slots=True)
class TaskAttempt:
    """Per-attempt execution telemetry."""

    attempt_no: int
    worker_id: str
    started_at: float
    finished_at: float | None = None
    outcome: str = "running"
    error_kind: ErrorKind | None = None
    error_message: str | None = None
    matched_rule: str | None = None
    retry_delay_seconds: float | None = None


@dataclass(slots=True)
class Task:
    """One submitted invocation, tracked through its attempts.

    Only the worker slot that claimed the task mutates it, and only for the
    duration of one attempt.
    """

    task_id: str
    operation_name: str
    args: tuple[Any, ...]
    queue_name: str
    attempt: int = 1
    status: TaskStatus = TaskStatus.PENDING
    submitted_at: float = 0.0
    cancel_requested: bool = False
    attempt_log: list[TaskAttempt] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class TaskSuccess:
    """Terminal success outcome."""

    value: Any
    attempts_made: int

    @property
    def succeeded(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class TaskFailure:
    """Terminal failure outcome."""

    kind: ErrorKind
    message: str
    attempts_made: int

    @property
    def succeeded(self) -> bool:
        return False


TaskResult = TaskSuccess | TaskFailure
