"""In-memory named task queue with delayed entries and exclusive claims."""

from __future__ import annotations

import heapq
import itertools
import threading
import time
from dataclasses import dataclass

from fdx_dispatch.engine.clock import Clock
from fdx_dispatch.engine.models import Task, TaskStatus


@dataclass(order=True, slots=True)
class _QueueEntry:
    run_after: float
    generation: int
    task_id: str


class TaskQueue:
    """Queue shared by worker slots.

    Every pending attempt is one heap entry. Claiming pops the entry under the
    queue lock, so each attempt is delivered to exactly one slot, and the task
    stays marked as running until the slot either reschedules it or releases
    it. Rescheduling bumps the task's generation, which makes any older entry
    for the same task stale.
    """

    def __init__(self, name: str, *, clock: Clock) -> None:
        self.name = name
        self._clock = clock
        self._condition = threading.Condition()
        self._heap: list[_QueueEntry] = []
        self._generations = itertools.count()
        self._pending: dict[str, tuple[Task, int]] = {}
        self._running: dict[str, Task] = {}
        self._closed = False

    def enqueue(self, task: Task, *, run_after: float | None = None) -> None:
        """Add a newly submitted task."""

        with self._condition:
            if self._closed:
                raise RuntimeError(f"Task queue {self.name!r} is closed.")
            if task.task_id in self._pending or task.task_id in self._running:
                raise RuntimeError(f"Task already queued: {task.task_id}")
            task.status = TaskStatus.PENDING
            self._push(task, run_after=self._clock.now() if run_after is None else run_after)

    def claim_next_ready(self, *, timeout: float | None = None) -> Task | None:
        """Claim one ready task, waiting up to ``timeout`` real seconds for one."""

        with self._condition:
            deadline = None if timeout is None else time.monotonic() + timeout
            while True:
                if self._closed:
                    return None
                now = self._clock.now()
                self._drop_stale_head()
                if self._heap and self._heap[0].run_after <= now:
                    entry = heapq.heappop(self._heap)
                    task, _ = self._pending.pop(entry.task_id)
                    task.status = TaskStatus.RUNNING
                    self._running[task.task_id] = task
                    return task

                if deadline is None:
                    return None
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                wait_for = remaining
                if self._heap:
                    wait_for = min(wait_for, max(self._heap[0].run_after - now, 0.0))
                # A zero wait would spin while virtual time stands still.
                self._condition.wait(timeout=max(wait_for, 0.001))

    def schedule_retry(self, task: Task, *, run_after: float) -> bool:
        """Put a running task back as a delayed entry."""

        with self._condition:
            if self._running.pop(task.task_id, None) is None:
                return False
            if self._closed:
                return False
            task.status = TaskStatus.PENDING
            self._push(task, run_after=run_after)
            return True

    def release(self, task: Task) -> bool:
        """Forget a running task after its terminal outcome is known."""

        with self._condition:
            return self._running.pop(task.task_id, None) is not None

    def expedite(self, task_id: str) -> bool:
        """Make a pending task ready now, superseding its delayed entry."""

        with self._condition:
            pending = self._pending.get(task_id)
            if pending is None:
                return False
            task, _ = pending
            self._push(task, run_after=self._clock.now())
            return True

    def next_run_at(self) -> float | None:
        """Earliest scheduled time among pending entries."""

        with self._condition:
            self._drop_stale_head()
            return self._heap[0].run_after if self._heap else None

    def pending_count(self) -> int:
        with self._condition:
            return len(self._pending)

    def running_count(self) -> int:
        with self._condition:
            return len(self._running)

    def wake_all(self) -> None:
        """Wake waiting slots, e.g. after a virtual clock moved."""

        with self._condition:
            self._condition.notify_all()

    def close(self) -> None:
        with self._condition:
            self._closed = True
            self._condition.notify_all()

    @property
    def closed(self) -> bool:
        return self._closed

    def _push(self, task: Task, *, run_after: float) -> None:
        generation = next(self._generations)
        self._pending[task.task_id] = (task, generation)
        heapq.heappush(
            self._heap,
            _QueueEntry(
                run_after=run_after,
                generation=generation,
                task_id=task.task_id,
            ),
        )
        self._condition.notify()

    def _drop_stale_head(self) -> None:
        while self._heap:
            head = self._heap[0]
            pending = self._pending.get(head.task_id)
            if pending is not None and pending[1] == head.generation:
                return
            heapq.heappop(self._heap)

