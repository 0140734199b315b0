"""Client entry point: submit operations and await their correlated results."""

from __future__ import annotations

import asyncio
import logging
import random
import threading
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from fdx_dispatch.engine.clock import Clock, SystemClock
from fdx_dispatch.engine.errors import ErrorKind, TaskFailedError
from fdx_dispatch.engine.fault_injector import (
    FaultInjector,
    FaultInjectorConfig,
    log_fault_injector_config,
)
from fdx_dispatch.engine.models import (
    Task,
    TaskAttempt,
    TaskFailure,
    TaskResult,
    TaskStatus,
    TaskSuccess,
)
from fdx_dispatch.engine.registry import ActivityRegistry
from fdx_dispatch.engine.retry_policy import DEFAULT_RETRY_POLICY, RetryPolicy
from fdx_dispatch.engine.task_queue import TaskQueue
from fdx_dispatch.engine.worker import TaskWorker, WorkerPool

if TYPE_CHECKING:
    from fdx_dispatch.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_NAME = "api-tasks"


class ResultSlot:
    """Write-once holder for a task's terminal outcome."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ready = threading.Event()
        self._result: TaskResult | None = None
        self._callbacks: list[Callable[[TaskResult], None]] = []

    def set(self, result: TaskResult) -> bool:
        """Store ``result`` unless an outcome is already stored, then run callbacks."""

        with self._lock:
            if self._result is not None:
                return False
            self._result = result
            callbacks, self._callbacks = self._callbacks, []
        self._ready.set()
        for callback in callbacks:
            try:
                callback(result)
            except Exception:
                logger.exception("Result callback %r failed", callback)
        return True

    def add_done_callback(self, callback: Callable[[TaskResult], None]) -> None:
        """Call ``callback`` with the outcome once it is stored (immediately if it is)."""

        with self._lock:
            result = self._result
            if result is None:
                self._callbacks.append(callback)
                return
        callback(result)

    def remove_done_callback(self, callback: Callable[[TaskResult], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def wait(self, timeout: float | None = None) -> TaskResult | None:
        if not self._ready.wait(timeout=timeout):
            return None
        return self._result

    @property
    def done(self) -> bool:
        return self._ready.is_set()


class TaskHandle:
    """Caller-side view of one submitted task, keyed by its task id."""

    def __init__(self, *, task: Task, slot: ResultSlot, dispatcher: Dispatcher) -> None:
        self._task = task
        self._slot = slot
        self._dispatcher = dispatcher

    @property
    def task_id(self) -> str:
        return self._task.task_id

    @property
    def operation_name(self) -> str:
        return self._task.operation_name

    @property
    def status(self) -> TaskStatus:
        return self._task.status

    def done(self) -> bool:
        return self._slot.done

    def attempts(self) -> tuple[TaskAttempt, ...]:
        """Attempt telemetry recorded so far."""

        return tuple(self._task.attempt_log)

    def outcome(self, timeout: float | None = None) -> TaskResult:
        """Block until the task is terminal and return its outcome without raising it."""

        result = self._slot.wait(timeout=timeout)
        if result is None:
            raise TimeoutError(f"Task {self.task_id} did not finish within {timeout}s")
        return result

    def result(self, timeout: float | None = None) -> Any:
        """Return the task's value or raise its terminal failure.

        Only the calling thread blocks; any number of threads may wait on the
        same handle and all of them observe the same outcome.
        """

        return self._unwrap(self.outcome(timeout=timeout))

    async def wait(self, timeout: float | None = None) -> Any:
        """Awaitable form of ``result`` for asyncio callers.

        The publishing thread hands the outcome to the event loop; no thread
        is held while awaiting.
        """

        loop = asyncio.get_running_loop()
        future: asyncio.Future[TaskResult] = loop.create_future()

        def _deliver(result: TaskResult) -> None:
            if not loop.is_closed():
                loop.call_soon_threadsafe(_resolve_future, future, result)

        self._slot.add_done_callback(_deliver)
        try:
            outcome = await asyncio.wait_for(future, timeout)
        except TimeoutError:
            raise TimeoutError(f"Task {self.task_id} did not finish within {timeout}s") from None
        finally:
            self._slot.remove_done_callback(_deliver)
        return self._unwrap(outcome)

    def _unwrap(self, outcome: TaskResult) -> Any:
        if isinstance(outcome, TaskSuccess):
            return outcome.value
        raise TaskFailedError(
            task_id=self.task_id,
            kind=outcome.kind,
            message=outcome.message,
            attempts_made=outcome.attempts_made,
        )

    def cancel(self) -> bool:
        return self._dispatcher.cancel(self.task_id)

    def __repr__(self) -> str:
        return (
            f"TaskHandle(task_id={self.task_id!r}, operation={self.operation_name!r}, "
            f"status={self.status.value})"
        )


class Dispatcher:
    """Owns one named queue, its worker pool and the result correlation table.

    Construct it explicitly, call ``start()`` to run worker slots, and
    ``close()`` (or use it as a context manager) to stop them. Tasks still
    unresolved at close are failed so that no caller waits forever.
    """

    def __init__(  # noqa: PLR0913
        self,
        registry: ActivityRegistry,
        *,
        queue_name: str = DEFAULT_QUEUE_NAME,
        clock: Clock | None = None,
        fault_injector: FaultInjector | None = None,
        default_retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        worker_count: int = 4,
        attempt_timeout_seconds: float | None = 30.0,
        poll_interval_seconds: float = 0.05,
        shutdown_timeout_seconds: float = 15.0,
    ) -> None:
        if worker_count < 1:
            raise ValueError(f"worker_count must be >= 1, got {worker_count}")
        self.registry = registry
        self.clock = clock or SystemClock()
        self.fault_injector = fault_injector or FaultInjector(
            FaultInjectorConfig(),
            clock=self.clock,
        )
        self.default_retry_policy = default_retry_policy
        self.worker_count = worker_count
        self.attempt_timeout_seconds = attempt_timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.shutdown_timeout_seconds = shutdown_timeout_seconds
        self.queue = TaskQueue(queue_name, clock=self.clock)

        self._lock = threading.Lock()
        self._tasks: dict[str, Task] = {}
        self._slots: dict[str, ResultSlot] = {}
        self._pool: WorkerPool | None = None
        self._closed = False

    @classmethod
    def from_settings(
        cls,
        registry: ActivityRegistry,
        settings: Settings,
        *,
        clock: Clock | None = None,
        rng: random.Random | None = None,
    ) -> Dispatcher:
        """Build a dispatcher from loaded application settings."""

        clock = clock or SystemClock()
        fault_config = settings.fault_injection.to_config()
        log_fault_injector_config(fault_config)
        if rng is None and settings.fault_injection.seed is not None:
            rng = random.Random(settings.fault_injection.seed)  # noqa: S311
        return cls(
            registry,
            queue_name=settings.worker.queue_name,
            clock=clock,
            fault_injector=FaultInjector(fault_config, rng=rng, clock=clock),
            default_retry_policy=settings.retry.to_policy(),
            worker_count=settings.worker.worker_count,
            attempt_timeout_seconds=settings.worker.attempt_timeout_seconds,
            poll_interval_seconds=settings.worker.poll_interval_seconds,
            shutdown_timeout_seconds=settings.worker.shutdown_timeout_seconds,
        )

    @property
    def queue_name(self) -> str:
        return self.queue.name

    def start(self) -> Dispatcher:
        """Start worker slots; calling it again is a no-op."""

        with self._lock:
            if self._closed:
                raise RuntimeError("Dispatcher is closed.")
            if self._pool is not None:
                return self
            self._pool = WorkerPool(
                worker_factory=lambda worker_id: self.create_worker(
                    worker_id,
                    claim_timeout_seconds=self.poll_interval_seconds,
                ),
                size=self.worker_count,
                name_prefix=f"{self.queue.name}-worker",
            )
        self._pool.start()
        return self

    def close(self) -> None:
        """Stop worker slots and fail whatever is still unresolved."""

        with self._lock:
            if self._closed:
                return
            self._closed = True
            pool = self._pool
            self._pool = None
        self.queue.close()
        if pool is not None:
            pool.stop(timeout=self.shutdown_timeout_seconds)

        with self._lock:
            outstanding = [
                (self._tasks.pop(task_id), slot) for task_id, slot in self._slots.items()
            ]
            self._slots.clear()
        for task, slot in outstanding:
            if slot.set(
                TaskFailure(
                    kind=ErrorKind.NON_RETRYABLE,
                    message="Dispatcher closed before the task finished",
                    attempts_made=len(task.attempt_log),
                ),
            ):
                task.status = TaskStatus.FAILED
        if outstanding:
            logger.warning("Dispatcher closed with %d unresolved task(s)", len(outstanding))

    def __enter__(self) -> Dispatcher:
        return self.start()

    def __exit__(self, *_: object) -> None:
        self.close()

    def submit(self, operation_name: str, args: Sequence[Any] = ()) -> TaskHandle:
        """Enqueue one invocation under a fresh task id and return its handle.

        Identical requests are never deduplicated; every call gets a new id.
        """

        task = Task(
            task_id=uuid4().hex,
            operation_name=operation_name,
            args=tuple(args),
            queue_name=self.queue.name,
            submitted_at=self.clock.now(),
        )
        slot = ResultSlot()
        with self._lock:
            if self._closed:
                raise RuntimeError("Dispatcher is closed.")
            self._tasks[task.task_id] = task
            self._slots[task.task_id] = slot
        self.queue.enqueue(task)
        logger.debug(
            "Submitted task %s (%s) to queue %s",
            task.task_id,
            operation_name,
            self.queue.name,
        )
        return TaskHandle(task=task, slot=slot, dispatcher=self)

    def execute(
        self,
        operation_name: str,
        args: Sequence[Any] = (),
        *,
        timeout: float | None = None,
    ) -> Any:
        """Submit and block for the result."""

        return self.submit(operation_name, args).result(timeout=timeout)

    def cancel(self, task_id: str) -> bool:
        """Request cooperative cancellation; a running attempt still completes."""

        with self._lock:
            task = self._tasks.get(task_id)
        if task is None:
            return False
        task.cancel_requested = True
        self.queue.expedite(task_id)
        logger.info("Cancellation requested for task %s", task_id)
        return True

    def unresolved_count(self) -> int:
        with self._lock:
            return len(self._slots)

    def create_worker(
        self,
        worker_id: str,
        *,
        claim_timeout_seconds: float | None = None,
    ) -> TaskWorker:
        """Build a worker slot bound to this dispatcher's queue and result table."""

        return TaskWorker(
            queue=self.queue,
            registry=self.registry,
            fault_injector=self.fault_injector,
            publish=self._publish_result,
            clock=self.clock,
            worker_id=worker_id,
            default_retry_policy=self.default_retry_policy,
            attempt_timeout_seconds=self.attempt_timeout_seconds,
            claim_timeout_seconds=claim_timeout_seconds,
        )

    def _publish_result(self, task: Task, result: TaskResult) -> None:
        with self._lock:
            slot = self._slots.pop(task.task_id, None)
            self._tasks.pop(task.task_id, None)
        if slot is None:
            logger.debug("Dropping outcome for already resolved task %s", task.task_id)
            return
        slot.set(result)


def _resolve_future(future: asyncio.Future[TaskResult], result: TaskResult) -> None:
    if not future.done():
        future.set_result(result)
