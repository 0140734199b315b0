"""Queue worker slots that execute registered activities with retries."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future
from concurrent.futures import wait as wait_futures
from dataclasses import dataclass
from typing import Any

from fdx_dispatch.engine.clock import Clock
from fdx_dispatch.engine.errors import AttemptTimeoutError, ErrorKind
from fdx_dispatch.engine.failure_classifier import FailureClassification, classify_failure
from fdx_dispatch.engine.fault_injector import FaultInjector
from fdx_dispatch.engine.models import (
    Task,
    TaskAttempt,
    TaskFailure,
    TaskResult,
    TaskStatus,
    TaskSuccess,
)
from fdx_dispatch.engine.registry import ActivityDefinition, ActivityRegistry
from fdx_dispatch.engine.retry_policy import (
    DEFAULT_RETRY_POLICY,
    RetryPolicy,
    RetryDecision,
    RetryReason,
    decide_retry,
)
from fdx_dispatch.engine.task_queue import TaskQueue

logger = logging.getLogger(__name__)

CANCELED_MESSAGE = "Task was canceled"

ResultPublisher = Callable[[Task, TaskResult], None]


@dataclass(slots=True)
class WorkerRunSummary:
    """Aggregate worker counters."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    retried: int = 0
    timeouts: int = 0
    canceled: int = 0
    idle_polls: int = 0

    def add(self, other: WorkerRunSummary) -> None:
        self.processed += other.processed
        self.succeeded += other.succeeded
        self.failed += other.failed
        self.retried += other.retried
        self.timeouts += other.timeouts
        self.canceled += other.canceled
        self.idle_polls += other.idle_polls


class TaskWorker:
    """Claims one attempt at a time and routes its outcome through the retry engine."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        queue: TaskQueue,
        registry: ActivityRegistry,
        fault_injector: FaultInjector,
        publish: ResultPublisher,
        clock: Clock,
        worker_id: str,
        default_retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        attempt_timeout_seconds: float | None = 30.0,
        claim_timeout_seconds: float | None = None,
    ) -> None:
        self.queue = queue
        self.registry = registry
        self.fault_injector = fault_injector
        self.worker_id = worker_id
        self.default_retry_policy = default_retry_policy
        self.attempt_timeout_seconds = attempt_timeout_seconds
        self.claim_timeout_seconds = claim_timeout_seconds
        self._publish = publish
        self._clock = clock
        self._abandoned: dict[str, Future[Any]] = {}

    def run_once(self) -> WorkerRunSummary:
        """Process at most one ready attempt from the queue."""

        summary = WorkerRunSummary()
        task = self.queue.claim_next_ready(timeout=self.claim_timeout_seconds)
        if task is None:
            summary.idle_polls = 1
            return summary

        summary.processed = 1
        try:
            self._process(task=task, summary=summary)
        except Exception:
            logger.exception(
                "Worker %s failed while processing task %s (%s)",
                self.worker_id,
                task.task_id,
                task.operation_name,
            )
            self._finish(
                task=task,
                status=TaskStatus.FAILED,
                result=TaskFailure(
                    kind=ErrorKind.INTERNAL_SERVER_ERROR,
                    message="Worker failed while processing task",
                    attempts_made=task.attempt,
                ),
            )
            summary.failed = 1
        return summary

    def run_loop(
        self,
        *,
        max_tasks: int | None = None,
        max_idle_polls: int = 1,
        stop_event: threading.Event | None = None,
    ) -> WorkerRunSummary:
        """Run until the queue stays idle or ``max_tasks`` attempts were processed.

        Args:
            max_tasks: Stop after processing this many attempts (None = unlimited).
            max_idle_polls: How many consecutive empty polls before exiting.
            stop_event: Optional event that ends the loop between attempts.
        """

        aggregate = WorkerRunSummary()
        consecutive_idle = 0
        while True:
            if stop_event is not None and stop_event.is_set():
                return aggregate
            if max_tasks is not None and aggregate.processed >= max_tasks:
                return aggregate

            summary = self.run_once()
            aggregate.add(summary)
            if summary.processed == 0:
                consecutive_idle += 1
                if consecutive_idle >= max_idle_polls:
                    return aggregate
                continue
            consecutive_idle = 0

    def _process(self, *, task: Task, summary: WorkerRunSummary) -> None:
        if task.cancel_requested:
            logger.info("Task %s canceled before attempt %d", task.task_id, task.attempt)
            self._finish(
                task=task,
                status=TaskStatus.CANCELED,
                result=TaskFailure(
                    kind=ErrorKind.NON_RETRYABLE,
                    message=CANCELED_MESSAGE,
                    attempts_made=task.attempt - 1,
                ),
            )
            summary.canceled = 1
            return

        record = TaskAttempt(
            attempt_no=task.attempt,
            worker_id=self.worker_id,
            started_at=self._clock.now(),
        )
        task.attempt_log.append(record)
        logger.debug(
            "Worker %s claimed task %s (%s) attempt %d",
            self.worker_id,
            task.task_id,
            task.operation_name,
            task.attempt,
        )

        policy = self.default_retry_policy
        try:
            definition = self.registry.resolve(task.operation_name)
            policy = definition.retry_policy or self.default_retry_policy
            value = self._execute(definition=definition, task=task)
        except Exception as error:  # noqa: BLE001
            classification = classify_failure(error, attempt=task.attempt)
            if isinstance(error, AttemptTimeoutError):
                summary.timeouts = 1
            self._handle_failure(
                task=task,
                record=record,
                policy=policy,
                classification=classification,
                summary=summary,
            )
            return

        record.finished_at = self._clock.now()
        record.outcome = "succeeded"
        self._finish(
            task=task,
            status=TaskStatus.SUCCEEDED,
            result=TaskSuccess(value=value, attempts_made=task.attempt),
        )
        summary.succeeded = 1

    def _execute(self, *, definition: ActivityDefinition, task: Task) -> Any:
        timeout_seconds = definition.timeout_seconds or self.attempt_timeout_seconds
        if timeout_seconds is None:
            return self._run_activity(definition=definition, task=task)

        # Each attempt runs on its own daemon thread; the deadline starts with it.
        future: Future[Any] = Future()
        thread = threading.Thread(
            target=self._run_attempt,
            args=(future, definition, task),
            daemon=True,
            name=f"{self.worker_id}-attempt-{task.task_id[:8]}-{task.attempt}",
        )
        thread.start()
        done, _ = wait_futures([future], timeout=timeout_seconds)
        if not done:
            self._abandoned[task.task_id] = future
            raise AttemptTimeoutError(
                operation_name=definition.name,
                timeout_seconds=timeout_seconds,
            )
        return future.result()

    def _run_attempt(
        self,
        future: Future[Any],
        definition: ActivityDefinition,
        task: Task,
    ) -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            value = self._run_activity(definition=definition, task=task)
        except BaseException as error:  # noqa: BLE001
            future.set_exception(error)
        else:
            future.set_result(value)

    def _run_activity(self, *, definition: ActivityDefinition, task: Task) -> Any:
        self.fault_injector.maybe_inject(task.operation_name)
        return definition.function(*task.args)

    def _handle_failure(
        self,
        *,
        task: Task,
        record: TaskAttempt,
        policy: RetryPolicy,
        classification: FailureClassification,
        summary: WorkerRunSummary,
    ) -> None:
        record.finished_at = self._clock.now()
        record.outcome = "failed"
        record.error_kind = classification.kind
        record.error_message = classification.message
        record.matched_rule = classification.matched_rule
        abandoned = self._abandoned.pop(task.task_id, None)

        decision = decide_retry(
            policy,
            attempt=task.attempt,
            kind=classification.kind,
            canceled=task.cancel_requested,
        )
        if decision.retry and decision.delay_seconds is not None and decision.next_attempt:
            record.retry_delay_seconds = decision.delay_seconds
            run_after = self._clock.now() + decision.delay_seconds
            if abandoned is not None and not abandoned.done():
                # The task stays claimed until the timed-out attempt returns.
                logger.info(
                    "Task %s attempt %d is still running past its deadline; "
                    "retry waits for it to return",
                    task.task_id,
                    record.attempt_no,
                )
                abandoned.add_done_callback(
                    lambda _: self._retry_after_abandoned_attempt(
                        task=task,
                        record=record,
                        classification=classification,
                        decision=decision,
                        run_after=run_after,
                    ),
                )
                summary.retried = 1
                return
            if self._reschedule(
                task=task,
                record=record,
                classification=classification,
                decision=decision,
                run_after=run_after,
            ):
                summary.retried = 1
            else:
                summary.failed = 1
            return

        self._fail(task=task, record=record, classification=classification, decision=decision)
        summary.failed = 1

    def _retry_after_abandoned_attempt(
        self,
        *,
        task: Task,
        record: TaskAttempt,
        classification: FailureClassification,
        decision: RetryDecision,
        run_after: float,
    ) -> None:
        try:
            self._reschedule(
                task=task,
                record=record,
                classification=classification,
                decision=decision,
                run_after=run_after,
            )
        except Exception:
            logger.exception(
                "Worker %s failed to reschedule task %s",
                self.worker_id,
                task.task_id,
            )
            self._finish(
                task=task,
                status=TaskStatus.FAILED,
                result=TaskFailure(
                    kind=ErrorKind.INTERNAL_SERVER_ERROR,
                    message="Worker failed while processing task",
                    attempts_made=record.attempt_no,
                ),
            )

    def _reschedule(
        self,
        *,
        task: Task,
        record: TaskAttempt,
        classification: FailureClassification,
        decision: RetryDecision,
        run_after: float,
    ) -> bool:
        """Queue the next attempt, or fail the task when the queue no longer accepts it."""

        if task.cancel_requested:
            run_after = self._clock.now()
        task.attempt = record.attempt_no + 1
        if self.queue.schedule_retry(task, run_after=run_after):
            logger.info(
                "Retrying task %s (%s) after %s: attempt %d in %.3fs",
                task.task_id,
                task.operation_name,
                classification.kind.value,
                task.attempt,
                decision.delay_seconds,
            )
            return True

        task.attempt = record.attempt_no
        record.retry_delay_seconds = None
        logger.warning(
            "Task %s could not be rescheduled; queue %s is closed",
            task.task_id,
            self.queue.name,
        )
        self._fail(task=task, record=record, classification=classification, decision=decision)
        return False

    def _fail(
        self,
        *,
        task: Task,
        record: TaskAttempt,
        classification: FailureClassification,
        decision: RetryDecision,
    ) -> None:
        logger.warning(
            "Task %s (%s) failed terminally with %s after %d attempt(s): %s [reason=%s rule=%s]",
            task.task_id,
            task.operation_name,
            classification.kind.value,
            record.attempt_no,
            classification.message,
            decision.reason.value,
            classification.matched_rule,
        )
        self._finish(
            task=task,
            status=(
                TaskStatus.CANCELED
                if decision.reason == RetryReason.TASK_CANCELED
                else TaskStatus.FAILED
            ),
            result=TaskFailure(
                kind=classification.kind,
                message=classification.message,
                attempts_made=record.attempt_no,
            ),
        )

    def _finish(self, *, task: Task, status: TaskStatus, result: TaskResult) -> None:
        task.status = status
        self.queue.release(task)
        self._publish(task, result)


class WorkerPool:
    """Runs a fixed number of worker slots on daemon threads."""

    def __init__(
        self,
        *,
        worker_factory: Callable[[str], TaskWorker],
        size: int,
        name_prefix: str = "fdx-worker",
        idle_wait_seconds: float = 0.05,
        error_backoff_seconds: float = 0.5,
    ) -> None:
        if size < 1:
            raise ValueError(f"Worker pool size must be >= 1, got {size}")
        self._worker_factory = worker_factory
        self.size = size
        self._name_prefix = name_prefix
        self._idle_wait_seconds = idle_wait_seconds
        self._error_backoff_seconds = error_backoff_seconds
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    def start(self) -> None:
        if self._threads:
            return
        self._stop.clear()
        for index in range(self.size):
            worker = self._worker_factory(f"{self._name_prefix}-{index}")
            thread = threading.Thread(
                target=self._slot_loop,
                args=(worker,),
                daemon=True,
                name=worker.worker_id,
            )
            self._threads.append(thread)
            thread.start()
        logger.info("Worker pool started with %d slot(s)", self.size)

    def stop(self, *, timeout: float = 15.0) -> None:
        if not self._threads:
            return
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning("Worker slot %s did not stop within %.1fs", thread.name, timeout)
        self._threads = []
        logger.info("Worker pool stopped")

    @property
    def running(self) -> bool:
        return bool(self._threads) and not self._stop.is_set()

    def _slot_loop(self, worker: TaskWorker) -> None:
        while not self._stop.is_set() and not worker.queue.closed:
            try:
                summary = worker.run_once()
            except Exception:
                logger.exception("Worker slot %s error", worker.worker_id)
                self._stop.wait(timeout=self._error_backoff_seconds)
                continue
            if summary.processed == 0 and worker.claim_timeout_seconds is None:
                self._stop.wait(timeout=self._idle_wait_seconds)
