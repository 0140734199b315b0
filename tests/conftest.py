"""Shared test fixtures."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable

import pytest

from fdx_dispatch.engine.clock import ManualClock
from fdx_dispatch.engine.worker import TaskWorker, WorkerRunSummary


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch):
    """Drop FDX_* variables from the developer shell and restore root logging after CLI runs."""
    for name in list(os.environ):
        if name.startswith("FDX_"):
            monkeypatch.delenv(name, raising=False)

    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture()
def manual_clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def drain() -> Callable[..., WorkerRunSummary]:
    """Run a worker until its queue is empty, jumping the manual clock over retry delays."""

    def _drain(
        worker: TaskWorker,
        clock: ManualClock,
        *,
        max_steps: int = 1000,
    ) -> WorkerRunSummary:
        aggregate = WorkerRunSummary()
        for _ in range(max_steps):
            summary = worker.run_once()
            aggregate.add(summary)
            if summary.processed:
                continue
            next_run = worker.queue.next_run_at()
            if next_run is None:
                return aggregate
            clock.advance_to(next_run)
        raise AssertionError(f"Queue {worker.queue.name} did not drain in {max_steps} steps")

    return _drain
