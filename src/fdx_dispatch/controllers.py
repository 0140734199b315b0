"""Controllers for dispatch CLI commands."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from fdx_dispatch.activities.dataset import FinancialDataset, sample_dataset
from fdx_dispatch.activities.financial import (
    FinancialDataActivities,
    register_financial_activities,
)
from fdx_dispatch.config import Settings
from fdx_dispatch.engine.dispatcher import Dispatcher
from fdx_dispatch.engine.errors import http_status_for
from fdx_dispatch.engine.models import TaskSuccess
from fdx_dispatch.engine.registry import ActivityRegistry
from fdx_dispatch.engine.retry_policy import RetryPolicy, retry_schedule


@dataclass(slots=True)
class InvokeCommand:
    """CLI input for one operation invocation."""

    operation: str
    raw_args: tuple[str, ...]
    timeout_seconds: float | None
    dataset_path: Path | None = None
    latency_scale: float = 1.0


@dataclass(slots=True)
class InvokeResult:
    """Invocation report to render in CLI."""

    lines: list[str]
    success: bool


class DispatchCliController:
    """Owns the non-parsing logic behind every CLI command."""

    def list_activities(self) -> list[str]:
        settings = Settings.from_env()
        registry = _build_registry(dataset=sample_dataset(), latency_scale=0.0)
        lines = [
            f"Queue: {settings.worker.queue_name}",
            f"Activities: {len(registry)}",
        ]
        default_policy = settings.retry.to_policy()
        for name in registry.names():
            definition = registry.resolve(name)
            policy = definition.retry_policy or default_policy
            timeout = definition.timeout_seconds or settings.worker.attempt_timeout_seconds
            lines.append(
                f"  {name} max_attempts={policy.max_attempts} "
                f"timeout={timeout:.1f}s "
                f"policy={'custom' if definition.retry_policy else 'default'}",
            )
        return lines

    def invoke(self, command: InvokeCommand) -> InvokeResult:
        settings = Settings.from_env()
        dataset = (
            FinancialDataset.from_json(command.dataset_path)
            if command.dataset_path is not None
            else sample_dataset()
        )
        registry = _build_registry(dataset=dataset, latency_scale=command.latency_scale)
        args = [_parse_argument(raw) for raw in command.raw_args]

        with Dispatcher.from_settings(registry, settings) as dispatcher:
            handle = dispatcher.submit(command.operation, args)
            try:
                outcome = handle.outcome(timeout=command.timeout_seconds)
            except TimeoutError:
                handle.cancel()
                return InvokeResult(
                    lines=[
                        f"Task {handle.task_id} ({command.operation}) did not finish "
                        f"within {command.timeout_seconds}s",
                        f"Attempts so far: {len(handle.attempts())}",
                    ],
                    success=False,
                )

        if isinstance(outcome, TaskSuccess):
            return InvokeResult(
                lines=json.dumps(outcome.value, indent=2, default=str).splitlines(),
                success=True,
            )
        return InvokeResult(
            lines=[
                f"Task {handle.task_id} ({command.operation}) failed: {outcome.kind.value}",
                f"HTTP status: {http_status_for(outcome.kind)}",
                f"Attempts: {outcome.attempts_made}",
                f"Message: {outcome.message}",
            ],
            success=False,
        )

    def retry_schedule(self) -> list[str]:
        policy = Settings.from_env().retry.to_policy()
        delays = retry_schedule(policy)
        lines = [_describe_policy(policy)]
        for attempt, delay in enumerate(delays, start=1):
            lines.append(f"  attempt {attempt} -> {attempt + 1}: wait {delay:.3f}s")
        lines.append(f"Worst-case total delay: {sum(delays):.3f}s")
        return lines

    def chaos_config(self) -> list[str]:
        fault_injection = Settings.from_env().fault_injection
        return [
            f"Fault injection: {'enabled' if fault_injection.enabled else 'disabled'}",
            f"Error rate: {fault_injection.error_rate:.1%}",
            f"Error kinds: {', '.join(kind.value for kind in fault_injection.enabled_kinds)}",
            f"Add latency: {'yes' if fault_injection.add_latency else 'no'}",
            f"Seed: {fault_injection.seed if fault_injection.seed is not None else '-'}",
        ]


def _build_registry(*, dataset: FinancialDataset, latency_scale: float) -> ActivityRegistry:
    activities = FinancialDataActivities(dataset, latency_scale=latency_scale)
    return register_financial_activities(ActivityRegistry(), activities)


def _parse_argument(raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _describe_policy(policy: RetryPolicy) -> str:
    excluded = ", ".join(sorted(kind.value for kind in policy.non_retryable_kinds)) or "-"
    return (
        f"Retry policy: initial={policy.initial_interval_seconds}s "
        f"coefficient={policy.backoff_coefficient} "
        f"max_interval={policy.max_interval_seconds}s "
        f"max_attempts={policy.max_attempts} "
        f"non_retryable=[{excluded}]"
    )
