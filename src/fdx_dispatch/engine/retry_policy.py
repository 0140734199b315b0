"""Retry-vs-terminal decisions and exponential backoff for failed attempts."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from fdx_dispatch.engine.errors import ErrorKind, is_retryable


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Immutable backoff configuration attached to an operation."""

    initial_interval_seconds: float = 0.5
    backoff_coefficient: float = 2.0
    max_interval_seconds: float = 5.0
    max_attempts: int = 10
    non_retryable_kinds: frozenset[ErrorKind] = field(
        default_factory=lambda: frozenset({ErrorKind.NON_RETRYABLE}),
    )

    def __post_init__(self) -> None:
        if self.initial_interval_seconds < 0:
            raise ValueError("initial_interval_seconds must be >= 0.")
        if self.backoff_coefficient < 1:
            raise ValueError("backoff_coefficient must be >= 1.")
        if self.max_interval_seconds < 0:
            raise ValueError("max_interval_seconds must be >= 0.")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1.")
        if not isinstance(self.non_retryable_kinds, frozenset):
            object.__setattr__(self, "non_retryable_kinds", frozenset(self.non_retryable_kinds))

    def to_metadata(self) -> dict[str, object]:
        return {
            "initial_interval_seconds": self.initial_interval_seconds,
            "backoff_coefficient": self.backoff_coefficient,
            "max_interval_seconds": self.max_interval_seconds,
            "max_attempts": self.max_attempts,
            "non_retryable_kinds": sorted(kind.value for kind in self.non_retryable_kinds),
        }


DEFAULT_RETRY_POLICY = RetryPolicy()


class RetryReason(str, Enum):
    """Which rule produced a retry decision."""

    RETRY_SCHEDULED = "retry_scheduled"
    KIND_NOT_RETRYABLE = "kind_not_retryable"
    KIND_EXCLUDED_BY_POLICY = "kind_excluded_by_policy"
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"
    TASK_CANCELED = "task_canceled"


@dataclass(frozen=True, slots=True)
class RetryDecision:
    """Outcome of consulting the retry engine after a failed attempt."""

    retry: bool
    reason: RetryReason
    delay_seconds: float | None = None
    next_attempt: int | None = None


def compute_backoff_delay(policy: RetryPolicy, *, attempt: int) -> float:
    """Delay to wait after failed ``attempt`` (1-indexed) before the next one."""

    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")
    return min(
        policy.initial_interval_seconds * policy.backoff_coefficient ** (attempt - 1),
        policy.max_interval_seconds,
    )


def decide_retry(
    policy: RetryPolicy,
    *,
    attempt: int,
    kind: ErrorKind,
    canceled: bool = False,
) -> RetryDecision:
    """Decide whether failed ``attempt`` gets a successor and after what delay."""

    if canceled:
        return RetryDecision(retry=False, reason=RetryReason.TASK_CANCELED)
    if not is_retryable(kind):
        return RetryDecision(retry=False, reason=RetryReason.KIND_NOT_RETRYABLE)
    if kind in policy.non_retryable_kinds:
        return RetryDecision(retry=False, reason=RetryReason.KIND_EXCLUDED_BY_POLICY)
    if attempt >= policy.max_attempts:
        return RetryDecision(retry=False, reason=RetryReason.ATTEMPTS_EXHAUSTED)
    return RetryDecision(
        retry=True,
        reason=RetryReason.RETRY_SCHEDULED,
        delay_seconds=compute_backoff_delay(policy, attempt=attempt),
        next_attempt=attempt + 1,
    )


def retry_schedule(policy: RetryPolicy) -> list[float]:
    """Delays between consecutive attempts when every attempt fails transiently."""

    return [
        compute_backoff_delay(policy, attempt=attempt)
        for attempt in range(1, policy.max_attempts)
    ]
