"""Runtime configuration for the dispatch engine."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from fdx_dispatch.engine.errors import ErrorKind, parse_error_kinds
from fdx_dispatch.engine.fault_injector import FaultInjectorConfig
from fdx_dispatch.engine.retry_policy import RetryPolicy


@dataclass(slots=True)
class FaultInjectionSettings:
    """Fault injection settings for resilience testing."""

    enabled: bool = False
    error_rate: float = 0.1
    enabled_kinds: tuple[ErrorKind, ...] = tuple(ErrorKind)
    add_latency: bool = False
    seed: int | None = None

    def to_config(self) -> FaultInjectorConfig:
        return FaultInjectorConfig(
            enabled=self.enabled,
            error_rate=self.error_rate,
            enabled_kinds=self.enabled_kinds,
            add_latency=self.add_latency,
        )


@dataclass(slots=True)
class RetrySettings:
    """Deployment-wide default retry policy."""

    initial_interval_seconds: float = 0.5
    backoff_coefficient: float = 2.0
    max_interval_seconds: float = 5.0
    max_attempts: int = 10
    non_retryable_kinds: tuple[ErrorKind, ...] = (ErrorKind.NON_RETRYABLE,)

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            initial_interval_seconds=self.initial_interval_seconds,
            backoff_coefficient=self.backoff_coefficient,
            max_interval_seconds=self.max_interval_seconds,
            max_attempts=self.max_attempts,
            non_retryable_kinds=frozenset(self.non_retryable_kinds),
        )


@dataclass(slots=True)
class WorkerSettings:
    """Queue and worker pool settings."""

    queue_name: str = "api-tasks"
    worker_count: int = 4
    attempt_timeout_seconds: float = 30.0
    poll_interval_seconds: float = 0.05
    shutdown_timeout_seconds: float = 15.0


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    fault_injection: FaultInjectionSettings = field(default_factory=FaultInjectionSettings)
    retry: RetrySettings = field(default_factory=RetrySettings)
    worker: WorkerSettings = field(default_factory=WorkerSettings)
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment with defaults for local development."""

        settings = cls(
            fault_injection=FaultInjectionSettings(
                enabled=_env_bool("FDX_CHAOS_ENABLED", default=False),
                error_rate=_env_float("FDX_CHAOS_ERROR_RATE", "0.1"),
                enabled_kinds=_env_kinds("FDX_CHAOS_ERROR_TYPES", default=tuple(ErrorKind)),
                add_latency=_env_bool("FDX_CHAOS_ADD_LATENCY", default=False),
                seed=_env_optional_int("FDX_CHAOS_SEED"),
            ),
            retry=RetrySettings(
                initial_interval_seconds=_env_float("FDX_RETRY_INITIAL_INTERVAL_SECONDS", "0.5"),
                backoff_coefficient=_env_float("FDX_RETRY_BACKOFF_COEFFICIENT", "2.0"),
                max_interval_seconds=_env_float("FDX_RETRY_MAX_INTERVAL_SECONDS", "5.0"),
                max_attempts=_env_int("FDX_RETRY_MAX_ATTEMPTS", "10"),
                non_retryable_kinds=_env_kinds(
                    "FDX_RETRY_NON_RETRYABLE_KINDS",
                    default=(ErrorKind.NON_RETRYABLE,),
                    allow_empty=True,
                ),
            ),
            worker=WorkerSettings(
                queue_name=os.getenv("FDX_TASK_QUEUE", "api-tasks").strip() or "api-tasks",
                worker_count=_env_int("FDX_WORKER_COUNT", "4"),
                attempt_timeout_seconds=_env_float("FDX_ATTEMPT_TIMEOUT_SECONDS", "30"),
                poll_interval_seconds=_env_float("FDX_WORKER_POLL_INTERVAL_SECONDS", "0.05"),
                shutdown_timeout_seconds=_env_float(
                    "FDX_WORKER_SHUTDOWN_TIMEOUT_SECONDS",
                    "15",
                ),
            ),
            log_level=os.getenv("FDX_DISPATCH_LOG_LEVEL", "WARNING").strip().upper(),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        """Raise configuration error for out-of-range values."""

        if not 0.0 <= self.fault_injection.error_rate <= 1.0:
            raise ValueError("FDX_CHAOS_ERROR_RATE must be within [0, 1].")
        if self.retry.initial_interval_seconds < 0:
            raise ValueError("FDX_RETRY_INITIAL_INTERVAL_SECONDS must be >= 0.")
        if self.retry.backoff_coefficient < 1:
            raise ValueError("FDX_RETRY_BACKOFF_COEFFICIENT must be >= 1.")
        if self.retry.max_interval_seconds < 0:
            raise ValueError("FDX_RETRY_MAX_INTERVAL_SECONDS must be >= 0.")
        if self.retry.max_attempts < 1:
            raise ValueError("FDX_RETRY_MAX_ATTEMPTS must be >= 1.")
        if self.worker.worker_count < 1:
            raise ValueError("FDX_WORKER_COUNT must be >= 1.")
        if self.worker.attempt_timeout_seconds <= 0:
            raise ValueError("FDX_ATTEMPT_TIMEOUT_SECONDS must be > 0.")
        if self.worker.poll_interval_seconds <= 0:
            raise ValueError("FDX_WORKER_POLL_INTERVAL_SECONDS must be > 0.")
        if self.log_level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid FDX_DISPATCH_LOG_LEVEL: {self.log_level!r}")


def _env_kinds(
    name: str,
    *,
    default: tuple[ErrorKind, ...],
    allow_empty: bool = False,
) -> tuple[ErrorKind, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    kinds = parse_error_kinds(raw)
    if kinds:
        return kinds
    # A list naming no known kind falls back to the default.
    return () if allow_empty and not raw.strip() else default


def _env_float(name: str, default: str) -> float:
    raw = os.getenv(name, default).strip()
    try:
        return float(raw)
    except ValueError as error:
        raise ValueError(f"Invalid float value for {name}: {raw!r}") from error


def _env_int(name: str, default: str) -> int:
    raw = os.getenv(name, default).strip()
    try:
        return int(raw)
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {raw!r}") from error


def _env_optional_int(name: str) -> int | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    return _env_int(name, raw)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
