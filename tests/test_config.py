from __future__ import annotations

import allure
import pytest

from fdx_dispatch.config import FaultInjectionSettings, RetrySettings, Settings
from fdx_dispatch.engine.errors import ErrorKind

pytestmark = [
    allure.epic("Dispatch Engine"),
    allure.feature("Configuration"),
]


def test_defaults_without_environment() -> None:
    settings = Settings.from_env()

    assert settings.fault_injection.enabled is False
    assert settings.fault_injection.error_rate == 0.1
    assert settings.fault_injection.enabled_kinds == tuple(ErrorKind)
    assert settings.fault_injection.seed is None
    assert settings.retry.to_policy().max_attempts == 10
    assert settings.retry.non_retryable_kinds == (ErrorKind.NON_RETRYABLE,)
    assert settings.worker.queue_name == "api-tasks"
    assert settings.worker.worker_count == 4
    assert settings.log_level == "WARNING"


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("FDX_CHAOS_ENABLED", "yes")
    monkeypatch.setenv("FDX_CHAOS_ERROR_RATE", "0.5")
    monkeypatch.setenv("FDX_CHAOS_ERROR_TYPES", "database_timeout, NETWORK_TIMEOUT")
    monkeypatch.setenv("FDX_CHAOS_ADD_LATENCY", "on")
    monkeypatch.setenv("FDX_CHAOS_SEED", "42")
    monkeypatch.setenv("FDX_RETRY_MAX_ATTEMPTS", "3")
    monkeypatch.setenv("FDX_RETRY_INITIAL_INTERVAL_SECONDS", "0.1")
    monkeypatch.setenv("FDX_TASK_QUEUE", "batch-tasks")
    monkeypatch.setenv("FDX_WORKER_COUNT", "8")
    monkeypatch.setenv("FDX_DISPATCH_LOG_LEVEL", "debug")

    settings = Settings.from_env()

    assert settings.fault_injection.enabled is True
    assert settings.fault_injection.error_rate == 0.5
    assert settings.fault_injection.enabled_kinds == (
        ErrorKind.DATABASE_TIMEOUT,
        ErrorKind.NETWORK_TIMEOUT,
    )
    assert settings.fault_injection.add_latency is True
    assert settings.fault_injection.seed == 42
    assert settings.retry.max_attempts == 3
    assert settings.retry.initial_interval_seconds == 0.1
    assert settings.worker.queue_name == "batch-tasks"
    assert settings.worker.worker_count == 8
    assert settings.log_level == "DEBUG"


def test_unknown_chaos_kinds_fall_back_to_full_taxonomy(monkeypatch) -> None:
    monkeypatch.setenv("FDX_CHAOS_ERROR_TYPES", "BOGUS,ALSO_BOGUS")

    assert Settings.from_env().fault_injection.enabled_kinds == tuple(ErrorKind)


def test_empty_non_retryable_kind_list_is_allowed(monkeypatch) -> None:
    monkeypatch.setenv("FDX_RETRY_NON_RETRYABLE_KINDS", "")

    settings = Settings.from_env()

    assert settings.retry.non_retryable_kinds == ()
    assert settings.retry.to_policy().non_retryable_kinds == frozenset()


def test_invalid_boolean_is_rejected(monkeypatch) -> None:
    monkeypatch.setenv("FDX_CHAOS_ENABLED", "maybe")

    with pytest.raises(ValueError, match="FDX_CHAOS_ENABLED"):
        Settings.from_env()


def test_invalid_number_names_the_variable(monkeypatch) -> None:
    monkeypatch.setenv("FDX_WORKER_COUNT", "four")

    with pytest.raises(ValueError, match="FDX_WORKER_COUNT"):
        Settings.from_env()


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("FDX_CHAOS_ERROR_RATE", "1.5"),
        ("FDX_RETRY_BACKOFF_COEFFICIENT", "0.5"),
        ("FDX_RETRY_MAX_INTERVAL_SECONDS", "-1"),
        ("FDX_RETRY_MAX_ATTEMPTS", "0"),
        ("FDX_WORKER_COUNT", "0"),
        ("FDX_ATTEMPT_TIMEOUT_SECONDS", "0"),
        ("FDX_DISPATCH_LOG_LEVEL", "LOUD"),
    ],
)
def test_out_of_range_values_are_rejected(monkeypatch, name: str, value: str) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ValueError, match=name):
        Settings.from_env()


def test_settings_convert_to_engine_objects() -> None:
    fault_config = FaultInjectionSettings(enabled=True, error_rate=1.0).to_config()
    policy = RetrySettings(max_attempts=4, backoff_coefficient=3.0).to_policy()

    assert fault_config.enabled is True
    assert fault_config.enabled_kinds == tuple(ErrorKind)
    assert policy.max_attempts == 4
    assert policy.backoff_coefficient == 3.0


def test_max_interval_may_be_below_initial_interval(monkeypatch) -> None:
    monkeypatch.setenv("FDX_RETRY_INITIAL_INTERVAL_SECONDS", "2.0")
    monkeypatch.setenv("FDX_RETRY_MAX_INTERVAL_SECONDS", "0.1")

    policy = Settings.from_env().retry.to_policy()

    assert policy.max_interval_seconds == 0.1
    assert policy.initial_interval_seconds == 2.0
