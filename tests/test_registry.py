from __future__ import annotations

import allure
import pytest

from fdx_dispatch.engine.errors import ActivityRegistrationError, ClassifiedFailure, ErrorKind
from fdx_dispatch.engine.registry import ActivityRegistry
from fdx_dispatch.engine.retry_policy import RetryPolicy

pytestmark = [
    allure.epic("Dispatch Engine"),
    allure.feature("Activity Registry"),
]


def test_register_and_resolve() -> None:
    registry = ActivityRegistry()
    policy = RetryPolicy(max_attempts=3)

    registry.register("echo", lambda value: value, retry_policy=policy, timeout_seconds=2.0)
    definition = registry.resolve("echo")

    assert definition.name == "echo"
    assert definition.function("x") == "x"
    assert definition.retry_policy is policy
    assert definition.timeout_seconds == 2.0
    assert "echo" in registry
    assert len(registry) == 1


def test_decorator_registers_and_returns_function() -> None:
    registry = ActivityRegistry()

    @registry.activity("double")
    def double(value: int) -> int:
        return value * 2

    assert double(2) == 4
    assert registry.resolve("double").function(5) == 10


def test_duplicate_name_is_rejected() -> None:
    registry = ActivityRegistry()
    registry.register("echo", lambda value: value)

    with pytest.raises(ActivityRegistrationError, match="already registered"):
        registry.register("echo", lambda value: value)


@pytest.mark.parametrize("name", ["", "   "])
def test_blank_name_is_rejected(name: str) -> None:
    with pytest.raises(ActivityRegistrationError, match="non-empty"):
        ActivityRegistry().register(name, lambda: None)


def test_non_callable_is_rejected() -> None:
    with pytest.raises(ActivityRegistrationError, match="callable"):
        ActivityRegistry().register("broken", "not a function")  # type: ignore[arg-type]


def test_non_positive_timeout_is_rejected() -> None:
    with pytest.raises(ActivityRegistrationError, match="timeout_seconds"):
        ActivityRegistry().register("slow", lambda: None, timeout_seconds=0)


def test_unknown_name_fails_closed_as_non_retryable() -> None:
    with pytest.raises(ClassifiedFailure) as caught:
        ActivityRegistry().resolve("get_everything")

    assert caught.value.kind == ErrorKind.NON_RETRYABLE
    assert "get_everything" in caught.value.message


def test_names_are_sorted() -> None:
    registry = ActivityRegistry()
    for name in ("b", "c", "a"):
        registry.register(name, lambda: None)

    assert registry.names() == ["a", "b", "c"]
