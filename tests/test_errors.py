from __future__ import annotations

import allure
import pytest

from fdx_dispatch.engine.errors import (
    AttemptTimeoutError,
    ClassifiedFailure,
    ErrorKind,
    TaskFailedError,
    error_profile,
    http_status_for,
    is_retryable,
    parse_error_kinds,
)

pytestmark = [
    allure.epic("Dispatch Engine"),
    allure.feature("Error Taxonomy"),
]


def test_every_kind_has_a_profile() -> None:
    for kind in ErrorKind:
        profile = error_profile(kind)
        assert profile.message
        assert 500 <= profile.http_status < 600


def test_only_internal_and_non_retryable_kinds_are_terminal() -> None:
    terminal = {kind for kind in ErrorKind if not is_retryable(kind)}

    assert terminal == {ErrorKind.INTERNAL_SERVER_ERROR, ErrorKind.NON_RETRYABLE}


@pytest.mark.parametrize(
    ("kind", "status"),
    [
        (ErrorKind.DATABASE_CONNECTION, 503),
        (ErrorKind.DATABASE_TIMEOUT, 504),
        (ErrorKind.DATABASE_DEADLOCK, 503),
        (ErrorKind.NETWORK_TIMEOUT, 504),
        (ErrorKind.NETWORK_CONNECTION_REFUSED, 502),
        (ErrorKind.SERVICE_UNAVAILABLE, 503),
        (ErrorKind.RESOURCE_EXHAUSTED, 503),
        (ErrorKind.INTERNAL_SERVER_ERROR, 500),
        (ErrorKind.NON_RETRYABLE, 500),
    ],
)
def test_http_status_mapping(kind: ErrorKind, status: int) -> None:
    assert http_status_for(kind) == status


def test_parse_error_kinds_drops_unknown_names_and_duplicates() -> None:
    kinds = parse_error_kinds(" database_timeout, BOGUS,NETWORK_TIMEOUT,DATABASE_TIMEOUT,")

    assert kinds == (ErrorKind.DATABASE_TIMEOUT, ErrorKind.NETWORK_TIMEOUT)
    assert parse_error_kinds("") == ()


def test_classified_failure_defaults_to_profile_message() -> None:
    failure = ClassifiedFailure(ErrorKind.DATABASE_DEADLOCK)

    assert failure.message == "Transaction deadlock detected, please retry"
    assert str(failure) == failure.message
    assert failure.retryable is True
    assert failure.http_status == 503
    assert ClassifiedFailure.for_kind(ErrorKind.NON_RETRYABLE).retryable is False


def test_attempt_timeout_error_is_a_timeout_error() -> None:
    error = AttemptTimeoutError(operation_name="get_accounts", timeout_seconds=2.5)

    assert isinstance(error, TimeoutError)
    assert "get_accounts" in str(error)
    assert "2.5s" in str(error)


def test_task_failed_error_carries_outcome_fields() -> None:
    error = TaskFailedError(
        task_id="abc",
        kind=ErrorKind.DATABASE_TIMEOUT,
        message="Database query timed out after 30000ms",
        attempts_made=10,
    )

    assert error.http_status == 504
    assert error.attempts_made == 10
    assert "DATABASE_TIMEOUT after 10 attempt(s)" in str(error)
