"""Closed failure taxonomy shared by the fault injector, worker and retry engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorKind(str, Enum):
    """Failure kinds an activity attempt can end with."""

    DATABASE_CONNECTION = "DATABASE_CONNECTION"
    DATABASE_TIMEOUT = "DATABASE_TIMEOUT"
    DATABASE_DEADLOCK = "DATABASE_DEADLOCK"
    NETWORK_TIMEOUT = "NETWORK_TIMEOUT"
    NETWORK_CONNECTION_REFUSED = "NETWORK_CONNECTION_REFUSED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    RESOURCE_EXHAUSTED = "RESOURCE_EXHAUSTED"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    NON_RETRYABLE = "NON_RETRYABLE"


@dataclass(frozen=True, slots=True)
class ErrorProfile:
    """Fixed properties of one error kind."""

    retryable: bool
    http_status: int
    message: str


_PROFILES: dict[ErrorKind, ErrorProfile] = {
    ErrorKind.DATABASE_CONNECTION: ErrorProfile(
        retryable=True,
        http_status=503,
        message="Failed to connect to database: connection refused",
    ),
    ErrorKind.DATABASE_TIMEOUT: ErrorProfile(
        retryable=True,
        http_status=504,
        message="Database query timed out after 30000ms",
    ),
    ErrorKind.DATABASE_DEADLOCK: ErrorProfile(
        retryable=True,
        http_status=503,
        message="Transaction deadlock detected, please retry",
    ),
    ErrorKind.NETWORK_TIMEOUT: ErrorProfile(
        retryable=True,
        http_status=504,
        message="Network request timed out",
    ),
    ErrorKind.NETWORK_CONNECTION_REFUSED: ErrorProfile(
        retryable=True,
        http_status=502,
        message="Connection refused: upstream service unavailable",
    ),
    ErrorKind.SERVICE_UNAVAILABLE: ErrorProfile(
        retryable=True,
        http_status=503,
        message="Service temporarily unavailable due to high load",
    ),
    ErrorKind.RESOURCE_EXHAUSTED: ErrorProfile(
        retryable=True,
        http_status=503,
        message="Resource exhausted: too many open connections",
    ),
    ErrorKind.INTERNAL_SERVER_ERROR: ErrorProfile(
        retryable=False,
        http_status=500,
        message="An unexpected internal error occurred",
    ),
    ErrorKind.NON_RETRYABLE: ErrorProfile(
        retryable=False,
        http_status=500,
        message="A non-retryable error occurred",
    ),
}

_MISSING_PROFILES = set(ErrorKind) - set(_PROFILES)
if _MISSING_PROFILES:
    raise RuntimeError(
        f"Error kinds without profile: {sorted(kind.value for kind in _MISSING_PROFILES)}",
    )


def error_profile(kind: ErrorKind) -> ErrorProfile:
    """Return the fixed profile for ``kind``."""

    return _PROFILES[kind]


def is_retryable(kind: ErrorKind) -> bool:
    """Whether the taxonomy allows retrying ``kind`` at all."""

    return _PROFILES[kind].retryable


def http_status_for(kind: ErrorKind) -> int:
    """Suggested transport status for the request-handling layer."""

    return _PROFILES[kind].http_status


def parse_error_kinds(raw: str) -> tuple[ErrorKind, ...]:
    """Parse a comma-separated kind list, silently dropping unknown names."""

    known = {kind.value: kind for kind in ErrorKind}
    kinds: list[ErrorKind] = []
    for part in raw.split(","):
        token = part.strip().upper()
        kind = known.get(token)
        if kind is not None and kind not in kinds:
            kinds.append(kind)
    return tuple(kinds)


class ClassifiedFailure(Exception):
    """Typed failure raised by activities and by the fault injector."""

    def __init__(self, kind: ErrorKind, message: str | None = None, *, attempt: int = 0) -> None:
        self.kind = kind
        self.message = message or _PROFILES[kind].message
        self.attempt = attempt
        super().__init__(self.message)

    @classmethod
    def for_kind(cls, kind: ErrorKind) -> ClassifiedFailure:
        return cls(kind, _PROFILES[kind].message)

    @property
    def retryable(self) -> bool:
        return _PROFILES[self.kind].retryable

    @property
    def http_status(self) -> int:
        return _PROFILES[self.kind].http_status

    def __repr__(self) -> str:
        return f"ClassifiedFailure(kind={self.kind.value}, message={self.message!r})"


class AttemptTimeoutError(TimeoutError):
    """Raised when one attempt exceeds its execution deadline."""

    def __init__(self, *, operation_name: str, timeout_seconds: float) -> None:
        self.operation_name = operation_name
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Activity {operation_name!r} exceeded its {timeout_seconds:g}s attempt deadline",
        )


class TaskFailedError(Exception):
    """Terminal task failure surfaced to the caller of ``TaskHandle.result``."""

    def __init__(
        self,
        *,
        task_id: str,
        kind: ErrorKind,
        message: str,
        attempts_made: int,
    ) -> None:
        self.task_id = task_id
        self.kind = kind
        self.message = message
        self.attempts_made = attempts_made
        super().__init__(
            f"Task {task_id} failed with {kind.value} after {attempts_made} attempt(s): {message}",
        )

    @property
    def http_status(self) -> int:
        return _PROFILES[self.kind].http_status


class ActivityRegistrationError(ValueError):
    """Raised when an activity name is registered twice."""
