"""Deterministic failure classification for worker retry policy."""

from __future__ import annotations

from dataclasses import dataclass

from fdx_dispatch.engine.errors import (
    AttemptTimeoutError,
    ClassifiedFailure,
    ErrorKind,
    error_profile,
)

FAILURE_CLASSIFIER_VERSION = 1

# Checked in order; the first matching exception type wins.
_BUILTIN_RULES: tuple[tuple[type[BaseException], ErrorKind, str], ...] = (
    (AttemptTimeoutError, ErrorKind.NETWORK_TIMEOUT, "attempt_deadline"),
    (TimeoutError, ErrorKind.NETWORK_TIMEOUT, "builtin_timeout"),
    (ConnectionRefusedError, ErrorKind.NETWORK_CONNECTION_REFUSED, "builtin_connection_refused"),
    (MemoryError, ErrorKind.RESOURCE_EXHAUSTED, "builtin_memory"),
)


@dataclass(slots=True)
class FailureClassification:
    """Normalized failure classification result."""

    kind: ErrorKind
    message: str
    matched_rule: str
    attempt: int = 0

    @property
    def retryable(self) -> bool:
        return error_profile(self.kind).retryable

    def to_log_details(self, *, operation_name: str) -> dict[str, object]:
        """Serialize classifier diagnostics for log records."""

        return {
            "classifier_version": FAILURE_CLASSIFIER_VERSION,
            "operation": operation_name,
            "kind": self.kind.value,
            "retryable": self.retryable,
            "matched_rule": self.matched_rule,
            "attempt": self.attempt,
        }


def classify_failure(error: BaseException, *, attempt: int = 0) -> FailureClassification:
    """Map any raised exception to exactly one error kind.

    Classification looks at exception types only. Anything without a rule is
    an unexpected defect and becomes ``INTERNAL_SERVER_ERROR``, which the
    taxonomy marks as non-retryable. A non-zero ``attempt`` is recorded on the
    classification and stamped onto a ``ClassifiedFailure``.
    """

    if isinstance(error, ClassifiedFailure):
        if attempt:
            error.attempt = attempt
        return FailureClassification(
            kind=error.kind,
            message=error.message,
            matched_rule="classified_failure",
            attempt=error.attempt,
        )

    for error_type, kind, rule in _BUILTIN_RULES:
        if isinstance(error, error_type):
            return FailureClassification(
                kind=kind,
                message=str(error) or error_profile(kind).message,
                matched_rule=rule,
                attempt=attempt,
            )

    return FailureClassification(
        kind=ErrorKind.INTERNAL_SERVER_ERROR,
        message=_describe(error),
        matched_rule="fallback_internal_error",
        attempt=attempt,
    )


def _describe(error: BaseException) -> str:
    text = str(error).strip()
    if not text:
        return f"{type(error).__name__}: {error_profile(ErrorKind.INTERNAL_SERVER_ERROR).message}"
    return f"{type(error).__name__}: {text}"
