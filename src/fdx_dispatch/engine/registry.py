"""Name-to-callable registry of activities the worker may execute."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from fdx_dispatch.engine.errors import ActivityRegistrationError, ClassifiedFailure, ErrorKind
from fdx_dispatch.engine.retry_policy import RetryPolicy

ActivityFunction = Callable[..., Any]


@dataclass(frozen=True, slots=True)
class ActivityDefinition:
    """Registered activity with its per-operation execution settings."""

    name: str
    function: ActivityFunction
    retry_policy: RetryPolicy | None = None
    timeout_seconds: float | None = None


class ActivityRegistry:
    """Explicit lookup table; unknown names fail closed."""

    def __init__(self) -> None:
        self._definitions: dict[str, ActivityDefinition] = {}
        self._lock = threading.Lock()

    def register(
        self,
        name: str,
        function: ActivityFunction,
        *,
        retry_policy: RetryPolicy | None = None,
        timeout_seconds: float | None = None,
    ) -> ActivityDefinition:
        """Register ``function`` under ``name``; a second registration is rejected."""

        if not name or not name.strip():
            raise ActivityRegistrationError("Activity name must be a non-empty string.")
        if not callable(function):
            raise ActivityRegistrationError(f"Activity {name!r} must be callable.")
        if timeout_seconds is not None and timeout_seconds <= 0:
            raise ActivityRegistrationError(
                f"Activity {name!r} timeout_seconds must be > 0, got {timeout_seconds}",
            )

        definition = ActivityDefinition(
            name=name,
            function=function,
            retry_policy=retry_policy,
            timeout_seconds=timeout_seconds,
        )
        with self._lock:
            if name in self._definitions:
                raise ActivityRegistrationError(f"Activity already registered: {name}")
            self._definitions[name] = definition
        return definition

    def activity(
        self,
        name: str,
        *,
        retry_policy: RetryPolicy | None = None,
        timeout_seconds: float | None = None,
    ) -> Callable[[ActivityFunction], ActivityFunction]:
        """Decorator form of ``register``."""

        def _decorator(function: ActivityFunction) -> ActivityFunction:
            self.register(
                name,
                function,
                retry_policy=retry_policy,
                timeout_seconds=timeout_seconds,
            )
            return function

        return _decorator

    def resolve(self, name: str) -> ActivityDefinition:
        """Return the definition for ``name`` or raise a non-retryable failure."""

        with self._lock:
            definition = self._definitions.get(name)
        if definition is None:
            raise ClassifiedFailure(
                ErrorKind.NON_RETRYABLE,
                f"No activity registered under name {name!r}",
            )
        return definition

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._definitions)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._definitions

    def __len__(self) -> int:
        with self._lock:
            return len(self._definitions)
