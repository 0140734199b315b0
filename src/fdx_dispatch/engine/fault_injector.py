"""Probabilistic fault injection for exercising retry paths without real outages."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass

from fdx_dispatch.engine.clock import Clock, SystemClock
from fdx_dispatch.engine.errors import ClassifiedFailure, ErrorKind, error_profile

logger = logging.getLogger(__name__)

LATENCY_PROBABILITY = 0.3
MAX_LATENCY_SECONDS = 0.5


@dataclass(frozen=True, slots=True)
class FaultInjectorConfig:
    """Process-wide fault injection settings, loaded once at startup."""

    enabled: bool = False
    error_rate: float = 0.1
    enabled_kinds: tuple[ErrorKind, ...] = tuple(ErrorKind)
    add_latency: bool = False
    latency_probability: float = LATENCY_PROBABILITY
    max_latency_seconds: float = MAX_LATENCY_SECONDS

    def __post_init__(self) -> None:
        if not 0.0 <= self.error_rate <= 1.0:
            raise ValueError(f"error_rate must be within [0, 1], got {self.error_rate}")
        if not 0.0 <= self.latency_probability <= 1.0:
            raise ValueError(
                f"latency_probability must be within [0, 1], got {self.latency_probability}",
            )
        if self.max_latency_seconds < 0:
            raise ValueError("max_latency_seconds must be >= 0.")
        if not self.enabled_kinds:
            object.__setattr__(self, "enabled_kinds", tuple(ErrorKind))
        else:
            object.__setattr__(self, "enabled_kinds", tuple(self.enabled_kinds))


class FaultInjector:
    """Raises synthetic classified failures and adds latency before activities run."""

    def __init__(
        self,
        config: FaultInjectorConfig,
        *,
        rng: random.Random | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.config = config
        self._rng = rng or random.Random()  # noqa: S311
        self._clock = clock or SystemClock()

    def maybe_inject(self, operation_name: str) -> None:
        """Possibly delay and/or raise before ``operation_name`` executes.

        Latency and error injection are independent draws; both may happen on
        the same call. The operation name is only used for logging.
        """

        config = self.config
        if not config.enabled:
            return

        latency_added = False
        if config.add_latency and self._rng.random() < config.latency_probability:
            delay = self._rng.uniform(0.0, config.max_latency_seconds)
            logger.debug(
                "Fault injector adding latency: operation=%s delay_ms=%d",
                operation_name,
                int(delay * 1000),
            )
            self._clock.sleep(delay)
            latency_added = True

        if self._rng.random() >= config.error_rate:
            return

        kind = self._rng.choice(config.enabled_kinds)
        message = error_profile(kind).message
        logger.warning(
            "Fault injector triggered %s: operation=%s latency_added=%s message=%s",
            kind.value,
            operation_name,
            latency_added,
            message,
            extra={
                "fault_injected": True,
                "operation": operation_name,
                "error_kind": kind.value,
                "latency_added": latency_added,
            },
        )
        raise ClassifiedFailure(kind, message)


def log_fault_injector_config(config: FaultInjectorConfig) -> None:
    """Log the loaded configuration once at startup."""

    if not config.enabled:
        logger.debug("Fault injector is disabled")
        return
    logger.info(
        "Fault injector is ENABLED: error_rate=%.1f%% kinds=%s add_latency=%s",
        config.error_rate * 100,
        ",".join(kind.value for kind in config.enabled_kinds),
        config.add_latency,
    )
