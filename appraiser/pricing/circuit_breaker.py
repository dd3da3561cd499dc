"""
TCG Appraiser — Per-source circuit breaker

CLOSED: requests flow; consecutive failures are counted.
OPEN: requests are rejected until the cooldown has elapsed.
HALF_OPEN: exactly one probe request is let through; other callers are
rejected until it resolves. Success closes the circuit, failure re-opens
it and restarts the cooldown.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Callable, Optional

import structlog

from appraiser.config import settings

logger = structlog.get_logger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    def __init__(
        self,
        name: str,
        threshold: Optional[int] = None,
        cooldown_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self._threshold = threshold or settings.CIRCUIT_BREAKER_THRESHOLD
        self._cooldown = (
            settings.CIRCUIT_BREAKER_COOLDOWN_SECONDS if cooldown_seconds is None else cooldown_seconds
        )
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at: Optional[float] = None
        self._probe_in_flight = False

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failures

    def allow_request(self) -> bool:
        """True if a request may be attempted now. Moves OPEN to HALF_OPEN after cooldown."""
        if self._state is CircuitState.CLOSED:
            return True
        if self._state is CircuitState.OPEN:
            if self._opened_at is None or self._clock() - self._opened_at < self._cooldown:
                return False
            self._state = CircuitState.HALF_OPEN
            logger.info("circuit_half_open", source=self.name)
        if self._probe_in_flight:
            return False
        self._probe_in_flight = True
        return True

    def release_probe(self) -> None:
        """Give up the half-open probe slot without a result (e.g. cancellation)."""
        self._probe_in_flight = False

    def record_success(self) -> None:
        self._probe_in_flight = False
        if self._state is not CircuitState.CLOSED:
            logger.info("circuit_closed", source=self.name)
        self._failures = 0
        self._state = CircuitState.CLOSED
        self._opened_at = None

    def record_failure(self) -> None:
        self._probe_in_flight = False
        self._failures += 1
        if self._state is CircuitState.HALF_OPEN or self._failures >= self._threshold:
            self._state = CircuitState.OPEN
            self._opened_at = self._clock()
            logger.warning(
                "circuit_opened",
                source=self.name,
                consecutive_failures=self._failures,
                cooldown_seconds=self._cooldown,
            )

    def reset(self) -> None:
        self._probe_in_flight = False
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at = None
