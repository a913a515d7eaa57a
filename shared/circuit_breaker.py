"""
Circuit breaker guarding calls to external attribute stores.
"""

import time
import threading
from enum import Enum
from typing import Dict, Any, Callable, TypeVar

from shared.logging import get_logger

T = TypeVar("T")


class CircuitBreakerState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"      # Normal operation
    OPEN = "open"          # Failing, requests blocked
    HALF_OPEN = "half_open"  # Testing if store recovered


class CircuitBreakerOpenError(Exception):
    """Raised when a call is blocked by an open breaker."""
    pass


class CircuitBreaker:
    """Thread-safe circuit breaker for synchronous calls."""

    def __init__(self,
                 failure_threshold: int = 5,
                 recovery_timeout: float = 30.0,
                 expected_exception: type = Exception,
                 name: str = "default",
                 clock: Callable[[], float] = time.monotonic):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception
        self.name = name
        self.logger = get_logger(f"abac.circuit_breaker.{name}")

        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitBreakerState.CLOSED
        self._failure_count = 0
        self._last_failure_time = 0.0

    def _should_attempt_call(self) -> bool:
        with self._lock:
            if self._state == CircuitBreakerState.OPEN:
                if (self._clock() - self._last_failure_time) < self.recovery_timeout:
                    return False
                self._state = CircuitBreakerState.HALF_OPEN
                self.logger.info("Circuit breaker transitioning to half-open")
            return True

    def call(self, func: Callable[..., T], *args, **kwargs) -> T:
        """Execute ``func`` with breaker protection."""
        if not self._should_attempt_call():
            raise CircuitBreakerOpenError(f"Circuit breaker '{self.name}' is OPEN - blocking call")

        try:
            result = func(*args, **kwargs)
        except self.expected_exception:
            self._record_failure()
            raise

        self._record_success()
        return result

    def _record_success(self):
        with self._lock:
            if self._state == CircuitBreakerState.HALF_OPEN:
                self.logger.info("Circuit breaker reset to CLOSED after successful call")
            self._state = CircuitBreakerState.CLOSED
            self._failure_count = 0

    def _record_failure(self):
        with self._lock:
            self._failure_count += 1
            self._last_failure_time = self._clock()

            if self._state == CircuitBreakerState.HALF_OPEN or self._failure_count >= self.failure_threshold:
                if self._state != CircuitBreakerState.OPEN:
                    self.logger.warning(
                        "Circuit breaker opened due to failures",
                        failure_count=self._failure_count,
                        threshold=self.failure_threshold
                    )
                self._state = CircuitBreakerState.OPEN

    def get_state(self) -> Dict[str, Any]:
        """Get current circuit breaker state."""
        with self._lock:
            return {
                "name": self.name,
                "state": self._state.value,
                "failure_count": self._failure_count,
                "last_failure_time": self._last_failure_time,
                "failure_threshold": self.failure_threshold,
                "recovery_timeout": self.recovery_timeout
            }

    def is_open(self) -> bool:
        """Check if circuit breaker is in OPEN state."""
        return self._state == CircuitBreakerState.OPEN
