"""
Circuit breaker pattern implementation for resilient service calls.
"""

import time
from enum import Enum
from typing import Dict, Any, Callable, Hashable, Optional

from shared.logging import get_logger


class CircuitBreakerState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"      # Normal operation
    OPEN = "open"          # Failing, requests blocked
    HALF_OPEN = "half_open"  # One trial call in flight


class CircuitBreaker:
    """Failure counter guarding a single upstream.

    The breaker never performs I/O itself. Callers ask ``allow_request()``
    before each attempt and report the final outcome of a logical call with
    ``record_success()`` or ``record_failure()``. None of these methods
    suspend, so under an asyncio event loop they are atomic relative to one
    another.

    Once the cooldown has elapsed, exactly one caller is let through as the
    recovery trial. A caller that passes a ``caller`` key is recognised on
    its later attempts, so a trial can use its own retries; everyone else is
    refused until the trial's outcome is recorded or ``release_trial()`` is
    called.
    """

    def __init__(self,
                 failure_threshold: int = 5,
                 recovery_timeout: float = 30.0,
                 name: str = "default",
                 clock: Callable[[], float] = time.time,
                 on_transition: Optional[Callable[[str, CircuitBreakerState], None]] = None):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.name = name
        self.logger = get_logger(f"circuit_breaker.{name}")
        self._clock = clock
        self._on_transition = on_transition

        self._state = CircuitBreakerState.CLOSED
        self._failure_count = 0
        self._last_failure_time = 0.0
        self._trial_in_flight = False
        self._trial_owner: Optional[Hashable] = None

    @property
    def state(self) -> CircuitBreakerState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def last_failure_time(self) -> float:
        return self._last_failure_time

    @property
    def trial_in_flight(self) -> bool:
        return self._trial_in_flight

    def _transition(self, new_state: CircuitBreakerState):
        if new_state == self._state:
            return
        old_state = self._state
        self._state = new_state
        self.logger.info(
            "Circuit breaker state changed",
            name=self.name,
            from_state=old_state.value,
            to_state=new_state.value,
            failure_count=self._failure_count
        )
        if self._on_transition is not None:
            self._on_transition(self.name, new_state)

    def _can_attempt_reset(self) -> bool:
        """Check if enough time has passed to attempt a reset."""
        return (self._clock() - self._last_failure_time) >= self.recovery_timeout

    def _claim_trial(self, caller: Optional[Hashable]) -> bool:
        if not self._trial_in_flight:
            self._trial_in_flight = True
            self._trial_owner = caller
            return True
        return caller is not None and caller is self._trial_owner

    def release_trial(self, caller: Optional[Hashable] = None):
        """Free the trial slot if ``caller`` holds it, without recording an outcome."""
        if self._trial_in_flight and caller is self._trial_owner:
            self._clear_trial()

    def allow_request(self, caller: Optional[Hashable] = None) -> bool:
        """Determine if a call should be attempted based on current state."""
        if self._state == CircuitBreakerState.CLOSED:
            return True
        elif self._state == CircuitBreakerState.OPEN:
            if not self._can_attempt_reset():
                return False
            self._transition(CircuitBreakerState.HALF_OPEN)
            return self._claim_trial(caller)
        elif self._state == CircuitBreakerState.HALF_OPEN:
            return self._claim_trial(caller)
        return False

    def _clear_trial(self):
        self._trial_in_flight = False
        self._trial_owner = None

    def record_success(self):
        """Reset counters and close the breaker."""
        self._failure_count = 0
        self._clear_trial()
        self._transition(CircuitBreakerState.CLOSED)

    def record_failure(self):
        """Record a failed call and open the breaker once the threshold is hit."""
        self._failure_count += 1
        self._last_failure_time = self._clock()
        self._clear_trial()

        if self._failure_count >= self.failure_threshold:
            if self._state != CircuitBreakerState.OPEN:
                self.logger.warning(
                    "Circuit breaker opened",
                    name=self.name,
                    failure_count=self._failure_count,
                    threshold=self.failure_threshold
                )
            self._transition(CircuitBreakerState.OPEN)

    def get_state(self) -> Dict[str, Any]:
        """Get current circuit breaker state."""
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "last_failure_time": self._last_failure_time,
            "failure_threshold": self.failure_threshold,
            "recovery_timeout": self.recovery_timeout,
            "trial_in_flight": self._trial_in_flight,
        }

    def is_open(self) -> bool:
        """Check if circuit breaker is in OPEN state."""
        return self._state == CircuitBreakerState.OPEN
