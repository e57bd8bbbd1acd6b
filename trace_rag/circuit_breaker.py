"""
Count-based circuit breaker.

  CLOSED     calls pass through; outcome and latency go into a rolling window
             of the last `window_size` calls. Once at least `minimum_calls`
             are recorded and the failure rate (or slow-call rate) reaches its
             threshold, the breaker opens.
  OPEN       calls are rejected with CircuitOpenError without being attempted,
             for `open_duration` seconds.
  HALF_OPEN  up to `half_open_calls` trial calls are let through. All of them
             succeeding closes the breaker; any failure reopens it.

State is shared by every caller; transitions happen under one lock, which is
never held while the protected call runs.
"""

import logging
import threading
import time
from collections import deque
from enum import Enum
from typing import Any, Callable

from . import config

log = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(RuntimeError):
    def __init__(self, name: str, state: CircuitState):
        super().__init__(f"Circuit breaker '{name}' is {state.value}; call not permitted")
        self.name = name
        self.state = state


class CircuitBreaker:
    def __init__(
        self,
        name: str,
        window_size: int = config.BREAKER_WINDOW_SIZE,
        minimum_calls: int = config.BREAKER_MINIMUM_CALLS,
        failure_rate_threshold: float = config.BREAKER_FAILURE_RATE,
        slow_call_duration: float = config.BREAKER_SLOW_CALL_SECONDS,
        slow_call_rate_threshold: float = config.BREAKER_SLOW_CALL_RATE,
        open_duration: float = config.BREAKER_OPEN_SECONDS,
        half_open_calls: int = config.BREAKER_HALF_OPEN_CALLS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.minimum_calls = min(minimum_calls, window_size)
        self.failure_rate_threshold = failure_rate_threshold
        self.slow_call_duration = slow_call_duration
        self.slow_call_rate_threshold = slow_call_rate_threshold
        self.open_duration = open_duration
        self.half_open_calls = half_open_calls
        self._clock = clock

        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._window: deque[tuple[bool, bool]] = deque(maxlen=window_size)   # (failed, slow)
        self._opened_at = 0.0
        self._trial_permits = 0
        self._trial_successes = 0
        self._generation = 0

    # ── State ────────────────────────────────────────────────────

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._maybe_half_open()
            return self._state

    def _maybe_half_open(self):
        if self._state is CircuitState.OPEN and self._clock() - self._opened_at >= self.open_duration:
            self._transition(CircuitState.HALF_OPEN)

    def _transition(self, new_state: CircuitState):
        old = self._state
        self._state = new_state
        self._generation += 1
        self._window.clear()
        self._trial_permits = 0
        self._trial_successes = 0
        if new_state is CircuitState.OPEN:
            self._opened_at = self._clock()
            log.warning("Circuit breaker '%s' OPENED (was %s)", self.name, old.value)
        else:
            log.info("Circuit breaker '%s' %s -> %s", self.name, old.value, new_state.value)

    def _rates(self) -> tuple[float, float]:
        n = len(self._window)
        failures = sum(1 for failed, _ in self._window if failed)
        slow = sum(1 for _, is_slow in self._window if is_slow)
        return failures / n, slow / n

    # ── Permission / recording ───────────────────────────────────

    def _acquire(self) -> int:
        with self._lock:
            self._maybe_half_open()
            if self._state is CircuitState.OPEN:
                raise CircuitOpenError(self.name, self._state)
            if self._state is CircuitState.HALF_OPEN:
                if self._trial_permits >= self.half_open_calls:
                    raise CircuitOpenError(self.name, self._state)
                self._trial_permits += 1
            return self._generation

    def _record(self, generation: int, failed: bool, elapsed: float):
        slow = elapsed >= self.slow_call_duration
        with self._lock:
            if generation != self._generation:
                # Outcome of a call permitted under a state that has since changed
                return

            if self._state is CircuitState.HALF_OPEN:
                if failed or slow:
                    self._transition(CircuitState.OPEN)
                    return
                self._trial_successes += 1
                if self._trial_successes >= self.half_open_calls:
                    self._transition(CircuitState.CLOSED)
                return

            self._window.append((failed, slow))
            if len(self._window) < self.minimum_calls:
                return
            failure_rate, slow_rate = self._rates()
            if failure_rate >= self.failure_rate_threshold or slow_rate >= self.slow_call_rate_threshold:
                log.warning(
                    "Circuit breaker '%s': failure rate %.0f%%, slow-call rate %.0f%% over last %d calls",
                    self.name, failure_rate * 100, slow_rate * 100, len(self._window),
                )
                self._transition(CircuitState.OPEN)

    def call(self, fn: Callable[..., Any], *args, **kwargs) -> Any:
        """Run fn through the breaker. Raises CircuitOpenError when not permitted."""
        generation = self._acquire()
        start = self._clock()
        try:
            result = fn(*args, **kwargs)
        except Exception:
            self._record(generation, True, self._clock() - start)
            raise
        self._record(generation, False, self._clock() - start)
        return result

    def reset(self):
        with self._lock:
            self._transition(CircuitState.CLOSED)
