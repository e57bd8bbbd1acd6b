"""
Explicit retry policy.

Retries are applied by calling `RetryPolicy.call(...)` around the operation,
never by decorating methods, so calls between sibling methods of the same
object go through the policy exactly like calls from outside.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

log = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    delay: float = 1.0            # seconds before the first retry
    backoff: float = 1.0          # multiplier applied to the delay after each retry
    max_delay: float = 30.0
    retry_on: tuple[type[BaseException], ...] = (Exception,)
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def wait_for(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt."""
        return min(self.delay * (self.backoff ** (attempt - 1)), self.max_delay)

    def call(
        self,
        name: str,
        fn: Callable[..., Any],
        *args,
        fallback: Callable[[BaseException], Any] | None = None,
    ) -> Any:
        """
        Run fn(*args), retrying on `retry_on` exceptions.

        Exceptions outside `retry_on` propagate immediately. When every attempt
        fails, `fallback(last_error)` is returned if given, otherwise the last
        error is re-raised. There is no sleep after the final attempt.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return fn(*args)
            except self.retry_on as e:
                if attempt < self.max_attempts:
                    wait = self.wait_for(attempt)
                    log.warning(
                        "%s failed (attempt %d/%d): [%s] %s. Retrying in %.1fs...",
                        name, attempt, self.max_attempts, type(e).__name__, e, wait,
                    )
                    self.sleep(wait)
                    continue

                log.error(
                    "%s failed after %d attempts: [%s] %s",
                    name, attempt, type(e).__name__, e,
                )
                if fallback is None:
                    raise
                return fallback(e)
