"""
Retry delays with exponential growth and jitter.

Two ways to use it:

* Supervision loops (scheduler, trigger consumer) keep one instance and call
  next_delay() after each failure and reset() after a success.
* The batch worker computes a per-item delay from the attempt count stored on
  the dirty entry with delay_for() / retry_after(), so no state is shared
  between items.
"""

import random
from datetime import datetime, timedelta, timezone


class ExponentialBackoff:
    """min(base * multiplier**attempt, max_delay), then +/- jitter_range of that."""

    def __init__(
        self,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        multiplier: float = 2.0,
        jitter_range: float = 0.5,
        rng: random.Random | None = None,
    ):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.multiplier = multiplier
        self.jitter_range = jitter_range
        self._rng = rng or random.Random()
        self._attempt = 0

    @property
    def attempt(self) -> int:
        return self._attempt

    def delay_for(self, attempt: int) -> float:
        """Delay in seconds for the given attempt number (0-based)."""
        capped = min(self.base_delay * self.multiplier ** max(attempt, 0), self.max_delay)
        if not self.jitter_range:
            return capped
        spread = capped * self._rng.uniform(-self.jitter_range, self.jitter_range)
        return max(0.0, capped + spread)

    def retry_after(self, attempt: int, now: datetime | None = None) -> datetime:
        """Earliest time an item that failed ``attempt`` times may be retried."""
        now = now or datetime.now(timezone.utc)
        return now + timedelta(seconds=self.delay_for(attempt))

    def next_delay(self) -> float:
        delay = self.delay_for(self._attempt)
        self._attempt += 1
        return delay

    def reset(self) -> None:
        self._attempt = 0
