"""
Emergency light state process.

Lights hold their state for a randomized duration. When the hold
expires there is only a small chance of toggling; otherwise the decision
is deferred by a short fixed delay. This yields infrequent, non-flickering
changes instead of toggling at every opportunity.
"""

import random
from datetime import datetime, timedelta


class EmergencyLightTimer:
    """Per-vehicle on/off timer for emergency lights."""

    def __init__(
        self,
        now: datetime,
        min_hold_s: float = 20.0,
        max_hold_s: float = 60.0,
        toggle_probability: float = 0.2,
        retry_s: float = 5.0,
        is_on: bool = False,
        rng: random.Random | None = None,
    ) -> None:
        self._min_hold_s = min_hold_s
        self._max_hold_s = max_hold_s
        self._toggle_probability = toggle_probability
        self._retry = timedelta(seconds=retry_s)
        self._rng = rng or random.Random()
        self.is_on = is_on
        self.next_change_at = now + self._hold()

    def _hold(self) -> timedelta:
        return timedelta(seconds=self._rng.uniform(self._min_hold_s, self._max_hold_s))

    def update(self, now: datetime) -> bool:
        """Advance the timer to now and return the current light state."""
        if now >= self.next_change_at:
            if self._rng.random() < self._toggle_probability:
                self.is_on = not self.is_on
                self.next_change_at = now + self._hold()
            else:
                self.next_change_at = now + self._retry
        return self.is_on
