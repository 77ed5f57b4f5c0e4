"""
Vehicle speed behaviour.

Without variation every ambulance would hold a constant speed and the
dashboard charts would be flat lines. Speed wanders by a small bounded
random delta each tick. When the route carries a speed hint for the
current segment, speed instead eases toward the nearest posted limit
at a bounded acceleration.
"""

import random

# Typical posted limits (km/h) that route speed hints snap to
POSTED_LIMITS_KMH = (10.0, 20.0, 25.0, 30.0, 40.0, 50.0, 60.0, 70.0, 80.0, 90.0, 100.0, 110.0)


def classify_speed_limit(speed_kmh: float) -> float:
    """Quantize a raw speed hint to the nearest posted limit."""
    return min(POSTED_LIMITS_KMH, key=lambda limit: abs(limit - speed_kmh))


class SpeedController:
    """Speed wander and easing.

    Holds no per-vehicle state, so the whole fleet can share one instance.
    Seeded runs stay reproducible as long as vehicles are stepped in a
    fixed order against the same rng.
    """

    def __init__(
        self,
        wander_kmh: float = 2.0,
        cruise_max_kmh: float = 60.0,
        max_speed_kmh: float = 110.0,
        max_accel_kmh_per_s: float = 9.0,
        min_cruise_kmh: float = 10.0,
        rng: random.Random | None = None,
    ) -> None:
        self._wander = wander_kmh
        self._cruise_max = cruise_max_kmh
        self._max_speed = max_speed_kmh
        self._max_accel = max_accel_kmh_per_s
        self._min_cruise = min_cruise_kmh
        self._rng = rng or random.Random()

    def _ease(self, speed_kmh: float, target_kmh: float, dt_s: float) -> float:
        max_step = self._max_accel * max(0.0, dt_s)
        return speed_kmh + max(-max_step, min(max_step, target_kmh - speed_kmh))

    def next_speed(self, speed_kmh: float, dt_s: float, target_kmh: float | None = None) -> float:
        """Return the speed for this tick."""
        if self._wander > 0:
            speed_kmh += self._rng.uniform(-self._wander, self._wander)

        if target_kmh is None:
            # Pull away from a standstill instead of random-walking up from zero
            if speed_kmh < self._min_cruise:
                speed_kmh = self._ease(speed_kmh, self._min_cruise, dt_s)
            return max(0.0, min(self._cruise_max, speed_kmh))

        speed_kmh = self._ease(speed_kmh, classify_speed_limit(target_kmh), dt_s)
        return max(0.0, min(self._max_speed, speed_kmh))
