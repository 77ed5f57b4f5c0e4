"""
Tick timing for the fleet simulation.

Maps monotonic wall-clock time onto a simulated UTC timeline scaled by a
speed multiplier. The tick driver calls tick() once per interval and gets
back the simulated seconds elapsed since its previous call, so motion and
fuel burn follow real elapsed time even when a tick fires late.
"""

import time
from datetime import datetime, timedelta, timezone


class SimulationClock:
    """Scaled simulation timeline. Time is frozen while the clock is stopped."""

    def __init__(self, start_time: datetime | None = None, speed: float = 1.0) -> None:
        self._origin = start_time or datetime.now(timezone.utc)
        self._speed = speed
        # Simulated seconds accrued before the current run
        self._banked_s = 0.0
        # Monotonic timestamp the current run began at; None while stopped
        self._run_started: float | None = None
        self._last_tick_s = 0.0

    @property
    def speed(self) -> float:
        return self._speed

    @property
    def is_running(self) -> bool:
        return self._run_started is not None

    @property
    def start_time(self) -> datetime:
        return self._origin

    def start(self) -> None:
        """Start (or continue) advancing simulated time."""
        if self._run_started is None:
            self._run_started = time.monotonic()

    def pause(self) -> None:
        if self._run_started is not None:
            self._banked_s = self.elapsed_s()
            self._run_started = None

    def elapsed_s(self) -> float:
        if self._run_started is None:
            return self._banked_s
        return self._banked_s + (time.monotonic() - self._run_started) * self._speed

    def get_elapsed(self) -> timedelta:
        return timedelta(seconds=self.elapsed_s())

    def get_sim_time(self) -> datetime:
        return self._origin + self.get_elapsed()

    def tick(self) -> tuple[datetime, float]:
        """Return (sim time, simulated seconds since the previous tick)."""
        elapsed = self.elapsed_s()
        dt_s = max(0.0, elapsed - self._last_tick_s)
        self._last_tick_s = elapsed
        return self._origin + timedelta(seconds=elapsed), dt_s
