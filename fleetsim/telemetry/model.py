"""
Telemetry model: fuel, engine temperatures and odometer per tick.

Fuel burn depends on distance while driving and on time while idling.
Engine temperatures approach a speed-dependent target with a ~60 s
thermal time constant and a little sensor jitter.
"""

import math
import random
from datetime import datetime
from typing import Iterable

from fleetsim.core.vehicle import TelemetrySample, Vehicle

IDLE_SPEED_KMH = 2.0
THERMAL_TIME_CONSTANT_S = 60.0

COOLANT_RANGE_C = (70.0, 100.0)
OIL_RANGE_C = (75.0, 115.0)
CONSUMPTION_RANGE = (3.5, 20.0)  # L/100km


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class TelemetryModel:
    """Derives one tick of telemetry and appends it to vehicle history."""

    def __init__(
        self,
        tank_capacity_l: float = 93.0,
        idle_lph: float = 0.7,
        rng: random.Random | None = None,
    ) -> None:
        self._tank_capacity_l = tank_capacity_l
        self._idle_lph = idle_lph
        self._rng = rng or random.Random()

    def instantaneous_consumption(self, base: float, speed_kmh: float) -> float:
        """Instantaneous L/100km for the given speed."""
        inst = base + 0.015 * math.pow(max(0.0, speed_kmh), 1.2) + self._rng.uniform(-0.3, 0.3)
        return _clamp(inst, *CONSUMPTION_RANGE)

    def record(
        self,
        vehicle: Vehicle,
        now: datetime,
        dt_s: float,
        distance_km: float,
        consumption: float,
    ) -> TelemetrySample:
        """Update odometer, fuel and temperatures, then append a sample."""
        data = vehicle.current
        dt_s = max(0.0, dt_s)

        if data.speed_kmh < IDLE_SPEED_KMH:
            idle_lph = self._idle_lph + self._rng.uniform(-0.1, 0.1)
            liters_used = idle_lph * dt_s / 3600.0
            consumption = 0.0
        else:
            liters_used = consumption * max(0.0, distance_km) / 100.0

        data.odometer_km += max(0.0, distance_km)
        data.fuel_level_pct = _clamp(
            data.fuel_level_pct - liters_used / self._tank_capacity_l * 100.0, 0.0, 100.0
        )
        data.fuel_consumption = consumption

        alpha = 1.0 - math.exp(-dt_s / THERMAL_TIME_CONSTANT_S)
        coolant_target = 88.0 + _clamp((data.speed_kmh - 40.0) * 0.06, -5.0, 7.0)
        oil_target = 95.0 + _clamp((data.speed_kmh - 40.0) * 0.05, -8.0, 10.0)
        data.engine_coolant_temp_c = _clamp(
            data.engine_coolant_temp_c
            + (coolant_target - data.engine_coolant_temp_c) * alpha
            + self._rng.uniform(-0.2, 0.2),
            *COOLANT_RANGE_C,
        )
        data.engine_oil_temp_c = _clamp(
            data.engine_oil_temp_c
            + (oil_target - data.engine_oil_temp_c) * alpha
            + self._rng.uniform(-0.3, 0.3),
            *OIL_RANGE_C,
        )

        sample = TelemetrySample(
            timestamp=now,
            odometer_km=data.odometer_km,
            fuel_level_pct=data.fuel_level_pct,
            fuel_consumption=consumption,
            engine_oil_temp_c=data.engine_oil_temp_c,
            engine_coolant_temp_c=data.engine_coolant_temp_c,
            emergency_lights=data.emergency_lights,
        )
        # deque(maxlen=...) evicts the oldest sample
        vehicle.history.append(sample)
        return sample


def telemetry_since(
    history: Iterable[TelemetrySample], since: datetime | None = None
) -> list[TelemetrySample]:
    """All samples, or only those at/after since."""
    if since is None:
        return list(history)
    return [s for s in history if s.timestamp >= since]
