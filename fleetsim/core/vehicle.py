"""
Vehicle data model for the fleet simulator.

A vehicle carries its current telemetry, a bounded history of samples,
the route it is driving and an explicit motion state. Snapshots handed
to readers are copies so they never observe a half-updated tick.
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Union

from fleetsim.core.geo import Position
from fleetsim.movement.route import Route
from fleetsim.telemetry.emergency import EmergencyLightTimer


@dataclass(frozen=True)
class Moving:
    """Driving along a route (or about to discover it has none)."""
    name = "moving"


@dataclass(frozen=True)
class AwaitingRoute:
    """Route finished or invalid; waiting for the acquisition pipeline."""
    since: datetime
    name = "awaiting_route"


@dataclass(frozen=True)
class Stuck:
    """Repeated acquisition failures; relocated once held long enough."""
    since: datetime
    name = "stuck"


MotionState = Union[Moving, AwaitingRoute, Stuck]


@dataclass
class TelemetrySample:
    """One historical telemetry point."""
    timestamp: datetime
    odometer_km: float
    fuel_level_pct: float
    fuel_consumption: float
    engine_oil_temp_c: float
    engine_coolant_temp_c: float
    emergency_lights: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "odometer_km": self.odometer_km,
            "fuel_level_pct": self.fuel_level_pct,
            "fuel_consumption": self.fuel_consumption,
            "engine_oil_temp_c": self.engine_oil_temp_c,
            "engine_coolant_temp_c": self.engine_coolant_temp_c,
            "emergency_lights": self.emergency_lights,
        }


@dataclass
class CurrentData:
    """Latest vehicle state."""
    position: Position
    heading_deg: float = 0.0
    speed_kmh: float = 0.0
    odometer_km: float = 0.0
    fuel_level_pct: float = 100.0
    fuel_consumption: float = 0.0
    engine_oil_temp_c: float = 75.0
    engine_coolant_temp_c: float = 70.0
    emergency_lights: bool = False
    # Per-vehicle baseline L/100km that instantaneous consumption builds on
    base_consumption: float = 8.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "position": self.position.to_dict(),
            "heading_deg": self.heading_deg,
            "speed_kmh": self.speed_kmh,
            "odometer_km": self.odometer_km,
            "fuel_level_pct": self.fuel_level_pct,
            "fuel_consumption": self.fuel_consumption,
            "engine_oil_temp_c": self.engine_oil_temp_c,
            "engine_coolant_temp_c": self.engine_coolant_temp_c,
            "emergency_lights": self.emergency_lights,
        }


@dataclass
class Vehicle:
    """
    A simulated ambulance.

    Mutated only by the tick driver. route_request holds the single
    in-flight route acquisition, if any.
    """
    vehicle_id: str
    name: str
    current: CurrentData
    history: deque = field(default_factory=lambda: deque(maxlen=3600))
    route: Route | None = None
    motion: MotionState = field(default_factory=Moving)
    route_request: asyncio.Future | None = None
    next_route_attempt_at: datetime | None = None
    route_failures: int = 0
    lights: EmergencyLightTimer | None = None

    @property
    def expects_route(self) -> bool:
        return not isinstance(self.motion, Moving)

    def snapshot(self) -> "Vehicle":
        """Copy safe to hand to readers. Timers and pending requests are not copied."""
        return Vehicle(
            vehicle_id=self.vehicle_id,
            name=self.name,
            current=replace(self.current),
            history=deque(self.history, maxlen=self.history.maxlen),
            route=self.route.copy() if self.route else None,
            motion=self.motion,
            next_route_attempt_at=self.next_route_attempt_at,
            route_failures=self.route_failures,
        )

    def to_dict(self, full_route: bool = False) -> dict[str, Any]:
        """Serialize to a JSON-compatible dictionary.

        By default the route is reduced to the path still ahead of the vehicle.
        """
        if self.route is None:
            route = Route(points=[]).to_dict()
        elif full_route:
            route = self.route.to_dict()
        else:
            route = self.route.to_dict(position=self.current.position)
        return {
            "id": self.vehicle_id,
            "name": self.name,
            "state": self.motion.name,
            "current_data": self.current.to_dict(),
            "historical_data": [s.to_dict() for s in self.history],
            "route": route,
            "next_route_attempt_at": (
                self.next_route_attempt_at.isoformat() if self.next_route_attempt_at else None
            ),
        }
