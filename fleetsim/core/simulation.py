"""
Fleet simulation context and tick driver.

FleetSimulation owns the vehicle registry, the clock and the recurring
tick task. Each tick advances every vehicle by the simulated time elapsed
since the previous tick: lights, route collection, relocation of stuck
vehicles, driving, telemetry and (for vehicles without a usable route)
submitting a route request. Route acquisition runs in its own tasks; the
tick only checks whether a result has arrived and never awaits it.

Per-vehicle motion states:
  Moving          -> AwaitingRoute   route finished or structurally invalid
  AwaitingRoute   -> Moving          valid route (>= 2 points) arrived
  AwaitingRoute   -> Stuck           stuck_after_failures failed attempts
  Stuck           -> Moving          route arrived, or relocated after stuck_timeout_s
"""

import asyncio
import logging
import random
from collections import deque
from datetime import datetime, timedelta
from typing import Any, Optional, Sequence

from fleetsim.config import SimulationConfig
from fleetsim.core.clock import SimulationClock
from fleetsim.core.geo import Position, bearing_deg
from fleetsim.core.vehicle import (
    AwaitingRoute, CurrentData, Moving, Stuck, TelemetrySample, Vehicle,
)
from fleetsim.core.vehicle_store import VehicleStore
from fleetsim.movement.route import Route, SpeedBand, advance, target_speed_kmh
from fleetsim.movement.speed import SpeedController
from fleetsim.routing.acquisition import nearest_location
from fleetsim.telemetry.emergency import EmergencyLightTimer
from fleetsim.telemetry.model import TelemetryModel, telemetry_since

logger = logging.getLogger(__name__)

# Relocation skips fallbacks this close to the stuck vehicle
RELOCATE_EXCLUDE_KM = 0.5
STATUS_EVERY_TICKS = 30


class FleetSimulation:
    """
    Simulation context: one instance per process, passed to the tick
    driver and to the delivery layer.

    acquirer must provide request(vehicle_id, origin) returning a future
    whose result is a RouteResult or None, and a pending_count property.
    """

    def __init__(
        self,
        config: SimulationConfig,
        acquirer: Any,
        clock: SimulationClock | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._config = config
        self._acquirer = acquirer
        self._clock = clock or SimulationClock(speed=config.speed_multiplier)
        self._rng = rng or random.Random(config.seed)
        self._store = VehicleStore()
        self._telemetry = TelemetryModel(
            tank_capacity_l=config.tank_capacity_l,
            idle_lph=config.idle_lph,
            rng=self._rng,
        )
        self._speed = SpeedController(
            wander_kmh=config.speed_wander_kmh,
            cruise_max_kmh=config.cruise_max_kmh,
            max_speed_kmh=config.max_speed_kmh,
            max_accel_kmh_per_s=config.max_accel_kmh_per_s,
            min_cruise_kmh=config.min_cruise_kmh,
            rng=self._rng,
        )
        self._tick_interval_s = config.tick_interval_s
        self._task: Optional[asyncio.Task] = None
        self._tick_count = 0

    @property
    def store(self) -> VehicleStore:
        return self._store

    @property
    def clock(self) -> SimulationClock:
        return self._clock

    @property
    def is_running(self) -> bool:
        return self._task is not None

    @property
    def tick_count(self) -> int:
        return self._tick_count

    # === LIFECYCLE ===

    async def start(
        self, vehicle_count: int | None = None, tick_interval_s: float | None = None
    ) -> None:
        """Seed the fleet and start the tick driver. No-op if already running."""
        if self._task is not None:
            return
        if tick_interval_s is not None:
            self._tick_interval_s = tick_interval_s
        self._clock.start()
        if self._store.count == 0:
            count = self._config.vehicle_count if vehicle_count is None else vehicle_count
            self.seed(count, self._clock.get_sim_time())
        # Baseline for the first dt
        self._clock.tick()
        self._task = asyncio.create_task(self._run())
        logger.info(
            f"Simulation started: {self._store.count} vehicles, "
            f"tick {self._tick_interval_s}s, speed {self._clock.speed}x"
        )

    async def stop(self) -> None:
        """Halt the tick driver. Safe to call repeatedly."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self._clock.pause()
        logger.info(f"Simulation stopped after {self._tick_count} ticks")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._tick_interval_s)
            now, dt_s = self._clock.tick()
            self.tick(now, dt_s)

    def seed(self, count: int, now: datetime) -> list[Vehicle]:
        """Create count vehicles, round robin over the start locations."""
        locations = self._config.start_locations
        if count > 0 and not locations:
            raise ValueError("No start locations configured")
        offset = self._store.count
        seeded = []
        for i in range(offset, offset + count):
            vehicle = self._new_vehicle(i, locations[i % len(locations)], now)
            self._store.add_vehicle(vehicle)
            self._telemetry.record(vehicle, now, 0.0, 0.0, 0.0)
            self._maybe_request_route(vehicle, now)
            logger.info(f"[{vehicle.vehicle_id}] Seeded at ({vehicle.current.position.latitude:.5f}, "
                        f"{vehicle.current.position.longitude:.5f}), route generation started")
            seeded.append(vehicle)
        return seeded

    def _new_vehicle(self, index: int, start: Position, now: datetime) -> Vehicle:
        cfg = self._config
        rng = self._rng
        base_consumption = rng.uniform(5.5, 12.0)
        return Vehicle(
            vehicle_id=f"amb-{index + 1:03d}",
            name=f"Vehicle {index + 1}",
            current=CurrentData(
                position=start,
                speed_kmh=rng.uniform(10.0, 60.0),
                odometer_km=rng.uniform(5_000.0, 150_000.0),
                fuel_level_pct=rng.uniform(40.0, 95.0),
                fuel_consumption=base_consumption,
                base_consumption=base_consumption,
                engine_oil_temp_c=rng.uniform(60.0, 80.0),
                engine_coolant_temp_c=rng.uniform(60.0, 75.0),
                timestamp=now,
            ),
            history=deque(maxlen=cfg.max_history),
            motion=AwaitingRoute(since=now),
            lights=EmergencyLightTimer(
                now,
                min_hold_s=cfg.emergency_min_hold_s,
                max_hold_s=cfg.emergency_max_hold_s,
                toggle_probability=cfg.emergency_toggle_probability,
                retry_s=cfg.emergency_retry_s,
                rng=rng,
            ),
        )

    # === TICK ===

    def tick(self, now: datetime, dt_s: float) -> None:
        """Advance every vehicle by dt_s simulated seconds."""
        for vehicle in self._store.get_all_vehicles():
            with self._store.lock:
                try:
                    self._step(vehicle, now, dt_s)
                except Exception:
                    logger.exception(f"[{vehicle.vehicle_id}] Tick failed")
        self._tick_count += 1

        if self._tick_count % STATUS_EVERY_TICKS == 0:
            logger.info(
                f"Tick {self._tick_count} | Vehicles: {self._store.count} | "
                f"Pending routes: {self._acquirer.pending_count}"
            )

    def _step(self, vehicle: Vehicle, now: datetime, dt_s: float) -> None:
        data = vehicle.current
        if vehicle.lights is not None:
            data.emergency_lights = vehicle.lights.update(now)

        self._collect_route(vehicle, now)

        if isinstance(vehicle.motion, Stuck) and vehicle.route_request is None:
            stuck_for = (now - vehicle.motion.since).total_seconds()
            if stuck_for >= self._config.stuck_timeout_s:
                self._relocate(vehicle)

        distance = 0.0
        if isinstance(vehicle.motion, Moving):
            distance = self._drive(vehicle, now, dt_s)

        consumption = self._telemetry.instantaneous_consumption(
            data.base_consumption, data.speed_kmh
        )
        self._telemetry.record(vehicle, now, dt_s, distance, consumption)
        data.timestamp = now

        if vehicle.expects_route:
            data.speed_kmh = 0.0
            self._maybe_request_route(vehicle, now)

        logger.debug(
            f"[{vehicle.vehicle_id}] Pos: ({data.position.latitude:.5f}, {data.position.longitude:.5f}) "
            f"Speed: {data.speed_kmh:.1f} km/h Fuel: {data.fuel_level_pct:.1f}% "
            f"State: {vehicle.motion.name}"
        )

    def _drive(self, vehicle: Vehicle, now: datetime, dt_s: float) -> float:
        """Move a Moving vehicle along its route. Returns km travelled."""
        data = vehicle.current
        route = vehicle.route
        if route is None or not route.is_valid or route.at_end:
            vehicle.motion = AwaitingRoute(since=now)
            return 0.0

        data.speed_kmh = self._speed.next_speed(data.speed_kmh, dt_s, target_speed_kmh(route))
        progress = advance(route, data.speed_kmh * dt_s / 3600.0, data.position, data.heading_deg)
        data.position = progress.position
        data.heading_deg = progress.heading_deg

        if progress.at_end:
            vehicle.motion = AwaitingRoute(since=now)
            logger.info(f"[{vehicle.vehicle_id}] Reached end of route")
        return progress.traveled_km

    # === ROUTE ACQUISITION ===

    def _maybe_request_route(self, vehicle: Vehicle, now: datetime) -> None:
        if vehicle.route_request is not None:
            return
        if vehicle.next_route_attempt_at is not None and now < vehicle.next_route_attempt_at:
            return
        vehicle.route_request = self._acquirer.request(
            vehicle.vehicle_id, vehicle.current.position
        )

    def _collect_route(self, vehicle: Vehicle, now: datetime) -> None:
        """Apply or account for a finished route request."""
        request = vehicle.route_request
        if request is None or not request.done():
            return
        vehicle.route_request = None

        result = None
        if request.cancelled():
            logger.warning(f"[{vehicle.vehicle_id}] Route request cancelled")
        elif request.exception() is not None:
            logger.warning(f"[{vehicle.vehicle_id}] Route request failed: {request.exception()}")
        else:
            result = request.result()

        if not vehicle.expects_route:
            # Route was replaced while the request was in flight
            return

        if result is not None and len(result.points) >= 2:
            route = result.to_route()
            self._apply_route(vehicle, route)
            logger.info(
                f"[{vehicle.vehicle_id}] New route with {len(route.points)} points, {route.length_km:.2f} km"
            )
            return

        vehicle.route_failures += 1
        vehicle.next_route_attempt_at = now + timedelta(seconds=self._config.retry_backoff_s)
        if (vehicle.route_failures >= self._config.stuck_after_failures
                and not isinstance(vehicle.motion, Stuck)):
            vehicle.motion = Stuck(since=now)
            logger.warning(
                f"[{vehicle.vehicle_id}] Stuck after {vehicle.route_failures} failed route attempts"
            )

    def _apply_route(self, vehicle: Vehicle, route: Route) -> None:
        route.reset()
        vehicle.route = route
        first, second = route.points[0], route.points[1]
        vehicle.current.position = first
        vehicle.current.heading_deg = bearing_deg(first, second)
        vehicle.motion = Moving()
        vehicle.route_failures = 0
        vehicle.next_route_attempt_at = None

    def _relocate(self, vehicle: Vehicle) -> None:
        data = vehicle.current
        target = nearest_location(
            data.position, self._config.fallback_locations, RELOCATE_EXCLUDE_KM
        ) or data.position
        logger.warning(
            f"[{vehicle.vehicle_id}] Relocating from ({data.position.latitude:.5f}, "
            f"{data.position.longitude:.5f}) to ({target.latitude:.5f}, {target.longitude:.5f})"
        )
        data.position = target
        data.speed_kmh = 0.0
        vehicle.route = None
        vehicle.motion = Moving()
        vehicle.route_failures = 0
        vehicle.next_route_attempt_at = None

    # === READ ACCESSORS ===

    def get_vehicles(self) -> list[Vehicle]:
        """Snapshots of every vehicle."""
        return self._store.snapshot_all()

    def get_vehicle(self, vehicle_id: str) -> Vehicle | None:
        """Snapshot of one vehicle, or None if not found."""
        return self._store.snapshot(vehicle_id)

    def get_vehicle_telemetry(
        self, vehicle_id: str, since: datetime | None = None
    ) -> list[TelemetrySample]:
        """Telemetry history, optionally only samples at/after since."""
        vehicle = self._store.get_vehicle(vehicle_id)
        if vehicle is None:
            return []
        with self._store.lock:
            return telemetry_since(vehicle.history, since)

    def set_vehicle_route(
        self,
        vehicle_id: str,
        points: Sequence[Position],
        speed_profile: Sequence[SpeedBand] | None = None,
    ) -> bool:
        """Replace a vehicle's route. False for unknown ids or < 2 points."""
        vehicle = self._store.get_vehicle(vehicle_id)
        if vehicle is None:
            return False
        try:
            points = list(points)
        except TypeError:
            return False
        if len(points) < 2 or not all(isinstance(p, Position) for p in points):
            return False

        route = Route(points=points, speed_profile=list(speed_profile or []))
        with self._store.lock:
            self._apply_route(vehicle, route)
        logger.info(f"[{vehicle_id}] Route replaced ({len(points)} points, {route.length_km:.2f} km)")
        return True

    def status(self) -> dict[str, Any]:
        return {
            "running": self.is_running,
            "tick_count": self._tick_count,
            "vehicles": self._store.count,
            "pending_routes": self._acquirer.pending_count,
            "sim_time": self._clock.get_sim_time().isoformat(),
            "speed": self._clock.speed,
        }
