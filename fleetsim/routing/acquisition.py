"""
Route acquisition pipeline.

Finds a new drivable route near a vehicle: pick a random endpoint within
a distance band, snap it to the road network (or fall back to a curated
known-good location), then ask for directions. Failed attempts are
retried with a fresh endpoint and a smaller search band. All provider
calls go through the shared RequestQueue; nothing here raises into the
tick driver, a failed acquisition resolves to None.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Sequence, TypeVar

from fleetsim.config import RoutingConfig
from fleetsim.core.geo import Position, destination, distance_km
from fleetsim.movement.terrain import is_land
from fleetsim.routing.client import RouteResult, RoutingError, RoutingProvider
from fleetsim.routing.queue import RequestQueue

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_with_shrinking_radius(
    attempt: Callable[[float, float], Awaitable[T | None]],
    attempts: int = 3,
    min_km: float = 5.0,
    max_km: float = 50.0,
    shrink: float = 0.6,
) -> T | None:
    """Call attempt(min_km, max_km) until it returns a result.

    RoutingError and None both count as a failed attempt. The search band
    is multiplied by shrink after every failure. Returns None once all
    attempts are used up.
    """
    for n in range(1, attempts + 1):
        try:
            result = await attempt(min_km, max_km)
        except RoutingError as e:
            logger.warning(f"Route attempt {n}/{attempts} failed ({min_km:.1f}-{max_km:.1f} km): {e}")
            result = None
        if result is not None:
            return result
        min_km *= shrink
        max_km = max(min_km, max_km * shrink)
    return None


def nearest_location(
    position: Position, locations: Sequence[Position], exclude_within_km: float = 0.0
) -> Position | None:
    """Closest curated location, ignoring any within exclude_within_km."""
    candidates = list(locations)
    if exclude_within_km > 0:
        far = [loc for loc in candidates if distance_km(position, loc) > exclude_within_km]
        candidates = far or candidates
    if not candidates:
        return None
    return min(candidates, key=lambda loc: distance_km(position, loc))


class RouteAcquirer:
    """Obtains replacement routes without blocking the tick.

    At most one acquisition task per vehicle is in flight at a time.
    """

    def __init__(
        self,
        provider: RoutingProvider,
        queue: RequestQueue,
        config: RoutingConfig,
        fallback_locations: Sequence[Position],
        rng: random.Random | None = None,
    ) -> None:
        self._provider = provider
        self._queue = queue
        self._config = config
        self._fallbacks = list(fallback_locations)
        self._rng = rng or random.Random()
        self._in_flight: dict[str, asyncio.Task] = {}

    def request(self, vehicle_id: str, origin: Position) -> asyncio.Task:
        """Start acquiring a route for a vehicle, or return the pending task."""
        task = self._in_flight.get(vehicle_id)
        if task is not None and not task.done():
            return task
        task = asyncio.ensure_future(self._acquire(vehicle_id, origin))
        self._in_flight[vehicle_id] = task
        task.add_done_callback(lambda t, vid=vehicle_id: self._forget(vid, t))
        return task

    @property
    def pending_count(self) -> int:
        return sum(1 for t in self._in_flight.values() if not t.done())

    async def close(self) -> None:
        """Cancel outstanding acquisitions."""
        tasks = [t for t in self._in_flight.values() if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._in_flight.clear()

    def _forget(self, vehicle_id: str, task: asyncio.Task) -> None:
        if self._in_flight.get(vehicle_id) is task:
            del self._in_flight[vehicle_id]

    async def _acquire(self, vehicle_id: str, origin: Position) -> RouteResult | None:
        try:
            result = await self.random_nearby_route(origin)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"[{vehicle_id}] Route acquisition crashed")
            return None
        if result is None:
            logger.warning(f"[{vehicle_id}] No route found near ({origin.latitude:.5f}, {origin.longitude:.5f})")
        return result

    async def random_nearby_route(self, origin: Position) -> RouteResult | None:
        """Random drivable route starting at origin, or None."""
        cfg = self._config

        async def attempt(min_km: float, max_km: float) -> RouteResult:
            end = await self.pick_endpoint(origin, min_km, max_km)
            result = await self._queue.call(self._provider.directions, origin, end, adaptive=True)
            logger.info(
                f"Generated route from ({origin.latitude:.5f}, {origin.longitude:.5f}) "
                f"to ({end.latitude:.5f}, {end.longitude:.5f}) with {len(result.points)} points"
            )
            return result

        return await retry_with_shrinking_radius(
            attempt,
            attempts=cfg.route_attempts,
            min_km=cfg.min_range_km,
            max_km=cfg.max_range_km,
            shrink=cfg.radius_shrink,
        )

    async def pick_endpoint(self, origin: Position, min_km: float, max_km: float) -> Position:
        """Random road point min_km..max_km from origin, or a curated fallback."""
        candidate = destination(
            origin, self._rng.uniform(0.0, 360.0), self._rng.uniform(min_km, max_km)
        )

        if self._config.land_check and not is_land(candidate):
            logger.debug(f"Candidate ({candidate.latitude:.4f}, {candidate.longitude:.4f}) is on water")
            return self.fallback_near(candidate)

        try:
            snapped = await self._queue.call(self._provider.snap, candidate)
        except RoutingError as e:
            logger.warning(f"Snap failed, using fallback location: {e}")
            return self.fallback_near(candidate)

        if distance_km(snapped, candidate) > self._config.snap_max_factor * max_km:
            logger.warning(
                f"Snapped point ({snapped.latitude:.4f}, {snapped.longitude:.4f}) too far "
                f"from candidate, using fallback location"
            )
            return self.fallback_near(candidate)
        return snapped

    def fallback_near(self, position: Position, exclude_within_km: float = 0.0) -> Position:
        """Curated fallback closest to position (position itself if none configured)."""
        return nearest_location(position, self._fallbacks, exclude_within_km) or position
