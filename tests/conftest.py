"""Shared fixtures: a hand-driven route acquirer and route builders."""

import concurrent.futures
import math
from datetime import datetime, timezone

import pytest

from fleetsim.config import RoutingConfig, SimulationConfig
from fleetsim.core.geo import EARTH_RADIUS_KM, Position
from fleetsim.routing.client import RouteResult

KM_PER_DEG_LAT = EARTH_RADIUS_KM * math.pi / 180.0


class FakeAcquirer:
    """Records route requests; tests resolve or fail them explicitly."""

    def __init__(self) -> None:
        self.requests: list[tuple[str, Position]] = []
        self.futures: dict[str, concurrent.futures.Future] = {}

    def request(self, vehicle_id: str, origin: Position) -> concurrent.futures.Future:
        future = self.futures.get(vehicle_id)
        if future is not None and not future.done():
            return future
        future = concurrent.futures.Future()
        self.requests.append((vehicle_id, origin))
        self.futures[vehicle_id] = future
        return future

    def resolve(self, vehicle_id: str, points: list[Position]) -> None:
        self.futures[vehicle_id].set_result(RouteResult(points=points))

    def fail(self, vehicle_id: str, exc: Exception | None = None) -> None:
        if exc is None:
            self.futures[vehicle_id].set_result(None)
        else:
            self.futures[vehicle_id].set_exception(exc)

    def requests_for(self, vehicle_id: str) -> int:
        return sum(1 for vid, _ in self.requests if vid == vehicle_id)

    @property
    def pending_count(self) -> int:
        return sum(1 for f in self.futures.values() if not f.done())


def meridian_points(
    lengths_km: list[float], lat: float = -34.9, lon: float = 138.6
) -> list[Position]:
    """Points due north along a meridian with the given segment lengths."""
    points = [Position(lat, lon)]
    for km in lengths_km:
        lat += km / KM_PER_DEG_LAT
        points.append(Position(lat, lon))
    return points


@pytest.fixture
def fake_acquirer():
    return FakeAcquirer()


@pytest.fixture
def config():
    return SimulationConfig(seed=42)


@pytest.fixture
def routing_config():
    return RoutingConfig(
        land_check=False,
        route_attempts=3,
        min_range_km=5.0,
        max_range_km=50.0,
        min_interval_s=0.0,
        failure_penalty_s=0.0,
    )


@pytest.fixture
def now():
    return datetime(2026, 4, 15, 8, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_points():
    return meridian_points
