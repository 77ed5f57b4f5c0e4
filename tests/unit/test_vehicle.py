"""Tests for the vehicle data model."""

from collections import deque
from datetime import datetime, timezone

from fleetsim.core.geo import Position
from fleetsim.core.vehicle import (
    AwaitingRoute, CurrentData, Moving, Stuck, TelemetrySample, Vehicle,
)
from fleetsim.movement.route import Route, advance

from conftest import meridian_points

T0 = datetime(2026, 4, 15, 8, 0, 0, tzinfo=timezone.utc)


def _make_vehicle(**kwargs) -> Vehicle:
    defaults = {
        "vehicle_id": "amb-001",
        "name": "Vehicle 1",
        "current": CurrentData(position=Position(-34.9, 138.6), timestamp=T0),
    }
    defaults.update(kwargs)
    return Vehicle(**defaults)


class TestMotionState:
    def test_names(self):
        assert Moving().name == "moving"
        assert AwaitingRoute(since=T0).name == "awaiting_route"
        assert Stuck(since=T0).name == "stuck"

    def test_expects_route(self):
        vehicle = _make_vehicle()
        assert not vehicle.expects_route
        vehicle.motion = AwaitingRoute(since=T0)
        assert vehicle.expects_route
        vehicle.motion = Stuck(since=T0)
        assert vehicle.expects_route


class TestSnapshot:
    def test_snapshot_is_independent(self):
        points = meridian_points([1.0, 1.0])
        vehicle = _make_vehicle(route=Route(points=points))
        vehicle.history.append(TelemetrySample(T0, 1.0, 50.0, 8.0, 90.0, 85.0, False))

        snap = vehicle.snapshot()
        vehicle.current.speed_kmh = 99.0
        vehicle.history.append(TelemetrySample(T0, 2.0, 49.0, 8.0, 90.0, 85.0, False))
        advance(vehicle.route, 0.5, points[0], 0.0)

        assert snap.current.speed_kmh == 0.0
        assert len(snap.history) == 1
        assert snap.history.maxlen == vehicle.history.maxlen
        assert snap.route.cursor.segment_offset_km == 0.0

    def test_snapshot_drops_request_and_lights(self):
        vehicle = _make_vehicle(route_request=object(), lights=object())
        snap = vehicle.snapshot()
        assert snap.route_request is None
        assert snap.lights is None


class TestVehicleToDict:
    def test_structure(self):
        vehicle = _make_vehicle(history=deque(maxlen=10))
        data = vehicle.to_dict()
        assert data["id"] == "amb-001"
        assert data["name"] == "Vehicle 1"
        assert data["state"] == "moving"
        assert data["current_data"]["position"] == {"latitude": -34.9, "longitude": 138.6}
        assert data["current_data"]["timestamp"] == T0.isoformat()
        assert "base_consumption" not in data["current_data"]
        assert data["historical_data"] == []
        assert data["route"]["geojson"]["features"] == []
        assert data["next_route_attempt_at"] is None

    def test_remaining_vs_full_route(self):
        points = meridian_points([1.0, 1.0, 1.0])
        route = Route(points=points)
        vehicle = _make_vehicle(route=route)
        vehicle.current.position = advance(route, 1.5, points[0], 0.0).position

        remaining = vehicle.to_dict()["route"]["geojson"]["features"][0]["geometry"]["coordinates"]
        full = vehicle.to_dict(full_route=True)["route"]["geojson"]["features"][0]["geometry"]["coordinates"]
        assert len(full) == 4
        assert len(remaining) == 3
        assert list(remaining[0]) == vehicle.current.position.to_lon_lat()

    def test_sample_to_dict(self):
        sample = TelemetrySample(T0, 1.5, 50.0, 8.0, 90.0, 85.0, True)
        data = sample.to_dict()
        assert data["timestamp"] == T0.isoformat()
        assert data["emergency_lights"] is True
        assert data["odometer_km"] == 1.5
