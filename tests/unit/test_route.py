"""Tests for route representation and traversal."""

import pytest

from fleetsim.core.geo import Position, bearing_deg, distance_km, interpolate
from fleetsim.movement.route import (
    Route, RouteCursor, SpeedBand, advance, remaining_path, target_speed_kmh,
)

from conftest import meridian_points

A = Position(-34.90, 138.60)
B = Position(-34.80, 138.70)


class TestAdvance:
    def test_midpoint(self):
        route = Route(points=[A, B])
        half = distance_km(A, B) / 2
        progress = advance(route, half, A, 0.0)

        expected = interpolate(A, B, 0.5)
        assert progress.position.latitude == pytest.approx(expected.latitude)
        assert progress.position.longitude == pytest.approx(expected.longitude)
        assert progress.heading_deg == pytest.approx(bearing_deg(A, B))
        assert progress.traveled_km == pytest.approx(half)
        assert not progress.at_end
        assert route.cursor.segment_index == 0
        assert route.cursor.segment_offset_km == pytest.approx(half)

    def test_exact_end(self):
        route = Route(points=[A, B])
        progress = advance(route, distance_km(A, B), A, 0.0)
        assert progress.position == B
        assert progress.at_end
        assert route.at_end
        assert progress.heading_deg == pytest.approx(bearing_deg(A, B))

    def test_overshoot_stops_at_last_point(self):
        route = Route(points=[A, B])
        length = distance_km(A, B)
        progress = advance(route, length + 5.0, A, 0.0)
        assert progress.position == B
        assert progress.at_end
        assert progress.traveled_km == pytest.approx(length)
        assert route.cursor.segment_index == 0
        assert route.cursor.segment_offset_km == pytest.approx(length)

    def test_boundary_lands_on_next_segment(self):
        points = meridian_points([1.0, 1.0])
        route = Route(points=points)
        progress = advance(route, distance_km(points[0], points[1]), points[0], 0.0)
        assert route.cursor.segment_index == 1
        assert route.cursor.segment_offset_km == pytest.approx(0.0, abs=1e-9)
        assert progress.position.latitude == pytest.approx(points[1].latitude)
        assert not progress.at_end

    def test_crosses_multiple_segments(self):
        points = meridian_points([1.0, 1.0, 1.0])
        route = Route(points=points)
        advance(route, 2.5, points[0], 0.0)
        assert route.cursor.segment_index == 2
        assert route.cursor.segment_offset_km == pytest.approx(0.5, abs=1e-6)

    @pytest.mark.parametrize("km", [0.0, -1.0])
    def test_non_positive_distance_is_noop(self, km):
        route = Route(points=[A, B])
        progress = advance(route, km, A, 42.0)
        assert progress.position == A
        assert progress.heading_deg == 42.0
        assert progress.traveled_km == 0.0
        assert route.cursor == RouteCursor()

    def test_invalid_route_is_noop(self):
        route = Route(points=[A])
        progress = advance(route, 1.0, A, 10.0)
        assert progress.position == A
        assert not progress.at_end

    def test_finished_route_is_noop(self):
        route = Route(points=[A, B])
        advance(route, 100.0, A, 0.0)
        progress = advance(route, 1.0, B, 33.0)
        assert progress.position == B
        assert progress.traveled_km == 0.0
        assert progress.at_end

    def test_many_small_steps_reach_end_exactly(self):
        points = meridian_points([5.0, 5.0])
        route = Route(points=points)
        position, heading = points[0], 0.0
        for _ in range(1000):
            progress = advance(route, 0.01, position, heading)
            position, heading = progress.position, progress.heading_deg
        assert route.at_end
        assert position == points[-1]

    def test_cursor_monotonic(self):
        points = meridian_points([0.3, 0.7, 0.2, 1.1])
        route = Route(points=points)
        position = points[0]
        last = (0, 0.0)
        while not route.at_end:
            position = advance(route, 0.05, position, 0.0).position
            current = (route.cursor.segment_index, route.cursor.segment_offset_km)
            assert current >= last
            last = current


class TestRemainingPath:
    def test_starts_at_position(self):
        points = meridian_points([1.0, 1.0])
        route = Route(points=points)
        position = advance(route, 0.5, points[0], 0.0).position
        path = remaining_path(route, position)
        assert path[0] == position
        assert path[1:] == points[1:]

    def test_empty_at_end(self):
        route = Route(points=[A, B])
        advance(route, 100.0, A, 0.0)
        assert remaining_path(route, B) == []

    def test_geojson_of_remaining_route(self):
        points = meridian_points([1.0, 1.0])
        route = Route(points=points)
        position = advance(route, 1.5, points[0], 0.0).position
        data = route.to_dict(position=position)
        coords = data["geojson"]["features"][0]["geometry"]["coordinates"]
        assert len(coords) == 2
        assert list(coords[-1]) == points[-1].to_lon_lat()


class TestTargetSpeed:
    def test_band_lookup(self):
        points = meridian_points([1.0, 1.0, 1.0])
        route = Route(points=points, speed_profile=[SpeedBand(0, 1, 50.0), SpeedBand(1, 3, 80.0)])
        assert target_speed_kmh(route) == 50.0
        advance(route, 1.5, points[0], 0.0)
        assert target_speed_kmh(route) == 80.0

    def test_no_profile(self):
        assert target_speed_kmh(Route(points=[A, B])) is None


class TestRouteSerialization:
    def test_to_geojson(self):
        data = Route(points=[A, B]).to_geojson()
        assert data["type"] == "FeatureCollection"
        geometry = data["features"][0]["geometry"]
        assert geometry["type"] == "LineString"
        assert [list(c) for c in geometry["coordinates"]] == [A.to_lon_lat(), B.to_lon_lat()]

    def test_empty_route_has_no_features(self):
        assert Route(points=[]).to_geojson()["features"] == []

    def test_to_dict_keys(self):
        data = Route(points=[A, B], speed_profile=[SpeedBand(0, 1, 60.0)]).to_dict()
        assert set(data) == {"geojson", "segment_index", "segment_offset_km", "at_end", "speed_profile"}
        assert data["speed_profile"] == [{"from": 0, "to": 1, "speed_kmh": 60.0}]

    def test_copy_is_independent(self):
        route = Route(points=[A, B])
        clone = route.copy()
        advance(route, 1.0, A, 0.0)
        assert clone.cursor == RouteCursor()
        assert clone.points == route.points

    @pytest.mark.parametrize("payload", [
        {"type": "FeatureCollection", "features": [
            {"type": "Feature", "geometry": {"type": "LineString", "coordinates": [[138.6, -34.9], [138.7, -34.8]]}},
        ]},
        {"type": "Feature", "geometry": {"type": "LineString", "coordinates": [[138.6, -34.9], [138.7, -34.8]]}},
        {"type": "LineString", "coordinates": [[138.6, -34.9], [138.7, -34.8]]},
        {"coordinates": [[138.6, -34.9], [138.7, -34.8]]},
        [[138.6, -34.9], [138.7, -34.8]],
    ])
    def test_from_geojson_accepts(self, payload):
        route = Route.from_geojson(payload)
        assert route.points == [A, B]

    @pytest.mark.parametrize("payload", [
        {"type": "FeatureCollection", "features": []},
        {"type": "Feature"},
        {"type": "FeatureCollection", "features": [5]},
        {"type": "FeatureCollection", "features": "abc"},
        {"type": "Feature", "geometry": [1, 2]},
        [{"lon": 138.6}, {"lat": -34.9}],
        [[float("nan"), -34.9], [138.6, -34.8]],
        "not a route",
        [[138.6]],
        [["x", "y"]],
    ])
    def test_from_geojson_rejects(self, payload):
        with pytest.raises(ValueError):
            Route.from_geojson(payload)
