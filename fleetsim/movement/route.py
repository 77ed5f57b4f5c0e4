"""
Route representation and traversal.

A route is an ordered list of road points returned by the routing
provider. Vehicles track their progress with a cursor (segment index +
offset in km along that segment) and are advanced by a distance each
tick. Positions are interpolated linearly inside a segment; segment
lengths are haversine distances.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Sequence

from shapely.geometry import LineString, mapping

from fleetsim.core.geo import Position, bearing_deg, distance_km, interpolate, segment_lengths_km

# Floating point slack when comparing travelled distance to segment ends.
# Without it, summing many small steps can fall a hair short of the last point.
BOUNDARY_EPS_KM = 1e-9


@dataclass
class SpeedBand:
    """Target speed for the segments between two way-point indices."""
    from_index: int
    to_index: int
    speed_kmh: float

    def covers(self, segment_index: int) -> bool:
        return self.from_index <= segment_index < self.to_index

    def to_dict(self) -> dict[str, Any]:
        return {"from": self.from_index, "to": self.to_index, "speed_kmh": self.speed_kmh}


@dataclass
class RouteCursor:
    """Progress marker within a route."""
    segment_index: int = 0
    segment_offset_km: float = 0.0


@dataclass
class RouteProgress:
    """Outcome of advancing along a route."""
    position: Position
    heading_deg: float
    traveled_km: float
    at_end: bool


@dataclass
class Route:
    """A drivable path plus the vehicle's progress along it."""
    points: list[Position]
    speed_profile: list[SpeedBand] = field(default_factory=list)
    cursor: RouteCursor = field(default_factory=RouteCursor)
    at_end: bool = False

    @property
    def is_valid(self) -> bool:
        return len(self.points) >= 2

    @property
    def length_km(self) -> float:
        return float(segment_lengths_km(self.points).sum())

    def reset(self) -> None:
        """Move the cursor back to the first point."""
        self.cursor = RouteCursor()
        self.at_end = False

    def copy(self) -> "Route":
        return Route(
            points=list(self.points),
            speed_profile=[SpeedBand(b.from_index, b.to_index, b.speed_kmh) for b in self.speed_profile],
            cursor=RouteCursor(self.cursor.segment_index, self.cursor.segment_offset_km),
            at_end=self.at_end,
        )

    def to_geojson(self) -> dict[str, Any]:
        return _feature_collection(self.points)

    def to_dict(self, position: Position | None = None) -> dict[str, Any]:
        """Serialize. With a position, only the remaining path is included."""
        geojson = (
            remaining_geojson(self, position) if position is not None else self.to_geojson()
        )
        return {
            "geojson": geojson,
            "segment_index": self.cursor.segment_index,
            "segment_offset_km": self.cursor.segment_offset_km,
            "at_end": self.at_end,
            "speed_profile": [b.to_dict() for b in self.speed_profile],
        }

    @classmethod
    def from_geojson(cls, data: Any) -> "Route":
        """Build a route from GeoJSON or a bare list of [lon, lat] pairs.

        Accepts a FeatureCollection (first feature), a Feature, a LineString
        geometry, a {"coordinates": [...]} mapping, or a plain list.
        Raises ValueError for anything else.
        """
        coords = data
        if isinstance(data, dict):
            if data.get("type") == "FeatureCollection":
                features = data.get("features") or []
                if not isinstance(features, list) or not features:
                    raise ValueError("FeatureCollection has no features")
                data = _expect_object(features[0], "Feature")
            if data.get("type") == "Feature":
                data = _expect_object(data.get("geometry") or {}, "Feature geometry")
            coords = data.get("coordinates")
        if not isinstance(coords, (list, tuple)):
            raise ValueError("Route coordinates must be a list of [lon, lat] pairs")
        try:
            points = [Position.from_lon_lat(pair) for pair in coords]
        except (TypeError, IndexError, KeyError, ValueError) as e:
            raise ValueError(f"Malformed coordinate: {e}") from e
        if not all(math.isfinite(p.latitude) and math.isfinite(p.longitude) for p in points):
            raise ValueError("Route coordinates must be finite numbers")
        return cls(points=points)


def _expect_object(value: Any, what: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ValueError(f"{what} must be a JSON object")
    return value


def _feature_collection(points: Sequence[Position]) -> dict[str, Any]:
    if len(points) < 2:
        return {"type": "FeatureCollection", "features": []}
    line = LineString([(p.longitude, p.latitude) for p in points])
    return {
        "type": "FeatureCollection",
        "features": [
            {"type": "Feature", "geometry": mapping(line), "properties": {}},
        ],
    }


def advance(
    route: Route, km: float, position: Position, heading_deg: float
) -> RouteProgress:
    """Advance the route cursor by km and return the new position/heading.

    No-op (returns the given position and heading) when km <= 0, the route
    has fewer than two points, or the route is already complete. Mutates
    route.cursor and route.at_end.
    """
    if km <= 0 or not route.is_valid or route.at_end:
        return RouteProgress(position, heading_deg, 0.0, route.at_end)

    points = route.points
    last = len(points) - 1
    i = route.cursor.segment_index
    offset = route.cursor.segment_offset_km
    remaining = km

    while i < last:
        seg_km = distance_km(points[i], points[i + 1])
        left_in_segment = seg_km - offset
        if remaining < left_in_segment - BOUNDARY_EPS_KM:
            offset = max(0.0, offset + remaining)
            remaining = 0.0
            break
        # Exactly on a boundary lands at the start of the next segment
        remaining -= max(0.0, left_in_segment)
        offset = 0.0
        i += 1

    if i >= last:
        final_seg = last - 1
        route.cursor = RouteCursor(
            segment_index=final_seg,
            segment_offset_km=distance_km(points[final_seg], points[last]),
        )
        route.at_end = True
        heading = heading_deg
        if points[final_seg] != points[last]:
            heading = bearing_deg(points[final_seg], points[last])
        return RouteProgress(
            position=points[last],
            heading_deg=heading,
            traveled_km=km - max(0.0, remaining),
            at_end=True,
        )

    start, end = points[i], points[i + 1]
    seg_km = max(1e-12, distance_km(start, end))
    route.cursor = RouteCursor(segment_index=i, segment_offset_km=offset)
    heading = bearing_deg(start, end) if start != end else heading_deg
    return RouteProgress(
        position=interpolate(start, end, offset / seg_km),
        heading_deg=heading,
        traveled_km=km,
        at_end=False,
    )


def remaining_path(route: Route, position: Position) -> list[Position]:
    """Current position followed by the points not yet reached."""
    if route.at_end or not route.is_valid:
        return []
    i = min(max(0, route.cursor.segment_index), len(route.points) - 2)
    return [position, *route.points[i + 1:]]


def remaining_geojson(route: Route, position: Position) -> dict[str, Any]:
    return _feature_collection(remaining_path(route, position))


def target_speed_kmh(route: Route) -> float | None:
    """Speed hint for the segment the cursor is on, if the route has one."""
    if route.at_end:
        return None
    for band in route.speed_profile:
        if band.covers(route.cursor.segment_index):
            return band.speed_kmh
    return None
