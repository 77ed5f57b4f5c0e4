"""
Geographic helpers shared by route traversal and route acquisition.

Distances use the haversine formula on a spherical earth (6371 km).
Positions are WGS84 latitude/longitude in degrees. The routing provider
speaks [lon, lat] pairs, so conversion helpers live here too.
"""

import math
from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np
from geopy.distance import great_circle

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class Position:
    """WGS84 geographic position."""
    latitude: float
    longitude: float

    def to_dict(self) -> dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}

    def to_lon_lat(self) -> list[float]:
        return [self.longitude, self.latitude]

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "Position":
        return cls(latitude=float(d["latitude"]), longitude=float(d["longitude"]))

    @classmethod
    def from_lon_lat(cls, pair: Sequence[float]) -> "Position":
        return cls(latitude=float(pair[1]), longitude=float(pair[0]))


def distance_km(p1: Position, p2: Position) -> float:
    """Great-circle (haversine) distance in km."""
    lat1_r = math.radians(p1.latitude)
    lat2_r = math.radians(p2.latitude)
    dlat_r = math.radians(p2.latitude - p1.latitude)
    dlon_r = math.radians(p2.longitude - p1.longitude)

    a = (math.sin(dlat_r / 2) ** 2 +
         math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlon_r / 2) ** 2)
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def bearing_deg(p1: Position, p2: Position) -> float:
    """Initial bearing (forward azimuth) from p1 to p2.
    Returns bearing in degrees [0, 360)."""
    lat1_r = math.radians(p1.latitude)
    lat2_r = math.radians(p2.latitude)
    dlon_r = math.radians(p2.longitude - p1.longitude)

    x = math.sin(dlon_r) * math.cos(lat2_r)
    y = (math.cos(lat1_r) * math.sin(lat2_r) -
         math.sin(lat1_r) * math.cos(lat2_r) * math.cos(dlon_r))

    bearing = math.degrees(math.atan2(x, y)) % 360.0
    # -0.0 % 360 and tiny negatives can round up to 360.0
    return 0.0 if bearing >= 360.0 else bearing


def interpolate(p1: Position, p2: Position, fraction: float) -> Position:
    """Linear lat/lon interpolation. fraction: 0.0 = p1, 1.0 = p2."""
    if fraction <= 0.0:
        return p1
    if fraction >= 1.0:
        return p2
    return Position(
        latitude=p1.latitude + (p2.latitude - p1.latitude) * fraction,
        longitude=p1.longitude + (p2.longitude - p1.longitude) * fraction,
    )


def destination(origin: Position, bearing: float, dist_km: float) -> Position:
    """Project origin along a great circle by bearing (degrees) and distance."""
    point = great_circle(kilometers=dist_km).destination(
        (origin.latitude, origin.longitude), bearing=bearing
    )
    return Position(latitude=point.latitude, longitude=point.longitude)


def segment_lengths_km(points: Sequence[Position]) -> np.ndarray:
    """Haversine length of every consecutive pair, vectorized.

    Returns an array of len(points) - 1 lengths (empty for < 2 points).
    """
    if len(points) < 2:
        return np.zeros(0, dtype=np.float64)

    lats = np.radians(np.array([p.latitude for p in points], dtype=np.float64))
    lons = np.radians(np.array([p.longitude for p in points], dtype=np.float64))

    dlat = np.diff(lats)
    dlon = np.diff(lons)
    a = (np.sin(dlat / 2) ** 2 +
         np.cos(lats[:-1]) * np.cos(lats[1:]) * np.sin(dlon / 2) ** 2)
    return EARTH_RADIUS_KM * 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))
