"""
Routing provider client (OpenRouteService).

Two operations are consumed: snapping an arbitrary coordinate to the
nearest drivable road, and computing a driving route between two points.
Any transport, HTTP or parse problem is raised as RoutingError; callers
in the acquisition pipeline turn that into a "no route" outcome.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from fleetsim.config import RoutingConfig
from fleetsim.core.geo import Position
from fleetsim.movement.route import Route, SpeedBand

logger = logging.getLogger(__name__)


class RoutingError(Exception):
    """Routing provider call failed or returned something unusable."""


@dataclass
class RouteResult:
    """A computed path plus optional per-step speed hints."""
    points: list[Position]
    speed_profile: list[SpeedBand] = field(default_factory=list)

    def to_route(self) -> Route:
        return Route(points=list(self.points), speed_profile=list(self.speed_profile))


class RoutingProvider(ABC):
    """Abstract routing provider interface."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable provider name."""
        ...

    async def connect(self) -> None:
        """Open network resources."""

    async def disconnect(self) -> None:
        """Release network resources."""

    @abstractmethod
    async def snap(self, point: Position) -> Position:
        """Return the nearest drivable point."""
        ...

    @abstractmethod
    async def directions(self, start: Position, end: Position) -> RouteResult:
        """Return a drivable path from start to end."""
        ...


def parse_speed_profile(
    feature: dict[str, Any], min_kmh: float = 5.0, max_kmh: float = 130.0
) -> list[SpeedBand]:
    """Derive per-way-point-range speeds from ORS step distance/duration."""
    bands = []
    segments = (feature.get("properties") or {}).get("segments") or []
    for segment in segments:
        for step in segment.get("steps") or []:
            distance_m = step.get("distance")
            duration_s = step.get("duration")
            way_points = step.get("way_points")
            if not distance_m or not duration_s or duration_s <= 0:
                continue
            if not way_points or len(way_points) < 2:
                continue
            speed = distance_m / duration_s * 3.6
            speed = max(min_kmh, min(max_kmh, speed))
            bands.append(SpeedBand(int(way_points[0]), int(way_points[1]), speed))
    return bands


def parse_directions(
    payload: Any, min_kmh: float = 5.0, max_kmh: float = 130.0
) -> RouteResult:
    """Parse an ORS GeoJSON directions response."""
    try:
        feature = payload["features"][0]
        coordinates = feature["geometry"]["coordinates"]
        points = [Position.from_lon_lat(c) for c in coordinates]
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise RoutingError(f"Malformed directions response: {e}") from e

    if len(points) < 2:
        raise RoutingError("No route found")
    return RouteResult(points=points, speed_profile=parse_speed_profile(feature, min_kmh, max_kmh))


def parse_snap(payload: Any) -> Position:
    """Parse an ORS snap response."""
    try:
        location = payload["locations"][0]["location"]
        if len(location) < 2:
            raise ValueError("location has fewer than 2 coordinates")
        return Position.from_lon_lat(location)
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise RoutingError(f"Malformed snap response: {e}") from e


class OpenRouteServiceClient(RoutingProvider):
    """
    OpenRouteService HTTP client.

    One aiohttp session for the process lifetime. Calls are not retried
    here; retry, spacing and fallback belong to the acquisition pipeline.
    """

    def __init__(self, config: RoutingConfig) -> None:
        self._config = config
        self._base_url = config.base_url.rstrip("/")
        self._session: aiohttp.ClientSession | None = None

    @property
    def name(self) -> str:
        return "openrouteservice"

    async def connect(self) -> None:
        if self._session is not None:
            return
        if not self._config.api_key:
            logger.warning("ORS_API_KEY not set; routing calls will likely be rejected")
        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self._config.timeout_s),
        )
        logger.info(f"Routing client initialized: {self._config.base_url} ({self._config.profile})")

    async def disconnect(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def snap(self, point: Position) -> Position:
        body = {
            "locations": [point.to_lon_lat()],
            "radius": self._config.snap_radius_m,
        }
        headers = {"Authorization": self._config.api_key}
        payload = await self._request(
            "post", f"/v2/snap/{self._config.profile}", json=body, headers=headers
        )
        return parse_snap(payload)

    async def directions(self, start: Position, end: Position) -> RouteResult:
        params = {
            "api_key": self._config.api_key,
            "start": f"{start.longitude},{start.latitude}",
            "end": f"{end.longitude},{end.latitude}",
        }
        payload = await self._request(
            "get", f"/v2/directions/{self._config.profile}", params=params
        )
        return parse_directions(
            payload, self._config.min_step_speed_kmh, self._config.max_step_speed_kmh
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        if self._session is None:
            raise RoutingError("Routing client not connected")
        try:
            async with self._session.request(method, self._base_url + path, **kwargs) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    raise RoutingError(
                        f"{method.upper()} {path} returned {resp.status}: {body[:200]}"
                    )
                return await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise RoutingError(f"{method.upper()} {path} failed: {e}") from e
