"""
HTTP delivery layer for the dashboard.

Runs a lightweight aiohttp server exposing vehicle snapshots, telemetry
history, route replacement and a health check as JSON. The dashboard
polls /api/vehicles every second or so; routes in that listing are
reduced to the path still ahead of each vehicle.
"""

import json
import logging
import time
from datetime import datetime, timezone

from aiohttp import web

from fleetsim.core.simulation import FleetSimulation
from fleetsim.movement.route import Route
from fleetsim.routing.queue import RequestQueue

logger = logging.getLogger(__name__)


def _parse_since(raw: str | None) -> datetime | None:
    """ISO-8601 timestamp or epoch milliseconds. Raises ValueError."""
    if raw is None or raw == "":
        return None
    if raw.lstrip("-").isdigit():
        try:
            return datetime.fromtimestamp(int(raw) / 1000.0, tz=timezone.utc)
        except (ValueError, OverflowError, OSError) as e:
            raise ValueError(f"Epoch milliseconds out of range: {raw[:32]}") from e
    parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _bad_request(message: str = "Invalid Query Parameters") -> web.HTTPBadRequest:
    return web.HTTPBadRequest(
        text=json.dumps({"error": message}), content_type="application/json"
    )


def _not_found(message: str = "Vehicle Not Found") -> web.HTTPNotFound:
    return web.HTTPNotFound(
        text=json.dumps({"error": message}), content_type="application/json"
    )


class VehicleApiServer:
    """aiohttp server over a FleetSimulation."""

    def __init__(
        self,
        simulation: FleetSimulation,
        host: str = "0.0.0.0",
        port: int = 8765,
        queue: RequestQueue | None = None,
    ):
        self._sim = simulation
        self._queue = queue
        self._host = host
        self._port = port
        self._app = web.Application()
        self._runner = None
        self._start_time = time.time()

        self._app.router.add_get("/health", self._handle_health)
        self._app.router.add_get("/api/vehicles", self._handle_vehicles)
        self._app.router.add_get("/api/vehicle", self._handle_vehicle)
        self._app.router.add_get("/api/telemetry", self._handle_telemetry)
        self._app.router.add_put("/api/vehicles/{vehicle_id}/route", self._handle_set_route)

    @property
    def app(self) -> web.Application:
        return self._app

    async def start(self):
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._host, self._port)
        await site.start()
        logger.info(f"Vehicle API on http://{self._host}:{self._port}/api/vehicles")

    async def stop(self):
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    async def _handle_health(self, request):
        data = {
            "status": "running" if self._sim.is_running else "stopped",
            "uptime_seconds": int(time.time() - self._start_time),
            **self._sim.status(),
        }
        if self._queue is not None:
            data["routing_queue_depth"] = self._queue.depth
            data["routing_calls"] = self._queue.calls
        return web.json_response(data)

    async def _handle_vehicles(self, request):
        """Vehicles with the route reduced to the remaining path."""
        vehicle_id = request.query.get("id")
        if not vehicle_id:
            raise _bad_request()
        if vehicle_id == "all":
            return web.json_response([v.to_dict() for v in self._sim.get_vehicles()])
        vehicle = self._sim.get_vehicle(vehicle_id)
        if vehicle is None:
            raise _not_found()
        return web.json_response(vehicle.to_dict())

    async def _handle_vehicle(self, request):
        """Vehicles with their complete route."""
        vehicle_id = request.query.get("id")
        if not vehicle_id:
            raise _bad_request()
        if vehicle_id == "all":
            return web.json_response(
                [v.to_dict(full_route=True) for v in self._sim.get_vehicles()]
            )
        vehicle = self._sim.get_vehicle(vehicle_id)
        if vehicle is None:
            raise _not_found()
        return web.json_response(vehicle.to_dict(full_route=True))

    async def _handle_telemetry(self, request):
        vehicle_id = request.query.get("id")
        if not vehicle_id:
            raise _bad_request()
        try:
            since = _parse_since(request.query.get("since"))
        except ValueError:
            raise _bad_request("Invalid since timestamp")
        if self._sim.get_vehicle(vehicle_id) is None:
            raise _not_found()
        samples = self._sim.get_vehicle_telemetry(vehicle_id, since)
        return web.json_response([s.to_dict() for s in samples])

    async def _handle_set_route(self, request):
        vehicle_id = request.match_info["vehicle_id"]
        try:
            body = await request.json()
            route = Route.from_geojson(body)
        except ValueError as e:
            raise _bad_request(f"Invalid route: {e}")
        if self._sim.get_vehicle(vehicle_id) is None:
            raise _not_found()
        if not self._sim.set_vehicle_route(vehicle_id, route.points):
            raise _bad_request("Route needs at least 2 points")
        return web.json_response({"ok": True})
