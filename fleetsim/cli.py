"""
Main entry point for the ambulance fleet simulator.

Loads configuration, wires the routing client, request queue, route
acquirer, simulation and HTTP API together, and runs until interrupted.
"""

import asyncio
import logging
import signal

import click

from fleetsim.config import SimulationConfig
from fleetsim.core.simulation import FleetSimulation
from fleetsim.movement.terrain import warn_on_water
from fleetsim.routing.acquisition import RouteAcquirer
from fleetsim.routing.client import OpenRouteServiceClient
from fleetsim.routing.queue import RequestQueue
from fleetsim.transport.http_api import VehicleApiServer

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


async def run(config: SimulationConfig) -> None:
    """Run the simulator until SIGINT/SIGTERM."""
    print(f"\nAmbulance Fleet Simulator v{VERSION}")
    print("=" * 40)

    warn_on_water("start_locations", config.start_locations)
    warn_on_water("fallback_locations", config.fallback_locations)

    routing = config.routing
    client = OpenRouteServiceClient(routing)
    queue = RequestQueue(
        min_interval_s=routing.min_interval_s,
        failure_penalty_s=routing.failure_penalty_s,
        max_penalty_s=routing.max_penalty_s,
    )
    acquirer = RouteAcquirer(client, queue, routing, config.fallback_locations)
    simulation = FleetSimulation(config, acquirer)
    api = VehicleApiServer(simulation, port=config.http_port, queue=queue)

    await client.connect()
    await queue.start()
    await api.start()
    await simulation.start(config.vehicle_count, config.tick_interval_s)

    print(f"Simulating {config.vehicle_count} vehicles, tick {config.tick_interval_s}s "
          f"(speed: {config.speed_multiplier}x)")
    print(f"Vehicle API on http://0.0.0.0:{config.http_port}/api/vehicles?id=all")
    print("Press Ctrl+C to stop\n")

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)
    await stop.wait()

    print("\nShutting down...")
    await simulation.stop()
    await acquirer.close()
    await queue.stop()
    await api.stop()
    await client.disconnect()
    print(f"Simulation ran {simulation.tick_count} ticks, {queue.calls} routing calls")
    print("Simulator stopped")


@click.command()
@click.option("--config", "config_path", default=None, help="Path to simulation YAML file")
@click.option("--vehicles", type=int, default=None, help="Number of vehicles to simulate")
@click.option("--tick-interval", type=float, default=None, help="Seconds between ticks (real-time)")
@click.option("--speed", type=float, default=None, help="Simulation speed multiplier")
@click.option("--port", type=int, default=None, help="HTTP API port")
@click.option("--log-level", default="INFO", help="Logging level (DEBUG shows every vehicle each tick)")
def main(
    config_path: str | None, vehicles: int | None, tick_interval: float | None,
    speed: float | None, port: int | None, log_level: str,
) -> None:
    """Ambulance fleet simulator: vehicle motion and telemetry engine."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    config = SimulationConfig.load(config_path)
    if vehicles is not None:
        config.vehicle_count = vehicles
    if tick_interval is not None:
        config.tick_interval_s = tick_interval
    if speed is not None:
        config.speed_multiplier = speed
    if port is not None:
        config.http_port = port
    asyncio.run(run(config))


if __name__ == "__main__":
    main()
