"""
Simulation configuration: YAML file with environment overrides.

Every tunable the engine uses lives here so that tick interval, fleet
size and routing limits are settings rather than constants. The default
file is config/simulation.yaml; a missing default file just means the
built-in defaults are used.
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from fleetsim.core.geo import Position

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/simulation.yaml"

# Adelaide ambulance stations and well-connected suburbs
DEFAULT_START_LOCATIONS: list[tuple[float, float]] = [
    (-34.928273, 138.594365),  # Adelaide CBD
    (-34.758500, 138.641000),  # Salisbury
    (-35.010000, 138.556000),  # Marion
    (-34.921000, 138.631000),  # Norwood
    (-34.832000, 138.684000),  # Modbury
    (-35.068000, 138.858000),  # Mount Barker
    (-34.846500, 138.505000),  # Port Adelaide
    (-35.140000, 138.496000),  # Noarlunga Centre
    (-34.716700, 138.670000),  # Elizabeth
    (-35.021000, 138.614000),  # Blackwood
]

DEFAULT_FALLBACK_LOCATIONS: list[tuple[float, float]] = [
    (-34.928273, 138.594365),  # Adelaide CBD
    (-34.879000, 138.669000),  # Campbelltown
    (-34.598000, 138.745000),  # Gawler
    (-34.980300, 138.518000),  # Glenelg
    (-35.068000, 138.858000),  # Mount Barker
    (-35.140000, 138.496000),  # Noarlunga Centre
    (-34.758500, 138.641000),  # Salisbury
]


def _positions(raw: Any) -> list[Position]:
    """Accept [{latitude, longitude}, ...] or [[lat, lon], ...]."""
    result = []
    for item in raw or []:
        if isinstance(item, dict):
            result.append(Position.from_dict(item))
        else:
            result.append(Position(latitude=float(item[0]), longitude=float(item[1])))
    return result


def _apply(target: Any, values: dict[str, Any], section: str) -> None:
    known = {f.name for f in fields(target)}
    for key, value in values.items():
        if key not in known:
            logger.warning(f"Ignoring unknown {section} setting: {key}")
            continue
        setattr(target, key, value)


@dataclass
class RoutingConfig:
    """Routing provider access and acquisition limits."""
    base_url: str = "https://api.openrouteservice.org"
    api_key: str = ""
    profile: str = "driving-car"
    timeout_s: float = 15.0
    snap_radius_m: int = 350
    # Rate limit discipline
    min_interval_s: float = 1.5
    failure_penalty_s: float = 2.0
    max_penalty_s: float = 30.0
    # Random endpoint search band
    min_range_km: float = 5.0
    max_range_km: float = 50.0
    snap_max_factor: float = 1.8
    route_attempts: int = 3
    radius_shrink: float = 0.6
    land_check: bool = True
    # Clamp for per-step speed hints
    min_step_speed_kmh: float = 5.0
    max_step_speed_kmh: float = 130.0


@dataclass
class SimulationConfig:
    """Fleet, physics and timing settings."""
    vehicle_count: int = 2
    tick_interval_s: float = 1.0
    speed_multiplier: float = 1.0
    seed: int | None = None
    http_port: int = 8765

    # Telemetry
    tank_capacity_l: float = 93.0
    max_history: int = 3600
    idle_lph: float = 0.7

    # Emergency lights
    emergency_min_hold_s: float = 20.0
    emergency_max_hold_s: float = 60.0
    emergency_toggle_probability: float = 0.2
    emergency_retry_s: float = 5.0

    # Speed
    speed_wander_kmh: float = 2.0
    cruise_max_kmh: float = 60.0
    max_speed_kmh: float = 110.0
    max_accel_kmh_per_s: float = 9.0
    min_cruise_kmh: float = 10.0

    # Route reacquisition
    retry_backoff_s: float = 15.0
    stuck_after_failures: int = 3
    stuck_timeout_s: float = 60.0

    start_locations: list[Position] = field(
        default_factory=lambda: _positions(DEFAULT_START_LOCATIONS)
    )
    fallback_locations: list[Position] = field(
        default_factory=lambda: _positions(DEFAULT_FALLBACK_LOCATIONS)
    )
    routing: RoutingConfig = field(default_factory=RoutingConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SimulationConfig":
        config = cls()
        data = dict(data)
        routing = data.pop("routing", None) or {}
        for key in ("start_locations", "fallback_locations"):
            if key in data:
                data[key] = _positions(data[key])
        _apply(config, data, "simulation")
        _apply(config.routing, routing, "routing")
        return config

    @classmethod
    def load(cls, path: str | None = None) -> "SimulationConfig":
        """Load YAML config, then apply environment overrides.

        An explicit path must exist; the default path is optional.
        """
        config_path = Path(path or DEFAULT_CONFIG_PATH)
        data: Any = {}
        if config_path.exists():
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ValueError(f"Config {config_path} must be a mapping")
            logger.info(f"Loaded config: {config_path}")
        elif path:
            raise FileNotFoundError(f"Config not found: {path}")

        config = cls.from_dict(data)
        config.apply_env(os.environ)
        return config

    def apply_env(self, env: Any) -> None:
        if env.get("ORS_API_KEY"):
            self.routing.api_key = env["ORS_API_KEY"]
        if env.get("ORS_BASE_URL"):
            self.routing.base_url = env["ORS_BASE_URL"]
        if env.get("FLEETSIM_VEHICLES"):
            self.vehicle_count = int(env["FLEETSIM_VEHICLES"])
        if env.get("FLEETSIM_TICK_INTERVAL"):
            self.tick_interval_s = float(env["FLEETSIM_TICK_INTERVAL"])
