"""
Land/water classification for candidate route endpoints.

Random endpoints projected from a coastal start point often land in the
sea, where snapping to a road either fails or jumps far away. Uses
global-land-mask (GLOBE dataset, ~1km resolution) for fast offline
classification so those candidates are rejected before any network call.
"""

import logging
from typing import Sequence

import numpy as np
from global_land_mask import globe

from fleetsim.core.geo import Position

logger = logging.getLogger(__name__)


def is_land(position: Position) -> bool:
    """Check if a single point is on land."""
    return bool(globe.is_land(position.latitude, position.longitude))


def water_indices(positions: Sequence[Position]) -> list[int]:
    """Return indices of positions that fall on water.

    Uses vectorized NumPy check for performance.
    """
    if not positions:
        return []

    lat_arr = np.array([p.latitude for p in positions], dtype=np.float64)
    lon_arr = np.array([p.longitude for p in positions], dtype=np.float64)
    on_land = globe.is_land(lat_arr, lon_arr)
    return np.where(~on_land)[0].tolist()


def warn_on_water(name: str, positions: Sequence[Position]) -> int:
    """Log a warning for every curated location that is not on land."""
    bad = water_indices(positions)
    for idx in bad:
        pos = positions[idx]
        logger.warning(
            f"{name}[{idx}] ({pos.latitude:.4f}, {pos.longitude:.4f}) is not on land"
        )
    return len(bad)
