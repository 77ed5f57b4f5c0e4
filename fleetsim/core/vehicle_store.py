"""
Thread-safe in-memory vehicle registry.

Authoritative collection of all simulated vehicles. The tick driver
mutates the stored objects; readers (the HTTP layer) only ever receive
snapshots.
"""

import threading

from fleetsim.core.vehicle import Vehicle


class VehicleStore:
    """
    In-memory store for all simulated vehicles.

    Thread-safe via threading.Lock. Insertion order is preserved.
    """

    def __init__(self) -> None:
        self._vehicles: dict[str, Vehicle] = {}
        self._lock = threading.Lock()

    @property
    def lock(self) -> threading.Lock:
        """Held by the tick driver while it mutates vehicles."""
        return self._lock

    def add_vehicle(self, vehicle: Vehicle) -> None:
        """Add a new vehicle. Raises ValueError if vehicle_id already exists."""
        with self._lock:
            if vehicle.vehicle_id in self._vehicles:
                raise ValueError(f"Vehicle {vehicle.vehicle_id} already exists")
            self._vehicles[vehicle.vehicle_id] = vehicle

    def get_vehicle(self, vehicle_id: str) -> Vehicle | None:
        """Live vehicle by ID, or None if not found. For the simulation core only."""
        with self._lock:
            return self._vehicles.get(vehicle_id)

    def get_all_vehicles(self) -> list[Vehicle]:
        """Live vehicles in insertion order. For the simulation core only."""
        with self._lock:
            return list(self._vehicles.values())

    def snapshot(self, vehicle_id: str) -> Vehicle | None:
        """Copy of one vehicle, or None if not found."""
        with self._lock:
            vehicle = self._vehicles.get(vehicle_id)
            return vehicle.snapshot() if vehicle else None

    def snapshot_all(self) -> list[Vehicle]:
        """Copies of every vehicle."""
        with self._lock:
            return [v.snapshot() for v in self._vehicles.values()]

    @property
    def count(self) -> int:
        """Number of vehicles in the store."""
        with self._lock:
            return len(self._vehicles)
