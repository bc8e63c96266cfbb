"""
Fleet statistics and list filters.

Both work on the displayed (schedule-projected) vehicle list.
"""

from typing import Iterable, List, Optional

from fleet_dashboard.app.core.config import settings
from fleet_dashboard.app.models.vehicle_enums import VehicleStatus
from fleet_dashboard.app.schemas.vehicle import FleetStats

LEVEL_BANDS = ("low", "medium", "high")


def level_band(level: int) -> str:
    """low below 30, medium 30-69, high from 70."""
    if level < settings.low_level_threshold:
        return "low"
    if level < settings.high_level_threshold:
        return "medium"
    return "high"


def compute_stats(vehicles: Iterable) -> FleetStats:
    vehicles = list(vehicles)
    total = len(vehicles)
    counts = {status: 0 for status in VehicleStatus}
    for vehicle in vehicles:
        counts[VehicleStatus(vehicle.status)] += 1

    busy = counts[VehicleStatus.BUSY]
    return FleetStats(
        total=total,
        free=counts[VehicleStatus.FREE],
        busy=busy,
        reserved=counts[VehicleStatus.RESERVED],
        maintenance=counts[VehicleStatus.MAINTENANCE],
        low_battery=sum(1 for v in vehicles if v.battery_level < settings.low_level_threshold),
        low_fuel=sum(1 for v in vehicles if v.fuel_level < settings.low_level_threshold),
        utilization=round(busy / total * 100) if total else 0,
    )


def filter_vehicles(
    vehicles: Iterable,
    status: Optional[VehicleStatus] = None,
    location: Optional[str] = None,
    battery: Optional[str] = None,
    fuel: Optional[str] = None,
    search: Optional[str] = None,
) -> List:
    """Keep vehicles matching every given filter."""
    needle = search.strip().lower() if search else ""
    matched = []
    for vehicle in vehicles:
        if status is not None and VehicleStatus(vehicle.status) != VehicleStatus(status):
            continue
        if location and vehicle.location != location:
            continue
        if battery and level_band(vehicle.battery_level) != battery:
            continue
        if fuel and level_band(vehicle.fuel_level) != fuel:
            continue
        if needle:
            haystack = (vehicle.plate_number, vehicle.model, vehicle.driver_name or "")
            if not any(needle in value.lower() for value in haystack):
                continue
        matched.append(vehicle)
    return matched
