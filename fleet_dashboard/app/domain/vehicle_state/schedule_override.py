"""
Schedule-derived status override.

Listings show a vehicle as reserved while a schedule entry holds it. This is
a read-time projection; the stored row is never changed.
"""

import enum
from datetime import datetime
from typing import Any, Iterable, List, Optional

from fleet_dashboard.app.models.vehicle_enums import VehicleStatus, ScheduleStatus
from fleet_dashboard.app.schemas.vehicle import VehicleResponse, VehicleView


class ScheduleOverridePolicy(str, enum.Enum):
    """Which schedule entries hold a vehicle."""
    ACTIVE_OR_UPCOMING_TODAY = "active_or_upcoming_today"
    ACTIVE_ONLY = "active_only"


# An entry starting later today holds the vehicle from now on, even ahead of
# a short evening shift.
DEFAULT_POLICY = ScheduleOverridePolicy.ACTIVE_OR_UPCOMING_TODAY


def is_active(entry: Any, now: datetime) -> bool:
    return entry.date == now.date() and entry.start_time <= now.time() <= entry.end_time


def is_upcoming_today(entry: Any, now: datetime) -> bool:
    return entry.date == now.date() and now.time() < entry.start_time


def find_overriding_entry(
    plate_number: str,
    entries: Iterable[Any],
    now: datetime,
    policy: ScheduleOverridePolicy = DEFAULT_POLICY,
) -> Optional[Any]:
    """
    Pick the schedule entry that holds a vehicle right now.

    An entry whose window contains `now` wins; otherwise, under the default
    policy, the earliest entry starting later today.
    """
    candidates = [
        entry for entry in entries
        if entry.vehicle_plate == plate_number
        and ScheduleStatus(entry.status) == ScheduleStatus.SCHEDULED
        and entry.date == now.date()
    ]

    active = [entry for entry in candidates if is_active(entry, now)]
    if active:
        return min(active, key=lambda e: (e.start_time, e.id))

    if ScheduleOverridePolicy(policy) == ScheduleOverridePolicy.ACTIVE_ONLY:
        return None

    upcoming = [entry for entry in candidates if is_upcoming_today(entry, now)]
    if upcoming:
        return min(upcoming, key=lambda e: (e.start_time, e.id))
    return None


def project_vehicle(
    vehicle: Any,
    entries: Iterable[Any],
    now: datetime,
    policy: ScheduleOverridePolicy = DEFAULT_POLICY,
) -> VehicleView:
    """
    Build the displayed view of one stored vehicle.

    Projecting an already projected view with the same entries and `now`
    returns an equal view.
    """
    if isinstance(vehicle, VehicleView):
        view = vehicle
    else:
        stored = VehicleResponse.model_validate(vehicle)
        view = VehicleView(**stored.model_dump(), stored_status=stored.status)

    entry = find_overriding_entry(view.plate_number, entries, now, policy)
    if entry is None:
        return view

    return view.model_copy(update={
        "status": VehicleStatus.RESERVED,
        "reserved_by": entry.driver_name,
        "reserved_by_id": entry.driver_id,
        "reserved_from": datetime.combine(entry.date, entry.start_time),
        "reserved_to": datetime.combine(entry.date, entry.end_time),
        "status_source": "schedule",
        "schedule_id": entry.id,
    })


def project_fleet(
    vehicles: Iterable[Any],
    entries: Iterable[Any],
    now: datetime,
    policy: ScheduleOverridePolicy = DEFAULT_POLICY,
) -> List[VehicleView]:
    entries = list(entries)
    return [project_vehicle(vehicle, entries, now, policy) for vehicle in vehicles]
