"""
Vehicle Status State Machine (Domain Logic).

Plans status transitions and validates vehicle fields. Planning is pure:
it reads the current vehicle, checks the transition table, the driver rules
and the invariants, and returns a TransitionPlan. Nothing is written here.

The gateway applies a plan with a conditional update on the plan's
from_status, so a vehicle that changed in between is rejected instead of
being overwritten.
"""

import enum
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from fleet_dashboard.app.core.config import settings
from fleet_dashboard.app.core.exceptions import (
    ValidationError,
    InvalidTransitionError,
    NotAuthorizedForVehicleError,
)
from fleet_dashboard.app.models.vehicle_enums import VehicleStatus


class Trigger(str, enum.Enum):
    """What caused a transition."""
    TAKE = "take"
    RETURN = "return"
    RESERVE = "reserve"
    CANCEL = "cancel"
    ADMIN = "admin"


# (from, to) -> triggers that may perform it
TRANSITIONS: Dict[tuple, frozenset] = {
    (VehicleStatus.FREE, VehicleStatus.BUSY): frozenset({Trigger.TAKE}),
    (VehicleStatus.BUSY, VehicleStatus.FREE): frozenset({Trigger.RETURN}),
    (VehicleStatus.FREE, VehicleStatus.RESERVED): frozenset({Trigger.RESERVE}),
    (VehicleStatus.RESERVED, VehicleStatus.FREE): frozenset({Trigger.CANCEL}),
    (VehicleStatus.RESERVED, VehicleStatus.BUSY): frozenset({Trigger.TAKE}),
    (VehicleStatus.MAINTENANCE, VehicleStatus.FREE): frozenset({Trigger.ADMIN}),
}
# Admin may send any vehicle to maintenance
for _status in VehicleStatus:
    TRANSITIONS.setdefault((_status, VehicleStatus.MAINTENANCE), frozenset({Trigger.ADMIN}))


LEVEL_FIELDS = ("battery_level", "fuel_level", "pickup_charge_level", "return_charge_level")
NULLABLE_LEVEL_FIELDS = ("pickup_charge_level", "return_charge_level")
TEXT_FIELDS = (
    "model", "location", "floor", "side",
    "driver_name", "driver_id", "reserved_by", "reserved_by_id",
    "notes", "maintenance_reason",
)
REQUIRED_TEXT_FIELDS = ("model",)
DATETIME_FIELDS = ("reserved_from", "reserved_to", "last_updated")
EDITABLE_FIELDS = frozenset(LEVEL_FIELDS + TEXT_FIELDS + DATETIME_FIELDS + ("mileage", "status"))

CLEARED_DRIVER = {"driver_name": None, "driver_id": None}
CLEARED_RESERVATION = {
    "reserved_by": None,
    "reserved_by_id": None,
    "reserved_from": None,
    "reserved_to": None,
}


@dataclass(frozen=True)
class TransitionPlan:
    """A validated status change, ready to be applied conditionally."""
    vehicle_id: int
    from_status: VehicleStatus
    to_status: VehicleStatus
    trigger: Trigger
    updates: Dict[str, Any]


def is_allowed(from_status: VehicleStatus, to_status: VehicleStatus, trigger: Trigger) -> bool:
    """Check the transition table."""
    return trigger in TRANSITIONS.get((VehicleStatus(from_status), VehicleStatus(to_status)), frozenset())


def _whole_number(key: str, value: Any) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"Invalid {key}: must be a number", field=key)
    if not math.isfinite(value):
        raise ValidationError(f"Invalid {key}: must be a finite number", field=key)
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"Invalid {key}: must be a whole number", field=key)
        value = int(value)
    return value


def validate_vehicle_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Validate a partial vehicle update.

    Args:
        fields: Column name -> new value. None clears a nullable field.

    Returns:
        Cleaned copy (whole-number floats coerced to int, status as enum)

    Raises:
        ValidationError: On unknown fields, out-of-range numbers, an unknown
            status, or wrongly typed text/datetime values
    """
    cleaned: Dict[str, Any] = {}

    for key, value in fields.items():
        if key not in EDITABLE_FIELDS:
            raise ValidationError(f"Unknown vehicle field: {key}", field=key)

        if key in LEVEL_FIELDS:
            if value is None:
                if key not in NULLABLE_LEVEL_FIELDS:
                    raise ValidationError(f"Invalid {key}: must be a number", field=key)
                cleaned[key] = None
                continue
            value = _whole_number(key, value)
            if not 0 <= value <= 100:
                raise ValidationError(f"Invalid {key}: must be between 0 and 100", field=key)

        elif key == "mileage":
            value = _whole_number(key, value)
            if value < 0:
                raise ValidationError("Invalid mileage: must not be negative", field=key)

        elif key == "status":
            try:
                value = VehicleStatus(value)
            except ValueError:
                raise ValidationError(f"Invalid status: {value}", field=key)

        elif key in TEXT_FIELDS:
            if value is None and key in REQUIRED_TEXT_FIELDS:
                raise ValidationError(f"Invalid {key}: must not be empty", field=key)
            if value is not None and not isinstance(value, str):
                raise ValidationError(f"Invalid {key}: must be a string or null", field=key)

        elif key in DATETIME_FIELDS:
            if value is not None and not isinstance(value, datetime):
                raise ValidationError(f"Invalid {key}: must be a datetime or null", field=key)

        cleaned[key] = value

    return cleaned


def vehicle_state(vehicle: Any) -> Dict[str, Any]:
    """Read the editable fields of a vehicle (ORM row or schema) into a dict."""
    return {key: getattr(vehicle, key, None) for key in EDITABLE_FIELDS}


def check_invariants(state: Mapping[str, Any]) -> List[str]:
    """
    List invariant violations of a vehicle state.

    - busy <=> driver_name and driver_id both set
    - reserved => reserved_by set and reserved_from < reserved_to
    - only a reserved vehicle carries a reservation window
    """
    violations = []
    status = VehicleStatus(state.get("status"))
    has_driver = bool(state.get("driver_name")) and bool(state.get("driver_id"))
    any_driver = bool(state.get("driver_name")) or bool(state.get("driver_id"))
    any_window = any(state.get(key) for key in CLEARED_RESERVATION)

    if status == VehicleStatus.BUSY and not has_driver:
        violations.append("a busy vehicle must have driver_name and driver_id")
    if status != VehicleStatus.BUSY and any_driver:
        violations.append(f"a {status.value} vehicle must not have a driver")

    if status == VehicleStatus.RESERVED:
        start, end = state.get("reserved_from"), state.get("reserved_to")
        if not state.get("reserved_by"):
            violations.append("a reserved vehicle must have reserved_by")
        if start is None or end is None or start >= end:
            violations.append("a reserved vehicle must have a non-empty reservation window")
    elif any_window:
        violations.append(f"a {status.value} vehicle must not carry a reservation window")

    return violations


def _plan(vehicle: Any, to_status: VehicleStatus, trigger: Trigger, updates: Dict[str, Any]) -> TransitionPlan:
    from_status = VehicleStatus(vehicle.status)
    if not is_allowed(from_status, to_status, trigger):
        raise InvalidTransitionError(from_status.value, to_status.value)

    cleaned = validate_vehicle_fields({**updates, "status": to_status})
    violations = check_invariants({**vehicle_state(vehicle), **cleaned})
    if violations:
        raise ValidationError(
            "Vehicle update would violate status invariants",
            details={"violations": violations}
        )

    return TransitionPlan(
        vehicle_id=vehicle.id,
        from_status=from_status,
        to_status=to_status,
        trigger=trigger,
        updates=cleaned,
    )


def ensure_driver_may_take(driver: Any, vehicle: Any) -> None:
    """A reserved vehicle may only be taken by the driver it is reserved for."""
    if VehicleStatus(vehicle.status) == VehicleStatus.RESERVED and vehicle.reserved_by != driver.name:
        raise NotAuthorizedForVehicleError(
            f"This vehicle is reserved for {vehicle.reserved_by}. You are signed in as {driver.name}.",
            required_driver=vehicle.reserved_by
        )


def ensure_driver_may_return(driver: Any, vehicle: Any) -> None:
    """Only the driver who took the vehicle may return it."""
    if vehicle.driver_name and vehicle.driver_name != driver.name:
        raise NotAuthorizedForVehicleError(
            f"Only {vehicle.driver_name} can return this vehicle. You are signed in as {driver.name}.",
            required_driver=vehicle.driver_name
        )


def plan_take(
    vehicle: Any,
    driver: Any,
    charge_level: int,
    now: datetime,
    location: Optional[str] = None,
) -> TransitionPlan:
    """
    Plan free -> busy, or reserved -> busy for the reserving driver.

    Sets the driver, clears any reservation window and records the pickup
    charge level.
    """
    ensure_driver_may_take(driver, vehicle)
    updates = {
        **CLEARED_RESERVATION,
        "driver_name": driver.name,
        "driver_id": driver.code,
        "location": location or settings.in_transit_location,
        "floor": None,
        "side": None,
        "battery_level": charge_level,
        "pickup_charge_level": charge_level,
        "last_updated": now,
    }
    return _plan(vehicle, VehicleStatus.BUSY, Trigger.TAKE, updates)


def plan_return(
    vehicle: Any,
    driver: Any,
    charge_level: int,
    floor: Optional[str],
    side: Optional[str],
    now: datetime,
    location: Optional[str] = None,
    max_charge_gain: Optional[int] = None,
) -> TransitionPlan:
    """
    Plan busy -> free.

    Clears the driver and records the return charge level and parking spot.
    """
    from_status = VehicleStatus(vehicle.status)
    if from_status != VehicleStatus.BUSY:
        raise InvalidTransitionError(from_status.value, VehicleStatus.FREE.value, "vehicle is not taken")

    ensure_driver_may_return(driver, vehicle)

    if not floor or not side:
        raise ValidationError("Select floor and side for the parking spot", field="floor")

    if max_charge_gain is None:
        max_charge_gain = settings.max_return_charge_gain
    pickup = vehicle.pickup_charge_level
    if pickup is not None and charge_level > pickup + max_charge_gain:
        raise ValidationError(
            f"Return charge level cannot be more than {max_charge_gain}% above the pickup level ({pickup}%)",
            field="charge_level"
        )

    updates = {
        **CLEARED_DRIVER,
        "location": location or settings.default_parking_location,
        "floor": floor,
        "side": side,
        "battery_level": charge_level,
        "return_charge_level": charge_level,
        "last_updated": now,
    }
    return _plan(vehicle, VehicleStatus.FREE, Trigger.RETURN, updates)


def plan_reservation(
    vehicle: Any,
    driver_name: str,
    driver_code: str,
    reserved_from: datetime,
    reserved_to: datetime,
    now: datetime,
) -> TransitionPlan:
    """Plan free -> reserved for a non-empty future window."""
    if reserved_to <= reserved_from:
        raise ValidationError("Reservation end must be after its start", field="reserved_to")
    if reserved_to <= now:
        raise ValidationError("Reservation window must not be in the past", field="reserved_to")

    updates = {
        "reserved_by": driver_name,
        "reserved_by_id": driver_code,
        "reserved_from": reserved_from,
        "reserved_to": reserved_to,
        "last_updated": now,
    }
    return _plan(vehicle, VehicleStatus.RESERVED, Trigger.RESERVE, updates)


def plan_cancel_reservation(vehicle: Any, now: datetime) -> TransitionPlan:
    """Plan reserved -> free."""
    return _plan(vehicle, VehicleStatus.FREE, Trigger.CANCEL, {**CLEARED_RESERVATION, "last_updated": now})


def plan_admin_status(
    vehicle: Any,
    target: VehicleStatus,
    now: datetime,
    reason: Optional[str] = None,
) -> TransitionPlan:
    """
    Plan an admin status change.

    Any status may go to maintenance, maintenance may go back to free, and a
    reservation may be cancelled. Busy vehicles leave busy only through a
    return.
    """
    target = VehicleStatus(target)
    current = VehicleStatus(vehicle.status)

    if target == VehicleStatus.MAINTENANCE:
        updates = {
            **CLEARED_DRIVER,
            **CLEARED_RESERVATION,
            "maintenance_reason": reason,
            "last_updated": now,
        }
        return _plan(vehicle, target, Trigger.ADMIN, updates)

    if target == VehicleStatus.FREE and current == VehicleStatus.MAINTENANCE:
        return _plan(vehicle, target, Trigger.ADMIN, {"maintenance_reason": None, "last_updated": now})

    if target == VehicleStatus.FREE and current == VehicleStatus.RESERVED:
        return plan_cancel_reservation(vehicle, now)

    raise InvalidTransitionError(current.value, target.value, "use the trip or reservation workflow")
