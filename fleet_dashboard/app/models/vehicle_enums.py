"""
Fleet enumerations.
"""

import enum


class VehicleStatus(str, enum.Enum):
    """Vehicle availability status."""
    FREE = "free"  # Parked and available
    BUSY = "busy"  # Taken by a driver
    RESERVED = "reserved"  # Held for a driver and time window
    MAINTENANCE = "maintenance"  # Out of service (admin only)


class ScheduleStatus(str, enum.Enum):
    """Schedule entry status."""
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ReservationStatus(str, enum.Enum):
    """Reservation status."""
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class DriverStatus(str, enum.Enum):
    """Driver employment status."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    ON_LEAVE = "on_leave"


class TripAction(str, enum.Enum):
    """Driver action that starts a trip workflow."""
    TAKE = "take"
    RETURN = "return"


class TripType(str, enum.Enum):
    """Trip leg a photo belongs to."""
    PICKUP = "pickup"
    RETURN = "return"


class PhotoPosition(str, enum.Enum):
    """Side of the vehicle a photo shows."""
    FRONT = "front"
    BACK = "back"
    LEFT = "left"
    RIGHT = "right"
