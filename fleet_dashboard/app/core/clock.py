"""
Fleet-local wall clock.

Reservation windows and schedule entries are compared in the fleet's
local time zone, stored as naive datetimes.
"""

from datetime import datetime
from zoneinfo import ZoneInfo

from fleet_dashboard.app.core.config import settings


def fleet_now() -> datetime:
    """Current fleet-local time without tzinfo."""
    return datetime.now(ZoneInfo(settings.fleet_timezone)).replace(tzinfo=None, microsecond=0)
