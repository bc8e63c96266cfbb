"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from fleet_dashboard.app.api.v1.endpoints import (
    vehicles, reservations, drivers, trips, admin, realtime
)

router = APIRouter()

# Fleet listing and photos
router.include_router(vehicles.router)

# Reservations
router.include_router(reservations.router)

# Driver credential check
router.include_router(drivers.router)

# Take / return workflows
router.include_router(trips.router)

# Admin management
router.include_router(admin.router)

# Change stream
router.include_router(realtime.router)
