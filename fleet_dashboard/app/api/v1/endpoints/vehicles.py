"""
Vehicle API Endpoints.

Read-only fleet listing for drivers and the dashboard. Displayed statuses
include today's schedule entries.
"""

from typing import Optional, Literal
from fastapi import APIRouter, Depends, Query, Path

from fleet_dashboard.app.core.clock import fleet_now
from fleet_dashboard.app.core.config import settings
from fleet_dashboard.app.core.dependencies import get_gateway, get_photo_service
from fleet_dashboard.app.domain.vehicle_state.schedule_override import ScheduleOverridePolicy, project_vehicle
from fleet_dashboard.app.models.vehicle_enums import VehicleStatus, ScheduleStatus, TripType
from fleet_dashboard.app.schemas.photo import PhotoResponse, PhotoListResponse
from fleet_dashboard.app.schemas.vehicle import VehicleView, VehicleListResponse, FleetStats
from fleet_dashboard.app.services.fleet_gateway import FleetGateway
from fleet_dashboard.app.services.fleet_stats import compute_stats, filter_vehicles
from fleet_dashboard.app.services.photo_service import PhotoService

router = APIRouter(prefix="/vehicles", tags=["Vehicles"])

LevelBand = Literal["low", "medium", "high"]


@router.get("", response_model=VehicleListResponse)
async def list_vehicles(
    status: Optional[VehicleStatus] = Query(None, description="Displayed status"),
    location: Optional[str] = Query(None),
    battery: Optional[LevelBand] = Query(None, description="Battery band"),
    fuel: Optional[LevelBand] = Query(None, description="Fuel band"),
    search: Optional[str] = Query(None, description="Plate, model or driver name"),
    gateway: FleetGateway = Depends(get_gateway)
):
    """
    List vehicles with their displayed status.

    A vehicle held by a schedule entry today shows as reserved for the
    scheduled driver, whatever its stored status.
    """
    vehicles = await gateway.get_vehicles_with_schedule_override()
    vehicles = filter_vehicles(vehicles, status=status, location=location, battery=battery, fuel=fuel, search=search)
    return VehicleListResponse(vehicles=vehicles, total=len(vehicles))


@router.get("/stats", response_model=FleetStats)
async def fleet_stats(gateway: FleetGateway = Depends(get_gateway)):
    """Fleet counters over the displayed statuses."""
    vehicles = await gateway.get_vehicles_with_schedule_override()
    return compute_stats(vehicles)


@router.get("/{vehicle_id}", response_model=VehicleView)
async def get_vehicle(
    vehicle_id: int = Path(..., description="Vehicle ID"),
    gateway: FleetGateway = Depends(get_gateway)
):
    """Get one vehicle with its displayed status."""
    vehicle = await gateway.require_vehicle(vehicle_id)
    now = fleet_now()
    entries = await gateway.list_schedule_entries(
        date_from=now.date(),
        date_to=now.date(),
        vehicle_plate=vehicle.plate_number,
        status=ScheduleStatus.SCHEDULED
    )
    return project_vehicle(vehicle, entries, now, ScheduleOverridePolicy(settings.schedule_override_policy))


@router.get("/{vehicle_id}/photos", response_model=PhotoListResponse)
async def list_vehicle_photos(
    vehicle_id: int = Path(..., description="Vehicle ID"),
    trip_type: Optional[TripType] = Query(None),
    gateway: FleetGateway = Depends(get_gateway),
    photo_service: PhotoService = Depends(get_photo_service)
):
    """List trip photos of a vehicle, newest first."""
    await gateway.require_vehicle(vehicle_id)
    photos = await photo_service.list_for_vehicle(vehicle_id, trip_type)
    return PhotoListResponse(
        photos=[PhotoResponse.model_validate(p) for p in photos],
        total=len(photos)
    )
