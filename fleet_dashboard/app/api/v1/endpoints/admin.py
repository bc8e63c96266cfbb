"""
Admin API Endpoints.

Fleet, schedule, driver and photo management. Every route requires the
X-Admin-Key header.
"""

from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Path, status

from fleet_dashboard.app.core.clock import fleet_now
from fleet_dashboard.app.core.dependencies import get_gateway, get_photo_service, get_fleet_view
from fleet_dashboard.app.core.guards import require_admin
from fleet_dashboard.app.core.exceptions import AppException
from fleet_dashboard.app.domain.vehicle_state.state_machine import plan_admin_status
from fleet_dashboard.app.models.vehicle_enums import VehicleStatus, ScheduleStatus, ReservationStatus, DriverStatus
from fleet_dashboard.app.schemas.admin import AuditLogResponse, AuditTrailResponse
from fleet_dashboard.app.schemas.driver import DriverCreate, DriverUpdate, DriverResponse, DriverListResponse
from fleet_dashboard.app.schemas.photo import (
    PhotoResponse,
    PhotoListResponse,
    PhotoBulkDeleteRequest,
    PhotoBulkDeleteResponse,
    PhotoStats,
)
from fleet_dashboard.app.schemas.schedule import (
    ScheduleEntryCreate,
    ScheduleEntryUpdate,
    ScheduleEntryResponse,
    ScheduleEntryListResponse,
)
from fleet_dashboard.app.schemas.vehicle import VehicleCreate, VehicleUpdate, AdminStatusChange, VehicleResponse
from fleet_dashboard.app.services.audit import log_event, AuditAction, get_audit_trail
from fleet_dashboard.app.services.fleet_gateway import FleetGateway
from fleet_dashboard.app.services.fleet_view import FleetView
from fleet_dashboard.app.services.photo_service import PhotoService

router = APIRouter(prefix="/admin", tags=["Admin"])


# Vehicles

@router.post("/vehicles", response_model=VehicleResponse, status_code=status.HTTP_201_CREATED)
async def create_vehicle(
    vehicle_data: VehicleCreate,
    admin: str = Depends(require_admin),
    gateway: FleetGateway = Depends(get_gateway)
):
    """Register a new vehicle (free or in maintenance)."""
    vehicle = await gateway.create_vehicle(vehicle_data.model_dump())

    await log_event(
        db=gateway.db,
        action=AuditAction.VEHICLE_CREATED,
        actor_username=admin,
        vehicle_id=vehicle.id,
        metadata={"plate_number": vehicle.plate_number}
    )

    return VehicleResponse.model_validate(vehicle)


@router.patch("/vehicles/{vehicle_id}", response_model=VehicleResponse)
async def update_vehicle(
    vehicle_data: VehicleUpdate,
    vehicle_id: int = Path(..., description="Vehicle ID"),
    admin: str = Depends(require_admin),
    gateway: FleetGateway = Depends(get_gateway),
    view: FleetView = Depends(get_fleet_view)
):
    """
    Edit vehicle details.

    Status cannot be changed here; use the status endpoint.
    The cached fleet view shows the edit while it is written and rolls it
    back if the write fails.
    """
    update_data = vehicle_data.model_dump(exclude_unset=True)
    if not update_data:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No fields to update"
        )

    async def write():
        return await gateway.update_vehicle(vehicle_id, update_data)

    if view.get(vehicle_id) is None:
        vehicle = await write()
    else:
        vehicle = await view.optimistic_update(vehicle_id, update_data, write)

    await log_event(
        db=gateway.db,
        action=AuditAction.VEHICLE_UPDATED,
        actor_username=admin,
        vehicle_id=vehicle_id,
        metadata={"updated_fields": sorted(update_data.keys())}
    )

    return VehicleResponse.model_validate(vehicle)


@router.post("/vehicles/{vehicle_id}/status", response_model=VehicleResponse)
async def change_vehicle_status(
    change: AdminStatusChange,
    vehicle_id: int = Path(..., description="Vehicle ID"),
    admin: str = Depends(require_admin),
    gateway: FleetGateway = Depends(get_gateway)
):
    """
    Change a vehicle's status.

    Any vehicle may go to maintenance, which keeps its reservations;
    maintenance vehicles go back to free, or to reserved when a reservation
    is still pending. Freeing a reserved vehicle cancels its reservations.
    """
    vehicle = await gateway.require_vehicle(vehicle_id)
    plan = plan_admin_status(vehicle, change.status, fleet_now(), reason=change.reason)

    try:
        vehicle = await gateway.apply_transition(plan, commit=False)
        if plan.from_status == VehicleStatus.RESERVED and plan.to_status == VehicleStatus.FREE:
            for reservation in await gateway.list_reservations(vehicle_id=vehicle_id, status=ReservationStatus.ACTIVE):
                await gateway.update_reservation_status(reservation.id, ReservationStatus.CANCELLED, commit=False)
        elif plan.from_status == VehicleStatus.MAINTENANCE:
            vehicle = await gateway.hold_for_next_reservation(vehicle, plan.updates["last_updated"], commit=False)
        await log_event(
            db=gateway.db,
            action=AuditAction.VEHICLE_STATUS_CHANGED,
            actor_username=admin,
            vehicle_id=vehicle_id,
            metadata={
                "from_status": plan.from_status.value,
                "to_status": plan.to_status.value,
                "reason": change.reason
            },
            commit=False
        )
        await gateway.commit()
    except AppException:
        await gateway.rollback()
        raise

    return VehicleResponse.model_validate(vehicle)


@router.delete("/vehicles/{vehicle_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_vehicle(
    vehicle_id: int = Path(..., description="Vehicle ID"),
    admin: str = Depends(require_admin),
    gateway: FleetGateway = Depends(get_gateway)
):
    """Delete a vehicle with its reservations and photo records."""
    await gateway.delete_vehicle(vehicle_id)

    await log_event(
        db=gateway.db,
        action=AuditAction.VEHICLE_DELETED,
        actor_username=admin,
        vehicle_id=vehicle_id
    )


# Schedules

@router.get("/schedules", response_model=ScheduleEntryListResponse)
async def list_schedules(
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    driver_name: Optional[str] = Query(None),
    vehicle_plate: Optional[str] = Query(None),
    schedule_status: Optional[ScheduleStatus] = Query(None, alias="status"),
    admin: str = Depends(require_admin),
    gateway: FleetGateway = Depends(get_gateway)
):
    entries = await gateway.list_schedule_entries(
        date_from=date_from,
        date_to=date_to,
        driver_name=driver_name,
        vehicle_plate=vehicle_plate,
        status=schedule_status
    )
    return ScheduleEntryListResponse(
        entries=[ScheduleEntryResponse.model_validate(e) for e in entries],
        total=len(entries)
    )


@router.post("/schedules", response_model=ScheduleEntryResponse, status_code=status.HTTP_201_CREATED)
async def create_schedule(
    entry_data: ScheduleEntryCreate,
    admin: str = Depends(require_admin),
    gateway: FleetGateway = Depends(get_gateway)
):
    """Add a shift. The vehicle row is not changed; listings pick it up."""
    entry = await gateway.create_schedule_entry(entry_data.model_dump())
    return ScheduleEntryResponse.model_validate(entry)


@router.patch("/schedules/{entry_id}", response_model=ScheduleEntryResponse)
async def update_schedule(
    entry_data: ScheduleEntryUpdate,
    entry_id: int = Path(..., description="Schedule entry ID"),
    admin: str = Depends(require_admin),
    gateway: FleetGateway = Depends(get_gateway)
):
    update_data = entry_data.model_dump(exclude_unset=True)
    if not update_data:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No fields to update"
        )
    entry = await gateway.update_schedule_entry(entry_id, update_data)
    return ScheduleEntryResponse.model_validate(entry)


@router.post("/schedules/{entry_id}/cancel", response_model=ScheduleEntryResponse)
async def cancel_schedule(
    entry_id: int = Path(..., description="Schedule entry ID"),
    admin: str = Depends(require_admin),
    gateway: FleetGateway = Depends(get_gateway)
):
    entry = await gateway.update_schedule_entry(entry_id, {"status": ScheduleStatus.CANCELLED})
    return ScheduleEntryResponse.model_validate(entry)


@router.delete("/schedules/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_schedule(
    entry_id: int = Path(..., description="Schedule entry ID"),
    admin: str = Depends(require_admin),
    gateway: FleetGateway = Depends(get_gateway)
):
    await gateway.delete_schedule_entry(entry_id)


# Drivers

@router.get("/drivers", response_model=DriverListResponse)
async def list_drivers(
    driver_status: Optional[DriverStatus] = Query(None, alias="status"),
    admin: str = Depends(require_admin),
    gateway: FleetGateway = Depends(get_gateway)
):
    drivers = await gateway.list_drivers(status=driver_status)
    return DriverListResponse(
        drivers=[DriverResponse.model_validate(d) for d in drivers],
        total=len(drivers)
    )


@router.post("/drivers", response_model=DriverResponse, status_code=status.HTTP_201_CREATED)
async def create_driver(
    driver_data: DriverCreate,
    admin: str = Depends(require_admin),
    gateway: FleetGateway = Depends(get_gateway)
):
    driver = await gateway.create_driver(driver_data.model_dump())
    return DriverResponse.model_validate(driver)


@router.patch("/drivers/{driver_id}", response_model=DriverResponse)
async def update_driver(
    driver_data: DriverUpdate,
    driver_id: int = Path(..., description="Driver ID"),
    admin: str = Depends(require_admin),
    gateway: FleetGateway = Depends(get_gateway)
):
    update_data = driver_data.model_dump(exclude_unset=True)
    if not update_data:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No fields to update"
        )
    driver = await gateway.update_driver(driver_id, update_data)
    return DriverResponse.model_validate(driver)


@router.delete("/drivers/{driver_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_driver(
    driver_id: int = Path(..., description="Driver ID"),
    admin: str = Depends(require_admin),
    gateway: FleetGateway = Depends(get_gateway)
):
    await gateway.delete_driver(driver_id)


# Photos

@router.get("/photos/recent", response_model=PhotoListResponse)
async def recent_photos(
    limit: int = Query(20, ge=1, le=100),
    admin: str = Depends(require_admin),
    photo_service: PhotoService = Depends(get_photo_service)
):
    photos = await photo_service.recent(limit)
    return PhotoListResponse(
        photos=[PhotoResponse.model_validate(p) for p in photos],
        total=len(photos)
    )


@router.get("/photos/stats", response_model=PhotoStats)
async def photo_stats(
    admin: str = Depends(require_admin),
    photo_service: PhotoService = Depends(get_photo_service)
):
    return await photo_service.stats()


@router.post("/photos/bulk-delete", response_model=PhotoBulkDeleteResponse)
async def bulk_delete_photos(
    request: PhotoBulkDeleteRequest,
    admin: str = Depends(require_admin),
    photo_service: PhotoService = Depends(get_photo_service)
):
    deleted, failed = await photo_service.bulk_delete(request.photo_ids)
    if deleted:
        await log_event(
            db=photo_service.db,
            action=AuditAction.PHOTO_DELETED,
            actor_username=admin,
            metadata={"photo_ids": deleted}
        )
    return PhotoBulkDeleteResponse(deleted=deleted, failed=failed)


@router.delete("/photos/{photo_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_photo(
    photo_id: int = Path(..., description="Photo ID"),
    admin: str = Depends(require_admin),
    photo_service: PhotoService = Depends(get_photo_service)
):
    """Delete a photo. A missing file does not keep the record around."""
    if not await photo_service.delete_photo(photo_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Photo not found"
        )

    await log_event(
        db=photo_service.db,
        action=AuditAction.PHOTO_DELETED,
        actor_username=admin,
        metadata={"photo_ids": [photo_id]}
    )


# Audit

@router.get("/audit-logs", response_model=AuditTrailResponse)
async def audit_trail(
    vehicle_id: Optional[int] = Query(None),
    action: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    admin: str = Depends(require_admin),
    gateway: FleetGateway = Depends(get_gateway)
):
    """Recent fleet actions, newest first."""
    logs = await get_audit_trail(gateway.db, vehicle_id=vehicle_id, action=action, limit=limit)
    return AuditTrailResponse(
        logs=[AuditLogResponse.model_validate(log) for log in logs],
        total=len(logs)
    )
