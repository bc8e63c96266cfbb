"""
Reservation API Endpoints.

Drivers reserve vehicles for future time windows, one or several at once.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, Path, status

from fleet_dashboard.app.core.dependencies import get_reservation_manager
from fleet_dashboard.app.schemas.reservation import (
    ReservationBatchRequest,
    ReservationBatchResponse,
    ReservationResponse,
    ReservationListResponse,
)
from fleet_dashboard.app.schemas.vehicle import VehicleResponse
from fleet_dashboard.app.services.reservation_manager import ReservationManager

router = APIRouter(tags=["Reservations"])


@router.post(
    "/vehicles/{vehicle_id}/reservations",
    response_model=ReservationBatchResponse,
    status_code=status.HTTP_201_CREATED
)
async def create_reservations(
    batch: ReservationBatchRequest,
    vehicle_id: int = Path(..., description="Vehicle ID"),
    manager: ReservationManager = Depends(get_reservation_manager)
):
    """
    Reserve a vehicle.

    All reservations in the request are validated first; if any is invalid
    none is stored. A free vehicle becomes reserved for the first window.
    """
    vehicle, reservations = await manager.create_reservations(vehicle_id, batch.reservations)
    return ReservationBatchResponse(
        vehicle=VehicleResponse.model_validate(vehicle),
        reservations=[ReservationResponse.model_validate(r) for r in reservations]
    )


@router.get("/reservations", response_model=ReservationListResponse)
async def list_reservations(
    vehicle_id: Optional[int] = Query(None),
    active_only: bool = Query(False),
    manager: ReservationManager = Depends(get_reservation_manager)
):
    reservations = await manager.list_reservations(vehicle_id=vehicle_id, active_only=active_only)
    return ReservationListResponse(
        reservations=[ReservationResponse.model_validate(r) for r in reservations],
        total=len(reservations)
    )


@router.post("/reservations/{reservation_id}/cancel", response_model=ReservationResponse)
async def cancel_reservation(
    reservation_id: int = Path(..., description="Reservation ID"),
    manager: ReservationManager = Depends(get_reservation_manager)
):
    """Cancel an active reservation; frees the vehicle when none is left."""
    reservation = await manager.cancel_reservation(reservation_id)
    return ReservationResponse.model_validate(reservation)
