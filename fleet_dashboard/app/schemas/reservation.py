"""
Reservation schemas.
"""

from pydantic import BaseModel, Field
from datetime import date, time, datetime
from typing import Optional, List

from fleet_dashboard.app.models.vehicle_enums import ReservationStatus
from fleet_dashboard.app.schemas.vehicle import VehicleResponse


class ReservationRequest(BaseModel):
    """
    One reservation in a submission.

    Fields may be blank on input; the reservation manager reports what is
    missing per request so the whole batch can be rejected at once.
    """
    driver_code: str = ""
    driver_name: str = ""
    reservation_date: Optional[date] = None
    reservation_time: Optional[time] = None
    delivery_date: Optional[date] = None
    delivery_time: Optional[time] = None
    duration_hours: int = Field(1, ge=1, le=24, description="Used when no delivery time is given")
    notes: Optional[str] = None


class ReservationBatchRequest(BaseModel):
    """Schema for submitting one or more reservations for a vehicle."""
    reservations: List[ReservationRequest] = Field(..., min_length=1)


class ReservationResponse(BaseModel):
    """Schema for reservation response."""
    id: int
    vehicle_id: int
    driver_id: str
    driver_name: str
    reserved_from: datetime
    reserved_to: datetime
    status: ReservationStatus
    notes: Optional[str]
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ReservationBatchResponse(BaseModel):
    """Schema returned after a successful batch."""
    vehicle: VehicleResponse
    reservations: List[ReservationResponse]


class ReservationListResponse(BaseModel):
    reservations: List[ReservationResponse]
    total: int
