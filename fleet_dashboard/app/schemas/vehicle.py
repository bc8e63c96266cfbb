"""
Vehicle Pydantic schemas.

Defines request and response models for fleet management.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Literal

from fleet_dashboard.app.models.vehicle_enums import VehicleStatus


class VehicleCreate(BaseModel):
    """Schema for registering a new vehicle."""
    plate_number: str = Field(..., min_length=1, max_length=20, description="Unique registration plate")
    model: str = Field(..., min_length=1, max_length=100)
    status: Literal["free", "maintenance"] = Field("free", description="New vehicles start free or in maintenance")
    location: Optional[str] = Field(None, max_length=200)
    floor: Optional[str] = Field(None, max_length=50)
    side: Optional[str] = Field(None, max_length=50)
    battery_level: int = Field(100, ge=0, le=100)
    fuel_level: int = Field(100, ge=0, le=100)
    mileage: int = Field(0, ge=0)
    notes: Optional[str] = None
    maintenance_reason: Optional[str] = None


class VehicleUpdate(BaseModel):
    """
    Schema for an admin edit of an existing vehicle.

    Status is not editable here; it changes only through transitions.
    Range checks happen in the state machine so that every write path
    shares one rule set.
    """
    model: Optional[str] = Field(None, min_length=1, max_length=100)
    location: Optional[str] = Field(None, max_length=200)
    floor: Optional[str] = Field(None, max_length=50)
    side: Optional[str] = Field(None, max_length=50)
    battery_level: Optional[float] = None
    fuel_level: Optional[float] = None
    mileage: Optional[float] = None
    notes: Optional[str] = None
    maintenance_reason: Optional[str] = None


class AdminStatusChange(BaseModel):
    """Schema for an admin status change."""
    status: VehicleStatus
    reason: Optional[str] = Field(None, description="Maintenance reason")


class VehicleResponse(BaseModel):
    """Schema for a stored vehicle."""
    id: int
    plate_number: str
    model: str
    status: VehicleStatus
    location: Optional[str] = None
    floor: Optional[str] = None
    side: Optional[str] = None
    battery_level: int
    fuel_level: int
    mileage: int
    driver_name: Optional[str] = None
    driver_id: Optional[str] = None
    reserved_by: Optional[str] = None
    reserved_by_id: Optional[str] = None
    reserved_from: Optional[datetime] = None
    reserved_to: Optional[datetime] = None
    pickup_charge_level: Optional[int] = None
    return_charge_level: Optional[int] = None
    notes: Optional[str] = None
    maintenance_reason: Optional[str] = None
    last_updated: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class VehicleView(VehicleResponse):
    """
    Vehicle as displayed.

    `status` is the derived status; `stored_status` is what the row holds.
    """
    stored_status: VehicleStatus
    status_source: Literal["stored", "schedule"] = "stored"
    schedule_id: Optional[int] = None


class VehicleListResponse(BaseModel):
    """Schema for vehicle list."""
    vehicles: List[VehicleView]
    total: int


class FleetStats(BaseModel):
    """Fleet summary counters."""
    total: int
    free: int
    busy: int
    reserved: int
    maintenance: int
    low_battery: int
    low_fuel: int
    utilization: int  # percent of vehicles busy
