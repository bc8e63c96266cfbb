"""
Driver schemas.
"""

from pydantic import BaseModel, Field, model_validator
from datetime import datetime
from typing import Optional, List

from fleet_dashboard.app.models.vehicle_enums import DriverStatus


class DriverCredentials(BaseModel):
    """A driver's sign-in pair."""
    driver_code: str = ""
    driver_name: str = ""


class DriverIdentityResponse(BaseModel):
    """Validated driver identity."""
    id: str
    name: str
    code: str
    phone_number: Optional[str] = None
    email: Optional[str] = None
    license_number: Optional[str] = None
    status: DriverStatus


class DriverCreate(BaseModel):
    """Schema for registering a driver in the directory."""
    name: str = Field(..., min_length=1, max_length=100)
    driver_code: str = Field(..., min_length=1, max_length=50)
    phone_number: Optional[str] = Field(None, max_length=50)
    email: Optional[str] = Field(None, max_length=255)
    license_number: Optional[str] = Field(None, max_length=50)
    status: DriverStatus = DriverStatus.ACTIVE


class DriverUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    driver_code: Optional[str] = Field(None, min_length=1, max_length=50)
    phone_number: Optional[str] = Field(None, max_length=50)
    email: Optional[str] = Field(None, max_length=255)
    license_number: Optional[str] = Field(None, max_length=50)
    status: Optional[DriverStatus] = None

    @model_validator(mode="after")
    def reject_cleared_required(self):
        for name in ("name", "driver_code", "status"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class DriverResponse(BaseModel):
    id: int
    name: str
    driver_code: str
    phone_number: Optional[str]
    email: Optional[str]
    license_number: Optional[str]
    status: DriverStatus
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DriverListResponse(BaseModel):
    drivers: List[DriverResponse]
    total: int
