"""
Schedule entry schemas.
"""

from pydantic import BaseModel, Field, model_validator
import datetime as dt
from typing import Optional, List

from fleet_dashboard.app.models.vehicle_enums import ScheduleStatus

REQUIRED_SCHEDULE_FIELDS = ("driver_name", "date", "start_time", "end_time", "status", "shift_number")


class ScheduleEntryCreate(BaseModel):
    """Schema for creating a schedule entry."""
    driver_name: str = Field(..., min_length=1, max_length=100)
    driver_id: Optional[str] = Field(None, max_length=50)
    vehicle_plate: Optional[str] = Field(None, max_length=20)
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    shift_number: int = Field(1, ge=1)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_window(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class ScheduleEntryUpdate(BaseModel):
    """Schema for updating a schedule entry."""
    driver_name: Optional[str] = Field(None, min_length=1, max_length=100)
    driver_id: Optional[str] = Field(None, max_length=50)
    vehicle_plate: Optional[str] = Field(None, max_length=20)
    date: Optional[dt.date] = None
    start_time: Optional[dt.time] = None
    end_time: Optional[dt.time] = None
    status: Optional[ScheduleStatus] = None
    shift_number: Optional[int] = Field(None, ge=1)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_fields(self):
        cleared = [
            name for name in REQUIRED_SCHEDULE_FIELDS
            if name in self.model_fields_set and getattr(self, name) is None
        ]
        if cleared:
            raise ValueError(f"{', '.join(cleared)} cannot be null")
        if self.start_time is not None and self.end_time is not None and self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class ScheduleEntryResponse(BaseModel):
    """Schema for schedule entry response."""
    id: int
    driver_name: str
    driver_id: Optional[str]
    vehicle_plate: Optional[str]
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    status: ScheduleStatus
    shift_number: int
    notes: Optional[str]
    created_at: Optional[dt.datetime] = None

    class Config:
        from_attributes = True


class ScheduleEntryListResponse(BaseModel):
    entries: List[ScheduleEntryResponse]
    total: int
