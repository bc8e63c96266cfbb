"""
Trip photo schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Literal

from fleet_dashboard.app.models.vehicle_enums import TripType, PhotoPosition


class PhotoResponse(BaseModel):
    id: int
    vehicle_id: int
    driver_name: str
    trip_type: TripType
    photo_position: PhotoPosition
    storage_path: str
    file_name: str
    uploaded_at: datetime

    class Config:
        from_attributes = True


class PhotoUploadResult(BaseModel):
    """Outcome of uploading one photo."""
    position: str
    success: bool
    photo: Optional[PhotoResponse] = None
    error: Optional[str] = None


class UploadSummary(BaseModel):
    """Per-photo results plus counts."""
    status: Literal["OK", "PARTIAL_FAILURE", "FAILED", "EMPTY"]
    uploaded: int
    failed: int
    results: List[PhotoUploadResult]

    @classmethod
    def from_results(cls, results: List[PhotoUploadResult]) -> "UploadSummary":
        uploaded = sum(1 for r in results if r.success)
        failed = len(results) - uploaded
        if not results:
            status = "EMPTY"
        elif failed == 0:
            status = "OK"
        elif uploaded == 0:
            status = "FAILED"
        else:
            status = "PARTIAL_FAILURE"
        return cls(status=status, uploaded=uploaded, failed=failed, results=results)


class PhotoListResponse(BaseModel):
    photos: List[PhotoResponse]
    total: int


class PhotoBulkDeleteRequest(BaseModel):
    photo_ids: List[int] = Field(..., min_length=1)


class PhotoBulkDeleteResponse(BaseModel):
    deleted: List[int]
    failed: List[int]


class PhotoStats(BaseModel):
    total: int
    pickup: int
    returns: int
    last_7_days: int
