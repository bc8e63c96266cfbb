"""
Trip workflow schemas.

The workflow state is a tagged union on `step`. A workflow that does not
exist is idle.
"""

from pydantic import BaseModel, Field, TypeAdapter
from datetime import datetime
from typing import Annotated, Optional, Dict, Union, Literal

from fleet_dashboard.app.models.vehicle_enums import TripAction, DriverStatus
from fleet_dashboard.app.schemas.photo import UploadSummary
from fleet_dashboard.app.schemas.vehicle import VehicleResponse


WorkflowMode = Literal["full_inspection", "quick"]


class WorkflowDriver(BaseModel):
    """Driver bound to a workflow after sign-in."""
    id: str
    name: str
    code: str
    status: DriverStatus = DriverStatus.ACTIVE


class _WorkflowBase(BaseModel):
    workflow_id: str
    vehicle_id: int
    action: TripAction
    mode: WorkflowMode = "full_inspection"
    required_photo_count: int
    photos: Dict[str, str] = Field(default_factory=dict)  # position -> image data
    started_at: datetime


class Authenticating(_WorkflowBase):
    step: Literal["authenticating"] = "authenticating"


class CapturingPhotos(_WorkflowBase):
    step: Literal["capturing_photos"] = "capturing_photos"
    driver: WorkflowDriver


class ConfirmingCharge(_WorkflowBase):
    step: Literal["confirming_charge"] = "confirming_charge"
    driver: WorkflowDriver


WorkflowState = Annotated[
    Union[Authenticating, CapturingPhotos, ConfirmingCharge],
    Field(discriminator="step"),
]

workflow_state_adapter = TypeAdapter(WorkflowState)


# Requests

class StartWorkflowRequest(BaseModel):
    vehicle_id: int
    action: TripAction
    mode: WorkflowMode = "full_inspection"


class AuthenticateRequest(BaseModel):
    driver_code: str = ""
    driver_name: str = ""


class CapturePhotoRequest(BaseModel):
    position: Literal["front", "back", "left", "right"]
    image_data: str = Field(..., min_length=1, description="Base64 string or data: URL")


class ConfirmChargeRequest(BaseModel):
    charge_level: int = Field(..., ge=0, le=100)
    floor: Optional[str] = Field(None, max_length=50)
    side: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None


# Responses

class WorkflowStateResponse(BaseModel):
    """Workflow state without image payloads."""
    workflow_id: str
    vehicle_id: int
    action: TripAction
    mode: WorkflowMode
    step: str
    driver_name: Optional[str] = None
    captured_positions: list[str]
    required_photo_count: int
    can_advance: bool

    @classmethod
    def from_state(cls, state) -> "WorkflowStateResponse":
        driver = getattr(state, "driver", None)
        return cls(
            workflow_id=state.workflow_id,
            vehicle_id=state.vehicle_id,
            action=state.action,
            mode=state.mode,
            step=state.step,
            driver_name=driver.name if driver else None,
            captured_positions=sorted(state.photos.keys()),
            required_photo_count=state.required_photo_count,
            can_advance=(
                state.step == "capturing_photos"
                and len(state.photos) >= state.required_photo_count
            ),
        )


class TripConfirmation(BaseModel):
    """Result of a confirmed take or return."""
    vehicle: VehicleResponse
    action: TripAction
    driver_name: str
    photo_upload: UploadSummary
