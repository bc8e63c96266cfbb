"""
Trip Workflow API Endpoints.

Take and return run as a workflow: start, sign in, capture photos,
advance, confirm. Cancel discards everything at any step.
"""

from fastapi import APIRouter, Depends, Path, status

from fleet_dashboard.app.core.dependencies import get_trip_workflow_service
from fleet_dashboard.app.schemas.trip_workflow import (
    StartWorkflowRequest,
    AuthenticateRequest,
    CapturePhotoRequest,
    ConfirmChargeRequest,
    WorkflowStateResponse,
    TripConfirmation,
)
from fleet_dashboard.app.services.trip_workflow import TripWorkflowService

router = APIRouter(prefix="/trips/workflows", tags=["Trip Workflows"])


@router.post("", response_model=WorkflowStateResponse, status_code=status.HTTP_201_CREATED)
async def start_workflow(
    request: StartWorkflowRequest,
    service: TripWorkflowService = Depends(get_trip_workflow_service)
):
    """Start taking or returning a vehicle."""
    state = await service.start(request.vehicle_id, request.action, request.mode)
    return WorkflowStateResponse.from_state(state)


@router.get("/{workflow_id}", response_model=WorkflowStateResponse)
async def get_workflow(
    workflow_id: str = Path(...),
    service: TripWorkflowService = Depends(get_trip_workflow_service)
):
    state = await service.get(workflow_id)
    return WorkflowStateResponse.from_state(state)


@router.post("/{workflow_id}/authenticate", response_model=WorkflowStateResponse)
async def authenticate(
    request: AuthenticateRequest,
    workflow_id: str = Path(...),
    service: TripWorkflowService = Depends(get_trip_workflow_service)
):
    state = await service.authenticate(workflow_id, request.driver_code, request.driver_name)
    return WorkflowStateResponse.from_state(state)


@router.post("/{workflow_id}/photos", response_model=WorkflowStateResponse)
async def add_photo(
    request: CapturePhotoRequest,
    workflow_id: str = Path(...),
    service: TripWorkflowService = Depends(get_trip_workflow_service)
):
    """Capture (or retake) the photo for one position."""
    state = await service.add_photo(workflow_id, request.position, request.image_data)
    return WorkflowStateResponse.from_state(state)


@router.delete("/{workflow_id}/photos/{position}", response_model=WorkflowStateResponse)
async def remove_photo(
    workflow_id: str = Path(...),
    position: str = Path(...),
    service: TripWorkflowService = Depends(get_trip_workflow_service)
):
    state = await service.remove_photo(workflow_id, position)
    return WorkflowStateResponse.from_state(state)


@router.post("/{workflow_id}/advance", response_model=WorkflowStateResponse)
async def advance(
    workflow_id: str = Path(...),
    service: TripWorkflowService = Depends(get_trip_workflow_service)
):
    state = await service.advance(workflow_id)
    return WorkflowStateResponse.from_state(state)


@router.post("/{workflow_id}/back", response_model=WorkflowStateResponse)
async def back(
    workflow_id: str = Path(...),
    service: TripWorkflowService = Depends(get_trip_workflow_service)
):
    state = await service.back(workflow_id)
    return WorkflowStateResponse.from_state(state)


@router.post("/{workflow_id}/confirm", response_model=TripConfirmation)
async def confirm(
    request: ConfirmChargeRequest,
    workflow_id: str = Path(...),
    service: TripWorkflowService = Depends(get_trip_workflow_service)
):
    """
    Confirm the charge level and finish the take or return.

    Photo upload failures are reported in `photo_upload` and do not block
    the status change.
    """
    return await service.confirm(
        workflow_id,
        charge_level=request.charge_level,
        floor=request.floor,
        side=request.side,
        notes=request.notes
    )


@router.delete("/{workflow_id}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel(
    workflow_id: str = Path(...),
    service: TripWorkflowService = Depends(get_trip_workflow_service)
):
    await service.cancel(workflow_id)
