"""
Trip workflow orchestration.

A take or return runs through three steps: the driver signs in, captures the
inspection photos and confirms the charge level (and, on return, the parking
spot). In-flight workflows live in Redis; nothing touches the vehicle until
confirm. A workflow that does not exist is idle.
"""

import logging
import uuid
from typing import Callable, Optional

from fleet_dashboard.app.core.clock import fleet_now
from fleet_dashboard.app.core.config import settings
from fleet_dashboard.app.core.exceptions import (
    InvalidTransitionError,
    ResourceNotFoundError,
    WorkflowStepError,
)
from fleet_dashboard.app.domain.vehicle_state.state_machine import (
    ensure_driver_may_take,
    ensure_driver_may_return,
    plan_take,
    plan_return,
)
from fleet_dashboard.app.models.vehicle_enums import VehicleStatus, TripAction, TripType
from fleet_dashboard.app.schemas.photo import UploadSummary
from fleet_dashboard.app.schemas.trip_workflow import (
    Authenticating,
    CapturingPhotos,
    ConfirmingCharge,
    TripConfirmation,
    WorkflowDriver,
    WorkflowMode,
    WorkflowState,
    workflow_state_adapter,
)
from fleet_dashboard.app.schemas.vehicle import VehicleResponse
from fleet_dashboard.app.services.audit import log_event, AuditAction
from fleet_dashboard.app.services.driver_directory import DriverDirectory, authenticate_driver
from fleet_dashboard.app.services.fleet_gateway import FleetGateway
from fleet_dashboard.app.services.photo_service import PhotoService

logger = logging.getLogger(__name__)

WORKFLOW_KEY_PREFIX = "trip_workflow:"

# Statuses a vehicle must be in for each action to start
STARTABLE_STATUSES = {
    TripAction.TAKE: {VehicleStatus.FREE, VehicleStatus.RESERVED},
    TripAction.RETURN: {VehicleStatus.BUSY},
}

TRIP_TYPES = {
    TripAction.TAKE: TripType.PICKUP,
    TripAction.RETURN: TripType.RETURN,
}


def required_photo_count(mode: WorkflowMode) -> int:
    if mode == "quick":
        return settings.quick_photo_count
    return settings.full_inspection_photo_count


class TripWorkflowStore:
    """Redis persistence for in-flight workflows."""

    def __init__(self, redis, ttl_seconds: Optional[int] = None):
        self.redis = redis
        self.ttl_seconds = ttl_seconds or settings.trip_workflow_ttl_seconds

    @staticmethod
    def key(workflow_id: str) -> str:
        return f"{WORKFLOW_KEY_PREFIX}{workflow_id}"

    async def save(self, state: WorkflowState) -> None:
        await self.redis.set(self.key(state.workflow_id), state.model_dump_json(), ex=self.ttl_seconds)

    async def load(self, workflow_id: str) -> WorkflowState:
        raw = await self.redis.get(self.key(workflow_id))
        if raw is None:
            raise ResourceNotFoundError("Trip workflow", workflow_id)
        return workflow_state_adapter.validate_json(raw)

    async def delete(self, workflow_id: str) -> bool:
        return bool(await self.redis.delete(self.key(workflow_id)))


class TripWorkflowService:
    """Drives take/return workflows from start to the persisted status change."""

    def __init__(
        self,
        store: TripWorkflowStore,
        gateway: FleetGateway,
        directory: DriverDirectory,
        photo_service: PhotoService,
        now_fn: Callable = fleet_now,
    ):
        self.store = store
        self.gateway = gateway
        self.directory = directory
        self.photo_service = photo_service
        self.now_fn = now_fn

    @staticmethod
    def _require_step(state: WorkflowState, step: str, operation: str) -> None:
        if state.step != step:
            raise WorkflowStepError(
                f"Cannot {operation} while the workflow is {state.step.replace('_', ' ')}",
                step=state.step
            )

    async def start(self, vehicle_id: int, action: TripAction, mode: WorkflowMode = "full_inspection") -> Authenticating:
        """Open a workflow for a vehicle the action can leave."""
        action = TripAction(action)
        vehicle = await self.gateway.require_vehicle(vehicle_id)
        status = VehicleStatus(vehicle.status)

        if status not in STARTABLE_STATUSES[action]:
            target = VehicleStatus.BUSY if action == TripAction.TAKE else VehicleStatus.FREE
            reason = "vehicle is not available" if action == TripAction.TAKE else "vehicle is not taken"
            raise InvalidTransitionError(status.value, target.value, reason)

        state = Authenticating(
            workflow_id=uuid.uuid4().hex,
            vehicle_id=vehicle.id,
            action=action,
            mode=mode,
            required_photo_count=required_photo_count(mode),
            started_at=self.now_fn(),
        )
        await self.store.save(state)
        logger.info(
            "Trip workflow started",
            extra={"workflow_id": state.workflow_id, "vehicle_id": vehicle.id, "action": action.value}
        )
        return state

    async def get(self, workflow_id: str) -> WorkflowState:
        return await self.store.load(workflow_id)

    async def authenticate(self, workflow_id: str, driver_code: str, driver_name: str) -> CapturingPhotos:
        """Sign the driver in and check they may act on this vehicle."""
        state = await self.store.load(workflow_id)
        self._require_step(state, "authenticating", "sign in")

        identity = await authenticate_driver(self.directory, driver_code, driver_name)
        vehicle = await self.gateway.require_vehicle(state.vehicle_id)
        if state.action == TripAction.TAKE:
            ensure_driver_may_take(identity, vehicle)
        else:
            ensure_driver_may_return(identity, vehicle)

        new_state = CapturingPhotos(
            **state.model_dump(exclude={"step"}),
            driver=WorkflowDriver(id=identity.id, name=identity.name, code=identity.code, status=identity.status),
        )
        await self.store.save(new_state)
        return new_state

    async def add_photo(self, workflow_id: str, position: str, image_data: str) -> CapturingPhotos:
        state = await self.store.load(workflow_id)
        self._require_step(state, "capturing_photos", "add photos")
        state.photos[position] = image_data
        await self.store.save(state)
        return state

    async def remove_photo(self, workflow_id: str, position: str) -> CapturingPhotos:
        state = await self.store.load(workflow_id)
        self._require_step(state, "capturing_photos", "remove photos")
        state.photos.pop(position, None)
        await self.store.save(state)
        return state

    async def advance(self, workflow_id: str) -> ConfirmingCharge:
        """Move on to the charge confirmation once enough photos are captured."""
        state = await self.store.load(workflow_id)
        self._require_step(state, "capturing_photos", "continue")

        if len(state.photos) < state.required_photo_count:
            raise WorkflowStepError(
                f"Take all {state.required_photo_count} photos before continuing "
                f"({len(state.photos)} captured)",
                step=state.step
            )

        new_state = ConfirmingCharge(**state.model_dump(exclude={"step"}))
        await self.store.save(new_state)
        return new_state

    async def back(self, workflow_id: str) -> WorkflowState:
        """Step back one step. Captured photos are kept; going back to sign-in drops the driver."""
        state = await self.store.load(workflow_id)

        if state.step == "confirming_charge":
            new_state = CapturingPhotos(**state.model_dump(exclude={"step"}))
        elif state.step == "capturing_photos":
            new_state = Authenticating(**state.model_dump(exclude={"step", "driver"}))
        else:
            raise WorkflowStepError("Already at the first step", step=state.step)

        await self.store.save(new_state)
        return new_state

    async def cancel(self, workflow_id: str) -> None:
        """Discard the workflow and everything captured in it."""
        if await self.store.delete(workflow_id):
            logger.info("Trip workflow cancelled", extra={"workflow_id": workflow_id})

    async def confirm(
        self,
        workflow_id: str,
        charge_level: int,
        floor: Optional[str] = None,
        side: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> TripConfirmation:
        """
        Finish the workflow.

        The transition is planned first so that bad input uploads nothing.
        Photos are uploaded next; failed uploads are reported but do not stop
        the status change. A returned vehicle with a pending reservation goes
        straight back to reserved for it. The workflow is removed once the
        change commits.
        """
        state = await self.store.load(workflow_id)
        self._require_step(state, "confirming_charge", "confirm")

        now = self.now_fn()
        identity = await authenticate_driver(self.directory, state.driver.code, state.driver.name)
        vehicle = await self.gateway.require_vehicle(state.vehicle_id)

        if state.action == TripAction.TAKE:
            plan = plan_take(vehicle, identity, charge_level, now)
        else:
            plan = plan_return(vehicle, identity, charge_level, floor, side, now)

        results = await self.photo_service.upload_trip_photos(
            state.photos, vehicle.id, TRIP_TYPES[state.action], identity.name, now=now
        )
        summary = UploadSummary.from_results(results)
        if summary.failed:
            logger.warning(
                "Some trip photos failed to upload",
                extra={"workflow_id": workflow_id, "uploaded": summary.uploaded, "failed": summary.failed}
            )

        try:
            updated = await self.gateway.apply_transition(plan, commit=False)
            if state.action == TripAction.TAKE and plan.from_status == VehicleStatus.RESERVED:
                await self.gateway.complete_driver_reservation(vehicle.id, identity.name, commit=False)
            if state.action == TripAction.RETURN:
                updated = await self.gateway.hold_for_next_reservation(updated, now, commit=False)
            await log_event(
                self.gateway.db,
                AuditAction.VEHICLE_TAKEN if state.action == TripAction.TAKE else AuditAction.VEHICLE_RETURNED,
                actor_username=identity.name,
                vehicle_id=vehicle.id,
                metadata={
                    "from_status": plan.from_status.value,
                    "charge_level": charge_level,
                    "photos_uploaded": summary.uploaded,
                    "photos_failed": summary.failed,
                    "notes": notes,
                },
                commit=False
            )
            await self.gateway.commit()
        except Exception:
            await self.gateway.rollback()
            raise

        await self.store.delete(workflow_id)

        return TripConfirmation(
            vehicle=VehicleResponse.model_validate(updated),
            action=state.action,
            driver_name=identity.name,
            photo_upload=summary,
        )
