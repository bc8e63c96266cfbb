"""
Reservation manager.

Creates one or many reservations for a vehicle in a single submission. Every
request is validated before anything is written, and the writes share one
transaction, so a batch is stored completely or not at all.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from fleet_dashboard.app.core.clock import fleet_now
from fleet_dashboard.app.core.exceptions import (
    AppException,
    ValidationError,
    InvalidCredentialsError,
    InvalidTransitionError,
    ResourceNotFoundError,
)
from fleet_dashboard.app.domain.vehicle_state.state_machine import (
    plan_reservation,
    plan_cancel_reservation,
)
from fleet_dashboard.app.models.reservation import Reservation
from fleet_dashboard.app.models.vehicle import Vehicle
from fleet_dashboard.app.models.vehicle_enums import VehicleStatus, ReservationStatus
from fleet_dashboard.app.schemas.reservation import ReservationRequest
from fleet_dashboard.app.services.audit import log_event, AuditAction
from fleet_dashboard.app.services.driver_directory import DriverDirectory
from fleet_dashboard.app.services.fleet_gateway import FleetGateway

logger = logging.getLogger(__name__)

RESERVABLE_STATUSES = {VehicleStatus.FREE, VehicleStatus.RESERVED}


@dataclass
class ReservationDraft:
    """A validated request, ready to store."""
    index: int
    driver_code: str
    driver_name: str
    reserved_from: datetime
    reserved_to: datetime
    notes: Optional[str] = None


def validate_request(request: ReservationRequest, now: datetime) -> Tuple[Optional[ReservationDraft], List[str]]:
    """
    Check one request against the submission time.

    Returns the window it describes, or the list of problems.
    """
    problems = []
    driver_code = (request.driver_code or "").strip()
    driver_name = (request.driver_name or "").strip()

    if not driver_code:
        problems.append("Driver ID is required")
    if not driver_name:
        problems.append("Driver name is required")

    if request.reservation_date is None or request.reservation_time is None:
        problems.append("Reservation date and time are required")
        return None, problems

    start = datetime.combine(request.reservation_date, request.reservation_time)
    if start <= now:
        problems.append("Reservation time must be in the future")

    has_delivery_date = request.delivery_date is not None
    has_delivery_time = request.delivery_time is not None
    if has_delivery_date and has_delivery_time:
        end = datetime.combine(request.delivery_date, request.delivery_time)
        if end <= start:
            problems.append("Delivery time must be after the reservation time")
    elif has_delivery_date or has_delivery_time:
        problems.append("Delivery date and time must be given together")
        end = None
    else:
        end = start + timedelta(hours=request.duration_hours)

    if problems:
        return None, problems

    return ReservationDraft(
        index=0,
        driver_code=driver_code,
        driver_name=driver_name,
        reserved_from=start,
        reserved_to=end,
        notes=request.notes,
    ), []


def windows_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


class ReservationManager:
    """Creates and cancels reservations for vehicles."""

    def __init__(self, gateway: FleetGateway, directory: DriverDirectory, now_fn: Callable = fleet_now):
        self.gateway = gateway
        self.directory = directory
        self.now_fn = now_fn

    async def create_reservations(
        self,
        vehicle_id: int,
        requests: List[ReservationRequest],
        now: Optional[datetime] = None,
    ) -> Tuple[Vehicle, List[Reservation]]:
        """
        Validate and store a batch of reservations for one vehicle.

        Raises:
            ValidationError: If any request is malformed, in the past, or overlaps
            InvalidCredentialsError: If any driver code/name pair is unknown
            InvalidTransitionError: If the vehicle is busy or in maintenance
        """
        now = now or self.now_fn()
        if not requests:
            raise ValidationError("At least one reservation is required", field="reservations")

        vehicle = await self.gateway.require_vehicle(vehicle_id)

        drafts, errors = [], []
        for index, request in enumerate(requests):
            draft, problems = validate_request(request, now)
            if problems:
                errors.append({"index": index, "errors": problems})
            else:
                draft.index = index
                drafts.append(draft)

        if errors:
            raise ValidationError(
                "One or more reservations are invalid",
                details={"errors": errors}
            )

        for draft in drafts:
            if await self.directory.validate(draft.driver_code, draft.driver_name) is None:
                raise InvalidCredentialsError(details={"index": draft.index, "driver_name": draft.driver_name})

        status = VehicleStatus(vehicle.status)
        if status not in RESERVABLE_STATUSES:
            raise InvalidTransitionError(status.value, VehicleStatus.RESERVED.value, "vehicle is busy or in maintenance")

        existing = await self.gateway.list_reservations(vehicle_id=vehicle_id, status=ReservationStatus.ACTIVE)
        conflicts = []
        for i, draft in enumerate(drafts):
            for other in drafts[i + 1:]:
                if windows_overlap(draft.reserved_from, draft.reserved_to, other.reserved_from, other.reserved_to):
                    conflicts.append({"index": draft.index, "conflicts_with_index": other.index})
            for reservation in existing:
                if windows_overlap(draft.reserved_from, draft.reserved_to, reservation.reserved_from, reservation.reserved_to):
                    conflicts.append({"index": draft.index, "conflicts_with_reservation": reservation.id})
        if conflicts:
            raise ValidationError(
                "Reservation windows overlap",
                details={"conflicts": conflicts}
            )

        plan = None
        if status == VehicleStatus.FREE:
            first = drafts[0]
            plan = plan_reservation(
                vehicle, first.driver_name, first.driver_code,
                first.reserved_from, first.reserved_to, now
            )

        try:
            created = []
            for draft in drafts:
                created.append(await self.gateway.create_reservation({
                    "vehicle_id": vehicle_id,
                    "driver_id": draft.driver_code,
                    "driver_name": draft.driver_name,
                    "reserved_from": draft.reserved_from,
                    "reserved_to": draft.reserved_to,
                    "status": ReservationStatus.ACTIVE,
                    "notes": draft.notes,
                }, commit=False))

            if plan is not None:
                vehicle = await self.gateway.apply_transition(plan, commit=False)

            await log_event(
                self.gateway.db,
                AuditAction.RESERVATION_CREATED,
                actor_username=drafts[0].driver_name,
                vehicle_id=vehicle_id,
                metadata={"reservation_count": len(created)},
                commit=False
            )
            await self.gateway.commit()
        except AppException:
            await self.gateway.rollback()
            raise

        logger.info(
            "Reservations created",
            extra={"vehicle_id": vehicle_id, "count": len(created)}
        )
        return vehicle, created

    async def cancel_reservation(self, reservation_id: int, now: Optional[datetime] = None) -> Reservation:
        """
        Cancel an active reservation.

        The vehicle is freed when no other active reservation remains; if the
        cancelled one was the vehicle's current window, the next one takes its
        place.
        """
        now = now or self.now_fn()
        reservation = await self.gateway.get_reservation(reservation_id)
        if not reservation:
            raise ResourceNotFoundError("Reservation", reservation_id)
        if reservation.status != ReservationStatus.ACTIVE:
            raise ValidationError(
                f"Only active reservations can be cancelled (this one is {reservation.status.value})",
                field="status"
            )

        try:
            await self.gateway.update_reservation_status(reservation_id, ReservationStatus.CANCELLED, commit=False)

            remaining = [
                r for r in await self.gateway.list_reservations(
                    vehicle_id=reservation.vehicle_id, status=ReservationStatus.ACTIVE
                )
                if r.id != reservation_id
            ]
            vehicle = await self.gateway.require_vehicle(reservation.vehicle_id)

            if VehicleStatus(vehicle.status) == VehicleStatus.RESERVED:
                if not remaining:
                    await self.gateway.apply_transition(plan_cancel_reservation(vehicle, now), commit=False)
                elif (vehicle.reserved_by == reservation.driver_name
                        and vehicle.reserved_from == reservation.reserved_from):
                    following = remaining[0]
                    await self.gateway.update_vehicle(vehicle.id, {
                        "reserved_by": following.driver_name,
                        "reserved_by_id": following.driver_id,
                        "reserved_from": following.reserved_from,
                        "reserved_to": following.reserved_to,
                        "last_updated": now,
                    }, expected_status=VehicleStatus.RESERVED, commit=False)

            await log_event(
                self.gateway.db,
                AuditAction.RESERVATION_CANCELLED,
                actor_username=reservation.driver_name,
                vehicle_id=reservation.vehicle_id,
                metadata={"reservation_id": reservation_id},
                commit=False
            )
            await self.gateway.commit()
        except AppException:
            await self.gateway.rollback()
            raise

        return reservation

    async def list_reservations(self, vehicle_id: Optional[int] = None, active_only: bool = False) -> List[Reservation]:
        status = ReservationStatus.ACTIVE if active_only else None
        return await self.gateway.list_reservations(vehicle_id=vehicle_id, status=status)
