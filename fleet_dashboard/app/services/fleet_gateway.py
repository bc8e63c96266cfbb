"""
Fleet persistence gateway.

All reads and writes of vehicles, reservations, schedule entries and drivers
go through a FleetGateway bound to one database session. Mutations take
`commit=True`; pass False to group several writes and call `commit()` once.
Change events are queued per mutation and published only after commit.
"""

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update, and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_dashboard.app.core.clock import fleet_now
from fleet_dashboard.app.core.config import settings
from fleet_dashboard.app.core.exceptions import (
    ValidationError,
    ResourceNotFoundError,
    VehicleStateConflictError,
    UpstreamFailureError,
)
from fleet_dashboard.app.domain.vehicle_state.state_machine import (
    TransitionPlan,
    validate_vehicle_fields,
    check_invariants,
    vehicle_state,
    plan_reservation,
)
from fleet_dashboard.app.domain.vehicle_state.schedule_override import (
    ScheduleOverridePolicy,
    project_fleet,
)
from fleet_dashboard.app.models.driver import Driver
from fleet_dashboard.app.models.reservation import Reservation
from fleet_dashboard.app.models.schedule_entry import ScheduleEntry
from fleet_dashboard.app.models.vehicle import Vehicle
from fleet_dashboard.app.models.vehicle_enums import (
    VehicleStatus,
    ScheduleStatus,
    ReservationStatus,
)
from fleet_dashboard.app.schemas.schedule import ScheduleEntryResponse, REQUIRED_SCHEDULE_FIELDS
from fleet_dashboard.app.schemas.vehicle import VehicleResponse, VehicleView
from fleet_dashboard.app.services.change_feed import (
    ChangeFeed,
    ChangeEvent,
    Handler,
    Subscription,
    change_feed as default_change_feed,
    VEHICLES,
    SCHEDULES,
    EVENT_INSERT,
    EVENT_UPDATE,
    EVENT_DELETE,
)

logger = logging.getLogger(__name__)


def vehicle_payload(vehicle: Vehicle) -> Dict[str, Any]:
    return VehicleResponse.model_validate(vehicle).model_dump(mode="json")


def schedule_payload(entry: ScheduleEntry) -> Dict[str, Any]:
    return ScheduleEntryResponse.model_validate(entry).model_dump(mode="json")


class FleetGateway:
    """Persistence gateway over one AsyncSession."""

    def __init__(self, db: AsyncSession, feed: Optional[ChangeFeed] = None):
        self.db = db
        self.feed = feed or default_change_feed
        self._pending: List[ChangeEvent] = []

    # Transactions

    @asynccontextmanager
    async def _upstream(self, operation: str):
        try:
            yield
        except SQLAlchemyError as exc:
            await self.db.rollback()
            self._pending.clear()
            logger.error(
                "Database operation failed",
                extra={"operation": operation, "error": str(exc)}
            )
            raise UpstreamFailureError(
                f"Database operation failed: {operation}",
                details={"operation": operation}
            ) from exc

    async def commit(self) -> None:
        """Commit the session, then publish queued change events."""
        async with self._upstream("commit"):
            await self.db.commit()
        events, self._pending = self._pending, []
        for event in events:
            await self.feed.publish(event)

    async def rollback(self) -> None:
        self._pending.clear()
        await self.db.rollback()

    async def _finish(self, commit: bool) -> None:
        if commit:
            await self.commit()
        else:
            async with self._upstream("flush"):
                await self.db.flush()

    def _queue(self, collection: str, event_type: str, new=None, old=None) -> None:
        self._pending.append(ChangeEvent(event_type=event_type, collection=collection, new=new, old=old))

    # Subscriptions

    def subscribe_to_vehicle_changes(self, handler: Handler) -> Subscription:
        return self.feed.subscribe(VEHICLES, handler)

    def subscribe_to_schedule_changes(self, handler: Handler) -> Subscription:
        return self.feed.subscribe(SCHEDULES, handler)

    # Vehicles

    async def get_all_vehicles(self) -> List[Vehicle]:
        async with self._upstream("get_all_vehicles"):
            result = await self.db.execute(select(Vehicle).order_by(Vehicle.plate_number))
            return list(result.scalars().all())

    async def get_vehicle_by_id(self, vehicle_id: int, refresh: bool = False) -> Optional[Vehicle]:
        query = select(Vehicle).where(Vehicle.id == vehicle_id)
        if refresh:
            query = query.execution_options(populate_existing=True)
        async with self._upstream("get_vehicle_by_id"):
            result = await self.db.execute(query)
            return result.scalar_one_or_none()

    async def require_vehicle(self, vehicle_id: int) -> Vehicle:
        vehicle = await self.get_vehicle_by_id(vehicle_id)
        if not vehicle:
            raise ResourceNotFoundError("Vehicle", vehicle_id)
        return vehicle

    async def get_vehicle_by_plate(self, plate_number: str) -> Optional[Vehicle]:
        async with self._upstream("get_vehicle_by_plate"):
            result = await self.db.execute(select(Vehicle).where(Vehicle.plate_number == plate_number))
            return result.scalar_one_or_none()

    async def create_vehicle(self, data: Dict[str, Any], commit: bool = True) -> Vehicle:
        data = dict(data)
        plate_number = (data.pop("plate_number", None) or "").strip()
        if not plate_number:
            raise ValidationError("Plate number is required", field="plate_number")

        fields = validate_vehicle_fields(data)
        fields.setdefault("status", VehicleStatus.FREE)
        violations = check_invariants(fields)
        if violations:
            raise ValidationError("Vehicle would violate status invariants", details={"violations": violations})

        if await self.get_vehicle_by_plate(plate_number):
            raise ValidationError(f"Vehicle with plate {plate_number} already exists", field="plate_number")

        vehicle = Vehicle(plate_number=plate_number, last_updated=fleet_now(), **fields)
        async with self._upstream("create_vehicle"):
            self.db.add(vehicle)
            await self.db.flush()
            await self.db.refresh(vehicle)
        self._queue(VEHICLES, EVENT_INSERT, new=vehicle_payload(vehicle))
        await self._finish(commit)
        return vehicle

    async def _conditional_update(
        self,
        vehicle_id: int,
        values: Dict[str, Any],
        expected_status: Optional[VehicleStatus],
        operation: str,
    ) -> Vehicle:
        current = await self.get_vehicle_by_id(vehicle_id, refresh=True)
        if not current:
            raise ResourceNotFoundError("Vehicle", vehicle_id)
        old = vehicle_payload(current)

        condition = Vehicle.id == vehicle_id
        if expected_status is not None:
            condition = and_(condition, Vehicle.status == VehicleStatus(expected_status))

        async with self._upstream(operation):
            result = await self.db.execute(
                update(Vehicle)
                .where(condition)
                .values(**values)
                .execution_options(synchronize_session=False)
            )

        if result.rowcount == 0:
            latest = await self.get_vehicle_by_id(vehicle_id, refresh=True)
            if not latest or expected_status is None:
                raise ResourceNotFoundError("Vehicle", vehicle_id)
            logger.warning(
                "Vehicle status changed concurrently",
                extra={
                    "vehicle_id": vehicle_id,
                    "expected_status": VehicleStatus(expected_status).value,
                    "actual_status": latest.status.value,
                }
            )
            raise VehicleStateConflictError(
                vehicle_id,
                VehicleStatus(expected_status).value,
                latest.status.value
            )

        vehicle = await self.get_vehicle_by_id(vehicle_id, refresh=True)
        self._queue(VEHICLES, EVENT_UPDATE, new=vehicle_payload(vehicle), old=old)
        return vehicle

    async def update_vehicle(
        self,
        vehicle_id: int,
        fields: Dict[str, Any],
        expected_status: Optional[VehicleStatus] = None,
        commit: bool = True,
    ) -> Vehicle:
        """
        Apply a partial field update.

        With `expected_status` the write only happens while the stored status
        still matches. The merged row must satisfy the status invariants.
        """
        cleaned = validate_vehicle_fields(fields)
        current = await self.require_vehicle(vehicle_id)

        violations = check_invariants({**vehicle_state(current), **cleaned})
        if violations:
            raise ValidationError("Vehicle update would violate status invariants", details={"violations": violations})

        cleaned.setdefault("last_updated", fleet_now())
        vehicle = await self._conditional_update(vehicle_id, cleaned, expected_status, "update_vehicle")
        await self._finish(commit)
        return vehicle

    async def apply_transition(self, plan: TransitionPlan, commit: bool = True) -> Vehicle:
        """Write a planned transition only if the vehicle is still in plan.from_status."""
        values = {**plan.updates, "status": plan.to_status}
        vehicle = await self._conditional_update(plan.vehicle_id, values, plan.from_status, "apply_transition")
        logger.info(
            "Vehicle status changed",
            extra={
                "vehicle_id": plan.vehicle_id,
                "from_status": plan.from_status.value,
                "to_status": plan.to_status.value,
                "trigger": plan.trigger.value,
            }
        )
        await self._finish(commit)
        return vehicle

    async def delete_vehicle(self, vehicle_id: int, commit: bool = True) -> None:
        vehicle = await self.require_vehicle(vehicle_id)
        old = vehicle_payload(vehicle)
        async with self._upstream("delete_vehicle"):
            await self.db.delete(vehicle)
            await self.db.flush()
        self._queue(VEHICLES, EVENT_DELETE, old=old)
        await self._finish(commit)

    async def get_vehicles_with_schedule_override(
        self,
        now: Optional[datetime] = None,
        policy: Optional[ScheduleOverridePolicy] = None,
    ) -> List[VehicleView]:
        """All vehicles with today's schedule entries projected onto their status."""
        now = now or fleet_now()
        policy = ScheduleOverridePolicy(policy or settings.schedule_override_policy)
        vehicles = await self.get_all_vehicles()
        entries = await self.list_schedule_entries(
            date_from=now.date(), date_to=now.date(), status=ScheduleStatus.SCHEDULED
        )
        return project_fleet(vehicles, entries, now, policy)

    # Reservations

    async def create_reservation(self, fields: Dict[str, Any], commit: bool = True) -> Reservation:
        reservation = Reservation(**fields)
        async with self._upstream("create_reservation"):
            self.db.add(reservation)
            await self.db.flush()
            await self.db.refresh(reservation)
        await self._finish(commit)
        return reservation

    async def get_reservation(self, reservation_id: int) -> Optional[Reservation]:
        async with self._upstream("get_reservation"):
            result = await self.db.execute(select(Reservation).where(Reservation.id == reservation_id))
            return result.scalar_one_or_none()

    async def list_reservations(
        self,
        vehicle_id: Optional[int] = None,
        status: Optional[ReservationStatus] = None,
    ) -> List[Reservation]:
        query = select(Reservation).order_by(Reservation.reserved_from, Reservation.id)
        if vehicle_id is not None:
            query = query.where(Reservation.vehicle_id == vehicle_id)
        if status is not None:
            query = query.where(Reservation.status == ReservationStatus(status))
        async with self._upstream("list_reservations"):
            result = await self.db.execute(query)
            return list(result.scalars().all())

    async def update_reservation_status(
        self,
        reservation_id: int,
        status: ReservationStatus,
        commit: bool = True,
    ) -> Reservation:
        reservation = await self.get_reservation(reservation_id)
        if not reservation:
            raise ResourceNotFoundError("Reservation", reservation_id)
        async with self._upstream("update_reservation_status"):
            reservation.status = ReservationStatus(status)
            await self.db.flush()
        await self._finish(commit)
        return reservation

    async def complete_driver_reservation(
        self,
        vehicle_id: int,
        driver_name: str,
        commit: bool = True,
    ) -> Optional[Reservation]:
        """Mark the driver's earliest active reservation on the vehicle completed."""
        active = await self.list_reservations(vehicle_id=vehicle_id, status=ReservationStatus.ACTIVE)
        mine = [r for r in active if r.driver_name == driver_name]
        if not mine:
            return None
        return await self.update_reservation_status(mine[0].id, ReservationStatus.COMPLETED, commit=commit)

    async def hold_for_next_reservation(self, vehicle: Vehicle, now: datetime, commit: bool = True) -> Vehicle:
        """
        Reserve a free vehicle for its earliest pending reservation.

        Active reservations whose window has already ended are skipped. The
        vehicle is returned as is when it is not free or nothing is pending.
        """
        if VehicleStatus(vehicle.status) != VehicleStatus.FREE:
            return vehicle

        active = await self.list_reservations(vehicle_id=vehicle.id, status=ReservationStatus.ACTIVE)
        pending = [r for r in active if r.reserved_to > now]
        if not pending:
            return vehicle

        following = pending[0]
        plan = plan_reservation(
            vehicle, following.driver_name, following.driver_id,
            following.reserved_from, following.reserved_to, now
        )
        return await self.apply_transition(plan, commit=commit)

    # Schedule entries

    async def list_schedule_entries(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        driver_name: Optional[str] = None,
        vehicle_plate: Optional[str] = None,
        status: Optional[ScheduleStatus] = None,
    ) -> List[ScheduleEntry]:
        query = select(ScheduleEntry).order_by(ScheduleEntry.date, ScheduleEntry.start_time, ScheduleEntry.id)
        if date_from is not None:
            query = query.where(ScheduleEntry.date >= date_from)
        if date_to is not None:
            query = query.where(ScheduleEntry.date <= date_to)
        if driver_name:
            query = query.where(ScheduleEntry.driver_name == driver_name)
        if vehicle_plate:
            query = query.where(ScheduleEntry.vehicle_plate == vehicle_plate)
        if status is not None:
            query = query.where(ScheduleEntry.status == ScheduleStatus(status))
        async with self._upstream("list_schedule_entries"):
            result = await self.db.execute(query)
            return list(result.scalars().all())

    async def get_schedule_entry(self, entry_id: int) -> Optional[ScheduleEntry]:
        async with self._upstream("get_schedule_entry"):
            result = await self.db.execute(select(ScheduleEntry).where(ScheduleEntry.id == entry_id))
            return result.scalar_one_or_none()

    async def require_schedule_entry(self, entry_id: int) -> ScheduleEntry:
        entry = await self.get_schedule_entry(entry_id)
        if not entry:
            raise ResourceNotFoundError("Schedule entry", entry_id)
        return entry

    async def create_schedule_entry(self, fields: Dict[str, Any], commit: bool = True) -> ScheduleEntry:
        """Add a schedule entry. The vehicle row is not touched."""
        entry = ScheduleEntry(**fields)
        if entry.end_time <= entry.start_time:
            raise ValidationError("Schedule end time must be after start time", field="end_time")
        async with self._upstream("create_schedule_entry"):
            self.db.add(entry)
            await self.db.flush()
            await self.db.refresh(entry)
        self._queue(SCHEDULES, EVENT_INSERT, new=schedule_payload(entry))
        await self._finish(commit)
        return entry

    async def update_schedule_entry(self, entry_id: int, fields: Dict[str, Any], commit: bool = True) -> ScheduleEntry:
        entry = await self.require_schedule_entry(entry_id)
        old = schedule_payload(entry)

        merged = {key: fields.get(key, getattr(entry, key)) for key in REQUIRED_SCHEDULE_FIELDS}
        cleared = [key for key, value in merged.items() if value is None]
        if cleared:
            raise ValidationError(f"{', '.join(cleared)} cannot be null", field=cleared[0])
        if merged["end_time"] <= merged["start_time"]:
            raise ValidationError("Schedule end time must be after start time", field="end_time")

        async with self._upstream("update_schedule_entry"):
            for key, value in fields.items():
                setattr(entry, key, value)
            await self.db.flush()
            await self.db.refresh(entry)
        self._queue(SCHEDULES, EVENT_UPDATE, new=schedule_payload(entry), old=old)
        await self._finish(commit)
        return entry

    async def delete_schedule_entry(self, entry_id: int, commit: bool = True) -> None:
        entry = await self.require_schedule_entry(entry_id)
        old = schedule_payload(entry)
        async with self._upstream("delete_schedule_entry"):
            await self.db.delete(entry)
            await self.db.flush()
        self._queue(SCHEDULES, EVENT_DELETE, old=old)
        await self._finish(commit)

    # Drivers

    async def list_drivers(self, status=None) -> List[Driver]:
        query = select(Driver).order_by(Driver.name)
        if status is not None:
            query = query.where(Driver.status == status)
        async with self._upstream("list_drivers"):
            result = await self.db.execute(query)
            return list(result.scalars().all())

    async def get_driver(self, driver_id: int) -> Optional[Driver]:
        async with self._upstream("get_driver"):
            result = await self.db.execute(select(Driver).where(Driver.id == driver_id))
            return result.scalar_one_or_none()

    async def require_driver(self, driver_id: int) -> Driver:
        driver = await self.get_driver(driver_id)
        if not driver:
            raise ResourceNotFoundError("Driver", driver_id)
        return driver

    async def _ensure_unique_license(self, license_number: Optional[str], exclude_id: Optional[int] = None) -> None:
        if not license_number:
            return
        query = select(Driver).where(Driver.license_number == license_number)
        if exclude_id is not None:
            query = query.where(Driver.id != exclude_id)
        async with self._upstream("check_license_number"):
            result = await self.db.execute(query)
        if result.scalars().first():
            raise ValidationError(f"License number {license_number} is already registered", field="license_number")

    async def create_driver(self, fields: Dict[str, Any], commit: bool = True) -> Driver:
        await self._ensure_unique_license(fields.get("license_number"))
        driver = Driver(**fields)
        async with self._upstream("create_driver"):
            self.db.add(driver)
            await self.db.flush()
            await self.db.refresh(driver)
        await self._finish(commit)
        return driver

    async def update_driver(self, driver_id: int, fields: Dict[str, Any], commit: bool = True) -> Driver:
        driver = await self.require_driver(driver_id)
        if "license_number" in fields:
            await self._ensure_unique_license(fields["license_number"], exclude_id=driver_id)
        async with self._upstream("update_driver"):
            for key, value in fields.items():
                setattr(driver, key, value)
            await self.db.flush()
            await self.db.refresh(driver)
        await self._finish(commit)
        return driver

    async def delete_driver(self, driver_id: int, commit: bool = True) -> None:
        driver = await self.require_driver(driver_id)
        async with self._upstream("delete_driver"):
            await self.db.delete(driver)
            await self.db.flush()
        await self._finish(commit)
