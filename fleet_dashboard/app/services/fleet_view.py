"""
Fleet view: a write-through cache of vehicles for change-feed consumers.

Applies vehicle change events as they arrive and falls back to a full
reload when an event cannot be applied. Schedule changes always reload,
since they move the displayed status of many vehicles at once.

The process-wide `fleet_view` is loaded and attached to the change feed at
startup. Realtime clients get it as their initial snapshot, and admin edits
show in it before their write commits.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from fleet_dashboard.app.core.exceptions import ResourceNotFoundError
from fleet_dashboard.app.db.session import AsyncSessionLocal
from fleet_dashboard.app.schemas.vehicle import VehicleResponse
from fleet_dashboard.app.services.change_feed import (
    ChangeEvent,
    ChangeFeed,
    Subscription,
    VEHICLES,
    SCHEDULES,
    EVENT_INSERT,
    EVENT_UPDATE,
    EVENT_DELETE,
)
from fleet_dashboard.app.services.fleet_gateway import FleetGateway

logger = logging.getLogger(__name__)

Loader = Callable[[], Awaitable[Iterable[Any]]]


class FleetView:
    def __init__(self, loader: Loader):
        self.loader = loader
        self.vehicles: Dict[int, VehicleResponse] = {}
        self.reload_count = 0
        self._subscriptions: List[Subscription] = []

    def list(self) -> List[VehicleResponse]:
        return sorted(self.vehicles.values(), key=lambda v: v.plate_number)

    def get(self, vehicle_id: int) -> Optional[VehicleResponse]:
        return self.vehicles.get(vehicle_id)

    async def reload(self) -> None:
        rows = await self.loader()
        self.vehicles = {v.id: v for v in (VehicleResponse.model_validate(row) for row in rows)}
        self.reload_count += 1

    def _apply(self, event: ChangeEvent) -> None:
        if event.event_type in (EVENT_INSERT, EVENT_UPDATE):
            vehicle = VehicleResponse.model_validate(event.new)
            self.vehicles[vehicle.id] = vehicle
        elif event.event_type == EVENT_DELETE:
            self.vehicles.pop(event.old["id"], None)
        else:
            raise ValueError(f"Unknown event type: {event.event_type}")

    async def handle_vehicle_change(self, event: ChangeEvent) -> None:
        try:
            self._apply(event)
        except (PydanticValidationError, KeyError, TypeError, ValueError) as e:
            logger.warning("Could not apply vehicle change, reloading", extra={"error": str(e)})
            await self.reload()

    async def handle_schedule_change(self, event: ChangeEvent) -> None:
        await self.reload()

    async def optimistic_update(
        self,
        vehicle_id: int,
        updates: Dict[str, Any],
        write: Callable[[], Awaitable[Any]],
    ) -> VehicleResponse:
        """
        Show `updates` right away, then settle on what the write returns.

        If the write raises, the previous vehicle is restored and the error
        propagates.
        """
        previous = self.vehicles.get(vehicle_id)
        if previous is None:
            raise ResourceNotFoundError("Vehicle", vehicle_id)

        self.vehicles[vehicle_id] = previous.model_copy(update=updates)
        try:
            confirmed = await write()
        except Exception:
            self.vehicles[vehicle_id] = previous
            raise

        vehicle = VehicleResponse.model_validate(confirmed)
        self.vehicles[vehicle_id] = vehicle
        return vehicle

    def attach(self, feed: ChangeFeed) -> None:
        self._subscriptions = [
            feed.subscribe(VEHICLES, self.handle_vehicle_change),
            feed.subscribe(SCHEDULES, self.handle_schedule_change),
        ]

    def detach(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []


async def load_stored_vehicles() -> List[Any]:
    async with AsyncSessionLocal() as session:
        return await FleetGateway(session).get_all_vehicles()


fleet_view = FleetView(load_stored_vehicles)
