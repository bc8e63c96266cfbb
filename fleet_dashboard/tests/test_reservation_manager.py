import pytest
from datetime import date, datetime, time, timedelta

from fleet_dashboard.app.core.exceptions import (
    ValidationError,
    InvalidCredentialsError,
    InvalidTransitionError,
    ResourceNotFoundError,
)
from fleet_dashboard.app.models.vehicle_enums import VehicleStatus, ReservationStatus
from fleet_dashboard.app.schemas.reservation import ReservationRequest
from fleet_dashboard.app.services.driver_directory import SampleDriverDirectory
from fleet_dashboard.app.services.reservation_manager import (
    ReservationManager,
    validate_request,
    windows_overlap,
)

NOW = datetime(2025, 6, 2, 12, 0, 0)
TODAY = date(2025, 6, 2)


def request(start: time, end: time = None, name="Bruker 1", code="1234", day=TODAY, **extra):
    fields = dict(
        driver_code=code, driver_name=name,
        reservation_date=day, reservation_time=start,
    )
    if end is not None:
        fields.update(delivery_date=day, delivery_time=end)
    fields.update(extra)
    return ReservationRequest(**fields)


@pytest.fixture
def manager(gateway):
    return ReservationManager(gateway, SampleDriverDirectory(), now_fn=lambda: NOW)


class TestValidateRequest:

    def test_window_from_delivery_time(self):
        draft, problems = validate_request(request(time(14), time(16, 30)), NOW)
        assert problems == []
        assert draft.reserved_from == datetime(2025, 6, 2, 14, 0)
        assert draft.reserved_to == datetime(2025, 6, 2, 16, 30)

    def test_window_from_duration(self):
        draft, _ = validate_request(request(time(14), duration_hours=3), NOW)
        assert draft.reserved_to == datetime(2025, 6, 2, 17, 0)

    def test_start_must_be_strictly_in_the_future(self):
        draft, problems = validate_request(request(time(12)), NOW)
        assert draft is None
        assert problems == ["Reservation time must be in the future"]

    def test_missing_fields(self):
        _, problems = validate_request(ReservationRequest(), NOW)
        assert problems == [
            "Driver ID is required",
            "Driver name is required",
            "Reservation date and time are required",
        ]

    def test_delivery_must_follow_start(self):
        _, problems = validate_request(request(time(14), time(13)), NOW)
        assert problems == ["Delivery time must be after the reservation time"]

    def test_delivery_date_without_time(self):
        _, problems = validate_request(request(time(14), delivery_date=TODAY), NOW)
        assert problems == ["Delivery date and time must be given together"]


def test_windows_overlap():
    a = datetime(2025, 6, 2, 14)
    b = datetime(2025, 6, 2, 16)
    c = datetime(2025, 6, 2, 18)
    assert windows_overlap(a, c, b, c)
    assert not windows_overlap(a, b, b, c)


class TestCreateReservations:

    async def test_reserves_free_vehicle(self, manager, make_vehicle, gateway):
        vehicle = await make_vehicle()

        updated, created = await manager.create_reservations(vehicle.id, [request(time(14), time(16))])

        assert updated.status == VehicleStatus.RESERVED
        assert updated.reserved_by == "Bruker 1"
        assert updated.reserved_from == datetime(2025, 6, 2, 14, 0)
        assert updated.reserved_to == datetime(2025, 6, 2, 16, 0)

        stored = await gateway.list_reservations(vehicle_id=vehicle.id)
        assert len(stored) == 1
        assert stored[0].id == created[0].id
        assert stored[0].reserved_from == datetime(2025, 6, 2, 14, 0)
        assert stored[0].status == ReservationStatus.ACTIVE

    async def test_reservation_starting_now_is_rejected(self, manager, make_vehicle, gateway):
        vehicle = await make_vehicle()

        with pytest.raises(ValidationError) as exc_info:
            await manager.create_reservations(vehicle.id, [request(time(12))])

        assert exc_info.value.details["errors"][0]["errors"] == ["Reservation time must be in the future"]
        assert await gateway.list_reservations(vehicle_id=vehicle.id) == []

    async def test_one_bad_request_rejects_the_batch(self, manager, make_vehicle, gateway):
        vehicle = await make_vehicle()

        with pytest.raises(ValidationError) as exc_info:
            await manager.create_reservations(vehicle.id, [
                request(time(14), time(15)),
                request(time(16), time(17), name=""),
            ])

        assert exc_info.value.details["errors"] == [{"index": 1, "errors": ["Driver name is required"]}]
        assert await gateway.list_reservations(vehicle_id=vehicle.id) == []
        stored = await gateway.get_vehicle_by_id(vehicle.id, refresh=True)
        assert stored.status == VehicleStatus.FREE

    async def test_unknown_driver(self, manager, make_vehicle):
        vehicle = await make_vehicle()
        with pytest.raises(InvalidCredentialsError) as exc_info:
            await manager.create_reservations(vehicle.id, [
                request(time(14)),
                request(time(16), name="Bruker 42"),
            ])
        assert exc_info.value.details["index"] == 1

    async def test_busy_vehicle_cannot_be_reserved(self, manager, make_vehicle):
        vehicle = await make_vehicle(status=VehicleStatus.BUSY, driver_name="Bruker 2", driver_id="1234")
        with pytest.raises(InvalidTransitionError):
            await manager.create_reservations(vehicle.id, [request(time(14))])

    async def test_missing_vehicle(self, manager):
        with pytest.raises(ResourceNotFoundError):
            await manager.create_reservations(404, [request(time(14))])

    async def test_overlapping_requests(self, manager, make_vehicle, gateway):
        vehicle = await make_vehicle()
        with pytest.raises(ValidationError) as exc_info:
            await manager.create_reservations(vehicle.id, [
                request(time(14), time(16)),
                request(time(15), time(17), name="Bruker 2"),
            ])
        assert exc_info.value.message == "Reservation windows overlap"
        assert await gateway.list_reservations(vehicle_id=vehicle.id) == []

    async def test_overlap_with_existing_reservation(self, manager, make_vehicle):
        vehicle = await make_vehicle()
        await manager.create_reservations(vehicle.id, [request(time(14), time(16))])

        with pytest.raises(ValidationError):
            await manager.create_reservations(vehicle.id, [request(time(15), time(18), name="Bruker 2")])

        # A later, separate window is fine and leaves the current one in place
        updated, _ = await manager.create_reservations(vehicle.id, [request(time(16), time(18), name="Bruker 2")])
        assert updated.status == VehicleStatus.RESERVED
        assert updated.reserved_by == "Bruker 1"

    async def test_vehicle_holds_first_requested_window(self, manager, make_vehicle):
        vehicle = await make_vehicle()
        updated, created = await manager.create_reservations(vehicle.id, [
            request(time(18), time(19), name="Bruker 2"),
            request(time(14), time(15)),
        ])
        assert len(created) == 2
        assert updated.reserved_by == "Bruker 2"
        assert updated.reserved_from == datetime(2025, 6, 2, 18, 0)


class TestCancelReservation:

    async def test_cancel_moves_window_to_next_reservation(self, manager, make_vehicle, gateway):
        vehicle = await make_vehicle()
        _, created = await manager.create_reservations(vehicle.id, [
            request(time(14), time(15)),
            request(time(16), time(17), name="Bruker 2"),
        ])

        await manager.cancel_reservation(created[0].id)
        stored = await gateway.get_vehicle_by_id(vehicle.id, refresh=True)
        assert stored.status == VehicleStatus.RESERVED
        assert stored.reserved_by == "Bruker 2"
        assert stored.reserved_from == datetime(2025, 6, 2, 16, 0)

        await manager.cancel_reservation(created[1].id)
        stored = await gateway.get_vehicle_by_id(vehicle.id, refresh=True)
        assert stored.status == VehicleStatus.FREE
        assert stored.reserved_by is None

        active = await manager.list_reservations(vehicle_id=vehicle.id, active_only=True)
        assert active == []

    async def test_only_active_reservations_can_be_cancelled(self, manager, make_vehicle):
        vehicle = await make_vehicle()
        _, created = await manager.create_reservations(vehicle.id, [request(time(14))])
        await manager.cancel_reservation(created[0].id)

        with pytest.raises(ValidationError):
            await manager.cancel_reservation(created[0].id)

    async def test_cancel_unknown_reservation(self, manager):
        with pytest.raises(ResourceNotFoundError):
            await manager.cancel_reservation(12345)
