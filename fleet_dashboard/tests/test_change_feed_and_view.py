import json
import pytest

from fleet_dashboard.app.services.change_feed import ChangeEvent, ChangeFeed, VEHICLES, SCHEDULES
from fleet_dashboard.app.services.fleet_view import FleetView


def vehicle_row(id=1, plate="EL12345", status="free", **fields):
    row = dict(
        id=id, plate_number=plate, model="Tesla Model 3", status=status,
        battery_level=85, fuel_level=90, mileage=15000,
    )
    row.update(fields)
    return row


class TestChangeFeed:

    async def test_subscribe_and_publish(self, change_feed, mock_redis):
        received = []
        change_feed.subscribe(VEHICLES, received.append)

        event = ChangeEvent(event_type="INSERT", collection=VEHICLES, new=vehicle_row())
        await change_feed.publish(event)

        assert received == [event]
        channel, message = mock_redis.published[0]
        assert channel == "fleet:vehicles"
        assert json.loads(message)["event_type"] == "INSERT"

    async def test_async_handlers_are_awaited(self, change_feed):
        received = []

        async def handler(event):
            received.append(event.event_type)

        change_feed.subscribe(SCHEDULES, handler)
        await change_feed.publish(ChangeEvent(event_type="DELETE", collection=SCHEDULES, old={"id": 3}))
        assert received == ["DELETE"]

    async def test_unknown_collection(self, change_feed):
        with pytest.raises(ValueError):
            change_feed.subscribe("drivers", lambda event: None)

    async def test_redis_outage_does_not_block_handlers(self, mock_redis):
        await mock_redis.aclose()
        feed = ChangeFeed(redis=mock_redis)
        received = []
        feed.subscribe(VEHICLES, received.append)

        await feed.publish(ChangeEvent(event_type="UPDATE", collection=VEHICLES, new=vehicle_row()))
        assert len(received) == 1

    def test_unsubscribe_is_idempotent(self, change_feed):
        subscription = change_feed.subscribe(VEHICLES, lambda event: None)
        assert change_feed.subscriber_count(VEHICLES) == 1
        subscription.unsubscribe()
        subscription.unsubscribe()
        assert change_feed.subscriber_count(VEHICLES) == 0


class TestFleetView:

    @pytest.fixture
    def rows(self):
        return [vehicle_row(1, "EL12345"), vehicle_row(2, "EL67890")]

    @pytest.fixture
    async def view(self, rows, change_feed):
        async def loader():
            return list(rows)

        view = FleetView(loader)
        await view.reload()
        view.attach(change_feed)
        yield view
        view.detach()

    async def test_applies_vehicle_events(self, view, change_feed):
        await change_feed.publish(ChangeEvent(
            event_type="UPDATE", collection=VEHICLES,
            new=vehicle_row(1, status="busy", driver_name="Bruker 1", driver_id="1234"),
        ))
        await change_feed.publish(ChangeEvent(event_type="DELETE", collection=VEHICLES, old=vehicle_row(2)))
        await change_feed.publish(ChangeEvent(event_type="INSERT", collection=VEHICLES, new=vehicle_row(3, "EL13579")))

        assert view.get(1).status == "busy"
        assert view.get(2) is None
        assert [v.plate_number for v in view.list()] == ["EL12345", "EL13579"]
        assert view.reload_count == 1

    async def test_bad_event_triggers_reload(self, view, change_feed):
        await change_feed.publish(ChangeEvent(event_type="UPDATE", collection=VEHICLES, new={"id": 1}))
        assert view.reload_count == 2
        assert view.get(1).plate_number == "EL12345"

    async def test_schedule_change_reloads(self, view, change_feed, rows):
        rows.append(vehicle_row(9, "EL97531"))
        await change_feed.publish(ChangeEvent(event_type="INSERT", collection=SCHEDULES, new={"id": 1}))
        assert view.get(9) is not None

    async def test_optimistic_update_rolls_back_on_failure(self, view):
        async def failing_write():
            assert view.get(1).notes == "Cleaning"
            raise RuntimeError("write rejected")

        with pytest.raises(RuntimeError):
            await view.optimistic_update(1, {"notes": "Cleaning"}, failing_write)
        assert view.get(1).notes is None

    async def test_optimistic_update_settles_on_confirmed_row(self, view):
        async def write():
            return vehicle_row(1, notes="Cleaned", mileage=15010)

        confirmed = await view.optimistic_update(1, {"notes": "Cleaning"}, write)
        assert confirmed.notes == "Cleaned"
        assert view.get(1).mileage == 15010

    async def test_detach_stops_updates(self, view, change_feed):
        view.detach()
        await change_feed.publish(ChangeEvent(event_type="DELETE", collection=VEHICLES, old=vehicle_row(1)))
        assert view.get(1) is not None
