"""
API tests through the ASGI app, with the in-memory database and mock Redis.
"""

import pytest
from datetime import datetime
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from fleet_dashboard.app.main import app

ADMIN_HEADERS = {"X-Admin-Key": "change-this-admin-key"}
NOW = datetime(2025, 6, 2, 12, 0, 0)
PHOTO_DATA_URL = "data:image/jpeg;base64,aGVsbG8gcGhvdG8="


async def create_vehicle(client, plate="EL12345", **fields):
    response = await client.post(
        "/v1/admin/vehicles",
        json={"plate_number": plate, "model": "Tesla Model 3", **fields},
        headers=ADMIN_HEADERS
    )
    assert response.status_code == 201, response.text
    return response.json()


async def run_take(client, vehicle_id, driver="Bruker 1"):
    response = await client.post(
        "/v1/trips/workflows",
        json={"vehicle_id": vehicle_id, "action": "take", "mode": "quick"}
    )
    assert response.status_code == 201, response.text
    workflow_id = response.json()["workflow_id"]

    response = await client.post(
        f"/v1/trips/workflows/{workflow_id}/authenticate",
        json={"driver_code": "1234", "driver_name": driver}
    )
    assert response.status_code == 200, response.text
    assert response.json()["step"] == "capturing_photos"

    response = await client.post(
        f"/v1/trips/workflows/{workflow_id}/photos",
        json={"position": "front", "image_data": PHOTO_DATA_URL}
    )
    assert response.json()["can_advance"] is True

    response = await client.post(f"/v1/trips/workflows/{workflow_id}/advance")
    assert response.json()["step"] == "confirming_charge"

    response = await client.post(
        f"/v1/trips/workflows/{workflow_id}/confirm",
        json={"charge_level": 80}
    )
    assert response.status_code == 200, response.text
    return workflow_id, response.json()


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert "X-Correlation-ID" in response.headers


class TestAdminAccess:

    @pytest.mark.parametrize("headers", [{}, {"X-Admin-Key": "wrong"}])
    async def test_admin_routes_need_key(self, client, headers):
        response = await client.post(
            "/v1/admin/vehicles",
            json={"plate_number": "EL12345", "model": "Tesla Model 3"},
            headers=headers
        )
        assert response.status_code == 403
        assert response.json() == {
            "error_code": "ERR_FORBIDDEN",
            "message": "Admin access required",
            "details": {}
        }

    async def test_vehicle_crud(self, client):
        vehicle = await create_vehicle(client, battery_level=40)
        assert vehicle["status"] == "free"

        response = await client.patch(
            f"/v1/admin/vehicles/{vehicle['id']}",
            json={"mileage": 15500, "notes": "New tyres"},
            headers=ADMIN_HEADERS
        )
        assert response.status_code == 200
        assert response.json()["mileage"] == 15500

        response = await client.patch(
            f"/v1/admin/vehicles/{vehicle['id']}",
            json={"battery_level": 150},
            headers=ADMIN_HEADERS
        )
        assert response.status_code == 422
        assert response.json()["error_code"] == "ERR_VALIDATION"

        response = await client.patch(f"/v1/admin/vehicles/{vehicle['id']}", json={}, headers=ADMIN_HEADERS)
        assert response.status_code == 400
        assert response.json()["error_code"] == "ERR_BAD_REQUEST"

        response = await client.delete(f"/v1/admin/vehicles/{vehicle['id']}", headers=ADMIN_HEADERS)
        assert response.status_code == 204

        response = await client.get(f"/v1/vehicles/{vehicle['id']}")
        assert response.status_code == 404
        assert response.json()["error_code"] == "ERR_NOT_FOUND_001"

    async def test_vehicle_edit_rejects_null_model(self, client):
        vehicle = await create_vehicle(client)

        response = await client.patch(
            f"/v1/admin/vehicles/{vehicle['id']}", json={"model": None}, headers=ADMIN_HEADERS
        )
        assert response.status_code == 422
        assert response.json()["error_code"] == "ERR_VALIDATION"
        assert response.json()["details"]["field"] == "model"

        response = await client.get(f"/v1/vehicles/{vehicle['id']}")
        assert response.json()["model"] == "Tesla Model 3"

    async def test_vehicle_edit_goes_through_fleet_view(self, client, fleet_view):
        vehicle = await create_vehicle(client, battery_level=40)
        await fleet_view.reload()

        response = await client.patch(
            f"/v1/admin/vehicles/{vehicle['id']}", json={"mileage": 15500}, headers=ADMIN_HEADERS
        )
        assert response.status_code == 200
        assert fleet_view.get(vehicle["id"]).mileage == 15500

        response = await client.patch(
            f"/v1/admin/vehicles/{vehicle['id']}", json={"battery_level": 150}, headers=ADMIN_HEADERS
        )
        assert response.status_code == 422
        assert fleet_view.get(vehicle["id"]).battery_level == 40

    async def test_duplicate_plate(self, client):
        await create_vehicle(client)
        response = await client.post(
            "/v1/admin/vehicles",
            json={"plate_number": "EL12345", "model": "Tesla Model Y"},
            headers=ADMIN_HEADERS
        )
        assert response.status_code == 422
        assert response.json()["details"]["field"] == "plate_number"

    async def test_status_changes(self, client):
        vehicle = await create_vehicle(client)

        response = await client.post(
            f"/v1/admin/vehicles/{vehicle['id']}/status",
            json={"status": "maintenance", "reason": "Brake check"},
            headers=ADMIN_HEADERS
        )
        assert response.status_code == 200
        assert response.json()["maintenance_reason"] == "Brake check"

        response = await client.post(
            f"/v1/admin/vehicles/{vehicle['id']}/status",
            json={"status": "busy"},
            headers=ADMIN_HEADERS
        )
        assert response.status_code == 409
        assert response.json()["error_code"] == "ERR_STATE_001"

        response = await client.post(
            f"/v1/admin/vehicles/{vehicle['id']}/status",
            json={"status": "free"},
            headers=ADMIN_HEADERS
        )
        assert response.json()["status"] == "free"

        response = await client.get("/v1/admin/audit-logs", params={"vehicle_id": vehicle["id"]}, headers=ADMIN_HEADERS)
        actions = [log["action"] for log in response.json()["logs"]]
        assert actions.count("VEHICLE_STATUS_CHANGED") == 2
        assert "VEHICLE_CREATED" in actions

    async def test_driver_management(self, client):
        response = await client.post(
            "/v1/admin/drivers",
            json={"name": "Kari Nordmann", "driver_code": "5555", "license_number": "DL100001"},
            headers=ADMIN_HEADERS
        )
        assert response.status_code == 201
        driver_id = response.json()["id"]

        response = await client.post(
            "/v1/admin/drivers",
            json={"name": "Ola Nordmann", "driver_code": "5555", "license_number": "DL100001"},
            headers=ADMIN_HEADERS
        )
        assert response.status_code == 422

        response = await client.patch(
            f"/v1/admin/drivers/{driver_id}", json={"status": "on_leave"}, headers=ADMIN_HEADERS
        )
        assert response.json()["status"] == "on_leave"

        response = await client.get("/v1/admin/drivers", params={"status": "on_leave"}, headers=ADMIN_HEADERS)
        assert response.json()["total"] == 1

        response = await client.delete(f"/v1/admin/drivers/{driver_id}", headers=ADMIN_HEADERS)
        assert response.status_code == 204

    @pytest.mark.parametrize("field", ["name", "driver_code", "status"])
    async def test_driver_edit_rejects_null_required_field(self, client, field):
        response = await client.post(
            "/v1/admin/drivers",
            json={"name": "Kari Nordmann", "driver_code": "5555"},
            headers=ADMIN_HEADERS
        )
        driver_id = response.json()["id"]

        response = await client.patch(f"/v1/admin/drivers/{driver_id}", json={field: None}, headers=ADMIN_HEADERS)
        assert response.status_code == 422
        assert response.json()["error_code"] == "ERR_VALIDATION"


class TestFleetListing:

    async def test_schedule_entry_shows_vehicle_as_reserved(self, client, mocker):
        mocker.patch("fleet_dashboard.app.services.fleet_gateway.fleet_now", return_value=NOW)
        mocker.patch("fleet_dashboard.app.api.v1.endpoints.vehicles.fleet_now", return_value=NOW)
        vehicle = await create_vehicle(client, "EL12345")
        await create_vehicle(client, "EL67890")

        response = await client.post(
            "/v1/admin/schedules",
            json={
                "driver_name": "Bruker 3", "driver_id": "1234", "vehicle_plate": "EL12345",
                "date": "2025-06-02", "start_time": "10:00:00", "end_time": "14:00:00",
            },
            headers=ADMIN_HEADERS
        )
        assert response.status_code == 201, response.text
        entry_id = response.json()["id"]

        response = await client.get("/v1/vehicles", params={"status": "reserved"})
        body = response.json()
        assert body["total"] == 1
        listed = body["vehicles"][0]
        assert listed["plate_number"] == "EL12345"
        assert listed["status_source"] == "schedule"
        assert listed["stored_status"] == "free"
        assert listed["reserved_by"] == "Bruker 3"

        response = await client.get(f"/v1/vehicles/{vehicle['id']}")
        assert response.json()["status"] == "reserved"

        response = await client.get("/v1/vehicles/stats")
        assert response.json()["reserved"] == 1
        assert response.json()["free"] == 1

        await client.post(f"/v1/admin/schedules/{entry_id}/cancel", headers=ADMIN_HEADERS)
        response = await client.get(f"/v1/vehicles/{vehicle['id']}")
        assert response.json()["status"] == "free"
        assert response.json()["status_source"] == "stored"

    async def test_invalid_schedule_window(self, client):
        response = await client.post(
            "/v1/admin/schedules",
            json={
                "driver_name": "Bruker 3", "vehicle_plate": "EL12345",
                "date": "2025-06-02", "start_time": "14:00:00", "end_time": "10:00:00",
            },
            headers=ADMIN_HEADERS
        )
        assert response.status_code == 422
        assert response.json()["error_code"] == "ERR_VALIDATION"

    async def create_schedule_entry(self, client):
        response = await client.post(
            "/v1/admin/schedules",
            json={
                "driver_name": "Bruker 3", "vehicle_plate": "EL12345",
                "date": "2025-06-02", "start_time": "10:00:00", "end_time": "14:00:00",
            },
            headers=ADMIN_HEADERS
        )
        assert response.status_code == 201, response.text
        return response.json()["id"]

    @pytest.mark.parametrize("field", ["start_time", "end_time", "date", "driver_name", "status"])
    async def test_schedule_edit_rejects_null_required_field(self, client, field):
        entry_id = await self.create_schedule_entry(client)

        response = await client.patch(f"/v1/admin/schedules/{entry_id}", json={field: None}, headers=ADMIN_HEADERS)
        assert response.status_code == 422
        assert response.json()["error_code"] == "ERR_VALIDATION"

        response = await client.get("/v1/admin/schedules", headers=ADMIN_HEADERS)
        entry = response.json()["entries"][0]
        assert (entry["start_time"], entry["end_time"]) == ("10:00:00", "14:00:00")

    async def test_schedule_edit_checks_window_against_stored_times(self, client):
        entry_id = await self.create_schedule_entry(client)

        response = await client.patch(
            f"/v1/admin/schedules/{entry_id}", json={"end_time": "09:00:00"}, headers=ADMIN_HEADERS
        )
        assert response.status_code == 422
        assert response.json()["details"]["field"] == "end_time"

        response = await client.patch(
            f"/v1/admin/schedules/{entry_id}", json={"end_time": "16:00:00"}, headers=ADMIN_HEADERS
        )
        assert response.status_code == 200
        assert response.json()["end_time"] == "16:00:00"

    async def test_search_and_bands(self, client):
        await create_vehicle(client, "EL12345", battery_level=20)
        await create_vehicle(client, "EL67890", battery_level=90)

        response = await client.get("/v1/vehicles", params={"battery": "low"})
        assert [v["plate_number"] for v in response.json()["vehicles"]] == ["EL12345"]

        response = await client.get("/v1/vehicles", params={"search": "el678"})
        assert [v["plate_number"] for v in response.json()["vehicles"]] == ["EL67890"]


class TestDrivers:

    async def test_validate_driver(self, client):
        response = await client.post(
            "/v1/drivers/validate", json={"driver_code": "1234", "driver_name": "Bruker 7"}
        )
        assert response.status_code == 200
        assert response.json()["email"] == "bruker7@taxi.no"

    async def test_invalid_driver(self, client):
        response = await client.post(
            "/v1/drivers/validate", json={"driver_code": "1234", "driver_name": "Bruker 77"}
        )
        assert response.status_code == 401
        assert response.json()["error_code"] == "ERR_AUTH_001"


class TestReservations:

    async def test_reserve_and_cancel(self, client):
        vehicle = await create_vehicle(client)

        response = await client.post(
            f"/v1/vehicles/{vehicle['id']}/reservations",
            json={"reservations": [{
                "driver_code": "1234", "driver_name": "Bruker 2",
                "reservation_date": "2099-01-01", "reservation_time": "09:00:00",
                "delivery_date": "2099-01-01", "delivery_time": "11:00:00",
            }]}
        )
        assert response.status_code == 201, response.text
        body = response.json()
        assert body["vehicle"]["status"] == "reserved"
        assert body["vehicle"]["reserved_from"] == "2099-01-01T09:00:00"
        assert body["reservations"][0]["reserved_to"] == "2099-01-01T11:00:00"
        reservation_id = body["reservations"][0]["id"]

        response = await client.get("/v1/reservations", params={"vehicle_id": vehicle["id"], "active_only": True})
        assert response.json()["total"] == 1

        response = await client.post(f"/v1/reservations/{reservation_id}/cancel")
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

        response = await client.get(f"/v1/vehicles/{vehicle['id']}")
        assert response.json()["status"] == "free"

    async def test_leaving_maintenance_restores_pending_reservation(self, client):
        vehicle = await create_vehicle(client)
        response = await client.post(
            f"/v1/vehicles/{vehicle['id']}/reservations",
            json={"reservations": [{
                "driver_code": "1234", "driver_name": "Bruker 2",
                "reservation_date": "2099-01-01", "reservation_time": "09:00:00",
                "delivery_date": "2099-01-01", "delivery_time": "11:00:00",
            }]}
        )
        assert response.status_code == 201, response.text

        response = await client.post(
            f"/v1/admin/vehicles/{vehicle['id']}/status",
            json={"status": "maintenance", "reason": "Tyre change"},
            headers=ADMIN_HEADERS
        )
        assert response.json()["reserved_by"] is None

        response = await client.post(
            f"/v1/admin/vehicles/{vehicle['id']}/status",
            json={"status": "free"},
            headers=ADMIN_HEADERS
        )
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "reserved"
        assert body["reserved_by"] == "Bruker 2"
        assert body["reserved_from"] == "2099-01-01T09:00:00"
        assert body["maintenance_reason"] is None

    async def test_invalid_batch_is_reported_per_request(self, client):
        vehicle = await create_vehicle(client)

        response = await client.post(
            f"/v1/vehicles/{vehicle['id']}/reservations",
            json={"reservations": [
                {"driver_code": "1234", "driver_name": "Bruker 2",
                 "reservation_date": "2099-01-01", "reservation_time": "09:00:00"},
                {"driver_code": "1234", "driver_name": "",
                 "reservation_date": "2099-01-02", "reservation_time": "09:00:00"},
            ]}
        )
        assert response.status_code == 422
        body = response.json()
        assert body["error_code"] == "ERR_VALIDATION"
        assert body["details"]["errors"] == [{"index": 1, "errors": ["Driver name is required"]}]

        response = await client.get("/v1/reservations", params={"vehicle_id": vehicle["id"]})
        assert response.json()["total"] == 0


class TestTripWorkflowApi:

    async def test_take_and_foreign_return(self, client):
        vehicle = await create_vehicle(client)
        workflow_id, confirmation = await run_take(client, vehicle["id"])

        assert confirmation["vehicle"]["status"] == "busy"
        assert confirmation["vehicle"]["driver_name"] == "Bruker 1"
        assert confirmation["photo_upload"]["status"] == "OK"

        response = await client.get(f"/v1/trips/workflows/{workflow_id}")
        assert response.status_code == 404

        response = await client.get(f"/v1/vehicles/{vehicle['id']}/photos")
        assert response.json()["total"] == 1
        assert response.json()["photos"][0]["trip_type"] == "pickup"

        response = await client.post("/v1/trips/workflows", json={"vehicle_id": vehicle["id"], "action": "return"})
        workflow_id = response.json()["workflow_id"]
        response = await client.post(
            f"/v1/trips/workflows/{workflow_id}/authenticate",
            json={"driver_code": "1234", "driver_name": "Bruker 2"}
        )
        assert response.status_code == 403
        assert response.json()["error_code"] == "ERR_PERM_002"
        assert response.json()["details"]["required_driver"] == "Bruker 1"

    async def test_take_of_busy_vehicle_conflicts(self, client):
        vehicle = await create_vehicle(client)
        await run_take(client, vehicle["id"])

        response = await client.post("/v1/trips/workflows", json={"vehicle_id": vehicle["id"], "action": "take"})
        assert response.status_code == 409

    async def test_advance_without_photos(self, client):
        vehicle = await create_vehicle(client)
        response = await client.post("/v1/trips/workflows", json={"vehicle_id": vehicle["id"], "action": "take"})
        workflow_id = response.json()["workflow_id"]
        assert response.json()["required_photo_count"] == 4

        await client.post(
            f"/v1/trips/workflows/{workflow_id}/authenticate",
            json={"driver_code": "1234", "driver_name": "Bruker 1"}
        )
        response = await client.post(f"/v1/trips/workflows/{workflow_id}/advance")
        assert response.status_code == 409
        assert response.json()["error_code"] == "ERR_WORKFLOW_001"

        response = await client.delete(f"/v1/trips/workflows/{workflow_id}")
        assert response.status_code == 204
        response = await client.get(f"/v1/trips/workflows/{workflow_id}")
        assert response.status_code == 404

    async def test_bad_photo_position(self, client):
        vehicle = await create_vehicle(client)
        response = await client.post("/v1/trips/workflows", json={"vehicle_id": vehicle["id"], "action": "take"})
        workflow_id = response.json()["workflow_id"]

        response = await client.post(
            f"/v1/trips/workflows/{workflow_id}/photos",
            json={"position": "roof", "image_data": PHOTO_DATA_URL}
        )
        assert response.status_code == 422


class TestAdminPhotos:

    async def test_photo_admin(self, client):
        vehicle = await create_vehicle(client)
        await run_take(client, vehicle["id"])

        response = await client.get("/v1/admin/photos/recent", headers=ADMIN_HEADERS)
        photos = response.json()["photos"]
        assert len(photos) == 1

        response = await client.get("/v1/admin/photos/stats", headers=ADMIN_HEADERS)
        assert response.json()["pickup"] == 1

        response = await client.post(
            "/v1/admin/photos/bulk-delete",
            json={"photo_ids": [photos[0]["id"], 999]},
            headers=ADMIN_HEADERS
        )
        assert response.json() == {"deleted": [photos[0]["id"]], "failed": [999]}

        response = await client.delete("/v1/admin/photos/999", headers=ADMIN_HEADERS)
        assert response.status_code == 404


def test_realtime_rejects_unknown_collection():
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with TestClient(app).websocket_connect("/v1/realtime/drivers"):
            pass
    assert exc_info.value.code == 1008
