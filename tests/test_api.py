"""
Integration tests for the REST API endpoints.

Routes run against the in-memory dispatch core from ``conftest`` through
an httpx ``AsyncClient`` on the ASGI app; no server or network needed.
"""

import pytest

from tests.conftest import CAR_DROPOFF, CAR_PICKUP

API = "/api/v1"

CAR_TRIP = {"vehicle_class": "car", "pickup": CAR_PICKUP, "dropoff": CAR_DROPOFF}
BUS_TRIP = {"vehicle_class": "bus", "pickup": "A", "dropoff": "B"}


async def create_ride(client, **extra):
    resp = await client.post(f"{API}/rides", json={**CAR_TRIP, **extra})
    assert resp.status_code == 202, resp.text
    return resp.json()


async def set_status(client, ride_id, status):
    return await client.post(f"{API}/admin/rides/{ride_id}/status", json={"status": status})


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get(f"{API}/admin/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


class TestCustomerEndpoints:
    @pytest.mark.asyncio
    async def test_quote(self, client):
        resp = await client.post(f"{API}/rides/quote", json=CAR_TRIP)
        assert resp.status_code == 200
        data = resp.json()
        assert data["fare"] == 5150
        assert data["pricing_snapshot_id"] == "car-v1"

    @pytest.mark.asyncio
    async def test_create_ride_returns_202(self, client):
        data = await create_ride(client, note="By the pharmacy")
        assert data["public_id"] == "PTG-100001"
        assert data["status"] == "requested"
        assert data["estimated_fare"] == 5150
        assert data["payment_method"] == "cash"
        assert data["payment_status"] == "n/a"
        assert data["assignment"] is None

    @pytest.mark.asyncio
    async def test_same_pickup_and_dropoff_is_400(self, client):
        resp = await client.post(
            f"{API}/rides", json={**CAR_TRIP, "dropoff": CAR_PICKUP.upper()}
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_input"

    @pytest.mark.asyncio
    async def test_unknown_vehicle_class_is_422(self, client):
        resp = await client.post(f"{API}/rides", json={**CAR_TRIP, "vehicle_class": "boat"})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_idempotent_create(self, client):
        first = await create_ride(client, idempotency_key="abc-123")
        second = await create_ride(client, idempotency_key="abc-123")
        assert first["id"] == second["id"]

    @pytest.mark.asyncio
    async def test_get_ride_and_lookup_by_code(self, client):
        created = await create_ride(client)

        resp = await client.get(f"{API}/rides/{created['id']}")
        assert resp.status_code == 200
        assert resp.json()["public_id"] == created["public_id"]

        resp = await client.get(f"{API}/rides/code/ptg-100001")
        assert resp.status_code == 200
        assert resp.json()["id"] == created["id"]

    @pytest.mark.asyncio
    async def test_missing_ride_is_404(self, client):
        resp = await client.get(f"{API}/rides/does-not-exist")
        assert resp.status_code == 404
        assert resp.json()["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_cancel_twice(self, client):
        ride = await create_ride(client)
        for _ in range(2):
            resp = await client.patch(f"{API}/rides/{ride['id']}/cancel")
            assert resp.status_code == 200
            assert resp.json()["status"] == "cancelled"

    @pytest.mark.asyncio
    async def test_cash_paid(self, client):
        ride = await create_ride(client)
        resp = await client.post(f"{API}/rides/{ride['id']}/cash-paid")
        assert resp.status_code == 200
        assert resp.json()["cash_confirmed"] is True


class TestDispatchEndpoints:
    @pytest.mark.asyncio
    async def test_eligible_drivers_nearest_first(self, client):
        ride = await create_ride(client)
        resp = await client.get(f"{API}/admin/rides/{ride['id']}/eligible-drivers")
        assert [d["id"] for d in resp.json()] == ["d4", "d1", "d5"]

    @pytest.mark.asyncio
    async def test_assign_then_reassign_conflicts(self, client):
        ride = await create_ride(client)

        resp = await client.post(
            f"{API}/admin/rides/{ride['id']}/assign", json={"driver_id": "d1", "eta_min": 4}
        )
        assert resp.status_code == 200
        assignment = resp.json()["assignment"]
        assert assignment["kind"] == "driver"
        assert assignment["driver_name"] == "Adewale T."
        assert assignment["eta_min"] == 4

        resp = await client.post(
            f"{API}/admin/rides/{ride['id']}/assign", json={"driver_id": "d4"}
        )
        assert resp.status_code == 409
        assert resp.json()["error"] == "ride_already_assigned"

    @pytest.mark.asyncio
    async def test_assign_busy_driver_conflicts(self, client):
        ride = await create_ride(client)
        resp = await client.post(
            f"{API}/admin/rides/{ride['id']}/assign", json={"driver_id": "d2"}
        )
        assert resp.status_code == 409
        assert resp.json()["error"] == "conflict"

    @pytest.mark.asyncio
    async def test_assign_both_targets_is_422(self, client):
        ride = await create_ride(client)
        resp = await client.post(
            f"{API}/admin/rides/{ride['id']}/assign",
            json={"driver_id": "d1", "shuttle_id": "s1"},
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_auto_assign_bus_ride(self, client):
        resp = await client.post(f"{API}/rides", json=BUS_TRIP)
        ride = resp.json()
        assert ride["estimated_fare"] == 2500

        resp = await client.post(f"{API}/admin/rides/{ride['id']}/assign", json={})
        assert resp.status_code == 200
        assert resp.json()["assignment"]["shuttle_id"] == "s1"

        shuttle = (await client.get(f"{API}/admin/shuttles")).json()[0]
        assert shuttle["filled"] == 7
        assert shuttle["accepted_ride_ids"] == [ride["id"]]

    @pytest.mark.asyncio
    async def test_status_flow(self, client):
        ride = await create_ride(client)
        await client.post(f"{API}/admin/rides/{ride['id']}/assign", json={"driver_id": "d1"})

        for status in ("arrived", "in_trip", "completed"):
            resp = await set_status(client, ride["id"], status)
            assert resp.status_code == 200
            assert resp.json()["status"] == status

        drivers = (await client.get(f"{API}/admin/drivers")).json()
        d1 = next(d for d in drivers if d["id"] == "d1")
        assert d1["status"] == "available"

    @pytest.mark.asyncio
    async def test_illegal_transition_is_409(self, client):
        ride = await create_ride(client)
        resp = await set_status(client, ride["id"], "in_trip")
        assert resp.status_code == 409
        assert resp.json()["error"] == "invalid_state"

    @pytest.mark.asyncio
    async def test_fare_audit(self, client):
        ride = await create_ride(client)
        resp = await client.get(f"{API}/admin/rides/{ride['id']}/fare-audit")
        assert resp.status_code == 200
        assert resp.json()["matches"] is True

    @pytest.mark.asyncio
    async def test_list_rides_filtered(self, client):
        await create_ride(client)
        await client.post(f"{API}/rides", json=BUS_TRIP)

        resp = await client.get(f"{API}/admin/rides", params={"vehicle_class": "bus"})
        assert [r["vehicle_class"] for r in resp.json()] == ["bus"]

        resp = await client.get(f"{API}/admin/rides", params={"status": "requested"})
        assert len(resp.json()) == 2


class TestPaymentEndpoints:
    @pytest.mark.asyncio
    async def test_gateway_ride_must_be_paid_before_completion(self, client):
        ride = await create_ride(client, payment_method="gateway")
        assert ride["tx_ref"] == "TX-1"
        assert ride["payment_status"] == "pending"

        await client.post(f"{API}/admin/rides/{ride['id']}/assign", json={"driver_id": "d1"})
        await set_status(client, ride["id"], "arrived")
        await set_status(client, ride["id"], "in_trip")

        resp = await set_status(client, ride["id"], "completed")
        assert resp.status_code == 402
        assert resp.json()["error"] == "payment_incomplete"

        resp = await client.post(
            f"{API}/payments/callback", json={"tx_ref": "TX-1", "succeeded": True}
        )
        assert resp.status_code == 200
        assert resp.json()["payment_status"] == "success"

        resp = await set_status(client, ride["id"], "completed")
        assert resp.status_code == 200

    @pytest.mark.asyncio
    async def test_callback_for_unknown_tx_is_404(self, client):
        resp = await client.post(
            f"{API}/payments/callback", json={"tx_ref": "TX-999", "succeeded": True}
        )
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_switch_to_cash(self, client):
        ride = await create_ride(client, payment_method="gateway")
        resp = await client.post(f"{API}/rides/{ride['id']}/switch-to-cash")
        assert resp.status_code == 200
        assert resp.json()["payment_method"] == "cash"
        assert resp.json()["tx_ref"] is None

    @pytest.mark.asyncio
    async def test_payment_records_list_gateway_rides(self, client):
        await create_ride(client)
        paid = await create_ride(client, payment_method="gateway")
        resp = await client.get(f"{API}/admin/payments")
        assert [r["id"] for r in resp.json()] == [paid["id"]]

    @pytest.mark.asyncio
    async def test_cash_paid_on_gateway_ride_conflicts(self, client):
        ride = await create_ride(client, payment_method="gateway")
        resp = await client.post(f"{API}/rides/{ride['id']}/cash-paid")
        assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_restarting_payment_on_paid_ride_conflicts(self, client, gateway):
        ride = await create_ride(client, payment_method="gateway")
        await client.post(f"{API}/payments/callback", json={"tx_ref": "TX-1", "succeeded": True})

        resp = await client.post(f"{API}/rides/{ride['id']}/payment")
        assert resp.status_code == 409
        assert len(gateway.calls) == 1


class TestAdminEndpoints:
    @pytest.mark.asyncio
    async def test_update_pricing(self, client):
        body = {"base": 1500, "per_km": 300, "per_min": 35, "minimum": 2000}
        resp = await client.put(f"{API}/admin/pricing/car", json=body)
        assert resp.status_code == 200
        assert resp.json()["snapshot_id"] == "car-v2"

        pricing = (await client.get(f"{API}/admin/pricing")).json()
        car = next(p for p in pricing if p["vehicle_class"] == "car")
        assert car["base"] == 1500

    @pytest.mark.asyncio
    async def test_negative_pricing_is_422(self, client):
        body = {"base": -1, "per_km": 300, "per_min": 35, "minimum": 2000}
        resp = await client.put(f"{API}/admin/pricing/car", json=body)
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_driver_status(self, client):
        resp = await client.patch(f"{API}/admin/drivers/d1/status", json={"status": "offline"})
        assert resp.status_code == 200
        assert resp.json()["status"] == "offline"

        resp = await client.patch(f"{API}/admin/drivers/d1/status", json={"status": "busy"})
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_advance_shuttle(self, client):
        resp = await client.post(f"{API}/admin/shuttles/s1/advance")
        assert resp.status_code == 200
        assert resp.json()["current_junction"] == "VGC"

    @pytest.mark.asyncio
    async def test_daily_report(self, client):
        await create_ride(client)
        await create_ride(client, payment_method="gateway")
        await client.post(f"{API}/payments/callback", json={"tx_ref": "TX-1", "succeeded": True})

        resp = await client.get(f"{API}/admin/reports")
        assert resp.status_code == 200
        assert resp.json() == {
            "day": "2026-03-02",
            "count": 2,
            "completed_count": 0,
            "gateway_revenue": 5150,
            "cash_count": 1,
        }

        resp = await client.get(f"{API}/admin/reports", params={"day": "2026-03-01"})
        assert resp.json()["count"] == 0


class TestOpenAPI:
    @pytest.mark.asyncio
    async def test_error_bodies_are_documented(self, client):
        schema = (await client.get("/openapi.json")).json()
        assert "ErrorResponse" in schema["components"]["schemas"]

        responses = schema["paths"][f"{API}/rides/{{ride_id}}"]["get"]["responses"]
        assert responses["404"]["content"]["application/json"]["schema"] == {
            "$ref": "#/components/schemas/ErrorResponse"
        }
