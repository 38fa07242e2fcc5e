"""
HTTP API Tests.

Validates request validation, status codes and the error envelope of the
v1 endpoints.
"""

import pytest

from station_node.tests.stations import MAHDIA, SOUSSE

pytestmark = pytest.mark.usefixtures("routes")


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["redis"] is True


@pytest.mark.asyncio
async def test_queue_flow(client, seed):
    await seed.vehicle("111TU1", destinations=((SOUSSE, "Sousse"), (MAHDIA, "Mahdia")))

    entered = await client.post("/v1/queue/enter", json={"license_plate": "111TU1", "destination_id": SOUSSE})
    duplicate = await client.post("/v1/queue/enter", json={"license_plate": "111TU1", "destination_id": MAHDIA})
    moved = await client.post("/v1/queue/move", json={"license_plate": "111TU1", "destination_id": MAHDIA})
    listed = await client.get(f"/v1/queue/{MAHDIA}")

    assert entered.status_code == 201
    assert entered.json()["queue_entry"]["queue_position"] == 1
    assert duplicate.status_code == 409
    assert duplicate.json()["error_code"] == "ERR_QUEUE_001"
    assert moved.status_code == 200
    assert moved.json()["previous_destination"] == "Sousse"
    assert [e["license_plate"] for e in listed.json()] == ["111TU1"]


@pytest.mark.asyncio
async def test_unknown_vehicle_is_404(client):
    response = await client.post("/v1/queue/exit", json={"license_plate": "000XX0"})

    assert response.status_code == 404
    assert response.json()["error_code"] == "ERR_VEHICLE_001"


@pytest.mark.asyncio
async def test_booking_and_verification(client, seed):
    await seed.vehicle("AAA111", capacity=3)
    await seed.vehicle("BBB222", capacity=2)
    await client.post("/v1/queue/enter", json={"license_plate": "AAA111", "destination_id": SOUSSE})
    await client.post("/v1/queue/enter", json={"license_plate": "BBB222", "destination_id": SOUSSE})

    available = await client.get(f"/v1/bookings/available/{SOUSSE}")
    booked = await client.post("/v1/bookings", json={
        "booking_type": "CASH", "destination_id": SOUSSE, "seats_requested": 4, "staff_id": "staff-1"
    })

    assert available.json()["total_available_seats"] == 5
    assert booked.status_code == 201
    assert booked.json()["total_amount"] == 40.0

    code = booked.json()["verification_codes"][0]
    first = await client.post("/v1/bookings/verify", json={"verification_code": code, "staff_id": "staff-2"})
    second = await client.post("/v1/bookings/verify", json={"verification_code": code, "staff_id": "staff-2"})
    fetched = await client.get(f"/v1/bookings/{code}")

    assert first.json()["already_verified"] is False
    assert second.json()["already_verified"] is True
    assert fetched.json()["is_verified"] is True

    short = await client.post("/v1/bookings", json={
        "booking_type": "CASH", "destination_id": SOUSSE, "seats_requested": 2, "staff_id": "staff-1"
    })
    assert short.status_code == 409
    assert short.json()["error_code"] == "ERR_BOOKING_001"


@pytest.mark.asyncio
async def test_online_booking_requires_its_fields(client):
    response = await client.post("/v1/bookings", json={
        "booking_type": "ONLINE", "destination_id": SOUSSE, "seats_requested": 1
    })

    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"


@pytest.mark.asyncio
async def test_online_payment_update(client, seed):
    await seed.vehicle("AAA111", capacity=3)
    await client.post("/v1/queue/enter", json={"license_plate": "AAA111", "destination_id": SOUSSE})
    await client.post("/v1/bookings", json={
        "booking_type": "ONLINE", "destination_id": SOUSSE, "seats_requested": 2, "user_id": "u-1",
        "customer_phone": "+21620000000", "online_ticket_id": "t-1", "total_amount": 19.0
    })

    paid = await client.put("/v1/bookings/online/t-1/payment", json={"payment_status": "PAID"})

    assert paid.status_code == 200
    assert paid.json() == {"online_ticket_id": "t-1", "payment_status": "PAID", "updated": 1}


@pytest.mark.asyncio
async def test_overnight_endpoints(client, seed):
    await seed.vehicle("NIT001")
    await seed.vehicle("REG001")
    await client.post("/v1/queue/enter", json={"license_plate": "REG001", "destination_id": SOUSSE})

    added = await client.post("/v1/overnight/add", json={"license_plate": "NIT001"})
    overnight = await client.get("/v1/overnight")
    transfer = await client.post("/v1/overnight/transfer")
    regular = await client.get(f"/v1/queue/{SOUSSE}", params={"queue_type": "REGULAR"})

    assert added.status_code == 201
    assert list(overnight.json()["queues"]) == [SOUSSE]
    assert transfer.json()["transferred"] == 1
    assert [(e["license_plate"], e["queue_position"]) for e in regular.json()] == [("REG001", 1), ("NIT001", 2)]


@pytest.mark.asyncio
async def test_route_price_update(client):
    updated = await client.put(f"/v1/routes/{SOUSSE}/price", json={"base_price": 11.0})
    invalid = await client.put(f"/v1/routes/{SOUSSE}/price", json={"base_price": -1})
    routes = await client.get("/v1/routes")

    assert updated.json()["base_price"] == 11.0
    assert invalid.status_code == 422
    assert {r["station_id"] for r in routes.json()} >= {SOUSSE, MAHDIA}
