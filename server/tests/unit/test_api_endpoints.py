"""Unit tests for API endpoints."""

import pytest


async def place_booking(client, payload, **headers):
    response = await client.post("/v1/booking/create", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_create_booking(test_client, catalog, sample_booking_data, sample_gateway_data):
    """Test creating a booking returns it with its linked payment."""
    data = await place_booking(test_client, {**sample_booking_data, "gateway": sample_gateway_data})

    booking, payment = data["booking"], data["payment"]
    assert booking["status"] == "pending"
    assert booking["payment_status"] == "pending"
    assert booking["payment_id"] == payment["id"]
    assert booking["total_price"] == "200.00"
    assert payment["amount"] == "200.00"
    assert payment["payment_method"] == "bank_transfer"


@pytest.mark.asyncio
async def test_create_booking_duplicate(test_client, catalog, sample_booking_data):
    """Test a duplicate unpaid booking is a 409 problem."""
    await place_booking(test_client, sample_booking_data)

    response = await test_client.post("/v1/booking/create", json=sample_booking_data)

    assert response.status_code == 409
    assert response.headers["content-type"].startswith("application/problem+json")
    problem = response.json()
    assert problem["code"] == "DUPLICATE_BOOKING"
    assert problem["retryable"] is False
    assert problem["type"].endswith("/duplicate-booking")


@pytest.mark.asyncio
async def test_create_booking_idempotency_key(test_client, catalog, sample_booking_data):
    """Test a retried request with the same key returns the same booking."""
    first = await place_booking(test_client, sample_booking_data, **{"Idempotency-Key": "retry-1"})
    second = await place_booking(test_client, sample_booking_data, **{"Idempotency-Key": "retry-1"})

    assert first["booking"]["id"] == second["booking"]["id"]
    assert first["payment"]["id"] == second["payment"]["id"]


@pytest.mark.asyncio
async def test_create_booking_invalid_body(test_client, sample_booking_data):
    """Test schema violations are reported with their paths."""
    response = await test_client.post(
        "/v1/booking/create",
        json={**sample_booking_data, "number_of_people": 0, "contact_email": "nope"}
    )

    assert response.status_code == 422
    problem = response.json()
    assert problem["code"] == "REQUEST_VALIDATION"
    paths = {v["path"] for v in problem["violations"]}
    assert {"number_of_people", "contact_email"} <= paths


@pytest.mark.asyncio
async def test_create_booking_both_references(test_client, sample_booking_data):
    """Test a booking naming both a destination and an event is rejected."""
    response = await test_client.post("/v1/booking/create", json={**sample_booking_data, "event_id": "e1"})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_get_and_list_bookings(test_client, catalog, sample_booking_data):
    """Test reading a booking back and listing by user."""
    placed = await place_booking(test_client, sample_booking_data)
    booking_id = placed["booking"]["id"]

    response = await test_client.post("/v1/booking/get", json={"booking_id": booking_id})
    assert response.status_code == 200
    assert response.json()["id"] == booking_id

    response = await test_client.post("/v1/booking/list", json={"user_id": "u1"})
    assert response.status_code == 200
    assert [b["id"] for b in response.json()] == [booking_id]


@pytest.mark.asyncio
async def test_get_booking_not_found(test_client):
    """Test a missing booking is a 404 problem."""
    response = await test_client.post("/v1/booking/get", json={"booking_id": "missing"})

    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_update_booking(test_client, catalog, sample_booking_data):
    """Test a partial update and the rejection of fixed fields."""
    placed = await place_booking(test_client, sample_booking_data)
    booking_id = placed["booking"]["id"]

    response = await test_client.post(
        "/v1/booking/update",
        json={"booking_id": booking_id, "changes": {"contact_name": "B"}}
    )
    assert response.status_code == 200
    assert response.json()["contact_name"] == "B"

    response = await test_client.post(
        "/v1/booking/update",
        json={"booking_id": booking_id, "changes": {"total_price": "1.00"}}
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_booking_status_endpoints(test_client, catalog, sample_booking_data):
    """Test confirm, complete and the conflict on a later cancel."""
    placed = await place_booking(test_client, sample_booking_data)
    ref = {"booking_id": placed["booking"]["id"]}

    response = await test_client.post("/v1/booking/confirm", json=ref)
    assert response.json()["status"] == "confirmed"

    response = await test_client.post("/v1/booking/complete", json=ref)
    assert response.json()["status"] == "completed"

    response = await test_client.post("/v1/booking/cancel", json={**ref, "reason": "late"})
    assert response.status_code == 409
    assert response.json()["code"] == "INVALID_TRANSITION"


@pytest.mark.asyncio
async def test_cancel_booking(test_client, catalog, sample_booking_data):
    """Test cancellation keeps the payment pending."""
    placed = await place_booking(test_client, sample_booking_data)

    response = await test_client.post(
        "/v1/booking/cancel",
        json={"booking_id": placed["booking"]["id"], "reason": "change of plans"}
    )
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert response.json()["cancellation_reason"] == "change of plans"

    response = await test_client.post("/v1/payment/get", json={"payment_id": placed["payment"]["id"]})
    assert response.json()["status"] == "pending"


@pytest.mark.asyncio
async def test_payment_flow(test_client, catalog, sample_booking_data):
    """Test proof upload, completion and refund through the API."""
    placed = await place_booking(test_client, sample_booking_data)
    booking_id, payment_id = placed["booking"]["id"], placed["payment"]["id"]

    response = await test_client.post(
        "/v1/booking/upload-proof",
        json={"booking_id": booking_id, "proof_url": "https://proof.png"}
    )
    assert response.status_code == 200
    assert response.json()["payment"]["status"] == "processing"
    assert response.json()["booking"]["payment_status"] == "processing"

    response = await test_client.post("/v1/payment/complete", json={"payment_id": payment_id})
    assert response.json()["status"] == "completed"

    response = await test_client.post(
        "/v1/payment/processing",
        json={"payment_id": payment_id, "proof_url": "https://proof-2.png"}
    )
    assert response.status_code == 409

    response = await test_client.post("/v1/payment/refund", json={"payment_id": payment_id})
    assert response.json()["status"] == "refunded"

    response = await test_client.post("/v1/booking/payment-status", json={"booking_id": booking_id})
    assert response.json() == {
        "booking_id": booking_id,
        "payment_id": payment_id,
        "payment_status": "refunded",
        "cached_payment_status": "refunded",
        "stale": False,
    }


@pytest.mark.asyncio
async def test_fail_payment(test_client, catalog, sample_booking_data):
    """Test failing a payment records the reason."""
    placed = await place_booking(test_client, sample_booking_data)

    response = await test_client.post(
        "/v1/payment/fail",
        json={"payment_id": placed["payment"]["id"], "reason": "declined"}
    )

    assert response.status_code == 200
    assert response.json()["payment_details"]["failure_reason"] == "declined"


@pytest.mark.asyncio
async def test_create_payment_endpoint(test_client, catalog, sample_booking_data):
    """Test a payment for an amount other than the total is a 422 problem."""
    placed = await place_booking(test_client, sample_booking_data)
    booking_id = placed["booking"]["id"]

    response = await test_client.post("/v1/payment/create", json={"booking_id": booking_id, "amount": "50.00"})
    assert response.status_code == 422
    assert response.json()["code"] == "INVARIANT_VIOLATION"

    response = await test_client.post(
        "/v1/payment/create",
        json={"booking_id": booking_id, "amount": "200.00"},
        headers={"Idempotency-Key": "pay-1"}
    )
    assert response.status_code == 201
    second_payment = response.json()

    response = await test_client.post("/v1/booking/get", json={"booking_id": booking_id})
    assert response.json()["payment_id"] == second_payment["id"]


@pytest.mark.asyncio
async def test_reconcile_endpoint(test_client, catalog, sample_booking_data):
    """Test reconcile on an already consistent booking changes nothing."""
    placed = await place_booking(test_client, sample_booking_data)

    response = await test_client.post("/v1/booking/reconcile", json={"booking_id": placed["booking"]["id"]})

    assert response.status_code == 200
    assert response.json()["payment_id"] == placed["payment"]["id"]


@pytest.mark.asyncio
async def test_invoice_endpoint(test_client, catalog, sample_booking_data):
    """Test the invoice for a placed booking."""
    placed = await place_booking(test_client, sample_booking_data)
    booking_id = placed["booking"]["id"]

    response = await test_client.post("/v1/invoice/get", json={"booking_id": booking_id})

    assert response.status_code == 200
    invoice = response.json()
    assert invoice["invoice_number"] == booking_id[:8]
    assert invoice["item"]["name"] == "Victoria Falls"
    assert invoice["total_amount"] == "200.00"
    assert invoice["payment"]["persisted"] is True


@pytest.mark.asyncio
async def test_itinerary_endpoints(test_client):
    """Test the itinerary flow with camelCase fields."""
    response = await test_client.post("/v1/itinerary/create", json={"userId": "u1", "title": "Trip"})
    assert response.status_code == 201
    itinerary = response.json()
    assert itinerary["isPublic"] is False
    assert itinerary["shareCode"] is None
    assert itinerary["totalDays"] == 0
    itinerary_id = itinerary["id"]

    for destination_id, name, start, end in [
        ("d1", "Falls", "2024-01-01", "2024-01-03"),
        ("d2", "Hills", "2024-01-04", "2024-01-06"),
    ]:
        response = await test_client.post("/v1/itinerary/add-destination", json={
            "itineraryId": itinerary_id,
            "destinationId": destination_id,
            "name": name,
            "startDate": start,
            "endDate": end,
        })
        assert response.status_code == 201

    response = await test_client.post("/v1/itinerary/get", json={"itineraryId": itinerary_id})
    body = response.json()
    assert [d["order"] for d in body["destinations"]] == [0, 1]
    assert body["totalDays"] == 6

    response = await test_client.post(
        "/v1/itinerary/update",
        json={"itineraryId": itinerary_id, "title": "Trip", "description": "desc", "isPublic": True}
    )
    share_code = response.json()["shareCode"]
    assert share_code

    response = await test_client.post("/v1/itinerary/shared", json={"shareCode": share_code})
    assert response.status_code == 200
    assert response.json()["id"] == itinerary_id

    response = await test_client.post("/v1/itinerary/list", json={"userId": "u1"})
    assert [i["id"] for i in response.json()] == [itinerary_id]

    first_entry = body["destinations"][0]["id"]
    response = await test_client.post(
        "/v1/itinerary/update-destination",
        json={"id": first_entry, "notes": "Boat trip"}
    )
    assert response.json()["notes"] == "Boat trip"

    response = await test_client.post("/v1/itinerary/remove-destination", json={"id": first_entry})
    assert response.status_code == 204

    response = await test_client.post("/v1/itinerary/delete", json={"itineraryId": itinerary_id})
    assert response.status_code == 204

    response = await test_client.post("/v1/itinerary/get", json={"itineraryId": itinerary_id})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_add_destination_reversed_dates(test_client):
    """Test reversed dates are rejected by the schema."""
    response = await test_client.post("/v1/itinerary/create", json={"userId": "u1", "title": "Trip"})
    itinerary_id = response.json()["id"]

    response = await test_client.post("/v1/itinerary/add-destination", json={
        "itineraryId": itinerary_id,
        "destinationId": "d1",
        "name": "Falls",
        "startDate": "2024-01-05",
        "endDate": "2024-01-01",
    })

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_unknown_share_code(test_client):
    """Test an unknown share code is a 404."""
    response = await test_client.post("/v1/itinerary/shared", json={"shareCode": "nothing"})

    assert response.status_code == 404
