from datetime import timedelta
from decimal import Decimal

from app.waypoint.core.clock import utcnow
from tests.transfer_helpers import advance_to, contract_payload, create_transfer, transfer_payload


def test_create_transfer_computes_total_and_initial_state(client):
    body = create_transfer(client)

    assert Decimal(body["total_value"]) == Decimal("400")
    assert body["status"] == "SCHEDULED"
    assert body["type"] == "INBOUND"
    assert [item["position"] for item in body["items"]] == [1, 2]
    assert Decimal(body["items"][0]["total_value"]) == Decimal("300")
    assert body["smart_contract"] is None
    assert body["allowed_statuses"] == ["IN_PREPARATION", "REJECTED"]
    assert body["pending_verification"] is None
    assert body["is_critical"] is False
    assert "add_tracking" in body["eligible_actions"]

    assert [(v["step"], v["verified"], v["verifier"]) for v in body["verifications"]] == [
        ("CREATION", True, "ops.lead")
    ]
    assert len(body["timeline"]) == 1
    assert body["timeline"][0]["event"] == "Transfer created"
    assert body["timeline"][0]["status"] == "SCHEDULED"


def test_create_transfer_with_smart_contract(client):
    body = create_transfer(client, smart_contract=contract_payload())

    contract = body["smart_contract"]
    assert contract["status"] == "ACTIVE"
    assert contract["payment_status"] == "PENDING"
    assert contract["trigger_condition"] == "VERIFIED_RECEIPT"
    assert Decimal(contract["payment_amount"]) == Decimal("400")
    assert "evaluate_settlement" in body["eligible_actions"]


def test_create_transfer_rejects_empty_items(client):
    response = client.post("/waypoint/transfers", json=transfer_payload(items=[]))

    assert response.status_code == 422
    payload = response.json()
    assert payload["code"] == "INVARIANT_VIOLATION"
    assert payload["trace_id"]


def test_create_transfer_rejects_non_positive_quantity(client):
    items = [{"name": "Pallet", "quantity": 0, "unit_price": "10.00"}]
    response = client.post("/waypoint/transfers", json=transfer_payload(items=items))

    assert response.status_code == 422
    assert response.json()["code"] == "INVARIANT_VIOLATION"
    assert response.json()["details"]["item_index"] == 0


def test_create_transfer_rejects_same_origin_and_destination(client):
    location = {"id": "WH-SJ", "name": "San Jose Warehouse"}
    response = client.post("/waypoint/transfers", json=transfer_payload(origin=location, destination=location))

    assert response.status_code == 422
    assert response.json()["code"] == "INVARIANT_VIOLATION"


def test_create_transfer_rejects_arrival_before_initiation(client):
    payload = transfer_payload(date_initiated="2026-05-10T00:00:00", expected_arrival="2026-05-01T00:00:00")
    response = client.post("/waypoint/transfers", json=payload)

    assert response.status_code == 422
    assert response.json()["code"] == "INVARIANT_VIOLATION"


def test_create_transfer_rejects_future_initiation(client):
    now = utcnow()
    payload = transfer_payload(
        date_initiated=(now + timedelta(days=30)).isoformat(),
        expected_arrival=(now + timedelta(days=40)).isoformat(),
    )
    response = client.post("/waypoint/transfers", json=payload)

    assert response.status_code == 422
    assert response.json()["code"] == "INVARIANT_VIOLATION"
    assert client.get("/waypoint/transfers").json()["total"] == 0


def test_create_transfer_timeline_stays_chronological(client):
    body = advance_to(client, create_transfer(client), "IN_PREPARATION")

    stamps = [event["timestamp"] for event in body["timeline"]]
    assert stamps == sorted(stamps)


def test_create_transfer_rejects_sub_cent_unit_price(client):
    items = [{"name": "Washer", "quantity": 3, "unit_price": "0.005"}]
    response = client.post("/waypoint/transfers", json=transfer_payload(items=items))

    assert response.status_code == 422
    payload = response.json()
    assert payload["code"] == "VALIDATION_ERROR"
    assert payload["details"]["errors"][0]["field"] == "items.0.unit_price"


def test_create_transfer_rejects_sub_cent_payment_amount(client):
    response = client.post(
        "/waypoint/transfers",
        json=transfer_payload(smart_contract=contract_payload(amount="0.001")),
    )

    assert response.status_code == 422
    payload = response.json()
    assert payload["code"] == "VALIDATION_ERROR"
    assert payload["details"]["errors"][0]["field"] == "smart_contract.payment_amount"
    assert client.get("/waypoint/transfers").json()["total"] == 0


def test_create_transfer_stored_total_matches_item_sum(client):
    items = [
        {"name": "Washer", "quantity": 3, "unit_price": "0.01"},
        {"name": "Bracket", "quantity": 7, "unit_price": "12.35"},
    ]
    created = create_transfer(client, items=items)

    detail = client.get(f"/waypoint/transfers/{created['id']}").json()
    items_total = sum(Decimal(item["total_value"]) for item in detail["items"])
    assert Decimal(detail["total_value"]) == items_total == Decimal("86.48")


def test_create_internal_transfer_rejects_customs_trigger(client):
    payload = transfer_payload(type="INTERNAL", smart_contract=contract_payload(trigger="CUSTOMS_CLEARANCE"))
    response = client.post("/waypoint/transfers", json=payload)

    assert response.status_code == 422
    assert response.json()["details"]["trigger_condition"] == "CUSTOMS_CLEARANCE"


def test_create_transfer_rejects_unknown_status_vocabulary(client):
    response = client.post("/waypoint/transfers", json=transfer_payload(type="SIDEWAYS"))

    assert response.status_code == 422
    payload = response.json()
    assert payload["code"] == "VALIDATION_ERROR"
    assert payload["details"]["errors"][0]["field"] == "type"


def test_get_transfer_detail_and_not_found(client):
    created = create_transfer(client)

    response = client.get(f"/waypoint/transfers/{created['id']}")
    assert response.status_code == 200
    assert response.json()["id"] == created["id"]

    missing = client.get("/waypoint/transfers/00000000-0000-0000-0000-000000000000")
    assert missing.status_code == 404
    assert missing.json()["code"] == "TRANSFER_NOT_FOUND"

    garbage = client.get("/waypoint/transfers/not-a-transfer")
    assert garbage.status_code == 404
    assert garbage.json()["code"] == "TRANSFER_NOT_FOUND"


def test_list_transfers_filters(client):
    inbound = create_transfer(client)
    outbound = create_transfer(
        client,
        type="OUTBOUND",
        origin={"id": "WH-SJ", "name": "San Jose Warehouse"},
        destination={"id": "CUST-9", "name": "Orbital Labs"},
        items=[{"name": "Ground station", "quantity": 1, "unit_price": "75000.00"}],
        priority="LOW",
        smart_contract=contract_payload(amount="75000.00", method="TRADITIONAL"),
    )
    internal = create_transfer(
        client,
        type="INTERNAL",
        origin={"id": "WH-SJ", "name": "San Jose Warehouse"},
        destination={"id": "WH-AUS", "name": "Austin Warehouse"},
    )
    advance_to(client, internal, "IN_TRANSIT")

    response = client.get("/waypoint/transfers")
    assert response.status_code == 200
    assert response.json()["total"] == 3

    by_type = client.get("/waypoint/transfers", params={"type": "OUTBOUND"}).json()
    assert [row["id"] for row in by_type["rows"]] == [outbound["id"]]

    by_status = client.get("/waypoint/transfers", params=[("status", "SCHEDULED"), ("status", "IN_TRANSIT")]).json()
    assert by_status["total"] == 3

    in_transit = client.get("/waypoint/transfers", params={"status": "IN_TRANSIT"}).json()
    assert [row["id"] for row in in_transit["rows"]] == [internal["id"]]

    high_value = client.get("/waypoint/transfers", params={"min_value": "1000"}).json()
    assert [row["id"] for row in high_value["rows"]] == [outbound["id"]]

    with_contract = client.get("/waypoint/transfers", params={"has_smart_contract": "true"}).json()
    assert [row["id"] for row in with_contract["rows"]] == [outbound["id"]]

    at_san_jose = client.get("/waypoint/transfers", params={"location_id": "WH-SJ"}).json()
    assert at_san_jose["total"] == 3

    searched = client.get("/waypoint/transfers", params={"search": "rf-0001"}).json()
    assert {row["id"] for row in searched["rows"]} == {inbound["id"], internal["id"]}

    page = client.get("/waypoint/transfers", params={"limit": 1, "offset": 1}).json()
    assert page["total"] == 3
    assert len(page["rows"]) == 1
    assert page["limit"] == 1
    assert page["offset"] == 1


def test_list_transfers_verified_and_exception_filters(client):
    clean = create_transfer(client)
    flagged = create_transfer(client)
    flagged = advance_to(client, flagged, "IN_PREPARATION")
    response = client.post(
        f"/waypoint/transfers/{flagged['id']}/verifications",
        json={"step": "SHIPPING", "verifier": "dock.crew", "verified": False, "notes": "seal broken"},
    )
    assert response.status_code == 201

    exceptions = client.get("/waypoint/transfers", params={"exceptions_only": "true"}).json()
    assert [row["id"] for row in exceptions["rows"]] == [flagged["id"]]

    verified = client.get("/waypoint/transfers", params={"verified_only": "true"}).json()
    assert [row["id"] for row in verified["rows"]] == [clean["id"]]


def test_list_transfers_rejects_oversized_page(client):
    response = client.get("/waypoint/transfers", params={"limit": 10_000})

    assert response.status_code == 422
    assert response.json()["code"] == "VALIDATION_ERROR"
