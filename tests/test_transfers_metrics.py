from datetime import timedelta
from decimal import Decimal

from app.waypoint.core.clock import utcnow
from app.waypoint.services.transfers import TransferService
from tests.transfer_helpers import advance, advance_to, contract_payload, create_request, create_transfer


def test_metrics_endpoint_counts_and_rates(client):
    completed = create_transfer(client, smart_contract=contract_payload())
    advance_to(client, completed, "COMPLETED")
    rejected = create_transfer(client)
    advance(client, rejected["id"], "REJECTED")
    create_transfer(client, type="OUTBOUND", destination={"id": "CUST-1", "name": "Orbital Labs"})

    response = client.get("/waypoint/transfers/metrics")

    assert response.status_code == 200
    body = response.json()
    assert body["window_days"] == 30
    assert body["total"] == 3
    assert body["status_counts"]["COMPLETED"] == 1
    assert body["status_counts"]["REJECTED"] == 1
    assert body["status_counts"]["SCHEDULED"] == 1
    assert body["by_type"]["INBOUND"]["count"] == 2
    assert body["by_type"]["OUTBOUND"]["count"] == 1
    assert body["by_type"]["INTERNAL"]["count"] == 0
    assert body["success_rate"] == 0.5
    assert body["completed_in_window"] == 1
    assert body["rejected_in_window"] == 1
    assert body["on_time_rate"] == 1.0
    assert Decimal(body["active_value"]) == Decimal("400")
    assert body["settlement"]["by_payment_status"]["COMPLETED"] == 1
    assert Decimal(body["settlement"]["settled_amount"]) == Decimal("400")
    assert set(body["avg_hours_in_status"]) == {
        "SCHEDULED",
        "IN_PREPARATION",
        "IN_TRANSIT",
        "IN_CUSTOMS",
        "QUALITY_CHECK",
        "AWAITING_APPROVAL",
    }


def test_metrics_on_empty_store(client):
    body = client.get("/waypoint/transfers/metrics", params={"window_days": 7}).json()

    assert body["window_days"] == 7
    assert body["total"] == 0
    assert body["success_rate"] is None
    assert body["avg_transit_hours"] is None
    assert body["on_time_rate"] is None
    assert body["avg_hours_in_status"]["IN_TRANSIT"] is None


def test_metrics_window_out_of_range(client):
    response = client.get("/waypoint/transfers/metrics", params={"window_days": 5000})

    assert response.status_code == 422
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_metrics_exclude_transfers_finished_before_window(db_session):
    now = utcnow()
    service = TransferService(db_session, clock=lambda: now - timedelta(days=60))
    old = service.create_transfer(
        create_request(
            date_initiated=(now - timedelta(days=61)).isoformat(),
            expected_arrival=(now - timedelta(days=50)).isoformat(),
        )
    )
    service.advance_status(str(old.transfer.id), "REJECTED", "compliance")

    metrics = TransferService(db_session, clock=lambda: now).get_metrics(window_days=30)

    assert metrics.total == 1
    assert metrics.status_counts["REJECTED"] == 1
    assert metrics.rejected_in_window == 0
    assert metrics.success_rate is None
