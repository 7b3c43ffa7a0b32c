import uuid
from datetime import timedelta
from decimal import Decimal

from app.ops.integrity_checks import (
    check_contract_state,
    check_guarded_progress,
    check_sequences,
    check_settlement_evidence,
    check_single_verified_entry,
    check_total_value,
    load_transfers,
    run_integrity_checks,
)
from app.waypoint.core.clock import utcnow
from app.waypoint.db.models import Transfer, TransferVerification
from tests.transfer_helpers import advance_to, build_transfer, contract_payload, create_transfer


def test_healthy_lifecycle_has_no_findings(client, db_session):
    transfer = create_transfer(client, smart_contract=contract_payload())
    advance_to(client, transfer, "COMPLETED")
    rejected = create_transfer(client, smart_contract=contract_payload())
    client.post(f"/waypoint/transfers/{rejected['id']}/status", json={"status": "REJECTED", "actor": "ops"})

    assert run_integrity_checks(db_session) == []


def test_total_value_drift_is_critical(client, db_session):
    created = create_transfer(client)
    transfer = db_session.get(Transfer, uuid.UUID(created["id"]))
    transfer.total_value = Decimal("999.00")
    db_session.commit()

    findings = check_total_value(load_transfers(db_session, created["id"]))

    assert len(findings) == 1
    assert findings[0].severity == "CRITICAL"
    assert findings[0].details == {"total_value": "999.00", "items_total": "400.00"}


def test_second_verified_entry_is_flagged(client, db_session):
    created = create_transfer(client)
    db_session.add(
        TransferVerification(
            transfer_id=db_session.get(Transfer, uuid.UUID(created["id"])).id,
            sequence=2,
            step="CREATION",
            verified=True,
            verifier="intruder",
            recorded_at=utcnow(),
        )
    )
    db_session.commit()

    findings = check_single_verified_entry(load_transfers(db_session))

    assert [(f.check_id, f.details["step"]) for f in findings] == [("duplicate_verified_step", "CREATION")]


def test_payment_without_evidence_and_bad_contract_state():
    transfer = build_transfer(status="IN_TRANSIT", contract={"payment_status": "COMPLETED"})

    evidence = check_settlement_evidence([transfer])
    state = check_contract_state([transfer])

    assert [f.check_id for f in evidence] == ["payment_without_evidence"]
    assert [f.check_id for f in state] == ["contract_state"]


def test_progress_past_guard_without_verification_warns():
    transfer = build_transfer(status="IN_CUSTOMS")

    findings = check_guarded_progress([transfer])

    assert {f.details["missing_step"] for f in findings} == {"SHIPPING", "CUSTOMS_SUBMISSION"}
    assert all(f.severity == "WARN" for f in findings)


def test_internal_progress_ignores_customs_steps():
    transfer = build_transfer(status="QUALITY_CHECK", transfer_type="INTERNAL")

    findings = check_guarded_progress([transfer])

    assert {f.details["missing_step"] for f in findings} == {"SHIPPING"}


def test_sequence_gap_warns():
    transfer = build_transfer()
    transfer.verifications.append(
        TransferVerification(sequence=3, step="CREATION", verified=True, verifier="ops", recorded_at=utcnow())
    )

    findings = check_sequences([transfer])

    assert findings[0].entity == "transfer_verifications"
    assert findings[0].details["sequences"] == [3]


def test_findings_carry_transfer_id():
    transfer = build_transfer(status="IN_TRANSIT", expected_arrival=utcnow() + timedelta(days=1))

    findings = check_guarded_progress([transfer])

    assert {f.transfer_id for f in findings} == {str(transfer.id)}
