from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from app.waypoint.core.codes import (
    CONTRACT_ACTIVE,
    CONTRACT_CANCELLED,
    CONTRACT_COMPLETED,
    PAYMENT_COMPLETED,
    PAYMENT_FAILED,
    PAYMENT_PENDING,
    STATUS_REJECTED,
    TRANSFER_STATUSES,
)
from app.waypoint.core.metrics import metrics
from app.waypoint.db.models import Transfer
from app.waypoint.services.ledger import VerificationLedger
from app.waypoint.services.settlement import MalformedContractError, evidence_step_for
from app.waypoint.services.state_machine import TRANSITION_GUARDS, required_step


SEVERITY_CRITICAL = "CRITICAL"
SEVERITY_WARN = "WARN"

CONTRACT_PAYMENT_STATES = {
    CONTRACT_ACTIVE: PAYMENT_PENDING,
    CONTRACT_COMPLETED: PAYMENT_COMPLETED,
    CONTRACT_CANCELLED: PAYMENT_FAILED,
}


@dataclass(frozen=True)
class IntegrityFinding:
    check_id: str
    severity: str
    transfer_id: str
    message: str
    entity: str
    entity_id: str | None
    details: dict


def load_transfers(db, transfer_id: str = "all") -> list[Transfer]:
    query = select(Transfer).options(
        selectinload(Transfer.items),
        selectinload(Transfer.smart_contract),
        selectinload(Transfer.verifications),
        selectinload(Transfer.timeline_events),
    )
    if transfer_id.lower() != "all":
        query = query.where(Transfer.id == transfer_id)
    return list(db.execute(query.order_by(Transfer.created_at)).scalars().all())


def _finding(check_id: str, severity: str, transfer: Transfer, message: str, entity: str, entity_id, details: dict):
    return IntegrityFinding(
        check_id=check_id,
        severity=severity,
        transfer_id=str(transfer.id),
        message=message,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        details=details,
    )


def _record(check_id: str, findings: list[IntegrityFinding]) -> list[IntegrityFinding]:
    if findings:
        metrics.increment_invariant_violation(check_id, len(findings))
    return findings


def check_known_status(transfers: list[Transfer]) -> list[IntegrityFinding]:
    findings = [
        _finding(
            "transfer_status_known",
            SEVERITY_CRITICAL,
            transfer,
            "Transfer status is not part of the lifecycle.",
            "transfers",
            transfer.id,
            {"status": transfer.status},
        )
        for transfer in transfers
        if transfer.status not in TRANSFER_STATUSES
    ]
    return _record("transfer_status_known", findings)


def check_total_value(transfers: list[Transfer]) -> list[IntegrityFinding]:
    findings = []
    for transfer in transfers:
        items_total = sum((item.total_value for item in transfer.items), Decimal("0"))
        if Decimal(transfer.total_value) != items_total:
            findings.append(
                _finding(
                    "transfer_total_value",
                    SEVERITY_CRITICAL,
                    transfer,
                    "Stored total value differs from the item sum.",
                    "transfers",
                    transfer.id,
                    {"total_value": str(transfer.total_value), "items_total": str(items_total)},
                )
            )
    return _record("transfer_total_value", findings)


def check_single_verified_entry(transfers: list[Transfer]) -> list[IntegrityFinding]:
    findings = []
    for transfer in transfers:
        counts = Counter(entry.step for entry in transfer.verifications if entry.verified)
        for step, count in sorted(counts.items()):
            if count > 1:
                findings.append(
                    _finding(
                        "duplicate_verified_step",
                        SEVERITY_CRITICAL,
                        transfer,
                        "Verification step is verified more than once.",
                        "transfer_verifications",
                        None,
                        {"step": step, "verified_entries": count},
                    )
                )
    return _record("duplicate_verified_step", findings)


def check_guarded_progress(transfers: list[Transfer]) -> list[IntegrityFinding]:
    findings = []
    for transfer in transfers:
        if transfer.status == STATUS_REJECTED or transfer.status not in TRANSFER_STATUSES:
            continue
        reached = TRANSFER_STATUSES.index(transfer.status)
        ledger = VerificationLedger(transfer)
        for current, requested in TRANSITION_GUARDS:
            if TRANSFER_STATUSES.index(requested) > reached:
                continue
            step = required_step(transfer.transfer_type, current, requested)
            if step and not ledger.is_verified(step):
                findings.append(
                    _finding(
                        "guarded_progress",
                        SEVERITY_WARN,
                        transfer,
                        "Transfer progressed past a guard without its verification.",
                        "transfers",
                        transfer.id,
                        {"status": transfer.status, "transition": f"{current}->{requested}", "missing_step": step},
                    )
                )
    return _record("guarded_progress", findings)


def check_settlement_evidence(transfers: list[Transfer]) -> list[IntegrityFinding]:
    findings = []
    for transfer in transfers:
        contract = transfer.smart_contract
        if contract is None or contract.payment_status != PAYMENT_COMPLETED:
            continue
        try:
            step = evidence_step_for(contract)
        except MalformedContractError:
            step = None
        if step is None or not VerificationLedger(transfer).is_verified(step):
            findings.append(
                _finding(
                    "payment_without_evidence",
                    SEVERITY_CRITICAL,
                    transfer,
                    "Payment released without verified trigger evidence.",
                    "smart_contracts",
                    contract.id,
                    {"trigger_condition": contract.trigger_condition, "evidence_step": step},
                )
            )
    return _record("payment_without_evidence", findings)


def check_contract_state(transfers: list[Transfer]) -> list[IntegrityFinding]:
    findings = []
    for transfer in transfers:
        contract = transfer.smart_contract
        if contract is None:
            continue
        expected_payment = CONTRACT_PAYMENT_STATES.get(contract.status)
        settled = contract.settled_at is not None
        invalid = expected_payment != contract.payment_status
        if contract.payment_status == PAYMENT_COMPLETED:
            invalid = invalid or not settled or not contract.settlement_reference
        else:
            invalid = invalid or contract.settlement_reference is not None
        if invalid:
            findings.append(
                _finding(
                    "contract_state",
                    SEVERITY_CRITICAL,
                    transfer,
                    "Smart contract state and payment status are inconsistent.",
                    "smart_contracts",
                    contract.id,
                    {
                        "status": contract.status,
                        "payment_status": contract.payment_status,
                        "settled_at": contract.settled_at.isoformat() if settled else None,
                    },
                )
            )
    return _record("contract_state", findings)


def check_sequences(transfers: list[Transfer]) -> list[IntegrityFinding]:
    findings = []
    for transfer in transfers:
        for entity, entries in (
            ("transfer_verifications", transfer.verifications),
            ("transfer_timeline_events", transfer.timeline_events),
        ):
            sequences = [entry.sequence for entry in entries]
            if sequences != list(range(1, len(sequences) + 1)):
                findings.append(
                    _finding(
                        "append_only_sequence",
                        SEVERITY_WARN,
                        transfer,
                        "Append-only sequence has gaps or reordering.",
                        entity,
                        None,
                        {"sequences": sequences},
                    )
                )
    return _record("append_only_sequence", findings)


def run_integrity_checks(db, transfer_id: str = "all") -> list[IntegrityFinding]:
    transfers = load_transfers(db, transfer_id)
    findings: list[IntegrityFinding] = []
    findings.extend(check_known_status(transfers))
    findings.extend(check_total_value(transfers))
    findings.extend(check_single_verified_entry(transfers))
    findings.extend(check_guarded_progress(transfers))
    findings.extend(check_settlement_evidence(transfers))
    findings.extend(check_contract_state(transfers))
    findings.extend(check_sequences(transfers))
    return findings
