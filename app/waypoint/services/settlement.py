from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation

from app.waypoint.core.codes import (
    CONTRACT_CANCELLED,
    CONTRACT_COMPLETED,
    PAYMENT_COMPLETED,
    PAYMENT_FAILED,
    PAYMENT_METHODS,
    PAYMENT_PENDING,
    STATUS_REJECTED,
    STEP_CUSTOMS_CLEARANCE,
    STEP_QUALITY_CHECK,
    STEP_RECEIPT,
    TRIGGER_CUSTOMS_CLEARANCE,
    TRIGGER_QUALITY_CHECK_PASSED,
    TRIGGER_VERIFIED_RECEIPT,
)
from app.waypoint.core.logging import log_json
from app.waypoint.core.metrics import metrics
from app.waypoint.db.models import SmartContract, Transfer
from app.waypoint.services.ledger import VerificationLedger
from app.waypoint.services.timeline import append_event

logger = logging.getLogger("waypoint.settlement")

SETTLEMENT_ACTOR = "settlement-engine"

TRIGGER_EVIDENCE_STEPS = {
    TRIGGER_VERIFIED_RECEIPT: STEP_RECEIPT,
    TRIGGER_CUSTOMS_CLEARANCE: STEP_CUSTOMS_CLEARANCE,
    TRIGGER_QUALITY_CHECK_PASSED: STEP_QUALITY_CHECK,
}

OUTCOME_NO_CONTRACT = "no_contract"
OUTCOME_ALREADY_SETTLED = "already_settled"
OUTCOME_PENDING = "pending"
OUTCOME_PAID = "paid"
OUTCOME_FAILED = "failed"
OUTCOME_ERROR = "error"


class MalformedContractError(Exception):
    pass


@dataclass(frozen=True)
class PaymentInstruction:
    reference: str
    contract_id: str
    transfer_id: str
    amount: Decimal
    method: str
    trigger_condition: str
    evidence_step: str
    evidence_verifier: str
    issued_at: datetime


@dataclass(frozen=True)
class SettlementOutcome:
    outcome: str
    payment_status: str | None
    instruction: PaymentInstruction | None = None
    detail: str | None = None


def evidence_step_for(contract: SmartContract) -> str:
    step = TRIGGER_EVIDENCE_STEPS.get(contract.trigger_condition)
    if step is None:
        raise MalformedContractError(f"unknown trigger condition {contract.trigger_condition!r}")
    try:
        amount = Decimal(contract.payment_amount)
    except (InvalidOperation, TypeError) as exc:
        raise MalformedContractError(f"unreadable payment amount {contract.payment_amount!r}") from exc
    if amount <= 0:
        raise MalformedContractError(f"payment amount must be positive, got {amount}")
    if contract.payment_method not in PAYMENT_METHODS:
        raise MalformedContractError(f"unknown payment method {contract.payment_method!r}")
    return step


class SettlementEngine:
    """Releases a transfer's conditional payment at most once.

    Evaluation only ever moves ``payment_status`` out of PENDING, so running it
    again on the same snapshot, or after the contract settled, changes nothing.
    Callers hold the per-transfer lock while evaluating.
    """

    def evaluate(self, transfer: Transfer, *, now: datetime) -> SettlementOutcome:
        contract = transfer.smart_contract
        if contract is None:
            return SettlementOutcome(outcome=OUTCOME_NO_CONTRACT, payment_status=None)
        if contract.payment_status != PAYMENT_PENDING:
            return SettlementOutcome(outcome=OUTCOME_ALREADY_SETTLED, payment_status=contract.payment_status)

        try:
            step = evidence_step_for(contract)
        except MalformedContractError as exc:
            metrics.record_settlement(OUTCOME_ERROR)
            log_json(
                logger,
                {
                    "event": "settlement_error",
                    "transfer_id": str(transfer.id),
                    "contract_id": str(contract.id),
                    "error": str(exc),
                },
            )
            return SettlementOutcome(outcome=OUTCOME_ERROR, payment_status=contract.payment_status, detail=str(exc))

        evidence = VerificationLedger(transfer).verified_entry(step)
        if evidence is not None:
            return self._release(transfer, contract, step, evidence.verifier, now)
        if transfer.status == STATUS_REJECTED:
            return self._fail(transfer, contract, step, now)
        return SettlementOutcome(outcome=OUTCOME_PENDING, payment_status=contract.payment_status)

    def _release(
        self, transfer: Transfer, contract: SmartContract, step: str, verifier: str, now: datetime
    ) -> SettlementOutcome:
        instruction = PaymentInstruction(
            reference=uuid.uuid4().hex,
            contract_id=str(contract.id),
            transfer_id=str(transfer.id),
            amount=Decimal(contract.payment_amount),
            method=contract.payment_method,
            trigger_condition=contract.trigger_condition,
            evidence_step=step,
            evidence_verifier=verifier,
            issued_at=now,
        )
        contract.payment_status = PAYMENT_COMPLETED
        contract.status = CONTRACT_COMPLETED
        contract.settled_at = now
        contract.settlement_reference = instruction.reference
        append_event(
            transfer,
            event="Smart contract payment released",
            actor=SETTLEMENT_ACTOR,
            occurred_at=now,
            notes=(
                f"{contract.trigger_condition} evidenced by {step} verification from {verifier}; "
                f"{contract.payment_method} {format(instruction.amount, 'f')} ref {instruction.reference}"
            ),
        )
        metrics.record_settlement(OUTCOME_PAID)
        log_json(
            logger,
            {
                "event": "payment_instruction",
                "reference": instruction.reference,
                "transfer_id": instruction.transfer_id,
                "contract_id": instruction.contract_id,
                "amount": format(instruction.amount, "f"),
                "method": instruction.method,
                "trigger_condition": instruction.trigger_condition,
            },
        )
        return SettlementOutcome(outcome=OUTCOME_PAID, payment_status=PAYMENT_COMPLETED, instruction=instruction)

    def _fail(self, transfer: Transfer, contract: SmartContract, step: str, now: datetime) -> SettlementOutcome:
        contract.payment_status = PAYMENT_FAILED
        contract.status = CONTRACT_CANCELLED
        contract.settled_at = now
        detail = f"transfer rejected before {step} was verified"
        append_event(
            transfer,
            event="Smart contract payment failed",
            actor=SETTLEMENT_ACTOR,
            occurred_at=now,
            notes=f"{contract.trigger_condition} not met: {detail}",
        )
        metrics.record_settlement(OUTCOME_FAILED)
        log_json(
            logger,
            {
                "event": "settlement_failed",
                "transfer_id": str(transfer.id),
                "contract_id": str(contract.id),
                "trigger_condition": contract.trigger_condition,
            },
        )
        return SettlementOutcome(outcome=OUTCOME_FAILED, payment_status=PAYMENT_FAILED, detail=detail)
