"""Transfer lifecycle state machine.

Transitions are forward-only along ``NEXT_STATUS``; REJECTED is reachable from
every non-terminal status. Forward transitions may carry a guard naming the
verification step that must already be verified in the ledger.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from app.waypoint.core.codes import (
    ACTION_ADD_TRACKING,
    ACTION_ADVANCE,
    ACTION_EVALUATE_SETTLEMENT,
    ACTION_PROCESS_RECEIPT,
    ACTION_RECORD_VERIFICATION,
    ACTION_REJECT,
    ACTION_UPDATE_ITEMS,
    ACTION_VERIFY_CONTENTS,
    PAYMENT_PENDING,
    STATUS_AWAITING_APPROVAL,
    STATUS_COMPLETED,
    STATUS_IN_CUSTOMS,
    STATUS_IN_PREPARATION,
    STATUS_IN_TRANSIT,
    STATUS_QUALITY_CHECK,
    STATUS_REJECTED,
    STATUS_SCHEDULED,
    STEP_CUSTOMS_CLEARANCE,
    STEP_CUSTOMS_SUBMISSION,
    STEP_QUALITY_CHECK,
    STEP_RECEIPT,
    STEP_SHIPPING,
    TERMINAL_STATUSES,
    TRANSFER_STATUSES,
    TYPE_INTERNAL,
)
from app.waypoint.core.error_catalog import AppError, ErrorCatalog
from app.waypoint.core.logging import log_json
from app.waypoint.core.metrics import metrics
from app.waypoint.db.models import Transfer
from app.waypoint.services.ledger import VerificationLedger
from app.waypoint.services.settlement import SettlementEngine, SettlementOutcome
from app.waypoint.services.timeline import append_event

logger = logging.getLogger("waypoint.state_machine")

NEXT_STATUS: dict[str, str] = {
    STATUS_SCHEDULED: STATUS_IN_PREPARATION,
    STATUS_IN_PREPARATION: STATUS_IN_TRANSIT,
    STATUS_IN_TRANSIT: STATUS_IN_CUSTOMS,
    STATUS_IN_CUSTOMS: STATUS_QUALITY_CHECK,
    STATUS_QUALITY_CHECK: STATUS_AWAITING_APPROVAL,
    STATUS_AWAITING_APPROVAL: STATUS_COMPLETED,
}

TRANSITION_GUARDS: dict[tuple[str, str], str] = {
    (STATUS_IN_PREPARATION, STATUS_IN_TRANSIT): STEP_SHIPPING,
    (STATUS_IN_TRANSIT, STATUS_IN_CUSTOMS): STEP_CUSTOMS_SUBMISSION,
    (STATUS_IN_CUSTOMS, STATUS_QUALITY_CHECK): STEP_CUSTOMS_CLEARANCE,
    (STATUS_QUALITY_CHECK, STATUS_AWAITING_APPROVAL): STEP_QUALITY_CHECK,
    (STATUS_AWAITING_APPROVAL, STATUS_COMPLETED): STEP_RECEIPT,
}

# Internal movements never cross a border.
CUSTOMS_STEPS = frozenset({STEP_CUSTOMS_SUBMISSION, STEP_CUSTOMS_CLEARANCE})

ACTION_STATUSES: dict[str, frozenset[str]] = {
    ACTION_ADD_TRACKING: frozenset({STATUS_SCHEDULED, STATUS_IN_PREPARATION}),
    ACTION_UPDATE_ITEMS: frozenset({STATUS_SCHEDULED, STATUS_IN_PREPARATION}),
    ACTION_PROCESS_RECEIPT: frozenset({STATUS_IN_TRANSIT, STATUS_IN_CUSTOMS, STATUS_QUALITY_CHECK}),
    ACTION_VERIFY_CONTENTS: frozenset({STATUS_QUALITY_CHECK}),
    ACTION_RECORD_VERIFICATION: frozenset(NEXT_STATUS),
    ACTION_ADVANCE: frozenset(NEXT_STATUS),
    ACTION_REJECT: frozenset(NEXT_STATUS),
}

STATUS_EVENT_LABELS = {
    STATUS_IN_PREPARATION: "Preparation started",
    STATUS_IN_TRANSIT: "Shipped",
    STATUS_IN_CUSTOMS: "Entered customs",
    STATUS_QUALITY_CHECK: "Quality check started",
    STATUS_AWAITING_APPROVAL: "Awaiting approval",
    STATUS_COMPLETED: "Transfer completed",
    STATUS_REJECTED: "Transfer rejected",
}


def allowed_targets(status: str) -> list[str]:
    if status in TERMINAL_STATUSES:
        return []
    return [NEXT_STATUS[status], STATUS_REJECTED]


def required_step(transfer_type: str, current: str, requested: str) -> str | None:
    step = TRANSITION_GUARDS.get((current, requested))
    if step in CUSTOMS_STEPS and transfer_type == TYPE_INTERNAL:
        return None
    return step


def pending_step(transfer_type: str, status: str) -> str | None:
    """Verification needed before the transfer can move forward from ``status``."""
    successor = NEXT_STATUS.get(status)
    if successor is None:
        return None
    return required_step(transfer_type, status, successor)


def eligible_actions(status: str, payment_status: str | None = None) -> list[str]:
    actions = [action for action, statuses in ACTION_STATUSES.items() if status in statuses]
    if payment_status == PAYMENT_PENDING:
        actions.append(ACTION_EVALUATE_SETTLEMENT)
    return actions


def require_action(transfer: Transfer, action: str) -> None:
    statuses = ACTION_STATUSES[action]
    if transfer.status not in statuses:
        raise AppError(
            ErrorCatalog.ACTION_NOT_ELIGIBLE,
            details={
                "action": action,
                "status": transfer.status,
                "allowed_statuses": [status for status in TRANSFER_STATUSES if status in statuses],
            },
        )


@dataclass(frozen=True)
class TransitionResult:
    from_status: str
    to_status: str
    settlement: SettlementOutcome


class TransferStateMachine:
    def __init__(self, settlement: SettlementEngine | None = None):
        self.settlement = settlement or SettlementEngine()

    def check(self, transfer: Transfer, requested: str) -> None:
        """Raise unless ``requested`` is a legal, guarded-satisfied move right now."""
        current = transfer.status
        if requested not in allowed_targets(current):
            raise AppError(
                ErrorCatalog.INVALID_TRANSITION,
                details={
                    "current_status": current,
                    "requested_status": requested,
                    "allowed_statuses": allowed_targets(current),
                },
            )
        step = required_step(transfer.transfer_type, current, requested)
        if step and not VerificationLedger(transfer).is_verified(step):
            metrics.increment_guard_rejection(step)
            raise AppError(
                ErrorCatalog.GUARD_NOT_SATISFIED,
                details={
                    "missing_step": step,
                    "current_status": current,
                    "requested_status": requested,
                },
            )

    def advance(
        self,
        transfer: Transfer,
        requested: str,
        actor: str,
        *,
        now: datetime,
        location: str | None = None,
        notes: str | None = None,
    ) -> TransitionResult:
        self.check(transfer, requested)
        previous = transfer.status
        transfer.status = requested
        transfer.status_updated_at = now
        transfer.updated_at = now
        append_event(
            transfer,
            event=STATUS_EVENT_LABELS[requested],
            status=requested,
            actor=actor,
            occurred_at=now,
            location=location,
            notes=notes,
        )
        metrics.record_transition(previous, requested)
        log_json(
            logger,
            {
                "event": "transfer_transition",
                "transfer_id": str(transfer.id),
                "from_status": previous,
                "to_status": requested,
                "actor": actor,
            },
        )
        outcome = self.settlement.evaluate(transfer, now=now)
        return TransitionResult(from_status=previous, to_status=requested, settlement=outcome)
