from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal

from app.waypoint.core.codes import STATUS_AWAITING_APPROVAL, TERMINAL_STATUSES
from app.waypoint.db.models import Transfer
from app.waypoint.services.ledger import VerificationLedger
from app.waypoint.services.state_machine import pending_step

RULE_STALE = "stale_status"
RULE_FAILED_VERIFICATION = "failed_verification"
RULE_HIGH_VALUE_APPROVAL = "high_value_awaiting_approval"
RULE_OVERDUE = "overdue"


@dataclass(frozen=True)
class CriticalityThresholds:
    stale_days: dict[str, float] = field(default_factory=dict)
    high_value: Decimal = Decimal("50000")
    approval_grace: timedelta = timedelta(hours=48)
    overdue_grace: timedelta = timedelta(hours=24)

    @classmethod
    def from_settings(cls, settings) -> "CriticalityThresholds":
        return cls(
            stale_days=dict(settings.CRITICAL_STALE_DAYS),
            high_value=Decimal(str(settings.CRITICAL_HIGH_VALUE_THRESHOLD)),
            approval_grace=timedelta(hours=settings.CRITICAL_APPROVAL_GRACE_HOURS),
            overdue_grace=timedelta(hours=settings.CRITICAL_OVERDUE_GRACE_HOURS),
        )


@dataclass(frozen=True)
class CriticalityAssessment:
    is_critical: bool
    reason: str | None = None
    suggested_action: str | None = None
    rules: tuple[str, ...] = ()


NOT_CRITICAL = CriticalityAssessment(is_critical=False)


def _days(delta: timedelta) -> str:
    return f"{delta.total_seconds() / 86400:.1f} days"


def _hours(delta: timedelta) -> str:
    return f"{delta.total_seconds() / 3600:.1f} hours"


def classify(transfer: Transfer, now: datetime, thresholds: CriticalityThresholds) -> CriticalityAssessment:
    """Derive the escalation flag for a transfer snapshot; never mutates it."""
    status = transfer.status
    if status in TERMINAL_STATUSES:
        return NOT_CRITICAL

    findings: list[tuple[str, str, str]] = []
    age = now - transfer.status_updated_at
    blocking_step = pending_step(transfer.transfer_type, status)

    limit_days = thresholds.stale_days.get(status)
    if limit_days is not None and age > timedelta(days=limit_days):
        action = f"Obtain {blocking_step} verification" if blocking_step else f"Move transfer out of {status}"
        findings.append(
            (
                RULE_STALE,
                f"In {status} for {_days(age)} (limit {limit_days:g} days)",
                action,
            )
        )

    if blocking_step:
        ledger = VerificationLedger(transfer)
        latest = ledger.latest_entry(blocking_step)
        if latest is not None and not ledger.is_verified(blocking_step):
            findings.append(
                (
                    RULE_FAILED_VERIFICATION,
                    f"{blocking_step} verification failed (reported by {latest.verifier})",
                    f"Repeat {blocking_step} verification or reject the transfer",
                )
            )

    total_value = Decimal(transfer.total_value or 0)
    if status == STATUS_AWAITING_APPROVAL and total_value > thresholds.high_value and age > thresholds.approval_grace:
        findings.append(
            (
                RULE_HIGH_VALUE_APPROVAL,
                f"High-value transfer ({format(total_value, ',.2f')}) awaiting approval for {_hours(age)}",
                "Escalate approval to a supervisor",
            )
        )

    overdue = now - transfer.expected_arrival
    if overdue > thresholds.overdue_grace:
        findings.append(
            (
                RULE_OVERDUE,
                f"Past expected arrival by {_hours(overdue)}",
                "Confirm revised arrival with the carrier",
            )
        )

    if not findings:
        return NOT_CRITICAL
    return CriticalityAssessment(
        is_critical=True,
        reason="; ".join(text for _rule, text, _action in findings),
        suggested_action=findings[0][2],
        rules=tuple(rule for rule, _text, _action in findings),
    )
