from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from app.waypoint.core.codes import (
    PAYMENT_COMPLETED,
    PAYMENT_STATUSES,
    STATUS_AWAITING_APPROVAL,
    STATUS_COMPLETED,
    STATUS_REJECTED,
    TERMINAL_STATUSES,
    TRANSFER_STATUSES,
    TRANSFER_TYPES,
)
from app.waypoint.db.models import Transfer
from app.waypoint.services.criticality import CriticalityThresholds, classify


@dataclass(frozen=True)
class TypeBreakdown:
    count: int
    value: Decimal


@dataclass(frozen=True)
class SettlementSummary:
    by_payment_status: dict[str, int]
    settled_amount: Decimal


@dataclass(frozen=True)
class AggregateMetrics:
    window_days: int
    window_start: datetime
    generated_at: datetime
    total: int
    status_counts: dict[str, int]
    by_type: dict[str, TypeBreakdown]
    success_rate: float | None
    avg_hours_in_status: dict[str, float | None]
    active_value: Decimal
    critical: int
    pending_approvals: int
    completed_in_window: int
    rejected_in_window: int
    avg_transit_hours: float | None
    on_time_rate: float | None
    settlement: SettlementSummary


def _hours(delta: timedelta) -> float:
    return delta.total_seconds() / 3600


def _mean(values: list[float]) -> float | None:
    if not values:
        return None
    return round(sum(values) / len(values), 2)


def _ratio(numerator: int, denominator: int) -> float | None:
    if denominator == 0:
        return None
    return round(numerator / denominator, 4)


def status_stays(transfer: Transfer) -> list[tuple[str, datetime, datetime]]:
    """Closed (status, entered_at, left_at) intervals from status-change events."""
    changes = [event for event in sorted(transfer.timeline_events, key=lambda e: e.sequence) if event.status]
    return [
        (current.status, current.occurred_at, following.occurred_at)
        for current, following in zip(changes, changes[1:])
    ]


def aggregate(
    transfers: list[Transfer],
    *,
    now: datetime,
    window_days: int,
    thresholds: CriticalityThresholds,
) -> AggregateMetrics:
    window_start = now - timedelta(days=window_days)
    status_counts = {status: 0 for status in TRANSFER_STATUSES}
    type_counts = {transfer_type: 0 for transfer_type in TRANSFER_TYPES}
    type_values = {transfer_type: Decimal("0") for transfer_type in TRANSFER_TYPES}
    stay_hours: dict[str, list[float]] = defaultdict(list)
    transit_hours: list[float] = []
    payment_counts = {payment_status: 0 for payment_status in PAYMENT_STATUSES}
    settled_amount = Decimal("0")
    active_value = Decimal("0")
    completed = rejected = on_time = critical = 0

    for transfer in transfers:
        value = Decimal(transfer.total_value or 0)
        status_counts[transfer.status] = status_counts.get(transfer.status, 0) + 1
        type_counts[transfer.transfer_type] = type_counts.get(transfer.transfer_type, 0) + 1
        type_values[transfer.transfer_type] = type_values.get(transfer.transfer_type, Decimal("0")) + value

        if transfer.status not in TERMINAL_STATUSES:
            active_value += value
            if classify(transfer, now, thresholds).is_critical:
                critical += 1
        elif transfer.status_updated_at >= window_start:
            if transfer.status == STATUS_COMPLETED:
                completed += 1
                transit_hours.append(_hours(transfer.status_updated_at - transfer.date_initiated))
                if transfer.status_updated_at <= transfer.expected_arrival:
                    on_time += 1
            elif transfer.status == STATUS_REJECTED:
                rejected += 1

        for status, entered_at, left_at in status_stays(transfer):
            if left_at >= window_start:
                stay_hours[status].append(_hours(left_at - entered_at))

        contract = transfer.smart_contract
        if contract is not None:
            payment_counts[contract.payment_status] = payment_counts.get(contract.payment_status, 0) + 1
            if contract.payment_status == PAYMENT_COMPLETED:
                settled_amount += Decimal(contract.payment_amount)

    return AggregateMetrics(
        window_days=window_days,
        window_start=window_start,
        generated_at=now,
        total=len(transfers),
        status_counts=status_counts,
        by_type={
            transfer_type: TypeBreakdown(count=type_counts[transfer_type], value=type_values[transfer_type])
            for transfer_type in type_counts
        },
        success_rate=_ratio(completed, completed + rejected),
        avg_hours_in_status={
            status: _mean(stay_hours.get(status, []))
            for status in TRANSFER_STATUSES
            if status not in TERMINAL_STATUSES
        },
        active_value=active_value,
        critical=critical,
        pending_approvals=status_counts[STATUS_AWAITING_APPROVAL],
        completed_in_window=completed,
        rejected_in_window=rejected,
        avg_transit_hours=_mean(transit_hours),
        on_time_rate=_ratio(on_time, completed),
        settlement=SettlementSummary(by_payment_status=payment_counts, settled_amount=settled_amount),
    )
