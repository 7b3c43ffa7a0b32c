from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable

from app.waypoint.core.clock import as_naive_utc, utcnow
from app.waypoint.core.codes import (
    ACTION_ADD_TRACKING,
    ACTION_PROCESS_RECEIPT,
    ACTION_RECORD_VERIFICATION,
    ACTION_UPDATE_ITEMS,
    ACTION_VERIFY_CONTENTS,
    CONTRACT_ACTIVE,
    PAYMENT_PENDING,
    STATUS_SCHEDULED,
    STEP_CREATION,
    STEP_QUALITY_CHECK,
    STEP_RECEIPT,
    TERMINAL_STATUSES,
    TRIGGER_CUSTOMS_CLEARANCE,
    TYPE_INTERNAL,
)
from app.waypoint.core.config import settings
from app.waypoint.core.error_catalog import AppError, ErrorCatalog
from app.waypoint.core.locks import transfer_locks
from app.waypoint.core.logging import log_json
from app.waypoint.db.models import SmartContract, Transfer, TransferItem
from app.waypoint.repos.transfers import TransferQueryFilters, TransferRepository
from app.waypoint.schemas.transfers import TransferCreateRequest, TransferItemCreate, TransferUpdateRequest
from app.waypoint.services.analytics import AggregateMetrics, aggregate
from app.waypoint.services.criticality import CriticalityAssessment, CriticalityThresholds, classify
from app.waypoint.services.ledger import LedgerAppend, VerificationLedger
from app.waypoint.services.settlement import SettlementOutcome
from app.waypoint.services.state_machine import TransferStateMachine, TransitionResult, require_action
from app.waypoint.services.timeline import append_event

logger = logging.getLogger("waypoint.transfers")


@dataclass(frozen=True)
class TransferView:
    transfer: Transfer
    assessment: CriticalityAssessment


@dataclass(frozen=True)
class TransferListFilters:
    query: TransferQueryFilters = field(default_factory=TransferQueryFilters)
    critical_only: bool = False
    verified_only: bool = False
    exceptions_only: bool = False
    search: str | None = None
    limit: int = 50
    offset: int = 0


def _invariant(message: str, **details) -> AppError:
    return AppError(ErrorCatalog.INVARIANT_VIOLATION, details={"message": message, **details})


def _parse_transfer_id(transfer_id) -> uuid.UUID:
    try:
        return uuid.UUID(str(transfer_id))
    except ValueError as exc:
        raise AppError(ErrorCatalog.TRANSFER_NOT_FOUND, details={"transfer_id": str(transfer_id)}) from exc


def _validate_items(items: list[TransferItemCreate]) -> None:
    if not items:
        raise _invariant("items must not be empty")
    for index, item in enumerate(items):
        if not item.name:
            raise _invariant("item name is required", item_index=index)
        if item.quantity <= 0:
            raise _invariant("quantity must be greater than zero", item_index=index, quantity=item.quantity)
        if item.unit_price < 0:
            raise _invariant("unit_price must not be negative", item_index=index, unit_price=str(item.unit_price))


def _build_items(items: list[TransferItemCreate]) -> list[TransferItem]:
    return [
        TransferItem(
            position=position,
            sku=item.sku,
            name=item.name,
            quantity=item.quantity,
            unit_price=Decimal(item.unit_price),
            serial_number=item.serial_number,
            custodian=item.custodian,
            digital_twin_id=item.digital_twin_id,
        )
        for position, item in enumerate(items, start=1)
    ]


def _items_total(items: list[TransferItem]) -> Decimal:
    return sum((item.total_value for item in items), Decimal("0"))


def _matches_search(transfer: Transfer, term: str) -> bool:
    needle = term.strip().lower()
    haystack = [
        str(transfer.id),
        transfer.origin_id,
        transfer.origin_name,
        transfer.destination_id,
        transfer.destination_name,
        transfer.tracking_number or "",
    ]
    for item in transfer.items:
        haystack.extend([item.name, item.sku or "", item.serial_number or ""])
    return any(needle in value.lower() for value in haystack if value)


class TransferService:
    """Entry point for every transfer operation.

    Mutations run under the per-transfer lock and a row lock, commit once, and
    roll back entirely on error.
    """

    def __init__(
        self,
        db,
        *,
        clock: Callable[[], datetime] = utcnow,
        thresholds: CriticalityThresholds | None = None,
        state_machine: TransferStateMachine | None = None,
    ):
        self.db = db
        self.repo = TransferRepository(db)
        self.clock = clock
        self.thresholds = thresholds or CriticalityThresholds.from_settings(settings)
        self.state_machine = state_machine or TransferStateMachine()

    def _mutate(self, transfer_id, apply: Callable[[Transfer, datetime], object]):
        key = _parse_transfer_id(transfer_id)
        with transfer_locks.hold(str(key)):
            try:
                transfer = self.repo.get_for_update(key)
                if transfer is None:
                    raise AppError(ErrorCatalog.TRANSFER_NOT_FOUND, details={"transfer_id": str(key)})
                result = apply(transfer, self.clock())
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
        return transfer, result

    def _view(self, transfer: Transfer) -> TransferView:
        return TransferView(transfer=transfer, assessment=classify(transfer, self.clock(), self.thresholds))

    def create_transfer(self, payload: TransferCreateRequest) -> TransferView:
        _validate_items(payload.items)
        if payload.origin.id == payload.destination.id:
            raise _invariant("origin and destination must differ", location_id=payload.origin.id)
        now = self.clock()
        date_initiated = as_naive_utc(payload.date_initiated) or now
        expected_arrival = as_naive_utc(payload.expected_arrival)
        if date_initiated > now:
            raise _invariant(
                "date_initiated must not be in the future",
                date_initiated=date_initiated.isoformat(),
                now=now.isoformat(),
            )
        if expected_arrival < date_initiated:
            raise _invariant(
                "expected_arrival must not precede date_initiated",
                date_initiated=date_initiated.isoformat(),
                expected_arrival=expected_arrival.isoformat(),
            )
        contract_payload = payload.smart_contract
        if contract_payload is not None:
            if contract_payload.payment_amount <= 0:
                raise _invariant("payment_amount must be greater than zero")
            if payload.type == TYPE_INTERNAL and contract_payload.trigger_condition == TRIGGER_CUSTOMS_CLEARANCE:
                raise _invariant("internal transfers never clear customs", trigger_condition=TRIGGER_CUSTOMS_CLEARANCE)

        items = _build_items(payload.items)
        transfer = Transfer(
            transfer_type=payload.type,
            origin_id=payload.origin.id,
            origin_name=payload.origin.name,
            origin_address=payload.origin.address,
            destination_id=payload.destination.id,
            destination_name=payload.destination.name,
            destination_address=payload.destination.address,
            total_value=_items_total(items),
            date_initiated=date_initiated,
            expected_arrival=expected_arrival,
            status=STATUS_SCHEDULED,
            status_updated_at=date_initiated,
            priority=payload.priority,
            notes=payload.notes,
            created_by=payload.created_by,
            created_at=now,
            items=items,
        )
        if contract_payload is not None:
            transfer.smart_contract = SmartContract(
                status=CONTRACT_ACTIVE,
                payment_terms=contract_payload.payment_terms,
                payment_method=contract_payload.payment_method,
                payment_amount=Decimal(contract_payload.payment_amount),
                payment_status=PAYMENT_PENDING,
                trigger_condition=contract_payload.trigger_condition,
                created_at=now,
            )
        VerificationLedger(transfer).append(
            step=STEP_CREATION,
            verifier=payload.created_by,
            verified=True,
            recorded_at=date_initiated,
        )
        append_event(
            transfer,
            event="Transfer created",
            status=STATUS_SCHEDULED,
            actor=payload.created_by,
            occurred_at=date_initiated,
            location=payload.origin.name,
        )
        try:
            self.repo.add(transfer)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        log_json(
            logger,
            {
                "event": "transfer_created",
                "transfer_id": str(transfer.id),
                "type": transfer.transfer_type,
                "total_value": format(transfer.total_value, "f"),
                "has_smart_contract": contract_payload is not None,
            },
        )
        return self._view(transfer)

    def get_transfer(self, transfer_id) -> TransferView:
        key = _parse_transfer_id(transfer_id)
        transfer = self.repo.get_transfer(key)
        if transfer is None:
            raise AppError(ErrorCatalog.TRANSFER_NOT_FOUND, details={"transfer_id": str(key)})
        return self._view(transfer)

    def list_transfers(self, filters: TransferListFilters) -> tuple[list[TransferView], int]:
        views = []
        for transfer in self.repo.list_transfers(filters.query):
            if filters.search and not _matches_search(transfer, filters.search):
                continue
            failed_steps = VerificationLedger(transfer).failed_steps()
            if filters.verified_only and failed_steps:
                continue
            if filters.exceptions_only and not failed_steps:
                continue
            view = self._view(transfer)
            if filters.critical_only and not view.assessment.is_critical:
                continue
            views.append(view)
        return views[filters.offset : filters.offset + filters.limit], len(views)

    def get_metrics(self, window_days: int | None = None) -> AggregateMetrics:
        return aggregate(
            self.repo.list_all(),
            now=self.clock(),
            window_days=window_days or settings.ANALYTICS_DEFAULT_WINDOW_DAYS,
            thresholds=self.thresholds,
        )

    def record_verification(
        self,
        transfer_id,
        step: str,
        verifier: str,
        *,
        verified: bool = True,
        notes: str | None = None,
    ) -> tuple[TransferView, LedgerAppend]:
        def apply(transfer: Transfer, now: datetime) -> LedgerAppend:
            require_action(transfer, ACTION_RECORD_VERIFICATION)
            return self._append_verification(transfer, step, verifier, verified, now, notes=notes)

        transfer, appended = self._mutate(transfer_id, apply)
        return self._view(transfer), appended

    def _append_verification(
        self,
        transfer: Transfer,
        step: str,
        verifier: str,
        verified: bool,
        now: datetime,
        *,
        notes: str | None = None,
        event: str | None = None,
        location: str | None = None,
    ) -> LedgerAppend:
        appended = VerificationLedger(transfer).append(
            step=step,
            verifier=verifier,
            verified=verified,
            recorded_at=now,
            notes=notes,
        )
        if appended.created:
            append_event(
                transfer,
                event=event or (f"{step} verified" if verified else f"{step} verification failed"),
                actor=verifier,
                occurred_at=now,
                location=location,
                notes=notes,
            )
            transfer.updated_at = now
            log_json(
                logger,
                {
                    "event": "verification_recorded",
                    "transfer_id": str(transfer.id),
                    "step": step,
                    "verified": verified,
                    "verifier": verifier,
                },
            )
        return appended

    def advance_status(
        self,
        transfer_id,
        requested_status: str,
        actor: str,
        *,
        location: str | None = None,
        notes: str | None = None,
    ) -> tuple[TransferView, TransitionResult]:
        def apply(transfer: Transfer, now: datetime) -> TransitionResult:
            return self.state_machine.advance(
                transfer,
                requested_status,
                actor,
                now=now,
                location=location,
                notes=notes,
            )

        transfer, result = self._mutate(transfer_id, apply)
        return self._view(transfer), result

    def evaluate_settlement(self, transfer_id) -> tuple[TransferView, SettlementOutcome]:
        def apply(transfer: Transfer, now: datetime) -> SettlementOutcome:
            return self.state_machine.settlement.evaluate(transfer, now=now)

        transfer, outcome = self._mutate(transfer_id, apply)
        return self._view(transfer), outcome

    def attach_tracking(
        self, transfer_id, tracking_number: str, actor: str, *, carrier: str | None = None
    ) -> TransferView:
        def apply(transfer: Transfer, now: datetime) -> None:
            require_action(transfer, ACTION_ADD_TRACKING)
            if not tracking_number:
                raise AppError(ErrorCatalog.VALIDATION_ERROR, details={"message": "tracking_number is required"})
            transfer.tracking_number = tracking_number
            transfer.carrier = carrier
            transfer.updated_at = now
            append_event(
                transfer,
                event="Tracking information added",
                actor=actor,
                occurred_at=now,
                notes=f"{carrier} {tracking_number}" if carrier else tracking_number,
            )

        transfer, _ = self._mutate(transfer_id, apply)
        return self._view(transfer)

    def process_receipt(
        self,
        transfer_id,
        actor: str,
        *,
        location: str | None = None,
        notes: str | None = None,
    ) -> tuple[TransferView, LedgerAppend]:
        def apply(transfer: Transfer, now: datetime) -> LedgerAppend:
            require_action(transfer, ACTION_PROCESS_RECEIPT)
            return self._append_verification(
                transfer,
                STEP_RECEIPT,
                actor,
                True,
                now,
                notes=notes,
                event="Receipt processed",
                location=location or transfer.destination_name,
            )

        transfer, appended = self._mutate(transfer_id, apply)
        return self._view(transfer), appended

    def verify_contents(
        self,
        transfer_id,
        actor: str,
        *,
        passed: bool = True,
        notes: str | None = None,
    ) -> tuple[TransferView, LedgerAppend]:
        def apply(transfer: Transfer, now: datetime) -> LedgerAppend:
            require_action(transfer, ACTION_VERIFY_CONTENTS)
            return self._append_verification(
                transfer,
                STEP_QUALITY_CHECK,
                actor,
                passed,
                now,
                notes=notes,
                event="Contents verified" if passed else "Contents verification failed",
            )

        transfer, appended = self._mutate(transfer_id, apply)
        return self._view(transfer), appended

    def update_transfer(self, transfer_id, payload: TransferUpdateRequest) -> TransferView:
        def apply(transfer: Transfer, now: datetime) -> None:
            if transfer.status in TERMINAL_STATUSES:
                raise AppError(
                    ErrorCatalog.ACTION_NOT_ELIGIBLE,
                    details={"action": "update", "status": transfer.status, "allowed_statuses": []},
                )
            changes = []
            if payload.items is not None:
                require_action(transfer, ACTION_UPDATE_ITEMS)
                _validate_items(payload.items)
                transfer.items = _build_items(payload.items)
                transfer.total_value = _items_total(transfer.items)
                total = format(transfer.total_value, "f")
                changes.append(f"items replaced ({len(payload.items)} lines, total {total})")
            expected_arrival = as_naive_utc(payload.expected_arrival)
            if expected_arrival is not None:
                if expected_arrival < transfer.date_initiated:
                    raise _invariant(
                        "expected_arrival must not precede date_initiated",
                        date_initiated=transfer.date_initiated.isoformat(),
                        expected_arrival=expected_arrival.isoformat(),
                    )
                transfer.expected_arrival = expected_arrival
                changes.append(f"expected arrival {expected_arrival.isoformat()}")
            if payload.notes is not None:
                transfer.notes = payload.notes
                changes.append("notes updated")
            if not changes:
                return
            transfer.updated_at = now
            append_event(
                transfer,
                event="Transfer updated",
                actor=payload.actor,
                occurred_at=now,
                notes="; ".join(changes),
            )

        transfer, _ = self._mutate(transfer_id, apply)
        return self._view(transfer)
