from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from app.waypoint.core.clock import as_naive_utc
from app.waypoint.core.config import settings
from app.waypoint.core.error_catalog import AppError, ErrorCatalog
from app.waypoint.db.models import Transfer, TransferTimelineEvent, TransferVerification
from app.waypoint.db.session import get_db
from app.waypoint.repos.transfers import TransferQueryFilters
from app.waypoint.schemas.errors import TRANSFER_ERROR_RESPONSES
from app.waypoint.schemas.transfers import (
    ContentsVerificationRequest,
    LocationRef,
    PaymentInstructionResponse,
    PriorityCode,
    ReceiptRequest,
    SettlementResponse,
    SettlementSummaryResponse,
    SmartContractResponse,
    StatusChangeRequest,
    TimelineEventResponse,
    TrackingRequest,
    TransferCreateRequest,
    TransferItemResponse,
    TransferListResponse,
    TransferMetricsResponse,
    TransferResponse,
    TransferStatusCode,
    TransferTypeCode,
    TransferUpdateRequest,
    TypeBreakdownResponse,
    VerificationCreateRequest,
    VerificationRecordResponse,
    VerificationResponse,
)
from app.waypoint.services.analytics import AggregateMetrics
from app.waypoint.services.idempotency import IdempotencyService, extract_idempotency_key
from app.waypoint.services.settlement import SettlementOutcome
from app.waypoint.services.state_machine import allowed_targets, eligible_actions, pending_step
from app.waypoint.services.transfers import TransferListFilters, TransferService, TransferView


router = APIRouter(responses=TRANSFER_ERROR_RESPONSES)


def _verification_response(entry: TransferVerification) -> VerificationResponse:
    return VerificationResponse(
        sequence=entry.sequence,
        step=entry.step,
        verified=entry.verified,
        verifier=entry.verifier,
        notes=entry.notes,
        timestamp=entry.recorded_at,
    )


def _timeline_response(event: TransferTimelineEvent) -> TimelineEventResponse:
    return TimelineEventResponse(
        sequence=event.sequence,
        event=event.event,
        status=event.status,
        actor=event.actor,
        location=event.location,
        notes=event.notes,
        timestamp=event.occurred_at,
    )


def _contract_response(transfer: Transfer) -> SmartContractResponse | None:
    contract = transfer.smart_contract
    if contract is None:
        return None
    return SmartContractResponse(
        id=str(contract.id),
        status=contract.status,
        payment_terms=contract.payment_terms,
        payment_method=contract.payment_method,
        payment_amount=contract.payment_amount,
        payment_status=contract.payment_status,
        trigger_condition=contract.trigger_condition,
        settled_at=contract.settled_at,
        settlement_reference=contract.settlement_reference,
    )


def _transfer_response(view: TransferView) -> TransferResponse:
    transfer = view.transfer
    assessment = view.assessment
    contract = transfer.smart_contract
    return TransferResponse(
        id=str(transfer.id),
        type=transfer.transfer_type,
        origin=LocationRef(id=transfer.origin_id, name=transfer.origin_name, address=transfer.origin_address),
        destination=LocationRef(
            id=transfer.destination_id,
            name=transfer.destination_name,
            address=transfer.destination_address,
        ),
        items=[
            TransferItemResponse(
                id=str(item.id),
                position=item.position,
                sku=item.sku,
                name=item.name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total_value=item.total_value,
                serial_number=item.serial_number,
                custodian=item.custodian,
                digital_twin_id=item.digital_twin_id,
            )
            for item in transfer.items
        ],
        total_value=transfer.total_value,
        date_initiated=transfer.date_initiated,
        expected_arrival=transfer.expected_arrival,
        status=transfer.status,
        status_updated_at=transfer.status_updated_at,
        priority=transfer.priority,
        notes=transfer.notes,
        tracking_number=transfer.tracking_number,
        carrier=transfer.carrier,
        created_by=transfer.created_by,
        smart_contract=_contract_response(transfer),
        verifications=[_verification_response(entry) for entry in transfer.verifications],
        timeline=[_timeline_response(event) for event in transfer.timeline_events],
        is_critical=assessment.is_critical,
        critical_reason=assessment.reason,
        suggested_action=assessment.suggested_action,
        eligible_actions=eligible_actions(transfer.status, contract.payment_status if contract else None),
        allowed_statuses=allowed_targets(transfer.status),
        pending_verification=pending_step(transfer.transfer_type, transfer.status),
    )


def _settlement_response(view: TransferView, outcome: SettlementOutcome) -> SettlementResponse:
    instruction = outcome.instruction
    return SettlementResponse(
        outcome=outcome.outcome,
        payment_status=outcome.payment_status,
        instruction=PaymentInstructionResponse(**asdict(instruction)) if instruction else None,
        detail=outcome.detail,
        transfer=_transfer_response(view),
    )


def _metrics_response(result: AggregateMetrics) -> TransferMetricsResponse:
    return TransferMetricsResponse(
        window_days=result.window_days,
        window_start=result.window_start,
        generated_at=result.generated_at,
        total=result.total,
        status_counts=result.status_counts,
        by_type={
            transfer_type: TypeBreakdownResponse(count=breakdown.count, value=breakdown.value)
            for transfer_type, breakdown in result.by_type.items()
        },
        success_rate=result.success_rate,
        avg_hours_in_status=result.avg_hours_in_status,
        active_value=result.active_value,
        critical=result.critical,
        pending_approvals=result.pending_approvals,
        completed_in_window=result.completed_in_window,
        rejected_in_window=result.rejected_in_window,
        avg_transit_hours=result.avg_transit_hours,
        on_time_rate=result.on_time_rate,
        settlement=SettlementSummaryResponse(
            by_payment_status=result.settlement.by_payment_status,
            settled_amount=result.settlement.settled_amount,
        ),
    )


def _validate_page(limit: int, offset: int) -> None:
    if limit < 1 or limit > settings.TRANSFERS_LIST_MAX_PAGE_SIZE:
        raise AppError(
            ErrorCatalog.VALIDATION_ERROR,
            details={"message": "limit out of range", "max": settings.TRANSFERS_LIST_MAX_PAGE_SIZE, "limit": limit},
        )
    if offset < 0:
        raise AppError(ErrorCatalog.VALIDATION_ERROR, details={"message": "offset must not be negative"})


@router.get("/waypoint/transfers/metrics", response_model=TransferMetricsResponse)
def get_transfer_metrics(
    window_days: int | None = None,
    db=Depends(get_db),
):
    window = window_days or settings.ANALYTICS_DEFAULT_WINDOW_DAYS
    if window < 1 or window > settings.ANALYTICS_MAX_WINDOW_DAYS:
        raise AppError(
            ErrorCatalog.VALIDATION_ERROR,
            details={
                "message": "window_days out of range",
                "max": settings.ANALYTICS_MAX_WINDOW_DAYS,
                "window_days": window,
            },
        )
    return _metrics_response(TransferService(db).get_metrics(window))


@router.get("/waypoint/transfers", response_model=TransferListResponse)
def list_transfers(
    status: list[TransferStatusCode] = Query(default=[]),
    type: list[TransferTypeCode] = Query(default=[]),
    priority: list[PriorityCode] = Query(default=[]),
    initiated_from: datetime | None = None,
    initiated_to: datetime | None = None,
    min_value: Decimal | None = None,
    max_value: Decimal | None = None,
    location_id: str | None = None,
    has_smart_contract: bool | None = None,
    critical_only: bool = False,
    verified_only: bool = False,
    exceptions_only: bool = False,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
    db=Depends(get_db),
):
    _validate_page(limit, offset)
    if min_value is not None and max_value is not None and min_value > max_value:
        raise AppError(ErrorCatalog.VALIDATION_ERROR, details={"message": "min_value must not exceed max_value"})
    filters = TransferListFilters(
        query=TransferQueryFilters(
            statuses=tuple(status),
            types=tuple(type),
            priorities=tuple(priority),
            initiated_from=as_naive_utc(initiated_from),
            initiated_to=as_naive_utc(initiated_to),
            min_value=min_value,
            max_value=max_value,
            location_id=location_id,
            has_smart_contract=has_smart_contract,
        ),
        critical_only=critical_only,
        verified_only=verified_only,
        exceptions_only=exceptions_only,
        search=search,
        limit=limit,
        offset=offset,
    )
    views, total = TransferService(db).list_transfers(filters)
    return TransferListResponse(
        rows=[_transfer_response(view) for view in views],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("/waypoint/transfers", response_model=TransferResponse, status_code=201)
def create_transfer(
    request: Request,
    payload: TransferCreateRequest,
    db=Depends(get_db),
):
    context = None
    idempotency_key = extract_idempotency_key(request.headers)
    if idempotency_key:
        request_hash = IdempotencyService.fingerprint(payload.model_dump(mode="json"))
        context, replay = IdempotencyService(db).start(
            endpoint=str(request.url.path),
            method=request.method,
            idempotency_key=idempotency_key,
            request_hash=request_hash,
        )
        if replay:
            return JSONResponse(
                status_code=replay.status_code,
                content=replay.response_body,
                headers={"X-Idempotency-Result": ErrorCatalog.IDEMPOTENCY_REPLAY.code},
            )
        request.state.idempotency = context

    response = _transfer_response(TransferService(db).create_transfer(payload))
    if context is not None:
        context.record_success(status_code=201, response_body=response.model_dump(mode="json"))
    return response


@router.get("/waypoint/transfers/{transfer_id}", response_model=TransferResponse)
def get_transfer_detail(transfer_id: str, db=Depends(get_db)):
    return _transfer_response(TransferService(db).get_transfer(transfer_id))


@router.patch("/waypoint/transfers/{transfer_id}", response_model=TransferResponse)
def update_transfer(transfer_id: str, payload: TransferUpdateRequest, db=Depends(get_db)):
    return _transfer_response(TransferService(db).update_transfer(transfer_id, payload))


@router.post(
    "/waypoint/transfers/{transfer_id}/verifications",
    response_model=VerificationRecordResponse,
    status_code=201,
)
def record_verification(transfer_id: str, payload: VerificationCreateRequest, db=Depends(get_db)):
    view, appended = TransferService(db).record_verification(
        transfer_id,
        payload.step,
        payload.verifier,
        verified=payload.verified,
        notes=payload.notes,
    )
    return VerificationRecordResponse(
        created=appended.created,
        verification=_verification_response(appended.entry),
        transfer=_transfer_response(view),
    )


@router.post("/waypoint/transfers/{transfer_id}/status", response_model=SettlementResponse)
def advance_status(transfer_id: str, payload: StatusChangeRequest, db=Depends(get_db)):
    view, result = TransferService(db).advance_status(
        transfer_id,
        payload.status,
        payload.actor,
        location=payload.location,
        notes=payload.notes,
    )
    return _settlement_response(view, result.settlement)


@router.post("/waypoint/transfers/{transfer_id}/settlement/evaluate", response_model=SettlementResponse)
def evaluate_settlement(transfer_id: str, db=Depends(get_db)):
    view, outcome = TransferService(db).evaluate_settlement(transfer_id)
    return _settlement_response(view, outcome)


@router.post("/waypoint/transfers/{transfer_id}/tracking", response_model=TransferResponse)
def attach_tracking(transfer_id: str, payload: TrackingRequest, db=Depends(get_db)):
    view = TransferService(db).attach_tracking(
        transfer_id,
        payload.tracking_number,
        payload.actor,
        carrier=payload.carrier,
    )
    return _transfer_response(view)


@router.post("/waypoint/transfers/{transfer_id}/receipt", response_model=VerificationRecordResponse)
def process_receipt(transfer_id: str, payload: ReceiptRequest, db=Depends(get_db)):
    view, appended = TransferService(db).process_receipt(
        transfer_id,
        payload.actor,
        location=payload.location,
        notes=payload.notes,
    )
    return VerificationRecordResponse(
        created=appended.created,
        verification=_verification_response(appended.entry),
        transfer=_transfer_response(view),
    )


@router.post("/waypoint/transfers/{transfer_id}/contents-verification", response_model=VerificationRecordResponse)
def verify_contents(transfer_id: str, payload: ContentsVerificationRequest, db=Depends(get_db)):
    view, appended = TransferService(db).verify_contents(
        transfer_id,
        payload.actor,
        passed=payload.passed,
        notes=payload.notes,
    )
    return VerificationRecordResponse(
        created=appended.created,
        verification=_verification_response(appended.entry),
        transfer=_transfer_response(view),
    )
