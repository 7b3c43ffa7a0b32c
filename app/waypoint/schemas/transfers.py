from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal

from pydantic import BaseModel, Field


TransferStatusCode = Literal[
    "SCHEDULED",
    "IN_PREPARATION",
    "IN_TRANSIT",
    "IN_CUSTOMS",
    "QUALITY_CHECK",
    "AWAITING_APPROVAL",
    "COMPLETED",
    "REJECTED",
]
TransferTypeCode = Literal["INBOUND", "OUTBOUND", "INTERNAL"]
PriorityCode = Literal["LOW", "MEDIUM", "HIGH"]
VerificationStepCode = Literal[
    "CREATION",
    "SHIPPING",
    "CUSTOMS_SUBMISSION",
    "CUSTOMS_CLEARANCE",
    "QUALITY_CHECK",
    "RECEIPT",
]
MoneyInput = Annotated[Decimal, Field(max_digits=14, decimal_places=2)]


_TRANSFER_CREATE_EXAMPLE = {
    "type": "INBOUND",
    "origin": {"id": "SUP-ACME", "name": "Acme Components", "address": "Shenzhen, CN"},
    "destination": {"id": "WH-SJ", "name": "San Jose Warehouse", "address": "San Jose, CA"},
    "items": [
        {"name": "RF amplifier", "quantity": 3, "unit_price": "100.00", "serial_number": "RF-0001"},
        {"name": "Antenna kit", "quantity": 2, "unit_price": "50.00"},
    ],
    "priority": "HIGH",
    "expected_arrival": "2026-11-02T12:00:00",
    "smart_contract": {
        "payment_method": "USDC",
        "payment_amount": "400.00",
        "trigger_condition": "VERIFIED_RECEIPT",
        "payment_terms": "Net on verified receipt",
    },
    "created_by": "ops.lead",
}


class LocationRef(BaseModel):
    id: str
    name: str
    address: str | None = None


class TransferItemCreate(BaseModel):
    name: str
    quantity: int
    unit_price: MoneyInput
    sku: str | None = None
    serial_number: str | None = None
    custodian: str | None = None
    digital_twin_id: str | None = None


class SmartContractCreate(BaseModel):
    payment_method: Literal["SHELL", "USDC", "TRADITIONAL"]
    payment_amount: MoneyInput
    trigger_condition: Literal["VERIFIED_RECEIPT", "CUSTOMS_CLEARANCE", "QUALITY_CHECK_PASSED"]
    payment_terms: str | None = None


class TransferCreateRequest(BaseModel):
    type: TransferTypeCode
    origin: LocationRef
    destination: LocationRef
    items: list[TransferItemCreate]
    priority: PriorityCode = "MEDIUM"
    expected_arrival: datetime
    date_initiated: datetime | None = None
    smart_contract: SmartContractCreate | None = None
    notes: str | None = None
    created_by: str = "system"

    model_config = {"json_schema_extra": {"example": _TRANSFER_CREATE_EXAMPLE}}


class TransferUpdateRequest(BaseModel):
    actor: str
    items: list[TransferItemCreate] | None = None
    expected_arrival: datetime | None = None
    notes: str | None = None


class VerificationCreateRequest(BaseModel):
    step: VerificationStepCode
    verifier: str
    verified: bool = True
    notes: str | None = None


class StatusChangeRequest(BaseModel):
    status: TransferStatusCode
    actor: str
    location: str | None = None
    notes: str | None = None


class TrackingRequest(BaseModel):
    tracking_number: str
    carrier: str | None = None
    actor: str


class ReceiptRequest(BaseModel):
    actor: str
    location: str | None = None
    notes: str | None = None


class ContentsVerificationRequest(BaseModel):
    actor: str
    passed: bool = True
    notes: str | None = None


class TransferItemResponse(BaseModel):
    id: str
    position: int
    sku: str | None
    name: str
    quantity: int
    unit_price: Decimal
    total_value: Decimal
    serial_number: str | None
    custodian: str | None
    digital_twin_id: str | None


class SmartContractResponse(BaseModel):
    id: str
    status: str
    payment_terms: str | None
    payment_method: str
    payment_amount: Decimal
    payment_status: str
    trigger_condition: str
    settled_at: datetime | None
    settlement_reference: str | None


class VerificationResponse(BaseModel):
    sequence: int
    step: str
    verified: bool
    verifier: str
    notes: str | None
    timestamp: datetime


class TimelineEventResponse(BaseModel):
    sequence: int
    event: str
    status: str | None
    actor: str
    location: str | None
    notes: str | None
    timestamp: datetime


class TransferResponse(BaseModel):
    id: str
    type: str
    origin: LocationRef
    destination: LocationRef
    items: list[TransferItemResponse]
    total_value: Decimal
    date_initiated: datetime
    expected_arrival: datetime
    status: str
    status_updated_at: datetime
    priority: str
    notes: str | None
    tracking_number: str | None
    carrier: str | None
    created_by: str
    smart_contract: SmartContractResponse | None
    verifications: list[VerificationResponse]
    timeline: list[TimelineEventResponse]
    is_critical: bool
    critical_reason: str | None
    suggested_action: str | None
    eligible_actions: list[str]
    allowed_statuses: list[str]
    pending_verification: str | None


class TransferListResponse(BaseModel):
    rows: list[TransferResponse]
    total: int
    limit: int
    offset: int


class VerificationRecordResponse(BaseModel):
    created: bool
    verification: VerificationResponse
    transfer: TransferResponse


class PaymentInstructionResponse(BaseModel):
    reference: str
    contract_id: str
    transfer_id: str
    amount: Decimal
    method: str
    trigger_condition: str
    evidence_step: str
    evidence_verifier: str
    issued_at: datetime


class SettlementResponse(BaseModel):
    outcome: str
    payment_status: str | None
    instruction: PaymentInstructionResponse | None
    detail: str | None
    transfer: TransferResponse


class TypeBreakdownResponse(BaseModel):
    count: int
    value: Decimal


class SettlementSummaryResponse(BaseModel):
    by_payment_status: dict[str, int]
    settled_amount: Decimal


class TransferMetricsResponse(BaseModel):
    window_days: int
    window_start: datetime
    generated_at: datetime
    total: int
    status_counts: dict[str, int]
    by_type: dict[str, TypeBreakdownResponse]
    success_rate: float | None
    avg_hours_in_status: dict[str, float | None]
    active_value: Decimal
    critical: int
    pending_approvals: int
    completed_in_window: int
    rejected_in_window: int
    avg_transit_hours: float | None
    on_time_rate: float | None
    settlement: SettlementSummaryResponse
