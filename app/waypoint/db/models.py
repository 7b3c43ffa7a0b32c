import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator, CHAR

from app.waypoint.core.clock import utcnow


class GUID(TypeDecorator):
    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import UUID

            return dialect.type_descriptor(UUID(as_uuid=True))
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, uuid.UUID):
            return str(value)
        return str(uuid.UUID(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(value)


class Base(DeclarativeBase):
    pass


class Transfer(Base):
    __tablename__ = "transfers"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    transfer_type: Mapped[str] = mapped_column(String(20), nullable=False)
    origin_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    origin_name: Mapped[str] = mapped_column(String(255), nullable=False)
    origin_address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    destination_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    destination_name: Mapped[str] = mapped_column(String(255), nullable=False)
    destination_address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    total_value: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    date_initiated: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    expected_arrival: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="SCHEDULED")
    status_updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="MEDIUM")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    tracking_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    carrier: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_by: Mapped[str] = mapped_column(String(150), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    items = relationship(
        "TransferItem",
        back_populates="transfer",
        order_by="TransferItem.position",
        cascade="all, delete-orphan",
    )
    smart_contract = relationship(
        "SmartContract",
        back_populates="transfer",
        uselist=False,
        cascade="all, delete-orphan",
    )
    verifications = relationship(
        "TransferVerification",
        back_populates="transfer",
        order_by="TransferVerification.sequence",
        cascade="all, delete-orphan",
    )
    timeline_events = relationship(
        "TransferTimelineEvent",
        back_populates="transfer",
        order_by="TransferTimelineEvent.sequence",
        cascade="all, delete-orphan",
    )


class TransferItem(Base):
    __tablename__ = "transfer_items"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    transfer_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("transfers.id"), index=True, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    serial_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    custodian: Mapped[str | None] = mapped_column(String(150), nullable=True)
    digital_twin_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    transfer = relationship("Transfer", back_populates="items")

    @property
    def total_value(self) -> Decimal:
        return Decimal(self.quantity) * Decimal(self.unit_price)


class SmartContract(Base):
    __tablename__ = "smart_contracts"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    transfer_id: Mapped[uuid.UUID] = mapped_column(
        GUID(), ForeignKey("transfers.id"), nullable=False, unique=True, index=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="ACTIVE")
    payment_terms: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    trigger_condition: Mapped[str] = mapped_column(String(50), nullable=False)
    settled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    settlement_reference: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    transfer = relationship("Transfer", back_populates="smart_contract")


class TransferVerification(Base):
    __tablename__ = "transfer_verifications"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    transfer_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("transfers.id"), index=True, nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    step: Mapped[str] = mapped_column(String(50), nullable=False)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False)
    verifier: Mapped[str] = mapped_column(String(150), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    transfer = relationship("Transfer", back_populates="verifications")

    __table_args__ = (UniqueConstraint("transfer_id", "sequence", name="uq_transfer_verification_sequence"),)


class TransferTimelineEvent(Base):
    __tablename__ = "transfer_timeline_events"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    transfer_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("transfers.id"), index=True, nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    event: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    actor: Mapped[str] = mapped_column(String(150), nullable=False)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    transfer = relationship("Transfer", back_populates="timeline_events")

    __table_args__ = (UniqueConstraint("transfer_id", "sequence", name="uq_transfer_timeline_sequence"),)


class IdempotencyRecord(Base):
    __tablename__ = "idempotency_records"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=uuid.uuid4)
    endpoint: Mapped[str] = mapped_column(String(255), nullable=False)
    method: Mapped[str] = mapped_column(String(10), nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False)
    request_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    state: Mapped[str] = mapped_column(String(20), nullable=False, default="in_progress")
    status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    response_body: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("endpoint", "method", "idempotency_key", name="uq_idempotency"),
    )


Index("ix_transfers_status_type", Transfer.status, Transfer.transfer_type)
Index("ix_transfer_verifications_step", TransferVerification.transfer_id, TransferVerification.step)
