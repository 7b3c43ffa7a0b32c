"""waypoint initial schema

Revision ID: 0001_waypoint_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_waypoint_initial"
down_revision = None
branch_labels = None
depends_on = None


class GUID(sa.TypeDecorator):
    impl = sa.CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import UUID

            return dialect.type_descriptor(UUID(as_uuid=True))
        return dialect.type_descriptor(sa.CHAR(36))


def upgrade() -> None:
    op.create_table(
        "transfers",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("transfer_type", sa.String(length=20), nullable=False),
        sa.Column("origin_id", sa.String(length=100), nullable=False),
        sa.Column("origin_name", sa.String(length=255), nullable=False),
        sa.Column("origin_address", sa.String(length=255), nullable=True),
        sa.Column("destination_id", sa.String(length=100), nullable=False),
        sa.Column("destination_name", sa.String(length=255), nullable=False),
        sa.Column("destination_address", sa.String(length=255), nullable=True),
        sa.Column("total_value", sa.Numeric(14, 2), nullable=False),
        sa.Column("date_initiated", sa.DateTime(), nullable=False),
        sa.Column("expected_arrival", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(length=50), nullable=False, server_default="SCHEDULED"),
        sa.Column("status_updated_at", sa.DateTime(), nullable=False),
        sa.Column("priority", sa.String(length=20), nullable=False, server_default="MEDIUM"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("tracking_number", sa.String(length=100), nullable=True),
        sa.Column("carrier", sa.String(length=100), nullable=True),
        sa.Column("created_by", sa.String(length=150), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_transfers_origin_id", "transfers", ["origin_id"], unique=False)
    op.create_index("ix_transfers_destination_id", "transfers", ["destination_id"], unique=False)
    op.create_index("ix_transfers_status_type", "transfers", ["status", "transfer_type"], unique=False)

    op.create_table(
        "transfer_items",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("transfer_id", GUID(), sa.ForeignKey("transfers.id"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("sku", sa.String(length=100), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(14, 2), nullable=False),
        sa.Column("serial_number", sa.String(length=100), nullable=True),
        sa.Column("custodian", sa.String(length=150), nullable=True),
        sa.Column("digital_twin_id", sa.String(length=100), nullable=True),
    )
    op.create_index("ix_transfer_items_transfer_id", "transfer_items", ["transfer_id"], unique=False)

    op.create_table(
        "smart_contracts",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("transfer_id", GUID(), sa.ForeignKey("transfers.id"), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="ACTIVE"),
        sa.Column("payment_terms", sa.Text(), nullable=True),
        sa.Column("payment_method", sa.String(length=20), nullable=False),
        sa.Column("payment_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("payment_status", sa.String(length=20), nullable=False, server_default="PENDING"),
        sa.Column("trigger_condition", sa.String(length=50), nullable=False),
        sa.Column("settled_at", sa.DateTime(), nullable=True),
        sa.Column("settlement_reference", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_smart_contracts_transfer_id", "smart_contracts", ["transfer_id"], unique=True)

    op.create_table(
        "transfer_verifications",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("transfer_id", GUID(), sa.ForeignKey("transfers.id"), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("step", sa.String(length=50), nullable=False),
        sa.Column("verified", sa.Boolean(), nullable=False),
        sa.Column("verifier", sa.String(length=150), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("recorded_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("transfer_id", "sequence", name="uq_transfer_verification_sequence"),
    )
    op.create_index("ix_transfer_verifications_transfer_id", "transfer_verifications", ["transfer_id"], unique=False)
    op.create_index(
        "ix_transfer_verifications_step",
        "transfer_verifications",
        ["transfer_id", "step"],
        unique=False,
    )

    op.create_table(
        "transfer_timeline_events",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("transfer_id", GUID(), sa.ForeignKey("transfers.id"), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("event", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=50), nullable=True),
        sa.Column("actor", sa.String(length=150), nullable=False),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("transfer_id", "sequence", name="uq_transfer_timeline_sequence"),
    )
    op.create_index(
        "ix_transfer_timeline_events_transfer_id",
        "transfer_timeline_events",
        ["transfer_id"],
        unique=False,
    )

    op.create_table(
        "idempotency_records",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("endpoint", sa.String(length=255), nullable=False),
        sa.Column("method", sa.String(length=10), nullable=False),
        sa.Column("idempotency_key", sa.String(length=255), nullable=False),
        sa.Column("request_hash", sa.String(length=64), nullable=False),
        sa.Column("state", sa.String(length=20), nullable=False, server_default="in_progress"),
        sa.Column("status_code", sa.Integer(), nullable=True),
        sa.Column("response_body", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("endpoint", "method", "idempotency_key", name="uq_idempotency"),
    )


def downgrade() -> None:
    op.drop_table("idempotency_records")
    op.drop_index("ix_transfer_timeline_events_transfer_id", table_name="transfer_timeline_events")
    op.drop_table("transfer_timeline_events")
    op.drop_index("ix_transfer_verifications_step", table_name="transfer_verifications")
    op.drop_index("ix_transfer_verifications_transfer_id", table_name="transfer_verifications")
    op.drop_table("transfer_verifications")
    op.drop_index("ix_smart_contracts_transfer_id", table_name="smart_contracts")
    op.drop_table("smart_contracts")
    op.drop_index("ix_transfer_items_transfer_id", table_name="transfer_items")
    op.drop_table("transfer_items")
    op.drop_index("ix_transfers_status_type", table_name="transfers")
    op.drop_index("ix_transfers_destination_id", table_name="transfers")
    op.drop_index("ix_transfers_origin_id", table_name="transfers")
    op.drop_table("transfers")
