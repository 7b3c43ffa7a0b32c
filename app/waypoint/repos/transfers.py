from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import or_, select
from sqlalchemy.orm import selectinload

from app.waypoint.db.models import Transfer


@dataclass(frozen=True)
class TransferQueryFilters:
    statuses: tuple[str, ...] = ()
    types: tuple[str, ...] = ()
    priorities: tuple[str, ...] = ()
    initiated_from: datetime | None = None
    initiated_to: datetime | None = None
    min_value: Decimal | None = None
    max_value: Decimal | None = None
    location_id: str | None = None
    has_smart_contract: bool | None = None


def _with_aggregate(query):
    return query.options(
        selectinload(Transfer.items),
        selectinload(Transfer.smart_contract),
        selectinload(Transfer.verifications),
        selectinload(Transfer.timeline_events),
    )


class TransferRepository:
    def __init__(self, db):
        self.db = db

    def add(self, transfer: Transfer) -> Transfer:
        self.db.add(transfer)
        self.db.flush()
        return transfer

    def get_transfer(self, transfer_id: str) -> Transfer | None:
        return (
            self.db.execute(_with_aggregate(select(Transfer).where(Transfer.id == transfer_id)))
            .scalars()
            .first()
        )

    def get_for_update(self, transfer_id: str) -> Transfer | None:
        query = (
            select(Transfer)
            .where(Transfer.id == transfer_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.db.execute(_with_aggregate(query)).scalars().first()

    def list_transfers(self, filters: TransferQueryFilters) -> list[Transfer]:
        query = select(Transfer)
        if filters.statuses:
            query = query.where(Transfer.status.in_(filters.statuses))
        if filters.types:
            query = query.where(Transfer.transfer_type.in_(filters.types))
        if filters.priorities:
            query = query.where(Transfer.priority.in_(filters.priorities))
        if filters.initiated_from is not None:
            query = query.where(Transfer.date_initiated >= filters.initiated_from)
        if filters.initiated_to is not None:
            query = query.where(Transfer.date_initiated <= filters.initiated_to)
        if filters.min_value is not None:
            query = query.where(Transfer.total_value >= filters.min_value)
        if filters.max_value is not None:
            query = query.where(Transfer.total_value <= filters.max_value)
        if filters.location_id:
            query = query.where(
                or_(Transfer.origin_id == filters.location_id, Transfer.destination_id == filters.location_id)
            )
        if filters.has_smart_contract is not None:
            has_contract = Transfer.smart_contract.has()
            query = query.where(has_contract if filters.has_smart_contract else ~has_contract)
        query = query.order_by(Transfer.date_initiated.desc(), Transfer.created_at.desc())
        return self.db.execute(_with_aggregate(query)).scalars().all()

    def list_all(self) -> list[Transfer]:
        return self.db.execute(_with_aggregate(select(Transfer))).scalars().all()
