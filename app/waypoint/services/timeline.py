from __future__ import annotations

from datetime import datetime

from app.waypoint.db.models import Transfer, TransferTimelineEvent


def next_sequence(entries) -> int:
    return max((entry.sequence for entry in entries), default=0) + 1


def append_event(
    transfer: Transfer,
    *,
    event: str,
    actor: str,
    occurred_at: datetime,
    status: str | None = None,
    location: str | None = None,
    notes: str | None = None,
) -> TransferTimelineEvent:
    timeline_event = TransferTimelineEvent(
        sequence=next_sequence(transfer.timeline_events),
        event=event,
        status=status,
        actor=actor,
        location=location,
        notes=notes,
        occurred_at=occurred_at,
    )
    transfer.timeline_events.append(timeline_event)
    return timeline_event
