from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from app.waypoint.core.codes import VERIFICATION_STEPS
from app.waypoint.core.error_catalog import AppError, ErrorCatalog
from app.waypoint.db.models import Transfer, TransferVerification
from app.waypoint.services.timeline import next_sequence


@dataclass(frozen=True)
class LedgerAppend:
    entry: TransferVerification
    created: bool


class VerificationLedger:
    """Append-only verification evidence for one transfer aggregate.

    Entries are never updated or removed. The evidence for a step is the first
    ``verified=True`` entry; ``verified=False`` entries record failed attempts
    and stay in the ledger after the step is eventually verified.
    """

    def __init__(self, transfer: Transfer):
        self.transfer = transfer

    def entries(self, step: str | None = None) -> list[TransferVerification]:
        rows = sorted(self.transfer.verifications, key=lambda entry: entry.sequence)
        if step is None:
            return rows
        return [entry for entry in rows if entry.step == step]

    def verified_entry(self, step: str) -> TransferVerification | None:
        for entry in self.entries(step):
            if entry.verified:
                return entry
        return None

    def is_verified(self, step: str) -> bool:
        return self.verified_entry(step) is not None

    def latest_entry(self, step: str) -> TransferVerification | None:
        rows = self.entries(step)
        return rows[-1] if rows else None

    def failed_steps(self) -> list[str]:
        """Steps with at least one failed attempt and no verification yet."""
        failed = []
        for step in VERIFICATION_STEPS:
            rows = self.entries(step)
            if rows and not any(entry.verified for entry in rows):
                failed.append(step)
        return failed

    def append(
        self,
        *,
        step: str,
        verifier: str,
        verified: bool,
        recorded_at: datetime,
        notes: str | None = None,
    ) -> LedgerAppend:
        if step not in VERIFICATION_STEPS:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"message": "unknown verification step", "step": step},
            )
        if not verifier:
            raise AppError(
                ErrorCatalog.VALIDATION_ERROR,
                details={"message": "verifier is required"},
            )
        existing = self.verified_entry(step)
        if existing is not None:
            if verified and existing.verifier == verifier:
                return LedgerAppend(entry=existing, created=False)
            raise AppError(
                ErrorCatalog.DUPLICATE_VERIFICATION,
                details={
                    "step": step,
                    "verified_by": existing.verifier,
                    "verified_at": existing.recorded_at.isoformat(),
                },
            )
        latest = self.latest_entry(step)
        if latest is not None and latest.verifier == verifier and latest.verified == verified:
            return LedgerAppend(entry=latest, created=False)

        entry = TransferVerification(
            sequence=next_sequence(self.transfer.verifications),
            step=step,
            verified=verified,
            verifier=verifier,
            notes=notes,
            recorded_at=recorded_at,
        )
        self.transfer.verifications.append(entry)
        return LedgerAppend(entry=entry, created=True)
