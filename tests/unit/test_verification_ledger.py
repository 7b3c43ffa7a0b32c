from datetime import timedelta

import pytest

from app.waypoint.core.clock import utcnow
from app.waypoint.core.error_catalog import AppError
from app.waypoint.services.ledger import VerificationLedger
from tests.transfer_helpers import build_transfer


def test_append_assigns_increasing_sequences():
    ledger = VerificationLedger(build_transfer())
    now = utcnow()

    first = ledger.append(step="CREATION", verifier="ops", verified=True, recorded_at=now)
    second = ledger.append(step="SHIPPING", verifier="dock", verified=False, recorded_at=now + timedelta(minutes=1))

    assert (first.entry.sequence, second.entry.sequence) == (1, 2)
    assert first.created and second.created
    assert ledger.failed_steps() == ["SHIPPING"]
    assert ledger.is_verified("CREATION")
    assert not ledger.is_verified("SHIPPING")


def test_first_verified_entry_is_the_evidence():
    ledger = VerificationLedger(build_transfer())
    now = utcnow()
    ledger.append(step="SHIPPING", verifier="dock", verified=False, recorded_at=now)
    evidence = ledger.append(step="SHIPPING", verifier="dock", verified=True, recorded_at=now)

    assert ledger.verified_entry("SHIPPING") is evidence.entry
    assert ledger.failed_steps() == []
    assert [entry.verified for entry in ledger.entries("SHIPPING")] == [False, True]


def test_duplicate_verification_from_another_verifier():
    ledger = VerificationLedger(build_transfer())
    now = utcnow()
    ledger.append(step="RECEIPT", verifier="clerk", verified=True, recorded_at=now)

    with pytest.raises(AppError) as excinfo:
        ledger.append(step="RECEIPT", verifier="auditor", verified=True, recorded_at=now)

    assert excinfo.value.error.code == "DUPLICATE_VERIFICATION"
    assert excinfo.value.details["verified_by"] == "clerk"
    assert len(ledger.entries("RECEIPT")) == 1


def test_identical_failed_attempt_is_not_repeated():
    ledger = VerificationLedger(build_transfer())
    now = utcnow()
    first = ledger.append(step="QUALITY_CHECK", verifier="qa", verified=False, recorded_at=now)
    again = ledger.append(step="QUALITY_CHECK", verifier="qa", verified=False, recorded_at=now)

    assert again.created is False
    assert again.entry is first.entry


def test_append_rejects_unknown_step_and_blank_verifier():
    ledger = VerificationLedger(build_transfer())

    with pytest.raises(AppError) as unknown:
        ledger.append(step="TELEPATHY", verifier="qa", verified=True, recorded_at=utcnow())
    with pytest.raises(AppError) as blank:
        ledger.append(step="SHIPPING", verifier="", verified=True, recorded_at=utcnow())

    assert unknown.value.error.code == "VALIDATION_ERROR"
    assert blank.value.error.code == "VALIDATION_ERROR"
