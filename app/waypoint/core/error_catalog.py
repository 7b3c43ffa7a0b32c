from dataclasses import dataclass
from fastapi import status


@dataclass(frozen=True)
class ErrorDefinition:
    code: str
    message: str
    status_code: int


class ErrorCatalog:
    TRANSFER_NOT_FOUND = ErrorDefinition(
        "TRANSFER_NOT_FOUND",
        "Transfer not found",
        status.HTTP_404_NOT_FOUND,
    )
    INVALID_TRANSITION = ErrorDefinition(
        "INVALID_TRANSITION",
        "Requested status is not a legal transition",
        status.HTTP_409_CONFLICT,
    )
    GUARD_NOT_SATISFIED = ErrorDefinition(
        "GUARD_NOT_SATISFIED",
        "Required verification is missing",
        status.HTTP_409_CONFLICT,
    )
    DUPLICATE_VERIFICATION = ErrorDefinition(
        "DUPLICATE_VERIFICATION",
        "Verification step already verified",
        status.HTTP_409_CONFLICT,
    )
    ACTION_NOT_ELIGIBLE = ErrorDefinition(
        "ACTION_NOT_ELIGIBLE",
        "Action not available in the current status",
        status.HTTP_409_CONFLICT,
    )
    INVARIANT_VIOLATION = ErrorDefinition(
        "INVARIANT_VIOLATION",
        "Transfer invariant violated",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    DB_UNAVAILABLE = ErrorDefinition(
        "DB_UNAVAILABLE",
        "Database unavailable",
        status.HTTP_503_SERVICE_UNAVAILABLE,
    )
    LOCK_TIMEOUT = ErrorDefinition(
        "LOCK_TIMEOUT",
        "Lock wait timeout",
        status.HTTP_409_CONFLICT,
    )
    VALIDATION_ERROR = ErrorDefinition(
        "VALIDATION_ERROR",
        "Validation error",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    INTERNAL_ERROR = ErrorDefinition(
        "INTERNAL_ERROR",
        "Internal server error",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    IDEMPOTENCY_KEY_REUSED_WITH_DIFFERENT_PAYLOAD = ErrorDefinition(
        "IDEMPOTENCY_KEY_REUSED_WITH_DIFFERENT_PAYLOAD",
        "Idempotency key reused with different payload",
        status.HTTP_409_CONFLICT,
    )
    IDEMPOTENCY_REQUEST_IN_PROGRESS = ErrorDefinition(
        "IDEMPOTENCY_REQUEST_IN_PROGRESS",
        "Idempotency request already in progress",
        status.HTTP_409_CONFLICT,
    )
    IDEMPOTENCY_REPLAY = ErrorDefinition(
        "IDEMPOTENCY_REPLAY",
        "Idempotent replay",
        status.HTTP_200_OK,
    )


class AppError(Exception):
    def __init__(self, error: ErrorDefinition, details: object | None = None):
        self.error = error
        self.details = details
        super().__init__(error.message)
