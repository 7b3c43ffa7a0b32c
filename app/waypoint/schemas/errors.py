from pydantic import BaseModel


class ApiErrorResponse(BaseModel):
    code: str
    message: str
    details: dict | None = None
    trace_id: str | None = None


class GuardErrorResponse(ApiErrorResponse):
    model_config = {
        "json_schema_extra": {
            "example": {
                "code": "GUARD_NOT_SATISFIED",
                "message": "Required verification is missing",
                "details": {
                    "missing_step": "SHIPPING",
                    "current_status": "IN_PREPARATION",
                    "requested_status": "IN_TRANSIT",
                },
                "trace_id": "3f1c0d9e-6a53-4a4f-9a7e-2f0e4f1b7c11",
            }
        }
    }


class ApiValidationErrorItem(BaseModel):
    field: str | None = None
    message: str
    type: str
    loc: list[str | int] | None = None
    input: object | None = None
    ctx: dict | None = None


class ApiValidationErrorDetails(BaseModel):
    errors: list[ApiValidationErrorItem]


class ApiValidationErrorResponse(ApiErrorResponse):
    details: ApiValidationErrorDetails | dict | None = None


TRANSFER_ERROR_RESPONSES = {
    404: {"model": ApiErrorResponse, "description": "Transfer not found"},
    409: {"model": GuardErrorResponse, "description": "Illegal transition, missing guard, or duplicate evidence"},
    422: {"model": ApiValidationErrorResponse, "description": "Validation error or invariant violation"},
}
