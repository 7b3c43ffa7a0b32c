from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi

from app.waypoint.core.codes import TRANSFER_STATUSES
from app.waypoint.services.idempotency import IDEMPOTENCY_HEADER


TAG_METADATA = [
    {
        "name": "Transfers",
        "description": "Transfer lifecycle: creation, verification ledger, status transitions and settlement.",
    },
    {"name": "Transfer Analytics", "description": "Aggregate lifecycle metrics over a rolling window."},
    {"name": "Ops", "description": "Liveness, readiness and Prometheus metrics."},
]

_STATUS_LIFECYCLE_DESCRIPTION = (
    "Lifecycle order: " + " -> ".join(TRANSFER_STATUSES[:-1]) + "; any non-terminal status may move to REJECTED."
)


_DOC_OVERRIDES: dict[tuple[str, str], dict[str, str]] = {
    ("/waypoint/transfers", "get"): {
        "summary": "List transfers",
        "description": "Lists transfers with status, type, priority, date, value and location filters plus derived "
        "criticality and verification filters.",
    },
    ("/waypoint/transfers", "post"): {
        "summary": "Create transfer",
        "description": "Creates a SCHEDULED transfer with its items and optional smart contract. "
        f"Send `{IDEMPOTENCY_HEADER}` to make retries safe.",
    },
    ("/waypoint/transfers/metrics", "get"): {
        "summary": "Transfer metrics",
        "description": "Counts, success rate, dwell times and settlement totals for the last `window_days` days.",
    },
    ("/waypoint/transfers/{transfer_id}", "get"): {
        "summary": "Get transfer",
        "description": "Returns the transfer with its verification ledger, timeline and derived flags.",
    },
    ("/waypoint/transfers/{transfer_id}", "patch"): {
        "summary": "Update transfer",
        "description": "Updates expected arrival and notes while active. Items may change only before shipping.",
    },
    ("/waypoint/transfers/{transfer_id}/verifications", "post"): {
        "summary": "Record verification",
        "description": "Appends a verification entry. A step can be verified only once.",
    },
    ("/waypoint/transfers/{transfer_id}/status", "post"): {
        "summary": "Advance status",
        "description": "Moves the transfer to its next status or to REJECTED, then evaluates its smart contract.",
    },
    ("/waypoint/transfers/{transfer_id}/settlement/evaluate", "post"): {
        "summary": "Evaluate settlement",
        "description": "Re-evaluates the smart contract. Repeated calls never pay twice.",
    },
    ("/waypoint/transfers/{transfer_id}/tracking", "post"): {
        "summary": "Attach tracking",
        "description": "Stores carrier tracking details before the transfer ships.",
    },
    ("/waypoint/transfers/{transfer_id}/receipt", "post"): {
        "summary": "Process receipt",
        "description": "Records a verified RECEIPT entry once the shipment has physically arrived.",
    },
    ("/waypoint/transfers/{transfer_id}/contents-verification", "post"): {
        "summary": "Verify contents",
        "description": "Records the QUALITY_CHECK outcome for a transfer under quality check.",
    },
}


def _operation_id(method: str, path: str) -> str:
    normalized = path.strip("/").replace("/", "_").replace("-", "_").replace("{", "").replace("}", "")
    return f"{method}_{normalized}"


def _assign_tag(path: str) -> str:
    if path == "/waypoint/transfers/metrics":
        return "Transfer Analytics"
    if path.startswith("/waypoint/transfers"):
        return "Transfers"
    return "Ops"


def _document_idempotency_header(path: str, method: str, operation: dict) -> None:
    if (path, method) != ("/waypoint/transfers", "post"):
        return
    parameters = operation.setdefault("parameters", [])
    if any(param.get("name") == IDEMPOTENCY_HEADER for param in parameters):
        return
    parameters.append(
        {
            "name": IDEMPOTENCY_HEADER,
            "in": "header",
            "required": False,
            "schema": {"type": "string"},
            "description": "Replays the stored response when the same key and payload are sent again.",
        }
    )


def _describe_status_fields(schema: dict) -> None:
    components = schema.get("components", {}).get("schemas", {})
    for schema_name in ("TransferResponse", "StatusChangeRequest"):
        status_prop = components.get(schema_name, {}).get("properties", {}).get("status")
        if status_prop is None:
            continue
        existing = (status_prop.get("description") or "").strip()
        status_prop["description"] = f"{existing} {_STATUS_LIFECYCLE_DESCRIPTION}".strip()


def harden_openapi_schema(app: FastAPI):
    if app.openapi_schema:
        return app.openapi_schema

    schema = get_openapi(title=app.title, version="1.0.0", routes=app.routes)
    schema["tags"] = TAG_METADATA

    for path, path_item in schema.get("paths", {}).items():
        for method, operation in path_item.items():
            if method not in {"get", "post", "put", "patch", "delete"}:
                continue
            operation["tags"] = [_assign_tag(path)]
            operation["operationId"] = _operation_id(method, path)
            operation.update(_DOC_OVERRIDES.get((path, method), {}))
            _document_idempotency_header(path, method, operation)

    _describe_status_fields(schema)

    app.openapi_schema = schema
    return app.openapi_schema
