from types import SimpleNamespace

from starlette.requests import Request
from starlette.responses import Response

from app.waypoint.middleware.observability import build_request_log_payload


def test_build_request_log_payload():
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/waypoint/transfers/abc/status",
        "headers": [],
        "route": SimpleNamespace(path="/waypoint/transfers/{transfer_id}/status"),
        "path_params": {"transfer_id": "abc"},
    }
    request = Request(scope)
    request.state.trace_id = "trace-1"
    request.state.error_code = "GUARD_NOT_SATISFIED"
    response = Response(status_code=409)

    payload = build_request_log_payload(
        request=request,
        response=response,
        latency_ms=12.3456,
        db_time_ms=4.5678,
    )

    assert payload["trace_id"] == "trace-1"
    assert payload["transfer_id"] == "abc"
    assert payload["route"] == "/waypoint/transfers/{transfer_id}/status"
    assert payload["method"] == "POST"
    assert payload["status_code"] == 409
    assert payload["error_code"] == "GUARD_NOT_SATISFIED"
    assert payload["latency_ms"] == 12.35
    assert payload["db_time_ms"] == 4.57


def test_payload_without_response_reports_server_error():
    request = Request({"type": "http", "method": "GET", "path": "/health", "headers": []})

    payload = build_request_log_payload(request=request, response=None, latency_ms=1.0, db_time_ms=None)

    assert payload["status_code"] == 500
    assert payload["route"] == "/health"
    assert payload["transfer_id"] is None
    assert payload["db_time_ms"] is None
