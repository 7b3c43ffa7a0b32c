from app.main import app


def test_transfer_paths_are_tagged_and_have_stable_operation_ids():
    paths = app.openapi()["paths"]

    create_op = paths["/waypoint/transfers"]["post"]
    status_op = paths["/waypoint/transfers/{transfer_id}/status"]["post"]
    metrics_op = paths["/waypoint/transfers/metrics"]["get"]
    health_op = paths["/health"]["get"]

    assert create_op["tags"] == ["Transfers"]
    assert create_op["operationId"] == "post_waypoint_transfers"
    assert status_op["operationId"] == "post_waypoint_transfers_transfer_id_status"
    assert metrics_op["tags"] == ["Transfer Analytics"]
    assert health_op["tags"] == ["Ops"]


def test_create_documents_idempotency_header_and_error_envelopes():
    openapi = app.openapi()
    create_op = openapi["paths"]["/waypoint/transfers"]["post"]

    header_names = {param["name"] for param in create_op["parameters"] if param["in"] == "header"}
    assert "Idempotency-Key" in header_names
    assert all(code in create_op["responses"] for code in ["201", "404", "409", "422"])

    ref = create_op["responses"]["422"]["content"]["application/json"]["schema"]["$ref"]
    assert ref == "#/components/schemas/ApiValidationErrorResponse"


def test_list_documents_filters_and_status_lifecycle():
    openapi = app.openapi()
    list_params = {param["name"] for param in openapi["paths"]["/waypoint/transfers"]["get"]["parameters"]}

    assert {
        "status",
        "type",
        "priority",
        "critical_only",
        "verified_only",
        "exceptions_only",
        "limit",
        "offset",
    }.issubset(list_params)
    status_description = openapi["components"]["schemas"]["StatusChangeRequest"]["properties"]["status"]["description"]
    assert "SCHEDULED -> IN_PREPARATION" in status_description
    assert "REJECTED" in status_description
