from tests.transfer_helpers import advance, advance_to, create_transfer, record_verification


def test_record_verification_appends_entry_and_event(client):
    transfer = advance_to(client, create_transfer(client), "IN_PREPARATION")

    response = record_verification(client, transfer["id"], "SHIPPING", verifier="dock.crew")

    assert response.status_code == 201
    body = response.json()
    assert body["created"] is True
    assert body["verification"]["step"] == "SHIPPING"
    assert body["verification"]["verified"] is True
    assert body["verification"]["verifier"] == "dock.crew"
    assert body["verification"]["timestamp"]
    assert body["transfer"]["timeline"][-1]["event"] == "SHIPPING verified"
    assert body["transfer"]["status"] == "IN_PREPARATION"


def test_second_verifier_for_verified_step_is_duplicate(client):
    transfer = advance_to(client, create_transfer(client), "IN_PREPARATION")
    assert record_verification(client, transfer["id"], "SHIPPING", verifier="dock.crew").status_code == 201

    response = record_verification(client, transfer["id"], "SHIPPING", verifier="someone.else")

    assert response.status_code == 409
    payload = response.json()
    assert payload["code"] == "DUPLICATE_VERIFICATION"
    assert payload["details"]["step"] == "SHIPPING"
    assert payload["details"]["verified_by"] == "dock.crew"
    detail = client.get(f"/waypoint/transfers/{transfer['id']}").json()
    assert [entry["step"] for entry in detail["verifications"]].count("SHIPPING") == 1


def test_same_verifier_retry_is_not_duplicated(client):
    transfer = advance_to(client, create_transfer(client), "IN_PREPARATION")
    first = record_verification(client, transfer["id"], "SHIPPING", verifier="dock.crew").json()

    retry = record_verification(client, transfer["id"], "SHIPPING", verifier="dock.crew")

    assert retry.status_code == 201
    body = retry.json()
    assert body["created"] is False
    assert body["verification"]["sequence"] == first["verification"]["sequence"]
    assert len(body["transfer"]["verifications"]) == len(first["transfer"]["verifications"])
    assert len(body["transfer"]["timeline"]) == len(first["transfer"]["timeline"])


def test_failed_attempt_then_verified(client):
    transfer = advance_to(client, create_transfer(client), "IN_PREPARATION")

    failed = record_verification(client, transfer["id"], "SHIPPING", verifier="dock.crew", verified=False)
    assert failed.status_code == 201
    assert failed.json()["transfer"]["timeline"][-1]["event"] == "SHIPPING verification failed"

    guarded = advance(client, transfer["id"], "IN_TRANSIT")
    assert guarded.status_code == 409
    assert guarded.json()["details"]["missing_step"] == "SHIPPING"

    verified = record_verification(client, transfer["id"], "SHIPPING", verifier="dock.crew")
    assert verified.json()["created"] is True
    entries = [(e["step"], e["verified"]) for e in verified.json()["transfer"]["verifications"]]
    assert entries[-2:] == [("SHIPPING", False), ("SHIPPING", True)]

    assert advance(client, transfer["id"], "IN_TRANSIT").status_code == 200


def test_negative_result_after_verification_is_rejected(client):
    transfer = advance_to(client, create_transfer(client), "IN_PREPARATION")
    record_verification(client, transfer["id"], "SHIPPING", verifier="dock.crew")

    response = record_verification(client, transfer["id"], "SHIPPING", verifier="dock.crew", verified=False)

    assert response.status_code == 409
    assert response.json()["code"] == "DUPLICATE_VERIFICATION"


def test_verification_sequence_is_strictly_increasing(client):
    transfer = advance_to(client, create_transfer(client), "IN_PREPARATION")
    record_verification(client, transfer["id"], "SHIPPING", verifier="dock.crew", verified=False)
    record_verification(client, transfer["id"], "CUSTOMS_SUBMISSION", verifier="broker")
    body = record_verification(client, transfer["id"], "SHIPPING", verifier="dock.crew").json()

    sequences = [entry["sequence"] for entry in body["transfer"]["verifications"]]
    assert sequences == sorted(sequences)
    assert len(set(sequences)) == len(sequences)
    timestamps = [entry["timestamp"] for entry in body["transfer"]["verifications"]]
    assert timestamps == sorted(timestamps)


def test_verification_on_terminal_transfer_is_not_eligible(client):
    transfer = create_transfer(client)
    advance(client, transfer["id"], "REJECTED")

    response = record_verification(client, transfer["id"], "SHIPPING")

    assert response.status_code == 409
    payload = response.json()
    assert payload["code"] == "ACTION_NOT_ELIGIBLE"
    assert payload["details"]["action"] == "record_verification"


def test_unknown_step_fails_validation(client):
    transfer = create_transfer(client)

    response = record_verification(client, transfer["id"], "TELEPATHY")

    assert response.status_code == 422
    assert response.json()["code"] == "VALIDATION_ERROR"
