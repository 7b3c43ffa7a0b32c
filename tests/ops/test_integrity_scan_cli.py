import json
import uuid
from decimal import Decimal

from app.ops.integrity_scan import run_scan
from app.waypoint.db.models import Transfer
from tests.transfer_helpers import advance_to, create_transfer


def test_integrity_scan_no_findings(client, db_session, capsys):
    advance_to(client, create_transfer(client), "IN_CUSTOMS")

    database_url = db_session.get_bind().url.render_as_string(hide_password=False)
    exit_code = run_scan("json", True, database_url=database_url)
    payload = json.loads(capsys.readouterr().out)

    assert exit_code == 0
    assert payload["summary"]["total"] == 0


def test_integrity_scan_critical_exit(client, db_session, capsys):
    created = create_transfer(client)
    transfer = db_session.get(Transfer, uuid.UUID(created["id"]))
    transfer.total_value = Decimal("1.00")
    db_session.commit()

    database_url = db_session.get_bind().url.render_as_string(hide_password=False)
    exit_code = run_scan("json", True, transfer_id=created["id"], database_url=database_url)
    payload = json.loads(capsys.readouterr().out)

    assert exit_code == 1
    assert payload["summary"]["critical"] == 1
    assert payload["findings"][0]["check_id"] == "transfer_total_value"


def test_integrity_scan_text_report(client, db_session, capsys):
    create_transfer(client)

    database_url = db_session.get_bind().url.render_as_string(hide_password=False)
    exit_code = run_scan("text", False, database_url=database_url)
    output = capsys.readouterr().out

    assert exit_code == 0
    assert output.startswith("Transfer Integrity Report")
