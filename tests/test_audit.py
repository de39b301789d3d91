import hashlib
from vatfiling.schemas.audit import AuditStatus
from tests.conftest import CLIENT_ID, FIRM_ID

HEADERS = {"X-Firm-ID": FIRM_ID, "X-User-ID": "accountant-7"}


def test_audit_logging(api_client, app, client):
    audit_repo = app.state.audit_repo

    # 1. Public endpoint without firm header
    api_client.get("/health")
    health_log = audit_repo.latest("/health")
    assert health_log is not None
    assert health_log.firm_id == "PUBLIC"
    assert health_log.action_type == "HEALTH_CHECK"

    # 2. Write with a byte-exact body
    body = b'{"year_month": "11301"}'
    response = api_client.post(
        f"/clients/{CLIENT_ID}/periods",
        content=body,
        headers={**HEADERS, "Content-Type": "application/json"},
    )
    assert response.status_code == 201

    period_log = audit_repo.latest(f"/clients/{CLIENT_ID}/periods")
    assert period_log.action_type == "PERIOD"
    assert period_log.method == "POST"
    assert period_log.status == AuditStatus.SUCCESS
    assert period_log.firm_id == FIRM_ID
    assert period_log.client_id == CLIENT_ID
    assert period_log.actor == "accountant-7"
    assert period_log.timestamp is not None
    assert period_log.input_hash == hashlib.sha256(body).hexdigest()
    assert period_log.output_hash == hashlib.sha256(response.content).hexdigest()


def test_imports_and_reports_are_classified(api_client, app, client, file_reader):
    audit_repo = app.state.audit_repo
    file_reader.put("uploads/empty.csv", "發票號碼,銷售額\n".encode("utf-8"))

    api_client.post(
        f"/clients/{CLIENT_ID}/periods/11301/imports",
        json={"files": [{"storage_path": "uploads/empty.csv", "filename": "empty.csv"}]},
        headers=HEADERS,
    )
    api_client.get(f"/clients/{CLIENT_ID}/periods/11301/reports/txt", headers=HEADERS)
    api_client.post(
        f"/clients/{CLIENT_ID}/periods/11301/reports/tet-u",
        json={"consolidated_declaration_code": "0", "tax_payer_id": "123456789"},
        headers=HEADERS,
    )

    entries = audit_repo.for_firm(FIRM_ID)
    assert [e.action_type for e in entries] == ["IMPORT", "REPORT_TXT", "REPORT_TET_U"]
    assert all(e.client_id == CLIENT_ID for e in entries)
    assert all(e.status == AuditStatus.SUCCESS for e in entries)
    assert [e.year_month for e in entries] == ["11301"] * 3
    assert entries[0].status_code == 200
