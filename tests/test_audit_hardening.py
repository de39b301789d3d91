from vatfiling.core.audit import InMemoryAuditRepository
from vatfiling.schemas.audit import AuditLogEntry, AuditStatus
from tests.conftest import CLIENT_ID, FIRM_ID

EMPTY_BODY_HASH = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


def test_empty_body_is_hashed(api_client, app):
    response = api_client.get("/health")
    assert response.status_code == 200

    health_log = app.state.audit_repo.latest("/health")
    # sha256 of b""
    assert health_log.input_hash == EMPTY_BODY_HASH
    assert health_log.status == AuditStatus.SUCCESS


def test_missing_firm_header_is_rejected(api_client, app, client):
    response = api_client.get(f"/clients/{CLIENT_ID}/periods")
    assert response.status_code == 400
    assert response.json() == {"detail": "Missing firm identifier"}

    log = app.state.audit_repo.latest()
    assert log.firm_id == "MISSING"
    assert log.client_id == CLIENT_ID
    assert log.status == AuditStatus.FAILURE
    assert log.status_code == 400
    assert log.input_hash is None


def test_error_responses_are_failures(api_client, app):
    api_client.get("/non-existent-endpoint", headers={"X-Firm-ID": FIRM_ID})
    log404 = app.state.audit_repo.latest("/non-existent-endpoint")
    assert log404.action_type == "UNKNOWN"
    assert log404.status == AuditStatus.FAILURE
    assert log404.status_code == 404
    assert log404.output_hash is not None

    api_client.get("/clients/nobody/periods", headers={"X-Firm-ID": FIRM_ID})
    assert app.state.audit_repo.latest("/clients/nobody/periods").status == AuditStatus.FAILURE


def test_broken_audit_store_does_not_break_requests(api_client, app, caplog):
    class BrokenAuditRepository(InMemoryAuditRepository):
        def save(self, entry: AuditLogEntry):
            raise RuntimeError("disk full")

    app.state.audit_repo = BrokenAuditRepository()
    response = api_client.get("/health")

    assert response.status_code == 200
    assert "Audit Logging Failed: disk full" in caplog.text


def test_repository_is_append_only():
    repo = InMemoryAuditRepository()
    for firm in ("firm-1", "firm-2", "firm-1"):
        repo.save(AuditLogEntry(endpoint="/health", method="GET", action_type="HEALTH_CHECK",
                                firm_id=firm, status=AuditStatus.SUCCESS))
    assert len(repo.get_all()) == 3
    assert len(repo.for_firm("firm-1")) == 2
    repo.get_all().clear()
    assert len(repo.get_all()) == 3
