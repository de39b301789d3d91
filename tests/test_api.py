import asyncio
import csv
import io
from vatfiling.core.tax_periods import create_tax_period, update_tax_period_status
from vatfiling.core.tetu_report import TetUReportGenerator
from vatfiling.core.txt_report import TxtReportGenerator
from vatfiling.schemas.common import DocumentStatus, InOrOut, PeriodStatus
from vatfiling.schemas.client import Client
from tests.conftest import CLIENT_ID, CLIENT_TAX_ID, CLIENT_TAX_PAYER_ID, FIRM_ID, add_invoice

HEADERS = {"X-Firm-ID": FIRM_ID, "X-User-ID": "accountant-7"}


def sales_csv(*serials):
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(["發票號碼", "發票日期", "賣方統一編號", "買方統一編號", "銷售額", "稅額"])
    for serial in serials:
        writer.writerow([serial, "2024/01/15", CLIENT_TAX_ID, "87654321", "10000", "500"])
    return output.getvalue().encode("utf-8")


def test_health(api_client):
    response = api_client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "VAT Filing Service"}


def test_period_endpoints(api_client, client, repository):
    # 1. Create
    response = api_client.post(f"/clients/{CLIENT_ID}/periods", json={"year_month": "11302"}, headers=HEADERS)
    assert response.status_code == 201
    created = response.json()
    assert created["year_month"] == "11301"
    assert created["label"] == "民國 113 年 01-02 月"
    assert created["status"] == "open"

    # 2. Duplicate
    response = api_client.post(f"/clients/{CLIENT_ID}/periods", json={"year_month": "11301"}, headers=HEADERS)
    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "DUPLICATE_PERIOD"

    # 3. Lock
    response = api_client.patch(f"/periods/{created['id']}/status", json={"status": "locked"}, headers=HEADERS)
    assert response.status_code == 200
    assert response.json()["status"] == "locked"

    # 4. List
    api_client.post(f"/clients/{CLIENT_ID}/periods", json={"year_month": "11303"}, headers=HEADERS)
    response = api_client.get(f"/clients/{CLIENT_ID}/periods", headers=HEADERS)
    assert [p["year_month"] for p in response.json()] == ["11303", "11301"]


def test_invalid_period_string(api_client, client):
    response = api_client.post(f"/clients/{CLIENT_ID}/periods", json={"year_month": "113-1"}, headers=HEADERS)
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "INVALID_FORMAT"


def test_other_firm_cannot_see_client(api_client, client, repository):
    other = {"X-Firm-ID": "firm-2"}
    assert api_client.get(f"/clients/{CLIENT_ID}/periods", headers=other).status_code == 404

    period = create_tax_period(repository, CLIENT_ID, "11301")
    response = api_client.patch(f"/periods/{period.id}/status", json={"status": "locked"}, headers=other)
    assert response.status_code == 404
    assert repository.get_tax_period_by_id(period.id).status == PeriodStatus.OPEN


def test_unknown_client(api_client):
    response = api_client.get("/clients/nobody/periods/11301/reports/txt", headers=HEADERS)
    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "ClientNotFound"


def test_invoice_range_endpoints(api_client, client):
    body = {
        "client_id": CLIENT_ID,
        "year_month": "11301",
        "invoice_type": "電子發票",
        "start_number": "AB00000001",
        "end_number": "AB00000050",
    }
    response = api_client.post(f"/clients/{CLIENT_ID}/ranges", json=body, headers=HEADERS)
    assert response.status_code == 201
    assert response.json()["firm_id"] == FIRM_ID

    response = api_client.get(f"/clients/{CLIENT_ID}/periods/11302/ranges", headers=HEADERS)
    assert [r["start_number"] for r in response.json()] == ["AB00000001"]

    mismatched = dict(body, client_id="client-9")
    response = api_client.post(f"/clients/{CLIENT_ID}/ranges", json=mismatched, headers=HEADERS)
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "CLIENT_MISMATCH"

    malformed = dict(body, start_number="12345678AB")
    assert api_client.post(f"/clients/{CLIENT_ID}/ranges", json=malformed, headers=HEADERS).status_code == 422


def test_import_batch(api_client, client, repository, file_reader):
    file_reader.put("uploads/sales.csv", sales_csv("AB00000001", "AB00000002"))
    body = {
        "files": [
            {"storage_path": "uploads/sales.csv", "filename": "sales.csv"},
            {"storage_path": "uploads/scan.pdf", "filename": "scan.pdf"},
        ],
        "uploaded_by": "accountant-7",
    }

    response = api_client.post(f"/clients/{CLIENT_ID}/periods/11301/imports", json=body, headers=HEADERS)

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "success"
    assert [f["filename"] for f in payload["files"]] == ["sales.csv", "scan.pdf"]
    assert payload["files"][0]["result"]["file_type"] == "invoice"
    assert payload["files"][0]["result"]["inserted"] == 2
    assert payload["files"][1]["result"]["failed"] == 1
    assert payload["summary"]["inserted"] == 2
    assert payload["summary"]["failed"] == 1
    assert repository.find_invoice_by_serial(CLIENT_ID, "AB00000002").uploaded_by == "accountant-7"


def test_import_into_locked_period(api_client, client, repository, file_reader):
    period = create_tax_period(repository, CLIENT_ID, "11301")
    update_tax_period_status(repository, period.id, PeriodStatus.LOCKED)
    file_reader.put("uploads/sales.csv", sales_csv("AB00000001"))
    body = {"files": [{"storage_path": "uploads/sales.csv", "filename": "sales.csv"}]}

    response = api_client.post(f"/clients/{CLIENT_ID}/periods/11302/imports", json=body, headers=HEADERS)

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "PERIOD_LOCKED"
    assert repository.find_invoice_by_serial(CLIENT_ID, "AB00000001") is None


def test_import_requires_files(api_client, client):
    response = api_client.post(f"/clients/{CLIENT_ID}/periods/11301/imports", json={"files": []}, headers=HEADERS)
    assert response.status_code == 422


def test_txt_report_download(api_client, client, repository):
    period = create_tax_period(repository, CLIENT_ID, "11301")
    add_invoice(repository, period, InOrOut.OUT, "AB12345678", date="2024/01/15",
                buyer_tax_id="87654321", seller_tax_id=CLIENT_TAX_ID, total_sales=10000, tax=500,
                tax_type="應稅", invoice_type="電子發票")

    response = api_client.get(f"/clients/{CLIENT_ID}/periods/11301/reports/txt", headers=HEADERS)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert response.headers["content-disposition"] == f"attachment; filename={CLIENT_TAX_ID}.TXT"
    assert len(response.text) == 81
    assert response.text.startswith("35" + CLIENT_TAX_PAYER_ID)


def test_txt_report_for_empty_period(api_client, client):
    response = api_client.get(f"/clients/{CLIENT_ID}/periods/11305/reports/txt", headers=HEADERS)
    assert response.status_code == 200
    assert response.text == ""


def test_tetu_report_download(api_client, client, repository):
    period = create_tax_period(repository, CLIENT_ID, "11301")
    add_invoice(repository, period, InOrOut.OUT, "AB12345678", status=DocumentStatus.CONFIRMED,
                date="2024/01/15", buyer_tax_id="87654321", seller_tax_id=CLIENT_TAX_ID,
                total_sales=10000, tax=500, tax_type="應稅", invoice_type="電子發票")
    config = {"consolidated_declaration_code": "0", "tax_payer_id": CLIENT_TAX_PAYER_ID, "county_city": "新北市"}

    response = api_client.post(f"/clients/{CLIENT_ID}/periods/11301/reports/tet-u", json=config, headers=HEADERS)

    assert response.status_code == 200
    assert response.headers["content-disposition"] == f"attachment; filename={CLIENT_TAX_ID}.TET_U"
    fields = response.text.split("|")
    assert len(fields) == 112
    assert fields[9] == "00000001000{"
    assert fields[96] == "F"


def test_tetu_report_rejects_bad_config(api_client, client):
    config = {"consolidated_declaration_code": "7", "tax_payer_id": CLIENT_TAX_PAYER_ID}
    response = api_client.post(f"/clients/{CLIENT_ID}/periods/11301/reports/tet-u", json=config, headers=HEADERS)
    assert response.status_code == 422


def test_bad_period_in_report_path(api_client, client):
    response = api_client.get(f"/clients/{CLIENT_ID}/periods/abc/reports/txt", headers=HEADERS)
    assert response.status_code == 400


def test_clients_are_scoped_per_firm(api_client, repository, client):
    repository.add_client(Client(
        id="client-2", firm_id="firm-2", name="別家公司", tax_id="22222222", tax_payer_id="222222222",
    ))
    response = api_client.get("/clients/client-2/periods", headers={"X-Firm-ID": "firm-2"})
    assert response.status_code == 200
    assert response.json() == []


def test_reports_are_generated_off_the_event_loop(api_client, client, monkeypatch):
    calls = []

    def fake_generate(self, client_id, period, config=None):
        try:
            asyncio.get_running_loop()
            calls.append("event loop")
        except RuntimeError:
            calls.append("worker thread")
        return ""

    monkeypatch.setattr(TxtReportGenerator, "generate", fake_generate)
    monkeypatch.setattr(TetUReportGenerator, "generate", fake_generate)
    config = {"consolidated_declaration_code": "0", "tax_payer_id": CLIENT_TAX_PAYER_ID}

    api_client.get(f"/clients/{CLIENT_ID}/periods/11301/reports/txt", headers=HEADERS)
    api_client.post(f"/clients/{CLIENT_ID}/periods/11301/reports/tet-u", json=config, headers=HEADERS)

    assert calls == ["worker thread", "worker thread"]
