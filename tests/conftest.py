import pytest
from fastapi.testclient import TestClient
from vatfiling.core.config import Settings
from vatfiling.main import create_app
from vatfiling.db.memory import InMemoryRepository
from vatfiling.db.storage import InMemoryFileReader
from vatfiling.schemas.allowance import Allowance, ExtractedAllowanceData
from vatfiling.schemas.client import Client
from vatfiling.schemas.common import DocumentStatus
from vatfiling.schemas.invoice import ExtractedInvoiceData, Invoice

FIRM_ID = "firm-1"
CLIENT_ID = "client-1"
CLIENT_TAX_ID = "12345678"
CLIENT_TAX_PAYER_ID = "123456789"


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def client(repository):
    return repository.add_client(Client(
        id=CLIENT_ID,
        firm_id=FIRM_ID,
        name="好棒棒股份有限公司",
        tax_id=CLIENT_TAX_ID,
        tax_payer_id=CLIENT_TAX_PAYER_ID,
    ))


@pytest.fixture
def file_reader():
    return InMemoryFileReader()


def add_invoice(repository, tax_period, in_or_out, serial, status=DocumentStatus.CONFIRMED, **data):
    """Store an invoice in `tax_period` with extracted fields from `data`."""
    return repository.insert_invoice(Invoice(
        firm_id=FIRM_ID,
        client_id=tax_period.client_id,
        storage_path=f"scan/{serial}.jpg",
        filename=f"{serial}.jpg",
        in_or_out=in_or_out,
        status=status,
        invoice_serial_code=serial,
        year_month=tax_period.year_month,
        tax_filing_period_id=tax_period.id,
        extracted_data=ExtractedInvoiceData(invoice_serial_code=serial, **data),
    ))


def add_allowance(repository, tax_period, in_or_out, original_serial, status=DocumentStatus.CONFIRMED, **data):
    return repository.insert_allowance(Allowance(
        firm_id=FIRM_ID,
        client_id=tax_period.client_id,
        in_or_out=in_or_out,
        status=status,
        original_invoice_serial_code=original_serial,
        year_month=tax_period.year_month,
        tax_filing_period_id=tax_period.id,
        extracted_data=ExtractedAllowanceData(original_invoice_serial_code=original_serial, **data),
    ))


@pytest.fixture
def app(repository, file_reader):
    return create_app(Settings(), repository=repository, file_reader=file_reader)


@pytest.fixture
def api_client(app):
    return TestClient(app)
