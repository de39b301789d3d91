import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from vatfiling.db.repository import Repository
from vatfiling.exceptions import (
    AllowanceNotFound,
    DuplicateSerialCode,
    InvoiceNotFound,
    PeriodNotFound,
    VatFilingError,
)
from vatfiling.schemas.allowance import Allowance
from vatfiling.schemas.client import Client
from vatfiling.schemas.common import DocumentStatus, PeriodStatus
from vatfiling.schemas.invoice import Invoice
from vatfiling.schemas.invoice_range import InvoiceRange
from vatfiling.schemas.tax_period import TaxFilingPeriod

logger = logging.getLogger(__name__)


class InMemoryRepository(Repository):
    """
    Process-local store. Enforces the same uniqueness rules as the database:
    one period per (client_id, year_month) and one non-null serial code per
    client for invoices and for allowances.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._clients: Dict[str, Client] = {}
        self._periods: Dict[str, TaxFilingPeriod] = {}
        self._invoices: Dict[str, Invoice] = {}
        self._allowances: Dict[str, Allowance] = {}
        self._ranges: Dict[str, InvoiceRange] = {}

    # Seeding
    def add_client(self, client: Client) -> Client:
        with self._lock:
            self._clients[client.id] = client.model_copy(deep=True)
            return client

    # Clients
    def get_client(self, client_id: str) -> Optional[Client]:
        with self._lock:
            client = self._clients.get(client_id)
            return client.model_copy(deep=True) if client else None

    # Tax filing periods
    def get_tax_period(self, client_id: str, year_month: str) -> Optional[TaxFilingPeriod]:
        with self._lock:
            for period in self._periods.values():
                if period.client_id == client_id and period.year_month == year_month:
                    return period.model_copy(deep=True)
            return None

    def get_tax_period_by_id(self, period_id: str) -> Optional[TaxFilingPeriod]:
        with self._lock:
            period = self._periods.get(period_id)
            return period.model_copy(deep=True) if period else None

    def insert_tax_period(self, period: TaxFilingPeriod) -> TaxFilingPeriod:
        with self._lock:
            if self.get_tax_period(period.client_id, period.year_month):
                raise VatFilingError(
                    f"Tax period {period.year_month} already exists for client {period.client_id}",
                    code="DUPLICATE_PERIOD",
                )
            self._periods[period.id] = period.model_copy(deep=True)
            return period.model_copy(deep=True)

    def update_tax_period_status(self, period_id: str, status: PeriodStatus) -> Optional[TaxFilingPeriod]:
        with self._lock:
            period = self._periods.get(period_id)
            if not period:
                raise PeriodNotFound(period_id)
            period.status = status
            period.updated_at = datetime.now(timezone.utc)
            return period.model_copy(deep=True)

    def list_tax_periods(self, client_id: str) -> List[TaxFilingPeriod]:
        with self._lock:
            return [p.model_copy(deep=True) for p in self._periods.values() if p.client_id == client_id]

    # Invoices
    def get_invoice(self, invoice_id: str) -> Optional[Invoice]:
        with self._lock:
            invoice = self._invoices.get(invoice_id)
            return invoice.model_copy(deep=True) if invoice else None

    def find_invoice_by_serial(self, client_id: str, serial_code: str) -> Optional[Invoice]:
        if not serial_code:
            return None
        with self._lock:
            for invoice in self._invoices.values():
                if invoice.client_id == client_id and invoice.invoice_serial_code == serial_code:
                    return invoice.model_copy(deep=True)
            return None

    def list_invoices(
        self, client_id: str, tax_filing_period_id: str, status: Optional[DocumentStatus] = None
    ) -> List[Invoice]:
        with self._lock:
            return [
                inv.model_copy(deep=True)
                for inv in self._invoices.values()
                if inv.client_id == client_id
                and inv.tax_filing_period_id == tax_filing_period_id
                and (status is None or inv.status == status)
            ]

    def insert_invoice(self, invoice: Invoice) -> Invoice:
        with self._lock:
            self._check_invoice_serial(invoice)
            self._invoices[invoice.id] = invoice.model_copy(deep=True)
            return invoice.model_copy(deep=True)

    def update_invoice(self, invoice_id: str, changes: Dict[str, Any]) -> Invoice:
        with self._lock:
            current = self._invoices.get(invoice_id)
            if not current:
                raise InvoiceNotFound(invoice_id)
            updated = Invoice.model_validate({**current.model_dump(), **changes})
            self._check_invoice_serial(updated)
            self._invoices[invoice_id] = updated
            return updated.model_copy(deep=True)

    def delete_invoice(self, invoice_id: str) -> None:
        with self._lock:
            if self._invoices.pop(invoice_id, None) is None:
                raise InvoiceNotFound(invoice_id)

    def _check_invoice_serial(self, invoice: Invoice):
        if not invoice.invoice_serial_code:
            return
        for other in self._invoices.values():
            if (
                other.id != invoice.id
                and other.client_id == invoice.client_id
                and other.invoice_serial_code == invoice.invoice_serial_code
            ):
                raise DuplicateSerialCode(invoice.invoice_serial_code, invoice.client_id)

    # Allowances
    def get_allowance(self, allowance_id: str) -> Optional[Allowance]:
        with self._lock:
            allowance = self._allowances.get(allowance_id)
            return allowance.model_copy(deep=True) if allowance else None

    def find_allowance_by_serial(self, client_id: str, serial_code: str) -> Optional[Allowance]:
        if not serial_code:
            return None
        with self._lock:
            for allowance in self._allowances.values():
                if allowance.client_id == client_id and allowance.allowance_serial_code == serial_code:
                    return allowance.model_copy(deep=True)
            return None

    def list_allowances(
        self, client_id: str, tax_filing_period_id: str, status: Optional[DocumentStatus] = None
    ) -> List[Allowance]:
        with self._lock:
            return [
                a.model_copy(deep=True)
                for a in self._allowances.values()
                if a.client_id == client_id
                and a.tax_filing_period_id == tax_filing_period_id
                and (status is None or a.status == status)
            ]

    def insert_allowance(self, allowance: Allowance) -> Allowance:
        with self._lock:
            self._check_allowance_serial(allowance)
            self._allowances[allowance.id] = allowance.model_copy(deep=True)
            return allowance.model_copy(deep=True)

    def update_allowance(self, allowance_id: str, changes: Dict[str, Any]) -> Allowance:
        with self._lock:
            current = self._allowances.get(allowance_id)
            if not current:
                raise AllowanceNotFound(allowance_id)
            updated = Allowance.model_validate({**current.model_dump(), **changes})
            self._check_allowance_serial(updated)
            self._allowances[allowance_id] = updated
            return updated.model_copy(deep=True)

    def delete_allowance(self, allowance_id: str) -> None:
        with self._lock:
            if self._allowances.pop(allowance_id, None) is None:
                raise AllowanceNotFound(allowance_id)

    def _check_allowance_serial(self, allowance: Allowance):
        if not allowance.allowance_serial_code:
            return
        for other in self._allowances.values():
            if (
                other.id != allowance.id
                and other.client_id == allowance.client_id
                and other.allowance_serial_code == allowance.allowance_serial_code
            ):
                raise DuplicateSerialCode(allowance.allowance_serial_code, allowance.client_id)

    # Invoice ranges
    def list_invoice_ranges(self, client_id: str, year_month: str) -> List[InvoiceRange]:
        with self._lock:
            ranges = [
                r.model_copy(deep=True)
                for r in self._ranges.values()
                if r.client_id == client_id and r.year_month == year_month
            ]
            return sorted(ranges, key=lambda r: r.start_number)

    def get_invoice_range(self, range_id: str) -> Optional[InvoiceRange]:
        with self._lock:
            invoice_range = self._ranges.get(range_id)
            return invoice_range.model_copy(deep=True) if invoice_range else None

    def insert_invoice_range(self, invoice_range: InvoiceRange) -> InvoiceRange:
        with self._lock:
            self._ranges[invoice_range.id] = invoice_range.model_copy(deep=True)
            logger.debug(f"Invoice range stored: {invoice_range.start_number}-{invoice_range.end_number}")
            return invoice_range.model_copy(deep=True)

    def delete_invoice_range(self, range_id: str) -> None:
        with self._lock:
            self._ranges.pop(range_id, None)
