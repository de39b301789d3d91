from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from vatfiling.schemas.allowance import Allowance
from vatfiling.schemas.client import Client
from vatfiling.schemas.common import DocumentStatus, PeriodStatus
from vatfiling.schemas.invoice import Invoice
from vatfiling.schemas.invoice_range import InvoiceRange
from vatfiling.schemas.tax_period import TaxFilingPeriod


class Repository(ABC):
    """
    Record store for clients, filing periods, documents and invoice ranges.

    Writes that collide with the per-client unique serial codes raise
    DuplicateSerialCode. Reads return copies; mutate through update_*.
    """

    # Clients
    @abstractmethod
    def get_client(self, client_id: str) -> Optional[Client]:
        pass

    # Tax filing periods
    @abstractmethod
    def get_tax_period(self, client_id: str, year_month: str) -> Optional[TaxFilingPeriod]:
        pass

    @abstractmethod
    def get_tax_period_by_id(self, period_id: str) -> Optional[TaxFilingPeriod]:
        pass

    @abstractmethod
    def insert_tax_period(self, period: TaxFilingPeriod) -> TaxFilingPeriod:
        pass

    @abstractmethod
    def update_tax_period_status(self, period_id: str, status: PeriodStatus) -> Optional[TaxFilingPeriod]:
        pass

    @abstractmethod
    def list_tax_periods(self, client_id: str) -> List[TaxFilingPeriod]:
        pass

    # Invoices
    @abstractmethod
    def get_invoice(self, invoice_id: str) -> Optional[Invoice]:
        pass

    @abstractmethod
    def find_invoice_by_serial(self, client_id: str, serial_code: str) -> Optional[Invoice]:
        pass

    @abstractmethod
    def list_invoices(
        self, client_id: str, tax_filing_period_id: str, status: Optional[DocumentStatus] = None
    ) -> List[Invoice]:
        pass

    @abstractmethod
    def insert_invoice(self, invoice: Invoice) -> Invoice:
        pass

    @abstractmethod
    def update_invoice(self, invoice_id: str, changes: Dict[str, Any]) -> Invoice:
        pass

    @abstractmethod
    def delete_invoice(self, invoice_id: str) -> None:
        pass

    # Allowances
    @abstractmethod
    def get_allowance(self, allowance_id: str) -> Optional[Allowance]:
        pass

    @abstractmethod
    def find_allowance_by_serial(self, client_id: str, serial_code: str) -> Optional[Allowance]:
        pass

    @abstractmethod
    def list_allowances(
        self, client_id: str, tax_filing_period_id: str, status: Optional[DocumentStatus] = None
    ) -> List[Allowance]:
        pass

    @abstractmethod
    def insert_allowance(self, allowance: Allowance) -> Allowance:
        pass

    @abstractmethod
    def update_allowance(self, allowance_id: str, changes: Dict[str, Any]) -> Allowance:
        pass

    @abstractmethod
    def delete_allowance(self, allowance_id: str) -> None:
        pass

    # Invoice ranges
    @abstractmethod
    def list_invoice_ranges(self, client_id: str, year_month: str) -> List[InvoiceRange]:
        pass

    @abstractmethod
    def get_invoice_range(self, range_id: str) -> Optional[InvoiceRange]:
        pass

    @abstractmethod
    def insert_invoice_range(self, invoice_range: InvoiceRange) -> InvoiceRange:
        pass

    @abstractmethod
    def delete_invoice_range(self, range_id: str) -> None:
        pass
