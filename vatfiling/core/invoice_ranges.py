import logging
from typing import List, Union

from vatfiling.core.period import RocPeriod
from vatfiling.core.period_lock import PeriodLockGuard
from vatfiling.db.repository import Repository
from vatfiling.exceptions import ClientNotFound, InvalidFormat, InvoiceRangeNotFound
from vatfiling.schemas.invoice_range import CreateInvoiceRangeInput, InvoiceRange

logger = logging.getLogger(__name__)


def create_invoice_range(repository: Repository, data: CreateInvoiceRangeInput) -> InvoiceRange:
    client = repository.get_client(data.client_id)
    if not client:
        raise ClientNotFound(data.client_id)

    year_month = RocPeriod.from_canonical(data.year_month).to_canonical()
    PeriodLockGuard(repository).ensure_editable(data.client_id, year_month)

    if data.start_number[:2] != data.end_number[:2]:
        raise InvalidFormat("Start and end numbers must share the same track letters")
    if data.start_number > data.end_number:
        raise InvalidFormat("Start number must not be greater than end number")

    invoice_range = InvoiceRange(
        firm_id=client.firm_id,
        client_id=data.client_id,
        year_month=year_month,
        invoice_type=data.invoice_type,
        start_number=data.start_number,
        end_number=data.end_number,
    )
    created = repository.insert_invoice_range(invoice_range)
    logger.info(f"Invoice range {created.start_number}-{created.end_number} added for client {data.client_id} period {year_month}")
    return created


def list_invoice_ranges(repository: Repository, client_id: str, period: Union[RocPeriod, str]) -> List[InvoiceRange]:
    year_month = RocPeriod.coerce(period).to_canonical()
    return repository.list_invoice_ranges(client_id, year_month)


def delete_invoice_range(repository: Repository, range_id: str):
    invoice_range = repository.get_invoice_range(range_id)
    if not invoice_range:
        raise InvoiceRangeNotFound(range_id)
    PeriodLockGuard(repository).ensure_editable(invoice_range.client_id, invoice_range.year_month)
    repository.delete_invoice_range(range_id)
