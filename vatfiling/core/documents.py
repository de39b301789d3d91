"""
Invoice and allowance mutations outside of bulk import.

Every mutation goes through PeriodLockGuard for the document's current
period and, when the document moves, for the target period as well.
"""
import logging
from typing import Any, Dict, Optional

from vatfiling.core.period import RocPeriod
from vatfiling.core.period_lock import PeriodLockGuard
from vatfiling.core.tax_periods import get_or_create_tax_period
from vatfiling.db.repository import Repository
from vatfiling.exceptions import AllowanceNotFound, DuplicateSerialCode, InvoiceNotFound
from vatfiling.schemas.allowance import (
    Allowance,
    CreateAllowanceInput,
    ExtractedAllowanceData,
    UpdateAllowanceInput,
)
from vatfiling.schemas.common import DocumentStatus, InOrOut
from vatfiling.schemas.invoice import (
    CreateInvoiceInput,
    ExtractedInvoiceData,
    Invoice,
    UpdateInvoiceInput,
)

logger = logging.getLogger(__name__)


def _ensure_editable(repository: Repository, client_id: Optional[str], year_month: Optional[str]):
    if client_id and year_month:
        PeriodLockGuard(repository).ensure_editable(client_id, year_month)


def _period_fields(repository: Repository, client_id: Optional[str], year_month: Optional[str]) -> Dict[str, Any]:
    """Normalized year_month plus the owning TaxFilingPeriod id, created on demand."""
    if not year_month:
        return {}
    canonical = RocPeriod.from_canonical(year_month).to_canonical()
    if not client_id:
        return {"year_month": canonical}
    tax_period = get_or_create_tax_period(repository, client_id, canonical)
    return {"year_month": canonical, "tax_filing_period_id": tax_period.id}


def _target(current: Optional[str], requested: Optional[str]) -> Optional[str]:
    return requested if requested is not None else current


# --- invoices ----------------------------------------------------------------

def get_invoice(repository: Repository, invoice_id: str) -> Invoice:
    invoice = repository.get_invoice(invoice_id)
    if not invoice:
        raise InvoiceNotFound(invoice_id)
    return invoice


def create_invoice(repository: Repository, data: CreateInvoiceInput) -> Invoice:
    _ensure_editable(repository, data.client_id, data.year_month)
    invoice = Invoice(
        firm_id=data.firm_id,
        client_id=data.client_id,
        storage_path=data.storage_path,
        filename=data.filename,
        in_or_out=data.in_or_out,
        uploaded_by=data.uploaded_by,
        **_period_fields(repository, data.client_id, data.year_month),
    )
    created = repository.insert_invoice(invoice)
    logger.info(f"Invoice {created.id} created for client {created.client_id}")
    return created


def update_invoice(repository: Repository, invoice_id: str, data: UpdateInvoiceInput) -> Invoice:
    current = get_invoice(repository, invoice_id)
    _ensure_editable(repository, current.client_id, current.year_month)

    changes = data.model_dump(exclude_unset=True)
    target_client = _target(current.client_id, data.client_id)
    target_period = _target(current.year_month, data.year_month)
    if target_client != current.client_id or target_period != current.year_month:
        _ensure_editable(repository, target_client, target_period)
        changes.update(_period_fields(repository, target_client, target_period))

    if data.extracted_data is not None:
        changes["extracted_data"] = data.extracted_data
        changes["invoice_serial_code"] = data.extracted_data.invoice_serial_code
    return repository.update_invoice(invoice_id, changes)


def save_extracted_invoice_data(repository: Repository, invoice_id: str, extracted: ExtractedInvoiceData) -> Invoice:
    """Store extractor output; the invoice moves to `processed`."""
    current = get_invoice(repository, invoice_id)
    _ensure_editable(repository, current.client_id, current.year_month)

    changes = {
        "extracted_data": extracted,
        "status": DocumentStatus.PROCESSED,
        "invoice_serial_code": extracted.invoice_serial_code,
    }
    try:
        return repository.update_invoice(invoice_id, changes)
    except DuplicateSerialCode as e:
        logger.warning(
            f"Duplicate serial {e.serial_code} for client {current.client_id}; saving invoice {invoice_id} without serial code"
        )
        changes["invoice_serial_code"] = None
        return repository.update_invoice(invoice_id, changes)


def delete_invoice(repository: Repository, invoice_id: str):
    current = get_invoice(repository, invoice_id)
    _ensure_editable(repository, current.client_id, current.year_month)
    repository.delete_invoice(invoice_id)
    logger.info(f"Invoice {invoice_id} deleted")


# --- allowances --------------------------------------------------------------

def get_allowance(repository: Repository, allowance_id: str) -> Allowance:
    allowance = repository.get_allowance(allowance_id)
    if not allowance:
        raise AllowanceNotFound(allowance_id)
    return allowance


def try_link_original_invoice(repository: Repository, allowance: Allowance) -> Optional[str]:
    """
    Point the allowance at the invoice carrying its original serial code.

    Matching is by client and serial code only. Returns the linked invoice id,
    or None when no invoice matches; a stale link is cleared in that case.
    """
    if not allowance.client_id or not allowance.original_invoice_serial_code:
        return None

    invoice = repository.find_invoice_by_serial(allowance.client_id, allowance.original_invoice_serial_code)
    linked_id = invoice.id if invoice else None
    if linked_id != allowance.original_invoice_id:
        repository.update_allowance(allowance.id, {"original_invoice_id": linked_id})
    if linked_id is None:
        logger.warning(
            f"Allowance {allowance.id} unlinked: no invoice {allowance.original_invoice_serial_code} for client {allowance.client_id}"
        )
    return linked_id


def create_allowance(repository: Repository, data: CreateAllowanceInput) -> Allowance:
    _ensure_editable(repository, data.client_id, data.year_month)
    allowance = Allowance(
        firm_id=data.firm_id,
        client_id=data.client_id,
        allowance_serial_code=data.allowance_serial_code,
        original_invoice_serial_code=data.original_invoice_serial_code,
        in_or_out=data.in_or_out,
        storage_path=data.storage_path,
        filename=data.filename,
        uploaded_by=data.uploaded_by,
        **_period_fields(repository, data.client_id, data.year_month),
    )
    created = repository.insert_allowance(allowance)
    try_link_original_invoice(repository, created)
    return get_allowance(repository, created.id)


def update_allowance(repository: Repository, allowance_id: str, data: UpdateAllowanceInput) -> Allowance:
    current = get_allowance(repository, allowance_id)
    _ensure_editable(repository, current.client_id, current.year_month)

    changes = data.model_dump(exclude_unset=True)
    target_client = _target(current.client_id, data.client_id)
    target_period = _target(current.year_month, data.year_month)
    if target_client != current.client_id or target_period != current.year_month:
        _ensure_editable(repository, target_client, target_period)
        changes.update(_period_fields(repository, target_client, target_period))

    if data.extracted_data is not None:
        changes["extracted_data"] = data.extracted_data
        changes["original_invoice_serial_code"] = data.extracted_data.original_invoice_serial_code

    updated = repository.update_allowance(allowance_id, changes)
    if (
        updated.original_invoice_serial_code != current.original_invoice_serial_code
        or updated.client_id != current.client_id
    ):
        if updated.original_invoice_serial_code:
            try_link_original_invoice(repository, updated)
        elif updated.original_invoice_id:
            repository.update_allowance(allowance_id, {"original_invoice_id": None})
        updated = get_allowance(repository, allowance_id)
    return updated


def derive_allowance_direction(client_tax_id: Optional[str], extracted: ExtractedAllowanceData) -> Optional[InOrOut]:
    if not client_tax_id:
        return None
    if extracted.seller_tax_id == client_tax_id:
        return InOrOut.OUT
    if extracted.buyer_tax_id == client_tax_id:
        return InOrOut.IN
    return None


def apply_allowance_extraction(repository: Repository, allowance_id: str, extracted: ExtractedAllowanceData) -> Allowance:
    """Store extractor output for an allowance and relink it to its invoice."""
    current = get_allowance(repository, allowance_id)
    _ensure_editable(repository, current.client_id, current.year_month)

    client = repository.get_client(current.client_id) if current.client_id else None
    in_or_out = derive_allowance_direction(client.tax_id if client else None, extracted) or current.in_or_out

    updated = repository.update_allowance(
        allowance_id,
        {
            "extracted_data": extracted,
            "status": DocumentStatus.PROCESSED,
            "in_or_out": in_or_out,
            "original_invoice_serial_code": extracted.original_invoice_serial_code,
        },
    )
    try_link_original_invoice(repository, updated)
    return get_allowance(repository, allowance_id)


def delete_allowance(repository: Repository, allowance_id: str):
    current = get_allowance(repository, allowance_id)
    _ensure_editable(repository, current.client_id, current.year_month)
    repository.delete_allowance(allowance_id)
    logger.info(f"Allowance {allowance_id} deleted")
