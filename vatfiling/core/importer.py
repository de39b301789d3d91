"""
Electronic-document import and reconciliation.

One uploaded file (spreadsheet export or legacy text feed) becomes a
deterministic set of invoice or allowance upserts for a client and period.
Re-importing the same file updates rows in place; it never duplicates them.

Failures are scoped:
- file-scoped (ClientNotFound, PeriodLocked, UnsupportedFileFormat) raise
- row-scoped (InvalidFormat, DuplicateSerialCode, wrong row family, a
  matching record held by another locked period) are reported in ImportResult.errors and the rest of the file continues
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import ValidationError

from vatfiling.core import sheets
from vatfiling.core.documents import try_link_original_invoice
from vatfiling.core.format_codes import (
    allowance_from_format_code,
    invoice_from_format_code,
    is_allowance_format_code,
    normalize_format_code,
)
from vatfiling.core.period import RocPeriod, normalize_date
from vatfiling.core.period_lock import PeriodLockGuard
from vatfiling.core.tax_periods import get_or_create_tax_period
from vatfiling.db.repository import Repository
from vatfiling.db.storage import FileReader
from vatfiling.exceptions import (
    ClientNotFound,
    DuplicateSerialCode,
    InvalidFormat,
    UnsupportedFileFormat,
    VatFilingError,
)
from vatfiling.schemas.allowance import Allowance, AllowanceItem, ExtractedAllowanceData
from vatfiling.schemas.client import Client
from vatfiling.schemas.common import (
    AllowanceType,
    DeductionCode,
    DocumentSource,
    DocumentStatus,
    InOrOut,
    InvoiceType,
    TaxType,
)
from vatfiling.schemas.imports import FileImportOutcome, FileType, ImportFileRef, ImportResult
from vatfiling.schemas.invoice import ExtractedInvoiceData, Invoice
from vatfiling.schemas.tax_period import TaxFilingPeriod

logger = logging.getLogger(__name__)

INVOICE_MARKER_COLUMNS = {"invoice_serial_code"}
ALLOWANCE_MARKER_COLUMNS = {"original_invoice_serial_code", "allowance_serial_code"}
TAX_TYPE_VALUES = {t.value for t in TaxType}
INVOICE_TYPE_VALUES = {t.value for t in InvoiceType}


# --- cell parsing -----------------------------------------------------------

def cell_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def parse_amount(value: Any, field: str) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).replace(",", "").strip()
    if not text:
        return None
    try:
        return float(Decimal(text))
    except InvalidOperation:
        raise InvalidFormat(f"{field} must be numeric, got '{value}'")


def parse_date(value: Any, field: str = "date") -> Optional[str]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    normalized = normalize_date(value)
    if normalized is None:
        raise InvalidFormat(f"Unparsable {field} '{value}'")
    return normalized


def clean_tax_id(value: Any) -> Optional[str]:
    text = cell_text(value)
    if text and text.isdigit() and len(text) < 8:
        # Numeric cells lose leading zeros.
        text = text.zfill(8)
    return text


def clean_serial(value: Any) -> Optional[str]:
    text = cell_text(value)
    return text.replace("-", "").replace(" ", "").upper() if text else None


def resolve_direction(
    client: Client,
    seller_tax_id: Optional[str],
    buyer_tax_id: Optional[str],
    code_direction: Optional[InOrOut],
    default: InOrOut,
) -> InOrOut:
    if seller_tax_id and seller_tax_id == client.tax_id:
        return InOrOut.OUT
    if buyer_tax_id and buyer_tax_id == client.tax_id:
        return InOrOut.IN
    if code_direction is not None:
        return code_direction
    return default


def detect_file_type(data: sheets.SheetData) -> FileType:
    # Text feeds report the columns of their first line only.
    if data.columns & ALLOWANCE_MARKER_COLUMNS:
        return FileType.ALLOWANCE
    if "format_code" in data.columns:
        for _, row in data.rows:
            code = normalize_format_code(row.get("format_code"))
            if code:
                if is_allowance_format_code(code):
                    return FileType.ALLOWANCE
                break
    if data.columns & INVOICE_MARKER_COLUMNS:
        return FileType.INVOICE
    raise UnsupportedFileFormat("Cannot tell invoices from allowances: no serial code column")


def _row_label(row_number: int, serial: Optional[str]) -> str:
    return f"Row {row_number} ({serial or '-'})"


# --- candidates --------------------------------------------------------------

class InvoiceCandidate:
    def __init__(self, row_number: int, serial: str, in_or_out: InOrOut, data: ExtractedInvoiceData):
        self.row_number = row_number
        self.serial = serial
        self.in_or_out = in_or_out
        self.data = data


class AllowanceCandidate:
    def __init__(self, row_number: int, serial: Optional[str], in_or_out: InOrOut, data: ExtractedAllowanceData):
        self.row_number = row_number
        self.serial = serial
        self.in_or_out = in_or_out
        self.data = data

    def merge(self, other: "AllowanceCandidate"):
        """Multi-line allowance: one row per item, same allowance serial."""
        self.data.amount = (self.data.amount or 0) + (other.data.amount or 0)
        self.data.tax_amount = (self.data.tax_amount or 0) + (other.data.tax_amount or 0)
        self.data.items = (self.data.items or []) + (other.data.items or [])
        summaries = [s for s in (self.data.summary, other.data.summary) if s]
        self.data.summary = "、".join(summaries) or None


class ReconciliationImporter:
    def __init__(self, repository: Repository, file_reader: FileReader, default_in_or_out: Union[InOrOut, str] = InOrOut.IN):
        self.repository = repository
        self.file_reader = file_reader
        self.default_in_or_out = InOrOut.parse(default_in_or_out)
        self.guard = PeriodLockGuard(repository)

    def import_file(
        self,
        client_id: str,
        firm_id: str,
        file_ref: str,
        filename: str,
        period: Union[RocPeriod, str],
        uploaded_by: Optional[str] = None,
    ) -> ImportResult:
        client = self.repository.get_client(client_id)
        if not client:
            raise ClientNotFound(client_id)
        roc_period = RocPeriod.coerce(period)
        self.guard.ensure_editable(client_id, roc_period)

        content = self.file_reader.read(file_ref, filename)
        data = sheets.read_sheet(content, filename)
        file_type = detect_file_type(data)
        result = ImportResult(file_type=file_type)

        tax_period = get_or_create_tax_period(self.repository, client_id, roc_period)
        context = _ImportContext(client, firm_id, file_ref, filename, tax_period, uploaded_by, data.source)

        if file_type == FileType.INVOICE:
            self._import_invoices(context, data, result)
        else:
            self._import_allowances(context, data, result)

        logger.info(
            f"Import COMPLETED for client {client_id} period {roc_period} file {filename}: "
            f"{file_type.value} inserted={result.inserted} updated={result.updated} failed={result.failed}"
        )
        return result

    def import_batch(
        self,
        client_id: str,
        firm_id: str,
        files: Sequence[ImportFileRef],
        period: Union[RocPeriod, str],
        uploaded_by: Optional[str] = None,
        max_workers: int = 4,
    ) -> Tuple[List[FileImportOutcome], ImportResult]:
        def run(ref: ImportFileRef) -> FileImportOutcome:
            try:
                result = self.import_file(client_id, firm_id, ref.storage_path, ref.filename, period, uploaded_by)
            except VatFilingError as e:
                logger.warning(f"Import FAILED for {ref.filename}: {e}")
                result = ImportResult(failed=1, errors=[f"{ref.filename}: {e.message}"])
            return FileImportOutcome(filename=ref.filename, result=result)

        with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
            outcomes = list(executor.map(run, files))
        return outcomes, ImportResult.combine(o.result for o in outcomes)

    # --- invoices ------------------------------------------------------------

    def _import_invoices(self, ctx: "_ImportContext", data: sheets.SheetData, result: ImportResult):
        for row_number, row in data.rows:
            serial = clean_serial(row.get("invoice_serial_code") or row.get("original_invoice_serial_code"))
            try:
                candidate = self._invoice_candidate(ctx, row_number, row)
                self._upsert_invoice(ctx, candidate, result)
            except (VatFilingError, ValidationError) as e:
                result.failed += 1
                result.errors.append(f"{_row_label(row_number, serial)}: {_reason(e)}")

    def _invoice_candidate(self, ctx: "_ImportContext", row_number: int, row: Dict[str, Any]) -> InvoiceCandidate:
        code = normalize_format_code(row.get("format_code"))
        if code and is_allowance_format_code(code):
            raise UnsupportedFileFormat(f"Format code {code} is an allowance row in an invoice file")
        code_info = invoice_from_format_code(code)

        serial = clean_serial(row.get("invoice_serial_code"))
        if not serial:
            raise InvalidFormat("Missing invoice serial code")

        seller_tax_id = clean_tax_id(row.get("seller_tax_id"))
        buyer_tax_id = clean_tax_id(row.get("buyer_tax_id"))
        in_or_out = resolve_direction(
            ctx.client, seller_tax_id, buyer_tax_id, code_info[0] if code_info else None, self.default_in_or_out
        )

        total_sales = parse_amount(row.get("total_sales"), "total_sales")
        tax = parse_amount(row.get("tax"), "tax")
        total_amount = parse_amount(row.get("total_amount"), "total_amount")
        if total_amount is None and total_sales is not None:
            total_amount = total_sales + (tax or 0)

        extracted = ExtractedInvoiceData(
            invoice_serial_code=serial,
            date=parse_date(row.get("date")),
            seller_name=cell_text(row.get("seller_name")),
            seller_tax_id=seller_tax_id,
            buyer_name=cell_text(row.get("buyer_name")),
            buyer_tax_id=buyer_tax_id,
            total_sales=total_sales,
            tax=tax,
            total_amount=total_amount,
            summary=cell_text(row.get("summary")),
            deductible=True if in_or_out is InOrOut.IN else None,
            tax_type=_tax_type(row),
            invoice_type=_invoice_type(row, code_info, ctx.source),
            in_or_out=in_or_out.label,
            source=ctx.source,
        )
        return InvoiceCandidate(row_number, serial, in_or_out, extracted)

    def _upsert_invoice(self, ctx: "_ImportContext", candidate: InvoiceCandidate, result: ImportResult):
        fields = {
            "in_or_out": candidate.in_or_out,
            "status": DocumentStatus.PROCESSED,
            "extracted_data": candidate.data,
            "year_month": ctx.tax_period.year_month,
            "tax_filing_period_id": ctx.tax_period.id,
        }
        existing = self.repository.find_invoice_by_serial(ctx.client.id, candidate.serial)
        if existing:
            if existing.status == DocumentStatus.CONFIRMED:
                raise DuplicateSerialCode(
                    candidate.serial,
                    ctx.client.id,
                    message=f"Invoice {candidate.serial} is already confirmed for this client",
                )
            if existing.year_month and existing.year_month != ctx.tax_period.year_month:
                self.guard.ensure_editable(ctx.client.id, existing.year_month)
            self.repository.update_invoice(existing.id, fields)
            result.updated += 1
            return

        invoice = Invoice(
            firm_id=ctx.firm_id,
            client_id=ctx.client.id,
            storage_path=ctx.storage_path,
            filename=ctx.filename,
            invoice_serial_code=candidate.serial,
            uploaded_by=ctx.uploaded_by,
            **fields,
        )
        try:
            self.repository.insert_invoice(invoice)
        except DuplicateSerialCode:
            # Raced with another writer; keep the document, drop the key.
            logger.warning(
                f"Duplicate serial {candidate.serial} for client {ctx.client.id}; stored invoice {invoice.id} without serial code"
            )
            invoice.invoice_serial_code = None
            self.repository.insert_invoice(invoice)
            result.warnings.append(
                f"{_row_label(candidate.row_number, candidate.serial)}: serial code already in use, stored without it"
            )
        result.inserted += 1

    # --- allowances ----------------------------------------------------------

    def _import_allowances(self, ctx: "_ImportContext", data: sheets.SheetData, result: ImportResult):
        merged: Dict[str, AllowanceCandidate] = {}
        ordered: List[AllowanceCandidate] = []
        for row_number, row in data.rows:
            serial = clean_serial(
                row.get("allowance_serial_code") or row.get("original_invoice_serial_code") or row.get("invoice_serial_code")
            )
            try:
                candidate = self._allowance_candidate(ctx, row_number, row)
            except (VatFilingError, ValidationError) as e:
                result.failed += 1
                result.errors.append(f"{_row_label(row_number, serial)}: {_reason(e)}")
                continue
            if candidate.serial and candidate.serial in merged:
                merged[candidate.serial].merge(candidate)
                continue
            if candidate.serial:
                merged[candidate.serial] = candidate
            ordered.append(candidate)

        for candidate in ordered:
            label = _row_label(candidate.row_number, candidate.serial or candidate.data.original_invoice_serial_code)
            try:
                allowance = self._upsert_allowance(ctx, candidate, result)
            except (VatFilingError, ValidationError) as e:
                result.failed += 1
                result.errors.append(f"{label}: {_reason(e)}")
                continue
            if allowance.original_invoice_serial_code and not try_link_original_invoice(self.repository, allowance):
                result.warnings.append(
                    f"{label}: original invoice {allowance.original_invoice_serial_code} not found, allowance left unlinked"
                )

    def _allowance_candidate(self, ctx: "_ImportContext", row_number: int, row: Dict[str, Any]) -> AllowanceCandidate:
        code = normalize_format_code(row.get("format_code"))
        if code and invoice_from_format_code(code):
            raise UnsupportedFileFormat(f"Format code {code} is an invoice row in an allowance file")
        code_info = allowance_from_format_code(code)

        serial = clean_serial(row.get("allowance_serial_code"))
        # Code-keyed exports put the original invoice in the invoice serial column.
        original_serial = clean_serial(row.get("original_invoice_serial_code") or row.get("invoice_serial_code"))
        seller_tax_id = clean_tax_id(row.get("seller_tax_id"))
        buyer_tax_id = clean_tax_id(row.get("buyer_tax_id"))
        in_or_out = resolve_direction(
            ctx.client, seller_tax_id, buyer_tax_id, code_info[0] if code_info else None, self.default_in_or_out
        )

        amount = parse_amount(row.get("allowance_amount"), "allowance_amount")
        if amount is None:
            amount = parse_amount(row.get("total_sales"), "total_sales")
        tax_amount = parse_amount(row.get("allowance_tax"), "allowance_tax")
        if tax_amount is None:
            tax_amount = parse_amount(row.get("tax"), "tax")
        allowance_date = parse_date(row.get("allowance_date"), "allowance_date")
        if allowance_date is None:
            allowance_date = parse_date(row.get("date"))
        summary = cell_text(row.get("summary"))

        extracted = ExtractedAllowanceData(
            allowance_type=code_info[1] if code_info else _allowance_type(row),
            original_invoice_serial_code=original_serial,
            amount=amount,
            tax_amount=tax_amount,
            date=allowance_date,
            seller_name=cell_text(row.get("seller_name")),
            seller_tax_id=seller_tax_id,
            buyer_name=cell_text(row.get("buyer_name")),
            buyer_tax_id=buyer_tax_id,
            summary=summary,
            items=[AllowanceItem(amount=amount, tax_amount=tax_amount, description=summary)],
            deduction_code=_deduction_code(row) if in_or_out is InOrOut.IN else None,
            tax_type=_tax_type(row),
            source=ctx.source,
        )
        return AllowanceCandidate(row_number, serial, in_or_out, extracted)

    def _upsert_allowance(self, ctx: "_ImportContext", candidate: AllowanceCandidate, result: ImportResult) -> Allowance:
        fields = {
            "in_or_out": candidate.in_or_out,
            "status": DocumentStatus.PROCESSED,
            "extracted_data": candidate.data,
            "original_invoice_serial_code": candidate.data.original_invoice_serial_code,
            "year_month": ctx.tax_period.year_month,
            "tax_filing_period_id": ctx.tax_period.id,
        }
        existing = self.repository.find_allowance_by_serial(ctx.client.id, candidate.serial) if candidate.serial else None
        if existing:
            if existing.status == DocumentStatus.CONFIRMED:
                raise DuplicateSerialCode(
                    candidate.serial,
                    ctx.client.id,
                    message=f"Allowance {candidate.serial} is already confirmed for this client",
                )
            if existing.year_month and existing.year_month != ctx.tax_period.year_month:
                self.guard.ensure_editable(ctx.client.id, existing.year_month)
            updated = self.repository.update_allowance(existing.id, fields)
            result.updated += 1
            return updated

        allowance = Allowance(
            firm_id=ctx.firm_id,
            client_id=ctx.client.id,
            allowance_serial_code=candidate.serial,
            storage_path=ctx.storage_path,
            filename=ctx.filename,
            uploaded_by=ctx.uploaded_by,
            **fields,
        )
        try:
            stored = self.repository.insert_allowance(allowance)
        except DuplicateSerialCode:
            logger.warning(
                f"Duplicate allowance serial {candidate.serial} for client {ctx.client.id}; stored allowance {allowance.id} without serial code"
            )
            allowance.allowance_serial_code = None
            stored = self.repository.insert_allowance(allowance)
            result.warnings.append(
                f"{_row_label(candidate.row_number, candidate.serial)}: serial code already in use, stored without it"
            )
        result.inserted += 1
        return stored


class _ImportContext:
    def __init__(
        self,
        client: Client,
        firm_id: str,
        storage_path: str,
        filename: str,
        tax_period: TaxFilingPeriod,
        uploaded_by: Optional[str],
        source: DocumentSource,
    ):
        self.client = client
        self.firm_id = firm_id
        self.storage_path = storage_path
        self.filename = filename
        self.tax_period = tax_period
        self.uploaded_by = uploaded_by
        self.source = source


def _reason(error: Exception) -> str:
    if isinstance(error, VatFilingError):
        return error.message
    if isinstance(error, ValidationError):
        first = error.errors()[0]
        location = ".".join(str(p) for p in first.get("loc", ()))
        return f"{location}: {first.get('msg')}" if location else first.get("msg", "invalid value")
    return str(error)


def _tax_type(row: Dict[str, Any]) -> str:
    status = cell_text(row.get("invoice_status"))
    if status and TaxType.VOID.value in status:
        return TaxType.VOID.value
    value = cell_text(row.get("tax_type"))
    if value is None:
        return TaxType.TAXABLE.value
    if value not in TAX_TYPE_VALUES:
        raise InvalidFormat(f"Unknown tax type '{value}'")
    return value


def _invoice_type(row: Dict[str, Any], code_info, source: DocumentSource) -> Optional[str]:
    value = cell_text(row.get("invoice_type"))
    if value in INVOICE_TYPE_VALUES:
        return value
    if code_info:
        return code_info[1].value
    # Spreadsheet exports come from the e-invoice platform.
    return InvoiceType.ELECTRONIC.value if source == DocumentSource.IMPORT_EXCEL else None


def _allowance_type(row: Dict[str, Any]) -> str:
    value = cell_text(row.get("invoice_type")) or ""
    if "二聯" in value:
        return AllowanceType.DUPLICATE.value
    if "三聯" in value and "電子" not in value:
        return AllowanceType.TRIPLICATE.value
    return AllowanceType.ELECTRONIC.value


def _deduction_code(row: Dict[str, Any]) -> str:
    value = cell_text(row.get("deduction_code"))
    if value is None:
        return DeductionCode.PURCHASES_AND_EXPENSES.value
    if value not in {c.value for c in DeductionCode}:
        raise InvalidFormat(f"Unknown deduction code '{value}'")
    return value
