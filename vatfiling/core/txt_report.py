"""
.TXT declaration feed: one 81-character row per confirmed document.

Layout (1-based positions):
  1-2    format code              50-61  sales amount 9(12)
  3-11   tax registration number  62     tax type
  12-18  sequence number 9(7)     63-72  tax amount 9(10)
  19-23  ROC year-month           73     deduction code (inbound only)
  24-31  buyer tax id             74-78  reserved
  32-39  seller tax id            79     special tax rate
  40-49  invoice serial           80     aggregate mark
                                  81     customs mark
"""
import logging
from typing import Dict, List, Optional

from pydantic import BaseModel

from vatfiling.core.fixed_width import format_9, pad_ascii
from vatfiling.core.format_codes import get_allowance_format_code, get_invoice_format_code
from vatfiling.core.period import RocPeriod, to_roc_year_month
from vatfiling.db.repository import Repository
from vatfiling.exceptions import ClientNotFound
from vatfiling.schemas.allowance import Allowance
from vatfiling.schemas.client import Client
from vatfiling.schemas.common import AllowanceType, DeductionCode, DocumentStatus, InOrOut, TaxType
from vatfiling.schemas.invoice import Invoice
from vatfiling.schemas.invoice_range import InvoiceRange

logger = logging.getLogger(__name__)

TXT_ROW_LENGTH = 81

TAX_TYPE_CODES = {
    TaxType.TAXABLE.value: "1",
    TaxType.ZERO_RATED.value: "2",
    TaxType.EXEMPT.value: "3",
    TaxType.VOID.value: "F",
    TaxType.AGGREGATE.value: "D",
}

# Non-deductible inbound documents keep their row with codes 3/4.
NON_DEDUCTIBLE_CODES = {
    DeductionCode.PURCHASES_AND_EXPENSES.value: "3",
    DeductionCode.FIXED_ASSETS.value: "4",
}
FIXED_ASSET_KEYWORDS = ("固定資產", "設備")


class TxtRow(BaseModel):
    format_code: str
    in_or_out: InOrOut
    date: Optional[str] = None
    buyer_tax_id: Optional[str] = None
    seller_tax_id: Optional[str] = None
    serial: Optional[str] = None
    tax_type: Optional[str] = None
    total_sales: float = 0
    tax: float = 0
    deduction_code: Optional[str] = None


def is_fixed_asset(summary: Optional[str]) -> bool:
    return bool(summary) and any(k in summary for k in FIXED_ASSET_KEYWORDS)


def encode_row(row: TxtRow, sequence: int, tax_payer_id: str) -> str:
    voided = row.tax_type == TaxType.VOID.value
    parts = [
        row.format_code,
        pad_ascii(tax_payer_id, 9),
        format_9(sequence, 7),
        to_roc_year_month(row.date),
        pad_ascii("" if voided else row.buyer_tax_id, 8),
        pad_ascii(row.seller_tax_id, 8),
        pad_ascii(row.serial, 10),
        format_9(0 if voided else row.total_sales, 12),
        TAX_TYPE_CODES.get(row.tax_type, "1"),
        format_9(0 if voided else row.tax, 10),
        " " if row.in_or_out is InOrOut.OUT else (row.deduction_code or "1"),
        " " * 5,
        " ",
        # A: aggregated unused range; blank: single entry.
        "A" if row.tax_type == TaxType.AGGREGATE.value and row.buyer_tax_id is not None else " ",
        " ",
    ]
    return "".join(parts)


def invoice_row(invoice: Invoice) -> Optional[TxtRow]:
    data = invoice.extracted_data
    if data is None:
        return None
    deduction_code = None
    if invoice.in_or_out is InOrOut.IN:
        deduction_code = DeductionCode.FIXED_ASSETS.value if is_fixed_asset(data.summary) else DeductionCode.PURCHASES_AND_EXPENSES.value
        if data.deductible is False:
            deduction_code = NON_DEDUCTIBLE_CODES[deduction_code]
    return TxtRow(
        format_code=get_invoice_format_code(invoice.in_or_out, data.invoice_type),
        in_or_out=invoice.in_or_out,
        date=data.date,
        buyer_tax_id=data.buyer_tax_id,
        seller_tax_id=data.seller_tax_id,
        serial=data.invoice_serial_code or invoice.invoice_serial_code,
        tax_type=data.tax_type,
        total_sales=data.total_sales or 0,
        tax=data.tax or 0,
        deduction_code=deduction_code,
    )


def allowance_row(allowance: Allowance) -> Optional[TxtRow]:
    data = allowance.extracted_data
    if data is None:
        return None
    return TxtRow(
        format_code=get_allowance_format_code(
            allowance.in_or_out, data.allowance_type or AllowanceType.ELECTRONIC.value
        ),
        in_or_out=allowance.in_or_out,
        date=data.date,
        buyer_tax_id=data.buyer_tax_id,
        seller_tax_id=data.seller_tax_id,
        serial=allowance.original_invoice_serial_code or data.original_invoice_serial_code,
        tax_type=TaxType.TAXABLE.value,
        total_sales=data.amount or 0,
        tax=data.tax_amount or 0,
        deduction_code=data.deduction_code if allowance.in_or_out is InOrOut.IN else None,
    )


def _serial_number(serial: str) -> Optional[int]:
    digits = serial[2:]
    return int(digits) if len(serial) == 10 and digits.isdigit() else None


def unused_range_rows(
    ranges: List[InvoiceRange], outbound: List[Invoice], period: RocPeriod, client: Client
) -> Dict[str, List[TxtRow]]:
    """
    One disclosure row per declared range that still has unused numbers,
    starting at the number after the highest one used.
    """
    rows: Dict[str, List[TxtRow]] = {}
    for invoice_range in ranges:
        prefix = invoice_range.start_number[:2]
        start = _serial_number(invoice_range.start_number)
        end = _serial_number(invoice_range.end_number)
        invoice_type = invoice_range.invoice_type.value

        used = []
        for invoice in outbound:
            data = invoice.extracted_data
            serial = data.invoice_serial_code if data else None
            if not serial or data.invoice_type != invoice_type or serial[:2] != prefix:
                continue
            number = _serial_number(serial)
            if number is not None and start <= number <= end:
                used.append(number)

        next_unused = max(used) + 1 if used else start
        if next_unused > end:
            continue

        format_code = get_invoice_format_code(InOrOut.OUT, invoice_type)
        rows.setdefault(format_code, []).append(TxtRow(
            format_code=format_code,
            in_or_out=InOrOut.OUT,
            date=period.first_day(),
            # A single remaining number is reported without an end.
            buyer_tax_id=None if next_unused == end else invoice_range.end_number[2:],
            seller_tax_id=client.tax_id,
            serial=f"{prefix}{next_unused:08d}",
            tax_type=TaxType.AGGREGATE.value,
        ))
    return rows


class TxtReportGenerator:
    def __init__(self, repository: Repository):
        self.repository = repository

    def generate(self, client_id: str, period_canonical: str) -> str:
        period = RocPeriod.from_canonical(period_canonical)
        client = self.repository.get_client(client_id)
        if not client:
            raise ClientNotFound(client_id)

        tax_period = self.repository.get_tax_period(client_id, period.to_canonical())
        if not tax_period:
            return ""

        invoices = self.repository.list_invoices(client_id, tax_period.id, DocumentStatus.CONFIRMED)
        allowances = self.repository.list_allowances(client_id, tax_period.id, DocumentStatus.CONFIRMED)
        ranges = self.repository.list_invoice_ranges(client_id, period.to_canonical())

        rows = [r for r in (invoice_row(i) for i in invoices) if r]
        rows += [r for r in (allowance_row(a) for a in allowances) if r]

        inbound = sorted(
            (r for r in rows if r.in_or_out is InOrOut.IN),
            key=lambda r: (int(r.format_code), r.serial or ""),
        )
        outbound_by_code: Dict[str, List[TxtRow]] = {}
        for r in rows:
            if r.in_or_out is InOrOut.OUT:
                outbound_by_code.setdefault(r.format_code, []).append(r)

        outbound_invoices = [i for i in invoices if i.in_or_out is InOrOut.OUT]
        unused_by_code = unused_range_rows(ranges, outbound_invoices, period, client)

        ordered = list(inbound)
        for code in sorted(set(outbound_by_code) | set(unused_by_code), key=int):
            ordered += sorted(outbound_by_code.get(code, []), key=lambda r: r.serial or "")
            ordered += unused_by_code.get(code, [])

        lines = [encode_row(r, seq, client.tax_payer_id) for seq, r in enumerate(ordered, start=1)]
        logger.info(f"TXT report generated for client {client_id} period {period}: {len(lines)} rows")
        return "\n".join(lines)
