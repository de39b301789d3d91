"""
Row readers for imported electronic-invoice files.

Every reader yields (row_number, row) pairs where `row` is keyed by the
canonical column names below, so the importer never sees sheet-specific
headers:

- .xlsx / .xlsm: first worksheet, header row = first row with a known header
- .csv: csv.DictReader, utf-8 (BOM tolerated) falling back to big5
- .txt: the legacy 81-byte Big5 declaration feed, one document per line
"""
import csv
import io
import logging
from pathlib import PurePosixPath
from zipfile import BadZipFile
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from pydantic import BaseModel

from vatfiling.core.format_codes import is_allowance_format_code
from vatfiling.exceptions import UnsupportedFileFormat
from vatfiling.schemas.common import DocumentSource, TaxType

logger = logging.getLogger(__name__)

Row = Dict[str, Any]

HEADER_ALIASES = {
    # Invoice export columns
    "invoice_serial_code": ("發票號碼", "發票字軌號碼"),
    "date": ("發票日期",),
    "seller_tax_id": ("賣方統一編號", "賣方統編"),
    "seller_name": ("賣方名稱",),
    "buyer_tax_id": ("買方統一編號", "買方統編"),
    "buyer_name": ("買方名稱",),
    "total_sales": ("銷售額", "未稅金額"),
    "tax": ("稅額",),
    "total_amount": ("總計", "總金額"),
    "tax_type": ("課稅別",),
    "invoice_status": ("發票狀態",),
    "format_code": ("格式代號",),
    "summary": ("摘要", "品名"),
    "invoice_type": ("發票類型",),
    # Allowance export columns
    "allowance_serial_code": ("折讓單號碼",),
    "allowance_date": ("折讓單日期", "折讓日期"),
    "original_invoice_serial_code": ("原發票號碼",),
    "allowance_amount": ("折讓金額",),
    "allowance_tax": ("折讓稅額",),
    "deduction_code": ("扣抵代號",),
}

_HEADER_LOOKUP = {}
for _key, _aliases in HEADER_ALIASES.items():
    _HEADER_LOOKUP[_key] = _key
    for _alias in _aliases:
        _HEADER_LOOKUP[_alias] = _key

TXT_ROW_BYTES = 81
TXT_TAX_TYPES = {
    "1": TaxType.TAXABLE.value,
    "2": TaxType.ZERO_RATED.value,
    "3": TaxType.EXEMPT.value,
    "F": TaxType.VOID.value,
    "D": TaxType.AGGREGATE.value,
}
CUSTOMS_FORMAT_CODES = {"28", "29"}


class SheetData(BaseModel):
    columns: Set[str]
    rows: List[Tuple[int, Dict[str, Any]]]
    source: DocumentSource


def canonical_header(header: Any) -> Optional[str]:
    if header is None:
        return None
    text = "".join(str(header).split())
    return _HEADER_LOOKUP.get(text)


def _is_blank(row: Row) -> bool:
    return all(v is None or (isinstance(v, str) and not v.strip()) for v in row.values())


def _map_row(headers: List[Optional[str]], values: Iterable[Any]) -> Row:
    row: Row = {}
    for key, value in zip(headers, values):
        if key and key not in row:
            row[key] = value.strip() if isinstance(value, str) else value
    return row


def read_xlsx(content: bytes) -> SheetData:
    try:
        workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (BadZipFile, InvalidFileException) as e:
        raise UnsupportedFileFormat(f"Unreadable workbook: {e}")
    try:
        sheet = workbook.worksheets[0]
        headers: Optional[List[Optional[str]]] = None
        rows = []
        for row_number, values in enumerate(sheet.iter_rows(values_only=True), start=1):
            if headers is None:
                candidate = [canonical_header(v) for v in values]
                if any(candidate):
                    headers = candidate
                continue
            row = _map_row(headers, values)
            if not _is_blank(row):
                rows.append((row_number, row))
    finally:
        workbook.close()

    if headers is None:
        raise UnsupportedFileFormat("No recognised header row in worksheet")
    return SheetData(columns={h for h in headers if h}, rows=rows, source=DocumentSource.IMPORT_EXCEL)


def _decode_text(content: bytes) -> str:
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        return content.decode("big5")


def read_csv(content: bytes) -> SheetData:
    try:
        text = _decode_text(content)
    except UnicodeDecodeError:
        raise UnsupportedFileFormat("CSV file is neither UTF-8 nor Big5 encoded")

    reader = csv.DictReader(io.StringIO(text))
    headers = [canonical_header(h) for h in (reader.fieldnames or [])]
    if not any(headers):
        raise UnsupportedFileFormat("No recognised header row in CSV file")

    rows = []
    # Header is row 1.
    for index, raw in enumerate(reader):
        values = [raw.get(name) for name in reader.fieldnames]
        row = _map_row(headers, values)
        if not _is_blank(row):
            rows.append((index + 2, row))
    return SheetData(columns={h for h in headers if h}, rows=rows, source=DocumentSource.IMPORT_EXCEL)


def _field(line: bytes, start: int, length: int) -> str:
    """1-based byte positions as printed in the declaration layout."""
    return line[start - 1:start - 1 + length].decode("big5", errors="replace").strip()


def parse_txt_line(line: bytes) -> Row:
    line = line.ljust(TXT_ROW_BYTES, b" ")
    format_code = _field(line, 1, 2)
    year_month = _field(line, 19, 5)
    aggregate_mark = _field(line, 80, 1)
    tax_code = _field(line, 62, 1)

    if format_code in CUSTOMS_FORMAT_CODES:
        serial = _field(line, 36, 14)
    else:
        serial = _field(line, 40, 10)

    tax_type = TXT_TAX_TYPES.get(tax_code, TaxType.TAXABLE.value)
    if aggregate_mark == "A" and tax_code != "F":
        tax_type = TaxType.AGGREGATE.value

    # Only the month is recorded; documents are dated on the 1st.
    date = f"{year_month[:3]}/{year_month[3:]}/01" if len(year_month) == 5 else None
    buyer = _field(line, 24, 8)
    seller = _field(line, 32, 8)
    sales = _field(line, 50, 12)
    tax = _field(line, 63, 10)

    row: Row = {
        "format_code": format_code,
        "buyer_tax_id": buyer,
        "seller_tax_id": seller,
        "tax_type": tax_type,
    }
    if is_allowance_format_code(format_code):
        row.update({
            "original_invoice_serial_code": serial,
            "allowance_date": date,
            "allowance_amount": sales,
            "allowance_tax": tax,
        })
    else:
        row.update({
            "invoice_serial_code": serial,
            "date": date,
            "total_sales": sales,
            "tax": tax,
        })
    return row


def read_txt(content: bytes) -> SheetData:
    rows = []
    for line_number, line in enumerate(content.splitlines(), start=1):
        if not line.strip():
            continue
        rows.append((line_number, parse_txt_line(line)))
    columns = set(rows[0][1].keys()) if rows else set()
    return SheetData(columns=columns, rows=rows, source=DocumentSource.IMPORT_TXT)


READERS = {
    ".xlsx": read_xlsx,
    ".xlsm": read_xlsx,
    ".csv": read_csv,
    ".txt": read_txt,
}


def read_sheet(content: bytes, filename: str) -> SheetData:
    suffix = PurePosixPath(filename).suffix.lower()
    reader = READERS.get(suffix)
    if reader is None:
        raise UnsupportedFileFormat(f"Unsupported file extension '{suffix or filename}'", details={"filename": filename})
    data = reader(content)
    logger.debug(f"Read {len(data.rows)} rows from {filename}")
    return data
