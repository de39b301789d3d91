"""
Government 2-digit format codes (格式代號) for the .TXT declaration feed.

Allowances:
- 23: 進項折讓 (三聯式/電子發票)    - 24: 進項折讓 (二聯式)
- 33: 銷項折讓 (三聯式/電子發票)    - 34: 銷項折讓 (二聯式)
"""
from typing import Optional, Tuple, Union

from vatfiling.schemas.common import AllowanceType, InOrOut, InvoiceType

Direction = Union[InOrOut, str]

TRIPLICATE_ALLOWANCE_FAMILY = {AllowanceType.TRIPLICATE.value, AllowanceType.ELECTRONIC.value}

INVOICE_FORMAT_CODES = {
    # invoice type: (in, out)
    InvoiceType.HANDWRITTEN_TRIPLICATE.value: ("21", "31"),
    InvoiceType.HANDWRITTEN_DUPLICATE.value: ("22", "32"),
    InvoiceType.ELECTRONIC.value: ("25", "35"),
    InvoiceType.CASH_REGISTER_DUPLICATE.value: ("22", "32"),
    InvoiceType.CASH_REGISTER_TRIPLICATE.value: ("25", "35"),
}
DEFAULT_INVOICE_FORMAT_CODES = ("21", "35")

ALLOWANCE_FORMAT_CODE_MAP = {
    "23": (InOrOut.IN, AllowanceType.ELECTRONIC),
    "24": (InOrOut.IN, AllowanceType.DUPLICATE),
    "33": (InOrOut.OUT, AllowanceType.ELECTRONIC),
    "34": (InOrOut.OUT, AllowanceType.DUPLICATE),
}

# 22/32 are shared by hand-written and cash-register duplicates; the
# hand-written type is assumed when only the code is known.
INVOICE_FORMAT_CODE_MAP = {
    "21": (InOrOut.IN, InvoiceType.HANDWRITTEN_TRIPLICATE),
    "22": (InOrOut.IN, InvoiceType.HANDWRITTEN_DUPLICATE),
    "25": (InOrOut.IN, InvoiceType.ELECTRONIC),
    "31": (InOrOut.OUT, InvoiceType.HANDWRITTEN_TRIPLICATE),
    "32": (InOrOut.OUT, InvoiceType.HANDWRITTEN_DUPLICATE),
    "35": (InOrOut.OUT, InvoiceType.ELECTRONIC),
}


def _value(v) -> Optional[str]:
    return v.value if hasattr(v, "value") else v


def get_allowance_format_code(in_or_out: Direction, allowance_type: Optional[Union[AllowanceType, str]]) -> str:
    direction = InOrOut.parse(in_or_out)
    triplicate = _value(allowance_type) in TRIPLICATE_ALLOWANCE_FAMILY
    if direction is InOrOut.OUT:
        return "33" if triplicate else "34"
    return "23" if triplicate else "24"


def get_invoice_format_code(in_or_out: Direction, invoice_type: Optional[Union[InvoiceType, str]]) -> str:
    direction = InOrOut.parse(in_or_out)
    codes = INVOICE_FORMAT_CODES.get(_value(invoice_type), DEFAULT_INVOICE_FORMAT_CODES)
    return codes[0] if direction is InOrOut.IN else codes[1]


def is_allowance_format_code(code: Optional[str]) -> bool:
    return normalize_format_code(code) in ALLOWANCE_FORMAT_CODE_MAP


def allowance_from_format_code(code: Optional[str]) -> Optional[Tuple[InOrOut, AllowanceType]]:
    return ALLOWANCE_FORMAT_CODE_MAP.get(normalize_format_code(code))


def invoice_from_format_code(code: Optional[str]) -> Optional[Tuple[InOrOut, InvoiceType]]:
    return INVOICE_FORMAT_CODE_MAP.get(normalize_format_code(code))


def normalize_format_code(code) -> Optional[str]:
    """Spreadsheet cells may hold 33, 33.0 or " 33 "."""
    if code is None:
        return None
    if isinstance(code, float) and code.is_integer():
        code = int(code)
    text = str(code).strip()
    return text.zfill(2) if text.isdigit() else text or None
