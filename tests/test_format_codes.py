import pytest
from vatfiling.core.format_codes import (
    allowance_from_format_code,
    get_allowance_format_code,
    get_invoice_format_code,
    invoice_from_format_code,
    is_allowance_format_code,
    normalize_format_code,
)
from vatfiling.schemas.common import AllowanceType, InOrOut, InvoiceType


@pytest.mark.parametrize("invoice_type, inbound, outbound", [
    ("手開三聯式", "21", "31"),
    ("手開二聯式", "22", "32"),
    ("電子發票", "25", "35"),
    ("二聯式收銀機", "22", "32"),
    ("三聯式收銀機", "25", "35"),
])
def test_invoice_format_codes(invoice_type, inbound, outbound):
    assert get_invoice_format_code("in", invoice_type) == inbound
    assert get_invoice_format_code("out", invoice_type) == outbound


def test_unknown_invoice_type_defaults():
    assert get_invoice_format_code(InOrOut.IN, None) == "21"
    assert get_invoice_format_code(InOrOut.OUT, "收據") == "35"


@pytest.mark.parametrize("direction", [InOrOut.OUT, "out", "銷項"])
def test_direction_spellings_are_equivalent(direction):
    assert get_invoice_format_code(direction, InvoiceType.ELECTRONIC) == "35"
    assert get_allowance_format_code(direction, AllowanceType.ELECTRONIC) == "33"


def test_allowance_format_codes():
    assert get_allowance_format_code("out", "三聯式折讓") == "33"
    assert get_allowance_format_code("out", "電子發票折讓") == "33"
    assert get_allowance_format_code("out", "二聯式折讓") == "34"
    assert get_allowance_format_code("in", "三聯式折讓") == "23"
    assert get_allowance_format_code("進項", "電子發票折讓") == "23"
    assert get_allowance_format_code("in", None) == "24"


def test_unknown_direction_is_rejected():
    with pytest.raises(ValueError):
        get_invoice_format_code("sideways", InvoiceType.ELECTRONIC)


def test_reverse_allowance_mapping():
    assert allowance_from_format_code("23") == (InOrOut.IN, AllowanceType.ELECTRONIC)
    assert allowance_from_format_code("24") == (InOrOut.IN, AllowanceType.DUPLICATE)
    assert allowance_from_format_code("33") == (InOrOut.OUT, AllowanceType.ELECTRONIC)
    assert allowance_from_format_code("34") == (InOrOut.OUT, AllowanceType.DUPLICATE)
    assert allowance_from_format_code("35") is None
    assert allowance_from_format_code(None) is None


def test_reverse_invoice_mapping():
    assert invoice_from_format_code("25") == (InOrOut.IN, InvoiceType.ELECTRONIC)
    assert invoice_from_format_code("31") == (InOrOut.OUT, InvoiceType.HANDWRITTEN_TRIPLICATE)
    assert invoice_from_format_code("33") is None


def test_spreadsheet_cell_values_are_normalized():
    assert normalize_format_code(33) == "33"
    assert normalize_format_code(33.0) == "33"
    assert normalize_format_code(" 23 ") == "23"
    assert normalize_format_code("") is None
    assert is_allowance_format_code(34.0)
    assert not is_allowance_format_code("35")
