import pytest
from vatfiling.core.tax_periods import create_tax_period
from vatfiling.core.tetu_report import (
    TetUReportGenerator,
    aggregate,
    b2c_tax,
    county_city_code,
    declaration_code,
)
from vatfiling.exceptions import ClientNotFound, InvalidFormat
from vatfiling.schemas.common import DocumentStatus, InOrOut
from vatfiling.schemas.tetu import TetUConfig
from tests.conftest import CLIENT_ID, CLIENT_TAX_ID, CLIENT_TAX_PAYER_ID, add_allowance, add_invoice

ZERO_10 = "000000000{"


def make_config(**overrides):
    values = dict(consolidated_declaration_code="0", tax_payer_id=CLIENT_TAX_PAYER_ID)
    values.update(overrides)
    return TetUConfig(**values)


@pytest.fixture
def tax_period(repository, client):
    return create_tax_period(repository, CLIENT_ID, "11301")


@pytest.fixture
def filled_period(repository, tax_period):
    out = dict(date="2024/01/10", seller_tax_id=CLIENT_TAX_ID, tax_type="應稅")
    add_invoice(repository, tax_period, InOrOut.OUT, "AB00000001",
                buyer_tax_id="87654321", total_sales=100000, tax=5000, invoice_type="電子發票", **out)
    add_invoice(repository, tax_period, InOrOut.OUT, "XY00000001",
                buyer_tax_id="87654321", total_sales=50000, tax=2500, invoice_type="手開三聯式", **out)
    # Consumer sale: tax-inclusive total, no buyer
    add_invoice(repository, tax_period, InOrOut.OUT, "AB00000002",
                total_sales=10500, tax=0, invoice_type="電子發票", **out)
    add_invoice(repository, tax_period, InOrOut.OUT, "AB00000003",
                buyer_tax_id="87654321", total_sales=999, tax=50, invoice_type="電子發票",
                date="2024/01/11", seller_tax_id=CLIENT_TAX_ID, tax_type="作廢")
    add_allowance(repository, tax_period, InOrOut.OUT, "AB00000001",
                  allowance_type="電子發票折讓", amount=2000, tax_amount=100, tax_type="應稅")

    inbound = dict(date="2024/02/01", buyer_tax_id=CLIENT_TAX_ID, seller_tax_id="11111111", tax_type="應稅")
    add_invoice(repository, tax_period, InOrOut.IN, "CD00000001", deductible=True,
                summary="文具", total_sales=20000, tax=1000, invoice_type="電子發票", **inbound)
    add_invoice(repository, tax_period, InOrOut.IN, "EF00000001", deductible=True,
                summary="辦公設備", total_sales=30000, tax=1500, invoice_type="手開三聯式", **inbound)
    add_invoice(repository, tax_period, InOrOut.IN, "CD00000002", deductible=False,
                summary="餐費", total_sales=8000, tax=400, invoice_type="電子發票", **inbound)
    # Not confirmed: ignored
    add_invoice(repository, tax_period, InOrOut.OUT, "AB00000004", status=DocumentStatus.PROCESSED,
                buyer_tax_id="87654321", total_sales=7777, tax=388, invoice_type="電子發票", **out)
    return tax_period


def test_b2c_tax_is_rounded_half_up():
    assert b2c_tax(10500) == 500
    assert b2c_tax(105) == 5
    assert b2c_tax(0) == 0
    # 21 / 1.05 * 0.05 == 1.0
    assert b2c_tax(21) == 1
    # 31 / 1.05 * 0.05 == 1.476...
    assert b2c_tax(31) == 1


def test_output_and_input_fields(repository, filled_period):
    report = TetUReportGenerator(repository).generate(CLIENT_ID, "11301", make_config())
    fields = report.split("|")

    assert len(fields) == 112
    assert "\n" not in report

    # Header
    assert fields[0] == "1"
    assert fields[2] == CLIENT_TAX_ID
    assert fields[3] == "11302"
    assert fields[4] == "1"
    assert fields[5] == CLIENT_TAX_PAYER_ID
    assert fields[7] == "0000000003"

    # Sales: consumer tax moves from sales into tax
    assert fields[8] == "00000005000{"
    assert fields[9] == "00000011000{"
    assert fields[12] == "00000000200{"
    assert fields[13] == "00000015800{"
    assert fields[14] == "000000250{"
    assert fields[15] == "000000550{"
    assert fields[18] == "000000010{"
    assert fields[19] == "000000790{"
    assert fields[46] == "00000015800{"

    # Purchases: fixed assets detected from the summary
    assert fields[50] == "00000003000{"
    assert fields[51] == "00000002000{"
    assert fields[57] == "00000002000{"
    assert fields[58] == "00000003000{"
    assert fields[67] == "000000100{"
    assert fields[68] == "000000150{"

    # Tax computation
    assert fields[81] == "000000790{"
    assert fields[85] == ZERO_10
    assert fields[86] == "000000250{"
    assert fields[89] == "000000250{"
    assert fields[90] == "000000540{"
    assert fields[91] == ZERO_10
    assert fields[92] == "000000150{"
    assert fields[93] == ZERO_10
    assert fields[94] == ZERO_10

    # Declarer
    assert fields[95] == "1"
    assert fields[96] == "A"


def test_retained_tax_is_refunded_up_to_the_limit(repository, tax_period):
    inbound = dict(date="2024/02/01", buyer_tax_id=CLIENT_TAX_ID, seller_tax_id="11111111",
                   tax_type="應稅", deductible=True, invoice_type="電子發票")
    add_invoice(repository, tax_period, InOrOut.IN, "CD00000001",
                summary="機器設備", total_sales=100000, tax=5000, **inbound)
    add_invoice(repository, tax_period, InOrOut.IN, "CD00000002",
                summary="原料", total_sales=40000, tax=2000, **inbound)

    config = make_config(previous_period_carry_forward_tax=300)
    fields = TetUReportGenerator(repository).generate(CLIENT_ID, "11301", config).split("|")

    assert fields[86] == "000000700{"
    assert fields[87] == "000000030{"
    assert fields[89] == "000000730{"
    assert fields[90] == ZERO_10
    assert fields[91] == "000000730{"
    assert fields[92] == "000000500{"
    assert fields[93] == "000000500{"
    assert fields[94] == "000000230{"


def test_negative_totals_use_overpunch(repository, tax_period):
    add_allowance(repository, tax_period, InOrOut.OUT, "AB00000001",
                  allowance_type="電子發票折讓", amount=2000, tax_amount=100, tax_type="應稅")

    fields = TetUReportGenerator(repository).generate(CLIENT_ID, "11301", make_config()).split("|")

    assert fields[13] == "00000000200}"
    assert fields[19] == "000000010}"


def test_separate_declaration_zeroes_tax_computation(repository, filled_period):
    config = make_config(consolidated_declaration_code="2", county_city="高雄市")
    fields = TetUReportGenerator(repository).generate(CLIENT_ID, "11301", config).split("|")

    assert fields[6] == "2"
    assert fields[4] == "1"
    assert all(f == ZERO_10 for f in fields[81:95])
    assert fields[96] == "E"
    # Aggregation itself is unaffected
    assert fields[19] == "000000790{"


def test_report_without_period_is_all_zero(repository, client):
    fields = TetUReportGenerator(repository).generate(CLIENT_ID, "11303", make_config()).split("|")
    assert len(fields) == 112
    assert fields[3] == "11304"
    assert fields[7] == "0000000000"
    assert fields[13] == "00000000000{"


def test_declarer_section(repository, client):
    config = make_config(
        declarer_id="A123456789",
        declarer_name="王小明",
        declarer_phone_area_code="02",
        declarer_phone="12345678",
        declaration_method="2",
        agent_registration_number="北市會字第123號",
    )
    fields = TetUReportGenerator(repository).generate(CLIENT_ID, "11301", config).split("|")

    assert fields[97] == "2"
    assert fields[98] == "A123456789"
    assert fields[99] == "王小明"
    assert fields[100] == "02  "
    assert fields[101] == "12345678   "
    assert fields[102] == "     "
    assert fields[103].startswith("北市會字第123號")
    assert len(fields[103].encode("big5")) == 50


def test_unsupported_invoice_type_is_rejected(repository, tax_period):
    add_invoice(repository, tax_period, InOrOut.OUT, "AB00000001", date="2024/01/10",
                total_sales=100, tax=5, tax_type="應稅", invoice_type=None)
    with pytest.raises(InvalidFormat):
        TetUReportGenerator(repository).generate(CLIENT_ID, "11301", make_config())


def test_unknown_client(repository):
    with pytest.raises(ClientNotFound):
        TetUReportGenerator(repository).generate("nobody", "11301", make_config())


def test_declaration_and_county_codes():
    assert declaration_code(make_config()) == "1"
    assert declaration_code(make_config(consolidated_declaration_code="1")) == "5"
    assert declaration_code(make_config(declaration_code="3")) == "3"
    assert county_city_code("新北市") == "F"
    assert county_city_code("火星") == "A"
    assert county_city_code(None) == "A"


def test_zero_rated_sales_and_returns(repository, tax_period):
    add_invoice(repository, tax_period, InOrOut.OUT, "AB00000001", date="2024/01/10",
                total_sales=60000, tax=0, tax_type="零稅率", invoice_type="電子發票")
    add_allowance(repository, tax_period, InOrOut.OUT, "AB00000001",
                  allowance_type="電子發票折讓", amount=10000, tax_amount=0, tax_type="零稅率")
    agg = aggregate(
        repository.list_invoices(CLIENT_ID, tax_period.id),
        repository.list_allowances(CLIENT_ID, tax_period.id),
    )
    assert agg.output.zero_tax_without_documents == 60000
    assert agg.output.zero_tax_returns == 10000
    assert agg.output.zero_tax_total == 50000
    assert agg.output.total_sales == 0
