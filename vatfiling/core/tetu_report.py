"""
.TET_U declaration (form 401): 112 fields joined by "|" on a single line.

Confirmed documents of the period are aggregated into output (sales) and
input (purchases) buckets, then laid out in the authority's field order.
Fields that only apply to forms 403/404 are rendered as zeros.
"""
import logging
from decimal import Decimal
from typing import List, Optional

from vatfiling.core.fixed_width import format_9, format_c, format_s9, format_x, round_half_up
from vatfiling.core.period import RocPeriod
from vatfiling.core.txt_report import is_fixed_asset
from vatfiling.db.repository import Repository
from vatfiling.exceptions import ClientNotFound, InvalidFormat
from vatfiling.schemas.allowance import Allowance
from vatfiling.schemas.common import DeductionCode, DocumentStatus, InOrOut, InvoiceType, TaxType
from vatfiling.schemas.invoice import Invoice
from vatfiling.schemas.tetu import TetUConfig

logger = logging.getLogger(__name__)

FIELD_COUNT = 112
BUSINESS_TAX_RATE = Decimal("0.05")

COUNTY_CITY_CODES = {
    "臺北市": "A", "臺中市": "B", "基隆市": "C", "臺南市": "D", "高雄市": "E",
    "新北市": "F", "宜蘭縣": "G", "桃園市": "H", "嘉義市": "I", "新竹縣": "J",
    "苗栗縣": "K", "南投縣": "M", "彰化縣": "N", "新竹市": "O", "雲林縣": "P",
    "嘉義縣": "Q", "屏東縣": "T", "花蓮縣": "U", "臺東縣": "V", "金門縣": "W",
    "澎湖縣": "X", "連江縣": "Z",
}

CASH_REGISTER_AND_ELECTRONIC = {InvoiceType.ELECTRONIC.value, InvoiceType.CASH_REGISTER_TRIPLICATE.value}

# Widths of the zero-filled special-tax section (fields 32-46).
SPECIAL_TAX_WIDTHS = (12, 10, 12, 10, 12, 10, 12, 10, 12, 10, 12, 12, 10, 12, 10)
IMPORT_SECTION_WIDTHS = (10, 12, 12, 12, 12, 10, 10, 10, 10)
FOREIGN_SERVICE_WIDTHS = (12, 12, 12, 10, 10, 10, 12, 10)


class SalesBucket:
    def __init__(self):
        self.sales = 0
        self.tax = 0

    def add(self, sales: int, tax: int):
        self.sales += sales
        self.tax += tax


class InputBucket:
    def __init__(self):
        self.purchases_and_expenses = 0
        self.fixed_assets = 0
        self.purchases_and_expenses_tax = 0
        self.fixed_assets_tax = 0

    def add(self, sales: int, tax: int, fixed_asset: bool):
        if fixed_asset:
            self.fixed_assets += sales
            self.fixed_assets_tax += tax
        else:
            self.purchases_and_expenses += sales
            self.purchases_and_expenses_tax += tax


class OutputTotals:
    def __init__(self):
        self.triplicate = SalesBucket()
        self.cash_register_and_electronic = SalesBucket()
        self.duplicate_cash_register = SalesBucket()
        self.exempt = SalesBucket()
        self.returns_and_allowances = SalesBucket()
        self.total_sales = 0
        self.total_tax = 0
        self.sales_without_invoice = 0
        self.zero_tax_with_documents = 0
        self.zero_tax_without_documents = 0
        self.zero_tax_returns = 0
        self.zero_tax_total = 0
        self.land_sales = 0
        self.fixed_asset_sales = 0


class InputTotals:
    def __init__(self):
        self.triplicate = InputBucket()
        self.cash_register_and_electronic = InputBucket()
        self.other_certificates = InputBucket()
        self.returns_and_allowances = InputBucket()
        self.total_purchases_and_expenses = 0
        self.total_fixed_assets = 0
        self.total_purchases_and_expenses_tax = 0
        self.total_fixed_assets_tax = 0
        self.total_purchases_and_expenses_all = 0
        self.total_fixed_assets_all = 0


class Aggregation:
    def __init__(self):
        self.invoice_count = 0
        self.output = OutputTotals()
        self.input = InputTotals()


def b2c_tax(tax_inclusive_total: int) -> int:
    """Tax contained in tax-inclusive sales to non-business buyers."""
    return round_half_up(Decimal(tax_inclusive_total) / (1 + BUSINESS_TAX_RATE) * BUSINESS_TAX_RATE)


def aggregate(invoices: List[Invoice], allowances: List[Allowance]) -> Aggregation:
    agg = Aggregation()
    out, inp = agg.output, agg.input
    b2c_sales = 0

    for invoice in invoices:
        data = invoice.extracted_data
        if data is None or invoice.in_or_out is not InOrOut.OUT:
            continue
        sales = round_half_up(data.total_sales or 0)
        tax = round_half_up(data.tax or 0)
        invoice_type = data.invoice_type or ""
        serial = data.invoice_serial_code or invoice.invoice_serial_code

        if data.tax_type != TaxType.VOID.value:
            agg.invoice_count += 1

        if data.tax_type == TaxType.TAXABLE.value:
            if not data.buyer_tax_id:
                b2c_sales += sales
            if invoice_type == InvoiceType.HANDWRITTEN_TRIPLICATE.value:
                out.triplicate.add(sales, tax)
            elif invoice_type in CASH_REGISTER_AND_ELECTRONIC:
                out.cash_register_and_electronic.add(sales, tax)
            elif "二聯式" in invoice_type:
                out.duplicate_cash_register.add(sales, tax)
            else:
                raise InvalidFormat(f"Unsupported invoice type '{invoice_type}' on invoice {serial}")
        elif data.tax_type == TaxType.ZERO_RATED.value:
            # Customs-cleared exports; documented zero-rate sales are not distinguished yet.
            out.zero_tax_without_documents += sales
        elif data.tax_type == TaxType.EXEMPT.value:
            out.exempt.add(sales, tax)
        elif data.tax_type == TaxType.VOID.value:
            logger.debug(f"Skipping voided invoice {serial}")
        else:
            raise InvalidFormat(f"Unsupported tax type '{data.tax_type}' on invoice {serial}")

        if data.summary and "土地" in data.summary:
            out.land_sales += sales
        elif is_fixed_asset(data.summary):
            out.fixed_asset_sales += sales

    for allowance in allowances:
        data = allowance.extracted_data
        if data is None:
            continue
        sales = round_half_up(data.amount or 0)
        tax = round_half_up(data.tax_amount or 0)
        if allowance.in_or_out is InOrOut.OUT:
            if data.tax_type == TaxType.ZERO_RATED.value:
                out.zero_tax_returns += sales
            else:
                out.returns_and_allowances.add(sales, tax)
        else:
            inp.returns_and_allowances.add(sales, tax, data.deduction_code == DeductionCode.FIXED_ASSETS.value)

    adjustment = b2c_tax(b2c_sales)
    out.cash_register_and_electronic.sales -= adjustment
    out.cash_register_and_electronic.tax += adjustment

    issued = (out.triplicate, out.cash_register_and_electronic, out.duplicate_cash_register, out.exempt)
    out.total_sales = sum(b.sales for b in issued) - out.returns_and_allowances.sales
    out.total_tax = sum(b.tax for b in issued) - out.returns_and_allowances.tax
    out.zero_tax_total = out.zero_tax_with_documents + out.zero_tax_without_documents - out.zero_tax_returns

    for invoice in invoices:
        data = invoice.extracted_data
        if data is None or invoice.in_or_out is not InOrOut.IN or not data.deductible:
            continue
        if data.tax_type != TaxType.TAXABLE.value:
            continue
        fixed_asset = is_fixed_asset(data.summary)
        sales = round_half_up(data.total_sales or 0)
        tax = round_half_up(data.tax or 0)
        invoice_type = data.invoice_type or ""

        if invoice_type == InvoiceType.HANDWRITTEN_TRIPLICATE.value:
            inp.triplicate.add(sales, tax, fixed_asset)
        elif invoice_type in CASH_REGISTER_AND_ELECTRONIC:
            inp.cash_register_and_electronic.add(sales, tax, fixed_asset)
        elif "二聯式" in invoice_type:
            inp.other_certificates.add(sales, tax, fixed_asset)

        if fixed_asset:
            inp.total_fixed_assets_all += sales
        else:
            inp.total_purchases_and_expenses_all += sales

    deductible = (inp.triplicate, inp.cash_register_and_electronic, inp.other_certificates)
    returns = inp.returns_and_allowances
    inp.total_purchases_and_expenses = sum(b.purchases_and_expenses for b in deductible) - returns.purchases_and_expenses
    inp.total_fixed_assets = sum(b.fixed_assets for b in deductible) - returns.fixed_assets
    inp.total_purchases_and_expenses_tax = (
        sum(b.purchases_and_expenses_tax for b in deductible) - returns.purchases_and_expenses_tax
    )
    inp.total_fixed_assets_tax = sum(b.fixed_assets_tax for b in deductible) - returns.fixed_assets_tax
    return agg


def declaration_code(config: TetUConfig) -> str:
    if config.declaration_code:
        return config.declaration_code
    return "5" if config.consolidated_declaration_code == "1" else "1"


def county_city_code(name: Optional[str]) -> str:
    return COUNTY_CITY_CODES.get(name or "", "A")


def tax_computation(agg: Aggregation, config: TetUConfig) -> List[int]:
    """Fields 82-95. Separate declaration (consolidated code 2) zeroes the section."""
    if config.consolidated_declaration_code == "2":
        return [0] * 14

    output_tax = agg.output.total_tax
    foreign_services_tax = 0
    special_tax = 0
    closure_payable = round_half_up(config.mid_year_closure_tax_payable)
    payable_subtotal = output_tax + foreign_services_tax + special_tax + closure_payable

    input_tax = agg.input.total_purchases_and_expenses_tax + agg.input.total_fixed_assets_tax
    carry_forward = round_half_up(config.previous_period_carry_forward_tax)
    closure_refundable = round_half_up(config.mid_year_closure_tax_refundable)
    credit_subtotal = input_tax + carry_forward + closure_refundable

    payable = max(0, payable_subtotal - credit_subtotal)
    retained = max(0, credit_subtotal - payable_subtotal)
    refund_limit = round_half_up(Decimal(agg.output.zero_tax_total) * BUSINESS_TAX_RATE) + agg.input.total_fixed_assets_tax
    refund = min(retained, refund_limit)
    accumulated_retained = retained - refund

    return [
        output_tax,
        foreign_services_tax,
        special_tax,
        closure_payable,
        # Form 401 has no subtotal of 82-85.
        0,
        input_tax,
        carry_forward,
        closure_refundable,
        credit_subtotal,
        payable,
        retained,
        refund_limit,
        refund,
        accumulated_retained,
    ]


def build_fields(agg: Aggregation, config: TetUConfig, client_tax_id: str, period: RocPeriod) -> List[str]:
    out, inp = agg.output, agg.input
    fields = [
        format_x("1", 1),
        format_x(config.file_number or " " * 8, 8),
        format_x(client_tax_id, 8),
        format_x(period.to_end_canonical(), 5),
        format_x(declaration_code(config), 1),
        format_x(config.tax_payer_id, 9),
        format_x(config.consolidated_declaration_code, 1),
        format_9(agg.invoice_count, 10),
    ]

    output_buckets = (
        out.triplicate,
        out.cash_register_and_electronic,
        out.duplicate_cash_register,
        out.exempt,
        out.returns_and_allowances,
    )
    fields += [format_s9(b.sales, 12) for b in output_buckets]
    fields.append(format_s9(out.total_sales, 12))
    fields += [format_s9(b.tax, 10) for b in output_buckets]
    fields.append(format_s9(out.total_tax, 10))

    fields.append(format_s9(out.sales_without_invoice, 12))
    fields += [
        format_s9(out.zero_tax_with_documents, 12),
        format_s9(out.zero_tax_without_documents, 12),
        format_s9(out.zero_tax_returns, 12),
        format_s9(out.zero_tax_total, 12),
    ]

    # 26-46: exempt and special-tax sections (forms 403/404).
    fields += [format_s9(0, 12)] * 6
    fields += [format_s9(0, w) for w in SPECIAL_TAX_WIDTHS]

    fields += [
        format_s9(out.total_sales + out.zero_tax_total, 12),
        format_s9(out.land_sales, 12),
        format_s9(out.fixed_asset_sales, 12),
    ]

    input_buckets = (inp.triplicate, inp.cash_register_and_electronic, inp.other_certificates, inp.returns_and_allowances)
    for b in input_buckets:
        fields += [format_s9(b.purchases_and_expenses, 12), format_s9(b.fixed_assets, 12)]
    fields += [format_s9(inp.total_purchases_and_expenses, 12), format_s9(inp.total_fixed_assets, 12)]
    for b in input_buckets:
        fields += [format_s9(b.purchases_and_expenses_tax, 10), format_s9(b.fixed_assets_tax, 10)]
    fields += [format_s9(inp.total_purchases_and_expenses_tax, 10), format_s9(inp.total_fixed_assets_tax, 10)]

    fields += [
        format_s9(inp.total_purchases_and_expenses_all, 12),
        format_s9(inp.total_fixed_assets_all, 12),
    ]

    # 72-81: mixed-business ratio and imports (form 403).
    fields.append(format_9(0, 3))
    fields += [format_s9(0, w) for w in IMPORT_SECTION_WIDTHS]

    fields += [format_s9(v, 10) for v in tax_computation(agg, config)]

    fields += [
        format_x(config.declaration_type, 1),
        format_x(county_city_code(config.county_city), 1),
        format_x(config.declaration_method, 1),
        format_x(config.declarer_id, 10),
        # Name is written as-is, without padding.
        config.declarer_name or "",
        format_x(config.declarer_phone_area_code, 4),
        format_x(config.declarer_phone, 11),
        format_x(config.declarer_phone_extension, 5),
        format_c(config.agent_registration_number or "", 50),
    ]

    # 105-112: foreign services and banking sections (form 404).
    fields += [format_s9(0, w) for w in FOREIGN_SERVICE_WIDTHS]

    if len(fields) != FIELD_COUNT:
        raise InvalidFormat(f"TET_U layout produced {len(fields)} fields, expected {FIELD_COUNT}")
    return fields


class TetUReportGenerator:
    def __init__(self, repository: Repository):
        self.repository = repository

    def generate(self, client_id: str, period_canonical: str, config: TetUConfig) -> str:
        period = RocPeriod.from_canonical(period_canonical)
        client = self.repository.get_client(client_id)
        if not client:
            raise ClientNotFound(client_id)

        invoices: List[Invoice] = []
        allowances: List[Allowance] = []
        tax_period = self.repository.get_tax_period(client_id, period.to_canonical())
        if tax_period:
            invoices = self.repository.list_invoices(client_id, tax_period.id, DocumentStatus.CONFIRMED)
            allowances = self.repository.list_allowances(client_id, tax_period.id, DocumentStatus.CONFIRMED)

        agg = aggregate(invoices, allowances)
        fields = build_fields(agg, config, client.tax_id, period)
        logger.info(
            f"TET_U report generated for client {client_id} period {period}: "
            f"{len(invoices)} invoices, {len(allowances)} allowances"
        )
        return "|".join(fields)
