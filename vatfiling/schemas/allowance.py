from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime, timezone
import re
import uuid
from typing import Dict, List, Optional
from vatfiling.schemas.common import (
    AllowanceType,
    ConfidenceLevel,
    DeductionCode,
    DocumentSource,
    DocumentStatus,
    InOrOut,
    TaxType,
)
from vatfiling.schemas.invoice import DATE_PATTERN


class AllowanceItem(BaseModel):
    amount: Optional[float] = None  # 折讓金額 (銷售額)
    tax_amount: Optional[float] = None  # 折讓稅額
    description: Optional[str] = None


class ExtractedAllowanceData(BaseModel):
    model_config = ConfigDict(extra="allow", use_enum_values=True)

    allowance_type: Optional[AllowanceType] = None
    original_invoice_serial_code: Optional[str] = None
    amount: Optional[float] = None
    tax_amount: Optional[float] = None
    date: Optional[str] = None  # YYYY/MM/DD
    seller_name: Optional[str] = None
    seller_tax_id: Optional[str] = None
    buyer_name: Optional[str] = None
    buyer_tax_id: Optional[str] = None
    # Line items joined as display text; `items` keeps them granular.
    summary: Optional[str] = None
    items: Optional[List[AllowanceItem]] = None
    # Inbound allowances only.
    deduction_code: Optional[DeductionCode] = None
    tax_type: Optional[TaxType] = None
    source: Optional[DocumentSource] = None
    confidence: Optional[Dict[str, ConfidenceLevel]] = None

    @field_validator('date')
    @classmethod
    def validate_date_format(cls, v):
        if v is not None and not re.match(DATE_PATTERN, v):
            raise ValueError("Date must be in YYYY/MM/DD format")
        return v


class Allowance(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    firm_id: str
    client_id: Optional[str] = None
    tax_filing_period_id: Optional[str] = None
    year_month: Optional[str] = Field(default=None, min_length=5, max_length=5)
    allowance_serial_code: Optional[str] = None
    original_invoice_serial_code: Optional[str] = None
    original_invoice_id: Optional[str] = None
    in_or_out: InOrOut
    storage_path: Optional[str] = None
    filename: Optional[str] = None
    status: DocumentStatus = DocumentStatus.UPLOADED
    extracted_data: Optional[ExtractedAllowanceData] = None
    uploaded_by: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CreateAllowanceInput(BaseModel):
    firm_id: str
    client_id: Optional[str] = None
    year_month: Optional[str] = Field(default=None, min_length=5, max_length=5)
    allowance_serial_code: Optional[str] = None
    original_invoice_serial_code: Optional[str] = None
    in_or_out: InOrOut
    storage_path: Optional[str] = None
    filename: Optional[str] = None
    uploaded_by: Optional[str] = None


class UpdateAllowanceInput(BaseModel):
    client_id: Optional[str] = None
    year_month: Optional[str] = Field(default=None, min_length=5, max_length=5)
    original_invoice_serial_code: Optional[str] = None
    in_or_out: Optional[InOrOut] = None
    status: Optional[DocumentStatus] = None
    extracted_data: Optional[ExtractedAllowanceData] = None
