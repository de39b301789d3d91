from pydantic import BaseModel, ConfigDict, Field, field_validator, ValidationInfo
from datetime import datetime, timezone
import re
import uuid
from typing import Dict, Literal, Optional
from vatfiling.schemas.common import (
    ConfidenceLevel,
    DocumentSource,
    DocumentStatus,
    InOrOut,
    InvoiceType,
    TaxType,
)

DATE_PATTERN = r"^\d{4}/\d{2}/\d{2}$"


class ExtractedInvoiceData(BaseModel):
    """
    Structured invoice fields supplied by import or by the external extractor.
    Unknown keys are preserved verbatim so they round-trip through storage.
    """
    model_config = ConfigDict(extra="allow", use_enum_values=True)

    invoice_serial_code: Optional[str] = None  # 發票字軌號碼
    date: Optional[str] = None  # YYYY/MM/DD
    seller_name: Optional[str] = None
    seller_tax_id: Optional[str] = None
    buyer_name: Optional[str] = None
    buyer_tax_id: Optional[str] = None
    total_sales: Optional[float] = None  # 銷售額
    tax: Optional[float] = None  # 營業稅
    total_amount: Optional[float] = None  # 總計
    summary: Optional[str] = None
    deductible: Optional[bool] = None
    account: Optional[str] = None
    tax_type: Optional[TaxType] = None
    invoice_type: Optional[InvoiceType] = None
    in_or_out: Optional[Literal["進項", "銷項"]] = None
    confidence: Optional[Dict[str, ConfidenceLevel]] = None
    source: Optional[DocumentSource] = None

    @field_validator('date')
    @classmethod
    def validate_date_format(cls, v):
        if v is not None and not re.match(DATE_PATTERN, v):
            raise ValueError("Date must be in YYYY/MM/DD format")
        return v

    @field_validator('total_sales', 'tax', 'total_amount', mode='before')
    @classmethod
    def validate_numeric(cls, v, info: ValidationInfo):
        if isinstance(v, str):
            cleaned = v.replace(",", "").strip()
            if not cleaned:
                return None
            if not re.match(r'^-?\d+(\.\d+)?$', cleaned):
                raise ValueError(f"{info.field_name} must be strictly numeric")
            return cleaned
        return v


class Invoice(BaseModel):
    model_config = ConfigDict(use_enum_values=False)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    firm_id: str
    client_id: Optional[str] = None
    storage_path: str
    filename: str
    in_or_out: InOrOut
    status: DocumentStatus = DocumentStatus.UPLOADED
    extracted_data: Optional[ExtractedInvoiceData] = None
    invoice_serial_code: Optional[str] = None
    year_month: Optional[str] = Field(default=None, min_length=5, max_length=5)
    tax_filing_period_id: Optional[str] = None
    uploaded_by: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CreateInvoiceInput(BaseModel):
    firm_id: str
    client_id: Optional[str] = None
    storage_path: str = Field(..., min_length=1)
    filename: str = Field(..., min_length=1)
    in_or_out: InOrOut
    year_month: Optional[str] = Field(default=None, min_length=5, max_length=5)
    uploaded_by: Optional[str] = None


class UpdateInvoiceInput(BaseModel):
    client_id: Optional[str] = None
    in_or_out: Optional[InOrOut] = None
    year_month: Optional[str] = Field(default=None, min_length=5, max_length=5)
    status: Optional[DocumentStatus] = None
    extracted_data: Optional[ExtractedInvoiceData] = None
    invoice_serial_code: Optional[str] = None
