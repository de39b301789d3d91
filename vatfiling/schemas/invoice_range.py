from pydantic import BaseModel, Field, field_validator
from datetime import datetime, timezone
import re
import uuid
from vatfiling.schemas.common import InvoiceType

SERIAL_PATTERN = r"^[A-Z]{2}\d{8}$"


def check_serial(v: str) -> str:
    if not re.match(SERIAL_PATTERN, v):
        raise ValueError("Invoice number must be two letters followed by eight digits")
    return v


class InvoiceRange(BaseModel):
    """Declared paper/electronic invoice numbers for one client, period and type."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    firm_id: str
    client_id: str
    year_month: str = Field(..., min_length=5, max_length=5)
    invoice_type: InvoiceType
    start_number: str = Field(..., min_length=10, max_length=10)
    end_number: str = Field(..., min_length=10, max_length=10)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator('start_number', 'end_number')
    @classmethod
    def validate_serial(cls, v):
        return check_serial(v)


class CreateInvoiceRangeInput(BaseModel):
    client_id: str
    year_month: str = Field(..., min_length=5, max_length=5)
    invoice_type: InvoiceType
    start_number: str = Field(..., min_length=10, max_length=10)
    end_number: str = Field(..., min_length=10, max_length=10)

    @field_validator('start_number', 'end_number')
    @classmethod
    def validate_serial(cls, v):
        return check_serial(v)
