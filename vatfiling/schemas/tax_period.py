from pydantic import BaseModel, Field
from datetime import datetime, timezone
from typing import Optional
import uuid
from vatfiling.schemas.common import PeriodStatus


class TaxFilingPeriod(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    firm_id: str
    client_id: str
    year_month: str = Field(..., min_length=5, max_length=5)
    status: PeriodStatus = PeriodStatus.OPEN
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CreateTaxPeriodRequest(BaseModel):
    year_month: str = Field(..., min_length=5)


class UpdateTaxPeriodStatusRequest(BaseModel):
    status: PeriodStatus


class TaxPeriodView(BaseModel):
    id: str
    client_id: str
    year_month: str
    label: str
    status: PeriodStatus
    updated_at: Optional[datetime] = None
