from pydantic import BaseModel, Field
from typing import Optional
import uuid


class Client(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    firm_id: str
    name: str = Field(..., min_length=1)
    contact_person: Optional[str] = None
    tax_id: str = Field(..., min_length=8, max_length=8)  # 統一編號
    tax_payer_id: str = Field(..., min_length=9, max_length=9)  # 稅籍編號
    industry: Optional[str] = None
