from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, timezone
import uuid
from enum import Enum


class AuditStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


class AuditLogEntry(BaseModel):
    """One request against the filing API. Bodies are kept as SHA-256 only."""
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    endpoint: str
    method: str
    action_type: str  # IMPORT, REPORT_TXT, REPORT_TET_U, PERIOD, HEALTH_CHECK, UNKNOWN
    actor: str = "system"
    firm_id: str
    client_id: Optional[str] = None
    year_month: Optional[str] = None  # period segment of the path, as sent
    status_code: Optional[int] = None
    input_hash: Optional[str] = None
    output_hash: Optional[str] = None
    status: AuditStatus
