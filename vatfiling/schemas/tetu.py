from pydantic import BaseModel, Field
from typing import Literal

# PHASE-1 LOCKED: 401 DECLARATION INPUTS
# Fields copied verbatim into the .TET_U header and declarer sections.

class TetUConfig(BaseModel):
    # Basic file info
    file_number: str = "        "
    consolidated_declaration_code: Literal["0", "1", "2"]  # 0=單一, 1=總機構, 2=分別
    declaration_code: str = ""  # Field 5; derived from consolidated code when blank
    tax_payer_id: str = Field(..., min_length=9, max_length=9)

    # Tax calculation inputs
    mid_year_closure_tax_payable: float = 0
    previous_period_carry_forward_tax: float = 0
    mid_year_closure_tax_refundable: float = 0

    # Declarer
    declaration_type: Literal["1", "2"] = "1"  # 1=按期, 2=按月
    county_city: str = "臺北市"
    declaration_method: Literal["1", "2"] = "1"  # 1=自行, 2=委託
    declarer_id: str = ""
    declarer_name: str = ""
    declarer_phone_area_code: str = ""
    declarer_phone: str = ""
    declarer_phone_extension: str = ""
    agent_registration_number: str = ""
