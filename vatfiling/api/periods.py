from fastapi import APIRouter, Depends, Header
from typing import List
from vatfiling.api.deps import get_repository, http_error, require_client
from vatfiling.core import invoice_ranges, tax_periods
from vatfiling.db.repository import Repository
from vatfiling.exceptions import PeriodNotFound, VatFilingError
from vatfiling.schemas.invoice_range import CreateInvoiceRangeInput, InvoiceRange
from vatfiling.schemas.tax_period import CreateTaxPeriodRequest, TaxPeriodView, UpdateTaxPeriodStatusRequest
import logging

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/clients/{client_id}/periods", response_model=List[TaxPeriodView])
async def list_periods(
    client_id: str,
    x_firm_id: str = Header(..., alias="X-Firm-ID"),
    repository: Repository = Depends(get_repository),
):
    require_client(repository, client_id, x_firm_id)
    return [tax_periods.to_view(p) for p in tax_periods.list_tax_periods(repository, client_id)]


@router.post("/clients/{client_id}/periods", response_model=TaxPeriodView, status_code=201)
async def create_period(
    client_id: str,
    request: CreateTaxPeriodRequest,
    x_firm_id: str = Header(..., alias="X-Firm-ID"),
    repository: Repository = Depends(get_repository),
):
    require_client(repository, client_id, x_firm_id)
    try:
        period = tax_periods.create_tax_period(repository, client_id, request.year_month)
    except VatFilingError as e:
        raise http_error(e)
    return tax_periods.to_view(period)


@router.patch("/periods/{period_id}/status", response_model=TaxPeriodView)
async def update_period_status(
    period_id: str,
    request: UpdateTaxPeriodStatusRequest,
    x_firm_id: str = Header(..., alias="X-Firm-ID"),
    repository: Repository = Depends(get_repository),
):
    period = repository.get_tax_period_by_id(period_id)
    if not period or period.firm_id != x_firm_id:
        raise http_error(PeriodNotFound(period_id))
    try:
        updated = tax_periods.update_tax_period_status(repository, period_id, request.status)
    except VatFilingError as e:
        raise http_error(e)
    return tax_periods.to_view(updated)


@router.get("/clients/{client_id}/periods/{period}/ranges", response_model=List[InvoiceRange])
async def list_ranges(
    client_id: str,
    period: str,
    x_firm_id: str = Header(..., alias="X-Firm-ID"),
    repository: Repository = Depends(get_repository),
):
    require_client(repository, client_id, x_firm_id)
    try:
        return invoice_ranges.list_invoice_ranges(repository, client_id, period)
    except VatFilingError as e:
        raise http_error(e)


@router.post("/clients/{client_id}/ranges", response_model=InvoiceRange, status_code=201)
async def create_range(
    client_id: str,
    request: CreateInvoiceRangeInput,
    x_firm_id: str = Header(..., alias="X-Firm-ID"),
    repository: Repository = Depends(get_repository),
):
    require_client(repository, client_id, x_firm_id)
    if request.client_id != client_id:
        raise http_error(VatFilingError("Client id in body does not match the path", code="CLIENT_MISMATCH"))
    try:
        return invoice_ranges.create_invoice_range(repository, request)
    except VatFilingError as e:
        raise http_error(e)
