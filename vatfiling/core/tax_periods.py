import logging
from typing import List, Optional, Union

from vatfiling.core.period import RocPeriod
from vatfiling.db.repository import Repository
from vatfiling.exceptions import ClientNotFound, PeriodNotFound, VatFilingError
from vatfiling.schemas.common import PeriodStatus
from vatfiling.schemas.tax_period import TaxFilingPeriod, TaxPeriodView

logger = logging.getLogger(__name__)


def get_tax_period(repository: Repository, client_id: str, period: Union[RocPeriod, str]) -> Optional[TaxFilingPeriod]:
    year_month = RocPeriod.coerce(period).to_canonical()
    return repository.get_tax_period(client_id, year_month)


def create_tax_period(repository: Repository, client_id: str, period: Union[RocPeriod, str]) -> TaxFilingPeriod:
    client = repository.get_client(client_id)
    if not client:
        raise ClientNotFound(client_id)
    year_month = RocPeriod.coerce(period).to_canonical()
    created = repository.insert_tax_period(
        TaxFilingPeriod(firm_id=client.firm_id, client_id=client_id, year_month=year_month)
    )
    logger.info(f"Tax period {year_month} created for client {client_id}")
    return created


def get_or_create_tax_period(repository: Repository, client_id: str, period: Union[RocPeriod, str]) -> TaxFilingPeriod:
    existing = get_tax_period(repository, client_id, period)
    if existing:
        return existing
    try:
        return create_tax_period(repository, client_id, period)
    except VatFilingError as e:
        # Lost a race with a concurrent import creating the same period.
        if e.code != "DUPLICATE_PERIOD":
            raise
        return get_tax_period(repository, client_id, period)


def list_tax_periods(repository: Repository, client_id: str) -> List[TaxFilingPeriod]:
    """Newest first."""
    periods = repository.list_tax_periods(client_id)
    return sorted(periods, key=lambda p: p.year_month, reverse=True)


def update_tax_period_status(repository: Repository, period_id: str, status: PeriodStatus) -> TaxFilingPeriod:
    if not repository.get_tax_period_by_id(period_id):
        raise PeriodNotFound(period_id)
    updated = repository.update_tax_period_status(period_id, status)
    logger.info(f"Tax period {updated.year_month} for client {updated.client_id} is now {updated.status.value}")
    return updated


def to_view(period: TaxFilingPeriod) -> TaxPeriodView:
    return TaxPeriodView(
        id=period.id,
        client_id=period.client_id,
        year_month=period.year_month,
        label=RocPeriod.from_canonical(period.year_month).label(),
        status=period.status,
        updated_at=period.updated_at,
    )
