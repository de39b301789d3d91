import logging
from typing import Union

from vatfiling.core.period import RocPeriod
from vatfiling.db.repository import Repository
from vatfiling.exceptions import PeriodLocked
from vatfiling.schemas.common import PeriodStatus

logger = logging.getLogger(__name__)


class PeriodLockGuard:
    """
    Refuses writes into a locked filing period.

    A period that does not exist yet is editable. Only `locked` blocks;
    `filed` is informational.
    """

    def __init__(self, repository: Repository):
        self.repository = repository

    def ensure_editable(self, client_id: str, period: Union[RocPeriod, str]):
        year_month = RocPeriod.coerce(period).to_canonical()
        tax_period = self.repository.get_tax_period(client_id, year_month)
        if tax_period and tax_period.status == PeriodStatus.LOCKED:
            logger.info(f"Write rejected: period {year_month} locked for client {client_id}")
            raise PeriodLocked(client_id, year_month)
