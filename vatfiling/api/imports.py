from fastapi import APIRouter, Depends, Header, Request
from starlette.concurrency import run_in_threadpool
from vatfiling.api.deps import get_repository, http_error, require_client
from vatfiling.core.importer import ReconciliationImporter
from vatfiling.core.period import RocPeriod
from vatfiling.core.period_lock import PeriodLockGuard
from vatfiling.db.repository import Repository
from vatfiling.exceptions import VatFilingError
from vatfiling.schemas.imports import BatchImportRequest, BatchImportResponse
import logging

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/clients/{client_id}/periods/{period}/imports", response_model=BatchImportResponse)
async def import_documents(
    client_id: str,
    period: str,
    batch: BatchImportRequest,
    request: Request,
    x_firm_id: str = Header(..., alias="X-Firm-ID"),
    repository: Repository = Depends(get_repository),
):
    """
    Import already-uploaded spreadsheet exports or text feeds into a period.
    Each file reports its own counts; `summary` combines them.
    """
    require_client(repository, client_id, x_firm_id)
    try:
        roc_period = RocPeriod.from_canonical(period)
        # Locked periods reject the whole request instead of every file.
        PeriodLockGuard(repository).ensure_editable(client_id, roc_period)
    except VatFilingError as e:
        raise http_error(e)

    settings = request.app.state.settings
    importer = ReconciliationImporter(repository, request.app.state.file_reader, settings.DEFAULT_IN_OR_OUT)
    outcomes, summary = await run_in_threadpool(
        importer.import_batch,
        client_id,
        x_firm_id,
        batch.files,
        roc_period,
        batch.uploaded_by,
        settings.IMPORT_MAX_WORKERS,
    )

    logger.info(
        f"Import batch COMPLETED for client {client_id} period {roc_period}: "
        f"{len(outcomes)} files, inserted={summary.inserted} updated={summary.updated} failed={summary.failed}"
    )
    return BatchImportResponse(files=outcomes, summary=summary)
