from fastapi import APIRouter, Depends, Header
from fastapi.responses import Response
from starlette.concurrency import run_in_threadpool
from vatfiling.api.deps import get_repository, http_error, require_client
from vatfiling.core.tetu_report import TetUReportGenerator
from vatfiling.core.txt_report import TxtReportGenerator
from vatfiling.db.repository import Repository
from vatfiling.exceptions import VatFilingError
from vatfiling.schemas.tetu import TetUConfig
import logging

router = APIRouter()
logger = logging.getLogger(__name__)


def _attachment(content: str, filename: str) -> Response:
    body = content.encode("utf-8")
    return Response(
        content=body,
        media_type="text/plain; charset=utf-8",
        headers={
            "Content-Disposition": f"attachment; filename={filename}",
            "Content-Length": str(len(body)),
        },
    )


@router.get("/clients/{client_id}/periods/{period}/reports/txt")
async def download_txt_report(
    client_id: str,
    period: str,
    x_firm_id: str = Header(..., alias="X-Firm-ID"),
    repository: Repository = Depends(get_repository),
):
    client = require_client(repository, client_id, x_firm_id)
    try:
        content = await run_in_threadpool(TxtReportGenerator(repository).generate, client_id, period)
    except VatFilingError as e:
        raise http_error(e)
    return _attachment(content, f"{client.tax_id}.TXT")


@router.post("/clients/{client_id}/periods/{period}/reports/tet-u")
async def download_tetu_report(
    client_id: str,
    period: str,
    config: TetUConfig,
    x_firm_id: str = Header(..., alias="X-Firm-ID"),
    repository: Repository = Depends(get_repository),
):
    client = require_client(repository, client_id, x_firm_id)
    try:
        content = await run_in_threadpool(TetUReportGenerator(repository).generate, client_id, period, config)
    except VatFilingError as e:
        raise http_error(e)
    return _attachment(content, f"{client.tax_id}.TET_U")
