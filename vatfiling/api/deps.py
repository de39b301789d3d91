from fastapi import HTTPException, Request
from vatfiling.db.repository import Repository
from vatfiling.exceptions import (
    ClientNotFound,
    DuplicateSerialCode,
    InvalidFormat,
    NotFound,
    PeriodLocked,
    UnsupportedFileFormat,
    VatFilingError,
)
from vatfiling.schemas.client import Client
import logging

logger = logging.getLogger(__name__)

STATUS_BY_ERROR = [
    (NotFound, 404),
    (PeriodLocked, 409),
    (DuplicateSerialCode, 409),
    (InvalidFormat, 400),
    (UnsupportedFileFormat, 400),
]
STATUS_BY_CODE = {"DUPLICATE_PERIOD": 409}


def get_repository(request: Request) -> Repository:
    return request.app.state.repository


def http_error(error: VatFilingError) -> HTTPException:
    status_code = STATUS_BY_CODE.get(error.code, 400)
    for error_type, code in STATUS_BY_ERROR:
        if isinstance(error, error_type):
            status_code = code
            break
    logger.info(f"Request failed with {status_code}: {error}")
    return HTTPException(status_code=status_code, detail=error.to_dict())


def require_client(repository: Repository, client_id: str, firm_id: str) -> Client:
    """Clients of another firm are reported as missing."""
    client = repository.get_client(client_id)
    if not client or client.firm_id != firm_id:
        raise http_error(ClientNotFound(client_id))
    return client
