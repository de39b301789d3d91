from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response, JSONResponse
import hashlib
import re
from vatfiling.schemas.audit import AuditLogEntry, AuditStatus
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)

FIRM_HEADER = "X-Firm-ID"
ACTOR_HEADER = "X-User-ID"
PUBLIC_PREFIXES = ["/health", "/docs", "/redoc", "/openapi.json"]
CLIENT_PATH = re.compile(r"/clients/([^/]+)")
PERIOD_PATH = re.compile(r"/clients/[^/]+/periods/([^/]+)")


def action_type_for(endpoint: str) -> str:
    if "/imports" in endpoint:
        return "IMPORT"
    if "/reports/txt" in endpoint:
        return "REPORT_TXT"
    if "/reports/tet-u" in endpoint:
        return "REPORT_TET_U"
    if "/periods" in endpoint:
        return "PERIOD"
    if "health" in endpoint:
        return "HEALTH_CHECK"
    return "UNKNOWN"


def year_month_for(endpoint: str) -> Optional[str]:
    match = PERIOD_PATH.search(endpoint)
    return match.group(1) if match else None


def client_id_for(endpoint: str) -> Optional[str]:
    match = CLIENT_PATH.search(endpoint)
    return match.group(1) if match else None


class AuditMiddleware(BaseHTTPMiddleware):
    """
    Records every request with SHA-256 hashes of the request and response
    bodies. Requests without a firm identifier are rejected outside the
    public paths.
    """

    async def dispatch(self, request: Request, call_next: Callable):
        audit_repo = request.app.state.audit_repo

        # 1. Capture Request Details
        endpoint = request.url.path
        method = request.method
        action_type = action_type_for(endpoint)
        client_id = client_id_for(endpoint)
        year_month = year_month_for(endpoint)
        actor = request.headers.get(ACTOR_HEADER) or "system"

        # 2. Strict Firm ID Check
        firm_id = request.headers.get(FIRM_HEADER)
        is_public = endpoint == "/" or any(endpoint.startswith(p) for p in PUBLIC_PREFIXES)

        logger.debug(f"Request to {endpoint}, firm_id={firm_id}, is_public={is_public}")

        if not firm_id and not is_public:
            response = JSONResponse(status_code=400, content={"detail": "Missing firm identifier"})
            self._record(audit_repo, AuditLogEntry(
                endpoint=endpoint,
                method=method,
                action_type=action_type,
                actor=actor,
                firm_id="MISSING",
                client_id=client_id,
                year_month=year_month,
                status_code=400,
                status=AuditStatus.FAILURE,
            ))
            return response

        if not firm_id:
            firm_id = "PUBLIC"

        # 3. Capture & Hash Input
        request_body_bytes = await request.body()
        input_hash = hashlib.sha256(request_body_bytes).hexdigest()

        # 4. Process Request
        status = AuditStatus.FAILURE
        output_hash = None
        status_code = None
        try:
            response = await call_next(request)
            status_code = response.status_code
            if 200 <= status_code < 300:
                status = AuditStatus.SUCCESS

            # 5. Capture & Hash Output
            response_body_bytes = b""
            async for chunk in response.body_iterator:
                response_body_bytes += chunk
            output_hash = hashlib.sha256(response_body_bytes).hexdigest()

            response = Response(
                content=response_body_bytes,
                status_code=response.status_code,
                headers=dict(response.headers),
                media_type=response.media_type,
            )
        finally:
            # 6. Log Event
            self._record(audit_repo, AuditLogEntry(
                endpoint=endpoint,
                method=method,
                action_type=action_type,
                actor=actor,
                firm_id=firm_id,
                client_id=client_id,
                year_month=year_month,
                input_hash=input_hash,
                output_hash=output_hash,
                status_code=status_code,
                status=status,
            ))

        return response

    @staticmethod
    def _record(audit_repo, entry: AuditLogEntry):
        try:
            audit_repo.save(entry)
        except Exception as log_error:
            logger.error(f"Audit Logging Failed: {log_error}")
