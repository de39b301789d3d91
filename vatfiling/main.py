from fastapi import FastAPI
from typing import Optional
from vatfiling.api import health, imports, periods, reports
from vatfiling.core.audit import InMemoryAuditRepository
from vatfiling.core.config import Settings
from vatfiling.core.middleware import AuditMiddleware
from vatfiling.db.memory import InMemoryRepository
from vatfiling.db.repository import Repository
from vatfiling.db.storage import FileReader, LocalFileReader
import logging


def create_app(
    settings: Optional[Settings] = None,
    repository: Optional[Repository] = None,
    file_reader: Optional[FileReader] = None,
) -> FastAPI:
    settings = settings or Settings()
    logging.basicConfig(level=settings.LOG_LEVEL.upper())

    app = FastAPI(title=settings.PROJECT_NAME)
    app.state.settings = settings
    app.state.repository = repository or InMemoryRepository()
    app.state.file_reader = file_reader or LocalFileReader(settings.STORAGE_ROOT)
    app.state.audit_repo = InMemoryAuditRepository()

    app.add_middleware(AuditMiddleware)

    # Include routers
    app.include_router(health.router)
    app.include_router(periods.router)
    app.include_router(imports.router)
    app.include_router(reports.router)
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
