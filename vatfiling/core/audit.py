from abc import ABC, abstractmethod
from typing import List, Optional
from vatfiling.schemas.audit import AuditLogEntry
import logging
import threading

logger = logging.getLogger(__name__)


class AuditRepository(ABC):
    @abstractmethod
    def save(self, entry: AuditLogEntry):
        pass

    @abstractmethod
    def get_all(self) -> List[AuditLogEntry]:
        pass

    @abstractmethod
    def for_firm(self, firm_id: str) -> List[AuditLogEntry]:
        pass


class InMemoryAuditRepository(AuditRepository):
    def __init__(self):
        self._storage: List[AuditLogEntry] = []
        self._lock = threading.Lock()

    def save(self, entry: AuditLogEntry):
        # Append-only.
        with self._lock:
            self._storage.append(entry)
        logger.info(f"Audit Logged: {entry.model_dump_json()}")

    def get_all(self) -> List[AuditLogEntry]:
        with self._lock:
            return list(self._storage)

    def for_firm(self, firm_id: str) -> List[AuditLogEntry]:
        return [e for e in self.get_all() if e.firm_id == firm_id]

    def latest(self, endpoint: Optional[str] = None) -> Optional[AuditLogEntry]:
        entries = [e for e in self.get_all() if endpoint is None or e.endpoint == endpoint]
        return entries[-1] if entries else None

    def clear(self):
        with self._lock:
            self._storage.clear()
