from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

from vatfiling.exceptions import NotFound


class StoredFileNotFound(NotFound):
    entity = "Stored file"


class FileReader(ABC):
    """Fetches uploaded bytes by storage path; upload/retention live elsewhere."""

    @abstractmethod
    def read(self, storage_path: str, filename: Optional[str] = None) -> bytes:
        pass


class LocalFileReader(FileReader):
    def __init__(self, root: str):
        self.root = Path(root).resolve()

    def read(self, storage_path: str, filename: Optional[str] = None) -> bytes:
        path = (self.root / storage_path).resolve()
        # Storage paths are relative to the root; reject traversal.
        if self.root not in path.parents and path != self.root:
            raise StoredFileNotFound(storage_path)
        if not path.is_file():
            raise StoredFileNotFound(storage_path)
        return path.read_bytes()


class InMemoryFileReader(FileReader):
    def __init__(self, files: Optional[Dict[str, bytes]] = None):
        self.files: Dict[str, bytes] = dict(files or {})

    def put(self, storage_path: str, content: bytes):
        self.files[storage_path] = content

    def read(self, storage_path: str, filename: Optional[str] = None) -> bytes:
        if storage_path not in self.files:
            raise StoredFileNotFound(storage_path)
        return self.files[storage_path]
