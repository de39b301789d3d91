from enum import Enum
from pydantic import BaseModel, Field
from typing import Iterable, List, Optional


class FileType(str, Enum):
    INVOICE = "invoice"
    ALLOWANCE = "allowance"


class ImportResult(BaseModel):
    file_type: Optional[FileType] = None
    inserted: int = 0
    updated: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @classmethod
    def combine(cls, results: Iterable["ImportResult"]) -> "ImportResult":
        """Sum per-file counts and concatenate messages for a batch."""
        total = cls()
        file_types = set()
        for r in results:
            total.inserted += r.inserted
            total.updated += r.updated
            total.failed += r.failed
            total.errors.extend(r.errors)
            total.warnings.extend(r.warnings)
            if r.file_type is not None:
                file_types.add(r.file_type)
        if len(file_types) == 1:
            total.file_type = file_types.pop()
        return total


class ImportFileRef(BaseModel):
    storage_path: str = Field(..., min_length=1)
    filename: str = Field(..., min_length=1)


class FileImportOutcome(BaseModel):
    filename: str
    result: ImportResult


class BatchImportRequest(BaseModel):
    files: List[ImportFileRef] = Field(..., min_length=1)
    uploaded_by: Optional[str] = None


class BatchImportResponse(BaseModel):
    status: str = "success"
    files: List[FileImportOutcome]
    summary: ImportResult
