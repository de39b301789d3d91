"""
VAT filing exception hierarchy.

Every error raised by the filing core inherits from VatFilingError so callers
(HTTP layer, batch importer) can catch the whole family with one clause.
"""

from typing import Any, Dict, Optional


class VatFilingError(Exception):
    """Base exception for all VAT filing errors."""

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


class InvalidFormat(VatFilingError):
    """Malformed period string, spreadsheet row or document field."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="INVALID_FORMAT", details=details)


class PeriodLocked(VatFilingError):
    """The client's filing period is locked; no invoice/allowance may change."""

    def __init__(self, client_id: str, year_month: str):
        super().__init__(
            f"Tax period {year_month} is locked for client {client_id}",
            code="PERIOD_LOCKED",
            details={"client_id": client_id, "year_month": year_month},
        )
        self.client_id = client_id
        self.year_month = year_month


class DuplicateSerialCode(VatFilingError):
    """A write collided with the per-client unique serial code."""

    def __init__(self, serial_code: str, client_id: Optional[str] = None, message: Optional[str] = None):
        super().__init__(
            message or f"Serial code {serial_code} already exists for this client",
            code="DUPLICATE_SERIAL_CODE",
            details={"serial_code": serial_code, "client_id": client_id},
        )
        self.serial_code = serial_code
        self.client_id = client_id


class UnsupportedFileFormat(VatFilingError):
    """Unrecognised upload: unknown extension, missing header, wrong row family."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="UNSUPPORTED_FILE_FORMAT", details=details)


class NotFound(VatFilingError):
    """Requested record does not exist."""

    entity = "Record"

    def __init__(self, identifier: str):
        super().__init__(
            f"{self.entity} not found: {identifier}",
            code="NOT_FOUND",
            details={"entity": self.entity, "id": identifier},
        )
        self.identifier = identifier


class ClientNotFound(NotFound):
    entity = "Client"


class InvoiceNotFound(NotFound):
    entity = "Invoice"


class AllowanceNotFound(NotFound):
    entity = "Allowance"


class PeriodNotFound(NotFound):
    entity = "Tax filing period"


class InvoiceRangeNotFound(NotFound):
    entity = "Invoice range"
