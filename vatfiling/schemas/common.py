from enum import Enum


class InOrOut(str, Enum):
    IN = "in"      # 進項
    OUT = "out"    # 銷項

    @property
    def label(self) -> str:
        return "進項" if self is InOrOut.IN else "銷項"

    @classmethod
    def parse(cls, value) -> "InOrOut":
        """Accepts enum members, "in"/"out" and "進項"/"銷項"."""
        if isinstance(value, cls):
            return value
        if value in ("in", "進項"):
            return cls.IN
        if value in ("out", "銷項"):
            return cls.OUT
        raise ValueError(f"Unknown direction '{value}'")


class DocumentStatus(str, Enum):
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    PROCESSED = "processed"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class PeriodStatus(str, Enum):
    OPEN = "open"
    LOCKED = "locked"
    FILED = "filed"


class ConfidenceLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class InvoiceType(str, Enum):
    HANDWRITTEN_DUPLICATE = "手開二聯式"
    HANDWRITTEN_TRIPLICATE = "手開三聯式"
    ELECTRONIC = "電子發票"
    CASH_REGISTER_DUPLICATE = "二聯式收銀機"
    CASH_REGISTER_TRIPLICATE = "三聯式收銀機"


class AllowanceType(str, Enum):
    TRIPLICATE = "三聯式折讓"
    ELECTRONIC = "電子發票折讓"
    DUPLICATE = "二聯式折讓"


class TaxType(str, Enum):
    TAXABLE = "應稅"
    ZERO_RATED = "零稅率"
    EXEMPT = "免稅"
    VOID = "作廢"
    AGGREGATE = "彙加"


class DeductionCode(str, Enum):
    PURCHASES_AND_EXPENSES = "1"
    FIXED_ASSETS = "2"


class DocumentSource(str, Enum):
    SCAN = "scan"
    IMPORT_EXCEL = "import-excel"
    IMPORT_TXT = "import-txt"
