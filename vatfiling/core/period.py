"""
Bi-monthly ROC filing periods.

A period is identified by its ROC year and odd start month (1, 3, 5, 7, 9, 11)
and is persisted only as its canonical "YYYMM" string, e.g. "11301".
"""
import re
from datetime import date, datetime
from typing import List, Optional, Union

from vatfiling.exceptions import InvalidFormat

ROC_YEAR_OFFSET = 1911
START_MONTHS = (1, 3, 5, 7, 9, 11)


def bucket_start(month: int) -> int:
    """First month of the bi-monthly bucket containing `month`."""
    return ((month - 1) // 2) * 2 + 1


class RocPeriod:
    __slots__ = ("roc_year", "start_month")

    def __init__(self, roc_year: int, start_month: int):
        if start_month not in START_MONTHS:
            raise InvalidFormat("RocPeriod start month must be an odd number between 1 and 11")
        self.roc_year = roc_year
        self.start_month = start_month

    @property
    def end_month(self) -> int:
        return self.start_month + 1

    @property
    def gregorian_year(self) -> int:
        return self.roc_year + ROC_YEAR_OFFSET

    def to_canonical(self) -> str:
        return f"{self.roc_year:03d}{self.start_month:02d}"

    def to_end_canonical(self) -> str:
        return f"{self.roc_year:03d}{self.end_month:02d}"

    def label(self) -> str:
        """Human readable, e.g. "民國 113 年 01-02 月"."""
        return f"民國 {self.roc_year} 年 {self.start_month:02d}-{self.end_month:02d} 月"

    def first_day(self) -> str:
        return f"{self.gregorian_year}/{self.start_month:02d}/01"

    @classmethod
    def from_canonical(cls, value: str) -> "RocPeriod":
        if not value or len(value) < 5:
            raise InvalidFormat("Invalid YYYMM format", details={"value": value})
        year_part, month_part = value[:-2], value[-2:]
        if not year_part.isdigit() or not month_part.isdigit():
            raise InvalidFormat("Invalid YYYMM format", details={"value": value})
        month = int(month_part)
        if not 1 <= month <= 12:
            raise InvalidFormat(f"Invalid month {month:02d} in period", details={"value": value})
        return cls(int(year_part), bucket_start(month))

    @classmethod
    def from_date(cls, value: Union[date, datetime]) -> "RocPeriod":
        return cls(value.year - ROC_YEAR_OFFSET, bucket_start(value.month))

    @classmethod
    def now(cls) -> "RocPeriod":
        return cls.from_date(date.today())

    @classmethod
    def for_year(cls, roc_year: int) -> List["RocPeriod"]:
        return [cls(roc_year, m) for m in START_MONTHS]

    @classmethod
    def coerce(cls, value: Union["RocPeriod", str]) -> "RocPeriod":
        if isinstance(value, cls):
            return value
        return cls.from_canonical(value)

    def __eq__(self, other) -> bool:
        if not isinstance(other, RocPeriod):
            return NotImplemented
        return self.roc_year == other.roc_year and self.start_month == other.start_month

    def __hash__(self) -> int:
        return hash((self.roc_year, self.start_month))

    def __lt__(self, other: "RocPeriod") -> bool:
        return (self.roc_year, self.start_month) < (other.roc_year, other.start_month)

    def __str__(self) -> str:
        return self.to_canonical()

    def __repr__(self) -> str:
        return f"RocPeriod({self.roc_year}, {self.start_month})"


def normalize_date(value) -> Optional[str]:
    """
    Normalize spreadsheet/extractor dates to "YYYY/MM/DD".
    Accepts date/datetime, "YYYY/MM/DD", "YYYY-MM-DD", "YYYYMMDD" and ROC "YYY/MM/DD".
    Returns None when the value is blank or not a real calendar date.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, date):
        return value.strftime("%Y/%m/%d")

    text = str(value).strip()
    if not text:
        return None
    if re.match(r"^\d{8}$", text):
        text = f"{text[:4]}/{text[4:6]}/{text[6:]}"
    # Spreadsheet cells sometimes carry a time part.
    text = text.split(" ")[0].replace("-", "/").replace(".", "/")
    parts = text.split("/")
    if len(parts) != 3 or not all(p.isdigit() for p in parts):
        return None

    year, month, day = (int(p) for p in parts)
    if len(parts[0]) <= 3:
        year += ROC_YEAR_OFFSET
    try:
        return date(year, month, day).strftime("%Y/%m/%d")
    except (ValueError, OverflowError):
        return None


def to_roc_year_month(date_str: Optional[str]) -> str:
    """"2024/09/01" -> "11309"; five spaces when the date is missing or unparsable."""
    blank = " " * 5
    if not date_str:
        return blank
    separator = "/" if "/" in date_str else "-"
    parts = date_str.split(separator)
    if len(parts) < 2 or not parts[0].isdigit() or not parts[1].isdigit():
        return blank
    roc_year = int(parts[0]) - ROC_YEAR_OFFSET
    result = f"{roc_year:03d}{int(parts[1]):02d}"
    if len(result) != 5 or not result.isdigit():
        return blank
    return result
