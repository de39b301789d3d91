"""
COBOL-style field encoders shared by the .TXT and .TET_U declarations.

- X(n): alphanumeric, left-aligned, space-padded, truncated by characters
- C(n): like X(n) but measured in Big5 bytes (full-width characters count 2)
- 9(n): unsigned, zero-padded; overflow keeps the last n digits
- S9(n): as 9(n) with the last digit replaced by its sign overpunch
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

Number = Union[int, float, Decimal]

POSITIVE_OVERPUNCH = "{ABCDEFGHI"
NEGATIVE_OVERPUNCH = "}JKLMNOPQR"


def round_half_up(value: Number) -> int:
    """0.5 always rounds away from zero, unlike builtin round()."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def big5_length(value: str) -> int:
    return len(value.encode("big5", errors="replace"))


def format_x(value, length: int) -> str:
    text = "" if value is None else str(value)
    return text[:length].ljust(length, " ")


def format_c(value, length: int) -> str:
    text = "" if value is None else str(value)
    while text and big5_length(text) > length:
        text = text[:-1]
    return text + " " * (length - big5_length(text))


def format_9(value: Number, length: int) -> str:
    digits = str(abs(round_half_up(value or 0)))
    if len(digits) > length:
        return digits[-length:]
    return digits.rjust(length, "0")


def format_s9(value: Number, length: int) -> str:
    amount = round_half_up(value or 0)
    padded = format_9(amount, length)
    table = NEGATIVE_OVERPUNCH if amount < 0 else POSITIVE_OVERPUNCH
    return padded[:-1] + table[int(padded[-1])]


def pad_ascii(value, length: int) -> str:
    """Tax ids in the .TXT feed: ASCII only, space-padded."""
    text = "" if value is None else str(value)
    text = text.encode("ascii", errors="replace").decode("ascii")
    return format_x(text, length)
