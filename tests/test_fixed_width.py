from decimal import Decimal
from vatfiling.core.fixed_width import (
    big5_length,
    format_9,
    format_c,
    format_s9,
    format_x,
    pad_ascii,
    round_half_up,
)


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(0.5) == 1
    assert round_half_up(1.49) == 1
    assert round_half_up(-2.5) == -3
    assert round_half_up(Decimal("476.19")) == 476


def test_format_x_pads_and_truncates():
    assert format_x("AB", 5) == "AB   "
    assert format_x("ABCDEFG", 3) == "ABC"
    assert format_x(None, 2) == "  "


def test_format_c_measures_big5_bytes():
    assert big5_length("王小明") == 6
    assert format_c("王小明", 10) == "王小明    "
    # A full-width character never gets split.
    assert format_c("王小明", 5) == "王小 "
    assert format_c("", 3) == "   "


def test_format_9():
    assert format_9(42, 5) == "00042"
    assert format_9(1234567, 4) == "4567"
    assert format_9(-12.5, 5) == "00013"
    assert format_9(None, 3) == "000"


def test_format_s9_overpunch():
    assert format_s9(148000, 12) == "00000014800{"
    assert format_s9(7400, 10) == "000000740{"
    assert format_s9(201, 12) == "00000000020A"
    assert format_s9(0, 3) == "00{"
    assert format_s9(-1, 3) == "00J"
    assert format_s9(-2000, 12) == "00000000200}"
    assert format_s9(-19, 4) == "001R"


def test_pad_ascii():
    assert pad_ascii("123456789", 9) == "123456789"
    assert pad_ascii("1234", 8) == "1234    "
    assert pad_ascii(None, 8) == " " * 8
