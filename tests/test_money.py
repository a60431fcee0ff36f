import math

from money import format_money, sum_amounts, validate_amount


def test_validate_amount_clamps_to_limits() -> None:
    assert validate_amount(1e9) == 100_000
    assert validate_amount(-1e9) == -100_000
    assert validate_amount(250.5) == 250.5


def test_validate_amount_rejects_non_numbers() -> None:
    assert validate_amount(math.nan) == 0
    assert validate_amount(math.inf) == 0
    assert validate_amount(-math.inf) == 0
    assert validate_amount("12") == 0
    assert validate_amount(None) == 0
    assert validate_amount(True) == 0


def test_sum_amounts_skips_invalid_values() -> None:
    assert sum_amounts([10, math.nan, 5.5, "x"]) == 15.5
    assert sum_amounts([80_000, 80_000]) == 100_000


def test_format_money() -> None:
    assert format_money(1234.5) == "$1,234.50"
