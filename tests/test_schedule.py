from datetime import date
from itertools import islice

from schedule import (
    add_months,
    calculate_next_paycheck_date,
    iter_paycheck_dates,
    paycheck_dates,
    paychecks_per_year,
)


def test_weekly_and_biweekly_steps() -> None:
    assert paycheck_dates("2025-01-03", "weekly", 3) == [
        date(2025, 1, 3),
        date(2025, 1, 10),
        date(2025, 1, 17),
    ]
    assert paycheck_dates("2025-01-03", "biweekly", 3) == [
        date(2025, 1, 3),
        date(2025, 1, 17),
        date(2025, 1, 31),
    ]


def test_semimonthly_pays_on_fifteenth_and_first() -> None:
    assert paycheck_dates("2025-01-10", "semimonthly", 5) == [
        date(2025, 1, 10),
        date(2025, 1, 15),
        date(2025, 2, 1),
        date(2025, 2, 15),
        date(2025, 3, 1),
    ]
    assert calculate_next_paycheck_date(
        "semimonthly", date(2025, 12, 20), date(2025, 12, 20)
    ) == date(2026, 1, 1)


def test_monthly_snaps_to_month_end_without_drifting() -> None:
    assert paycheck_dates("2025-01-31", "monthly", 4) == [
        date(2025, 1, 31),
        date(2025, 2, 28),
        date(2025, 3, 31),
        date(2025, 4, 30),
    ]


def test_unknown_frequency_is_treated_as_biweekly() -> None:
    anchor = date(2025, 1, 3)
    assert calculate_next_paycheck_date("fortnightly", anchor, anchor) == date(2025, 1, 17)
    assert paychecks_per_year("fortnightly") == 26
    assert paychecks_per_year("weekly") == 52


def test_unparseable_start_anchors_on_today() -> None:
    today = date(2025, 5, 5)
    assert paycheck_dates("not-a-date", "weekly", 2, today=today) == [
        date(2025, 5, 5),
        date(2025, 5, 12),
    ]
    assert paycheck_dates(None, "weekly", 1, today=today) == [today]


def test_sequence_is_lazy_and_restartable() -> None:
    first = list(islice(iter_paycheck_dates("2025-01-03", "weekly"), 500))
    second = list(islice(iter_paycheck_dates("2025-01-03", "weekly"), 500))

    assert first == second
    assert len(first) == 500
    assert paycheck_dates("2025-01-03", "weekly", 0) == []


def test_add_months_clamps_day() -> None:
    assert add_months(date(2024, 1, 31), 1, desired_day=31) == date(2024, 2, 29)
    assert add_months(date(2024, 11, 15), 3, desired_day=15) == date(2025, 2, 15)
