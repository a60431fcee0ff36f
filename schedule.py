import logging
from datetime import date, datetime, timedelta
from itertools import islice
from typing import Iterator, Optional, Union
from zoneinfo import ZoneInfo

from config import get_settings
from models import PaycheckFrequency

logger = logging.getLogger(__name__)

PAYCHECKS_PER_YEAR = {
    PaycheckFrequency.weekly: 52,
    PaycheckFrequency.biweekly: 26,
    PaycheckFrequency.semimonthly: 24,
    PaycheckFrequency.monthly: 12,
}

PAYCHECKS_PER_MONTH = {
    PaycheckFrequency.weekly: 4.33,
    PaycheckFrequency.biweekly: 2.17,
    PaycheckFrequency.semimonthly: 2.0,
    PaycheckFrequency.monthly: 1.0,
}


def local_now() -> datetime:
    settings = get_settings()
    return datetime.now(ZoneInfo(settings.timezone))


def local_today() -> date:
    return local_now().date()


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def add_months(base: date, months: int, *, desired_day: int) -> date:
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    return date(year, month, min(desired_day, days_in_month(year, month)))


def parse_start_date(value: Union[str, date, None], today: Optional[date] = None) -> date:
    """Anchor date of a schedule; anything unparseable anchors on today."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).strip()).date()
    except (TypeError, ValueError):
        fallback = today or local_today()
        logger.warning(f"paycheck_start_unparseable: value={value!r} anchor={fallback}")
        return fallback


def paychecks_per_year(frequency: Union[PaycheckFrequency, str]) -> int:
    try:
        return PAYCHECKS_PER_YEAR[PaycheckFrequency(frequency)]
    except ValueError:
        return PAYCHECKS_PER_YEAR[PaycheckFrequency.biweekly]


def calculate_next_paycheck_date(
    frequency: Union[PaycheckFrequency, str], from_date: date, anchor: date
) -> date:
    """Date of the paycheck following ``from_date``.

    Monthly schedules keep the anchor's day of month and snap to the month end
    when that day does not exist, so a 31st anchor does not drift.
    """
    if frequency == PaycheckFrequency.weekly:
        return from_date + timedelta(days=7)
    if frequency == PaycheckFrequency.semimonthly:
        if from_date.day < 15:
            return from_date.replace(day=15)
        return add_months(from_date, 1, desired_day=1)
    if frequency == PaycheckFrequency.monthly:
        months = (from_date.year - anchor.year) * 12 + from_date.month - anchor.month
        return add_months(anchor, months + 1, desired_day=anchor.day)
    return from_date + timedelta(days=14)


def iter_paycheck_dates(
    start: Union[str, date, None],
    frequency: Union[PaycheckFrequency, str],
    *,
    today: Optional[date] = None,
) -> Iterator[date]:
    """Endless, lazily computed paycheck dates beginning at ``start``.

    Each call starts over from the anchor, so the sequence can be re-read
    any number of times.
    """
    anchor = parse_start_date(start, today)
    current = anchor
    while True:
        yield current
        current = calculate_next_paycheck_date(frequency, current, anchor)


def paycheck_dates(
    start: Union[str, date, None],
    frequency: Union[PaycheckFrequency, str],
    number_of_dates: int,
    *,
    today: Optional[date] = None,
) -> list[date]:
    if number_of_dates <= 0:
        return []
    return list(
        islice(iter_paycheck_dates(start, frequency, today=today), number_of_dates)
    )
