"""Month helpers. A month is always a "YYYY-MM" string."""

import calendar
import datetime as dt
from typing import Optional


def current_month(today: Optional[dt.date] = None) -> str:
    """Get the current calendar month as YYYY-MM."""
    today = today or dt.date.today()
    return month_of(today)


def month_of(day: dt.date) -> str:
    return day.strftime("%Y-%m")


def month_bounds(month: str) -> tuple[dt.date, dt.date]:
    """
    Get the first and last day of a YYYY-MM month.

    The month string is assumed to be well formed (see validate_month).
    """
    year, month_num = (int(part) for part in month.split("-"))
    last_day = calendar.monthrange(year, month_num)[1]
    return dt.date(year, month_num, 1), dt.date(year, month_num, last_day)
