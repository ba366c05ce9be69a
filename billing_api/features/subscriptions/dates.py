"""Expiry date policy shared by create, update and renewal."""
import calendar
from datetime import datetime, timezone
from typing import Optional

BILLING_INTERVALS = ("month", "year")


def _add_months(base: datetime, months: int) -> datetime:
    month_index = base.month - 1 + months
    year = base.year + (month_index // 12)
    month = month_index % 12 + 1
    day = min(base.day, calendar.monthrange(year, month)[1])
    return base.replace(year=year, month=month, day=day)


def date_in_1_month(now: Optional[datetime] = None) -> datetime:
    return _add_months(now or datetime.now(timezone.utc), 1)


def date_in_1_year(now: Optional[datetime] = None) -> datetime:
    return _add_months(now or datetime.now(timezone.utc), 12)


def get_date_expires(billing: Optional[str], now: Optional[datetime] = None) -> datetime:
    """'year' renews a year out; anything else (the 'month' default) a month out."""
    if billing == "year":
        return date_in_1_year(now)
    return date_in_1_month(now)
