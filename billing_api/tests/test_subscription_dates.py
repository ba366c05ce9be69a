from datetime import datetime, timezone

from billing_api.features.subscriptions.dates import (
    date_in_1_month,
    date_in_1_year,
    get_date_expires,
)


def test_month_clamps_to_end_of_month():
    now = datetime(2024, 1, 31, 12, 0, tzinfo=timezone.utc)
    assert date_in_1_month(now) == datetime(2024, 2, 29, 12, 0, tzinfo=timezone.utc)


def test_month_rolls_over_year():
    now = datetime(2023, 12, 15, tzinfo=timezone.utc)
    assert date_in_1_month(now) == datetime(2024, 1, 15, tzinfo=timezone.utc)


def test_year_from_leap_day():
    now = datetime(2024, 2, 29, tzinfo=timezone.utc)
    assert date_in_1_year(now) == datetime(2025, 2, 28, tzinfo=timezone.utc)


def test_get_date_expires_by_billing():
    now = datetime(2024, 5, 10, tzinfo=timezone.utc)
    assert get_date_expires("year", now) == datetime(2025, 5, 10, tzinfo=timezone.utc)
    assert get_date_expires("month", now) == datetime(2024, 6, 10, tzinfo=timezone.utc)
