# tests/test_habit_dates.py
from datetime import date, datetime, timedelta, timezone

import pytest

from habit_dates import InvalidDateKeyError, is_date_key, last_n_days, to_date, to_date_key


def test_keys_from_dates_and_naive_datetimes():
    assert to_date_key(date(2025, 1, 5)) == "2025-01-05"
    # late evening stays on its own local day
    assert to_date_key(datetime(2025, 1, 5, 23, 30)) == "2025-01-05"
    assert to_date_key("2025-01-05") == "2025-01-05"


def test_aware_datetimes_use_the_local_day():
    moment = datetime(2025, 1, 5, 12, 0, tzinfo=timezone(timedelta(hours=-11)))
    assert to_date_key(moment) == moment.astimezone().strftime("%Y-%m-%d")


@pytest.mark.parametrize("bad", ["2025-1-5", "2025-02-29", "20250105", "2025-01-05 ", "", 20250105, None])
def test_non_canonical_values_are_rejected(bad):
    with pytest.raises(InvalidDateKeyError):
        to_date(bad)
    assert is_date_key(bad) is False


def test_last_n_days_is_oldest_first():
    days = last_n_days("2025-03-01", 3)
    assert days == [date(2025, 2, 27), date(2025, 2, 28), date(2025, 3, 1)]
    assert last_n_days(date(2025, 3, 1), 0) == []
