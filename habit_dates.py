# habit_dates.py
import re
from datetime import date, datetime, timedelta
from typing import List, Union

DATE_KEY_FORMAT = "%Y-%m-%d"
_DATE_KEY_RE = re.compile(r"\d{4}-\d{2}-\d{2}")

DayLike = Union[str, date, datetime]


class InvalidDateKeyError(ValueError):
    """Raised when a value cannot be turned into a canonical YYYY-MM-DD day."""


def to_date(value: DayLike) -> date:
    """
    Resolve a day-like value to a local calendar day.

    - naive datetime: its own calendar day (treated as local time)
    - aware datetime: converted to local time first
    - str: must be exactly YYYY-MM-DD and a real day
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone()
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        if not _DATE_KEY_RE.fullmatch(value):
            raise InvalidDateKeyError(f"Invalid date key: {value!r}")
        try:
            return datetime.strptime(value, DATE_KEY_FORMAT).date()
        except ValueError:
            raise InvalidDateKeyError(f"Invalid date key: {value!r}") from None
    raise InvalidDateKeyError(f"Unsupported day value: {value!r}")


def to_date_key(value: DayLike) -> str:
    """Canonical DateKey for any day-like value."""
    return to_date(value).strftime(DATE_KEY_FORMAT)


def is_date_key(value) -> bool:
    try:
        return isinstance(value, str) and to_date_key(value) == value
    except InvalidDateKeyError:
        return False


def last_n_days(today: DayLike, n: int) -> List[date]:
    """The n days ending at today, oldest first."""
    end = to_date(today)
    return [end - timedelta(days=i) for i in range(n - 1, -1, -1)]
