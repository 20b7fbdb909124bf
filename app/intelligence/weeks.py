"""ISO 8601 week helpers for weekly incident windows."""

from datetime import date, datetime, time, timedelta
from typing import Tuple, Union

DateLike = Union[date, datetime]


def _as_date(value: DateLike) -> date:
    return value.date() if isinstance(value, datetime) else value


def week_number(value: DateLike) -> int:
    """ISO week number (1..53) of the date."""
    return _as_date(value).isocalendar()[1]


def week_year(value: DateLike) -> int:
    """ISO week-year of the date; pairs with week_number for monday_of."""
    return _as_date(value).isocalendar()[0]


def week_bounds(value: DateLike) -> Tuple[date, date]:
    """Monday and Sunday of the ISO week containing the date."""
    day = _as_date(value)
    monday = day - timedelta(days=day.weekday())
    return monday, monday + timedelta(days=6)


def week_bounds_datetime(value: DateLike) -> Tuple[datetime, datetime]:
    """Week bounds as Monday 00:00:00 and Sunday 23:59:59.999999."""
    monday, sunday = week_bounds(value)
    return datetime.combine(monday, time.min), datetime.combine(sunday, time.max)


def monday_of(year: int, week: int) -> date:
    """Monday of ISO week ``week`` in ISO year ``year``."""
    return date.fromisocalendar(year, week, 1)


def previous_week(today: DateLike) -> Tuple[date, date]:
    """Bounds of the last complete ISO week before ``today``."""
    monday, _ = week_bounds(today)
    return week_bounds(monday - timedelta(days=7))
