"""Date validity checks for fare rows."""

from datetime import date, datetime
from typing import Optional, Union

DateLike = Union[date, datetime, str, None]


def as_date(value: DateLike = None) -> date:
    """
    Normalize a caller-supplied date.

    Accepts a date, a datetime (its calendar day is used), an ISO string
    (``YYYY-MM-DD`` or a full ISO timestamp) or None, which means today.
    """
    if value is None:
        return date.today()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = value.strip()
    if len(text) > 10:
        return datetime.fromisoformat(text).date()
    return date.fromisoformat(text)


def is_valid_on(rate, on: DateLike = None) -> bool:
    """True when the rate is available and ``on`` falls inside its window.

    Works on anything exposing ``available``, ``valid_from`` and ``valid_to``;
    a missing bound is open on that side.
    """
    day = as_date(on)
    if not rate.available:
        return False
    valid_from: Optional[date] = rate.valid_from
    valid_to: Optional[date] = rate.valid_to
    if valid_from is not None and valid_from > day:
        return False
    if valid_to is not None and valid_to < day:
        return False
    return True
