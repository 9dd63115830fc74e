"""
Small numeric and calendar helpers shared by the calculators.
"""

import math
from datetime import date, datetime, time
from typing import Union

DateLike = Union[date, datetime]

SECONDS_PER_DAY = 24 * 60 * 60


def round_half_up(value: float, places: int = 0) -> float:
    """
    Round to ``places`` decimals with halves going toward positive infinity.

    Python's ``round`` sends ties to the even neighbour (``round(6.5) == 6``);
    scores are expected to round 6.5 up to 7, and -2.5 to -2.
    """
    factor = 10 ** places
    rounded = math.floor(value * factor + 0.5) / factor
    if places == 0:
        return int(rounded)
    return rounded


def _as_datetime(value: DateLike, reference: DateLike) -> datetime:
    if isinstance(value, datetime):
        return value
    tzinfo = reference.tzinfo if isinstance(reference, datetime) else None
    return datetime.combine(value, time.min, tzinfo=tzinfo)


def days_between(later: DateLike, earlier: DateLike) -> int:
    """
    Whole days from ``earlier`` to ``later``, rounded up.

    Either side may be a ``date`` or a ``datetime``. A bare date counts as
    midnight, in the other side's timezone when that one is aware.
    """
    if not isinstance(later, datetime) and not isinstance(earlier, datetime):
        return (later - earlier).days

    later_dt = _as_datetime(later, earlier)
    earlier_dt = _as_datetime(earlier, later)
    return math.ceil((later_dt - earlier_dt).total_seconds() / SECONDS_PER_DAY)
