# dept_scheduler/services/intervals.py
"""
Time-range overlap used by room bookings, event edits and business-trip checks.
"""

from datetime import datetime
from typing import Optional

from dept_scheduler.utils.dates import to_naive_utc


def overlaps(
    a_start: datetime,
    a_end: Optional[datetime],
    b_start: datetime,
    b_end: Optional[datetime],
) -> bool:
    """Return True when two closed-open ranges ``[start, end)`` intersect.

    A range without an end (or with ``end == start``) is a zero-width
    instant. An instant overlaps a range that contains it
    (``start <= instant < end``) and another instant only when equal.
    The predicate is symmetric. Offset-aware values are compared in UTC.
    """
    a_start, a_end, b_start, b_end = (to_naive_utc(v) for v in (a_start, a_end, b_start, b_end))
    if a_end is None:
        a_end = a_start
    if b_end is None:
        b_end = b_start

    a_instant = a_start >= a_end
    b_instant = b_start >= b_end

    if a_instant and b_instant:
        return a_start == b_start
    if a_instant:
        return b_start <= a_start < b_end
    if b_instant:
        return a_start <= b_start < a_end
    return a_start < b_end and b_start < a_end
