# dept_scheduler/utils/dates.py
"""
Timestamps are stored as naive UTC.

Clients may send offset-aware values (``2026-03-02T10:00:00Z``,
``...+07:00``); they are converted once on the way in so every comparison
with stored rows is between naive UTC datetimes.
"""

from datetime import datetime, timezone
from typing import Annotated, Optional

from pydantic import AfterValidator


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


# Request field type: accepts naive or aware input, yields naive UTC
UtcDateTime = Annotated[datetime, AfterValidator(to_naive_utc)]
