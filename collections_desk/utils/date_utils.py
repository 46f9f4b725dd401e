"""Date manipulation utilities"""

from datetime import date, datetime, time, timezone
from typing import Optional, Tuple


def calculate_dpd(due_date: date, today: Optional[date] = None) -> int:
    """Whole days elapsed since due_date, floored at zero"""
    if isinstance(due_date, datetime):
        due_date = due_date.date()
    if today is None:
        today = date.today()
    return max(0, (today - due_date).days)


def day_bounds(day: date) -> Tuple[datetime, datetime]:
    """Start and end of a calendar day in UTC"""
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    end = datetime.combine(day, time.max, tzinfo=timezone.utc)
    return start, end


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
