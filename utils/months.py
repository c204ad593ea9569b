"""
Calendar helpers for trailing monthly series.
"""

from __future__ import annotations

import calendar
from datetime import datetime, timezone
from typing import List, Optional, Tuple


def trailing_months(count: int = 12, now: Optional[datetime] = None) -> List[Tuple[int, int]]:
    """
    Return ``count`` ``(year, month)`` pairs ending with the month of ``now``,
    oldest first.
    """
    now = now or datetime.now(timezone.utc)
    year, month = now.year, now.month
    months: List[Tuple[int, int]] = []
    for _ in range(count):
        months.append((year, month))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    months.reverse()
    return months


def month_label(month: int) -> str:
    """Short English month name: 1 → "Jan"."""
    return calendar.month_abbr[month]


def month_start(year: int, month: int) -> datetime:
    return datetime(year, month, 1, tzinfo=timezone.utc)
