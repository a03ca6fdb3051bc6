"""Date arithmetic and the realised/planned predicate.

All dates handled by the engine are zero-padded ``YYYY-MM-DD`` strings, so
string comparison equals chronological comparison. Helpers in this module
never raise on bad input: unparsable values yield ``None`` or ``0``.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta
from typing import Any, Optional

import pandas as pd

from .config import DEFAULT_TIMEZONE

KIND_NORMAL = 'normal'
KIND_PLANNED = 'planned'

ISO_FORMAT = '%Y-%m-%d'
_ACCEPTED_FORMATS = (ISO_FORMAT, '%m/%d/%Y')


def now(tz: str = DEFAULT_TIMEZONE) -> pd.Timestamp:
    """Current wall-clock time in ``tz``."""
    return pd.Timestamp.now(tz=tz)


def today(tz: str = DEFAULT_TIMEZONE) -> str:
    """Return the civil date in ``tz`` as ``YYYY-MM-DD``."""
    return now(tz).strftime(ISO_FORMAT)


def current_time(tz: str = DEFAULT_TIMEZONE) -> str:
    """Return the current ``HH:MM`` in ``tz``."""
    return now(tz).strftime('%H:%M')


def parse_date(value: Any) -> Optional[date]:
    """Parse a date-like value, returning ``None`` when it can't be read."""
    if value is None:
        return None
    if isinstance(value, pd.Timestamp):
        return None if pd.isna(value) else value.date()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    for fmt in _ACCEPTED_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def to_date_str(value: Any) -> Optional[str]:
    parsed = parse_date(value)
    return parsed.strftime(ISO_FORMAT) if parsed else None


def shift_days(value: Any, days: int) -> Optional[str]:
    """Move a date by ``days`` (negative moves backwards)."""
    parsed = parse_date(value)
    if parsed is None:
        return None
    return (parsed + timedelta(days=days)).strftime(ISO_FORMAT)


def calendar_days_until(end_date: Any, today_str: Any) -> Optional[int]:
    """Signed whole days from ``today_str`` to ``end_date``.

    Returns ``None`` if either side is missing or malformed.
    """
    end = parse_date(end_date)
    start = parse_date(today_str)
    if end is None or start is None:
        return None
    return (end - start).days


def days_left_for(end_date: Any, today_str: Any) -> int:
    """Inclusive number of days from today to ``end_date``.

    ``0`` when the end date is empty, malformed or already in the past.
    """
    diff = calendar_days_until(end_date, today_str)
    if diff is None:
        return 0
    return max(0, diff + 1)


def is_realised(transaction: Any, today_str: str) -> bool:
    """A transaction is realised if it's normal, or planned and already due."""
    kind = getattr(transaction, 'kind', KIND_NORMAL)
    if kind == KIND_NORMAL:
        return True
    if kind == KIND_PLANNED:
        tx_date = getattr(transaction, 'date', '') or ''
        return bool(tx_date) and tx_date <= today_str
    return False


def week_start(value: Any) -> Optional[str]:
    """Monday of the ISO week containing ``value``."""
    parsed = parse_date(value)
    if parsed is None:
        return None
    return (parsed - timedelta(days=parsed.weekday())).strftime(ISO_FORMAT)


def month_start(value: Any) -> Optional[str]:
    parsed = parse_date(value)
    if parsed is None:
        return None
    return parsed.replace(day=1).strftime(ISO_FORMAT)


def month_end(value: Any) -> Optional[str]:
    parsed = parse_date(value)
    if parsed is None:
        return None
    return parsed.replace(day=days_in_month(parsed)).strftime(ISO_FORMAT)


def days_in_month(value: Any) -> int:
    parsed = parse_date(value)
    if parsed is None:
        return 0
    return calendar.monthrange(parsed.year, parsed.month)[1]


def add_months(value: Any, months: int) -> Optional[str]:
    """First day of the month ``months`` away from the month of ``value``."""
    parsed = parse_date(value)
    if parsed is None:
        return None
    index = parsed.year * 12 + (parsed.month - 1) + months
    return date(index // 12, index % 12 + 1, 1).strftime(ISO_FORMAT)
