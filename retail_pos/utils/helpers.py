# utils/helpers.py
from datetime import date, datetime, time
from typing import Optional

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def now_str(now: Optional[datetime] = None) -> str:
    """Timestamp string as stored in TIMESTAMP columns (seconds precision)."""
    return (now or datetime.now()).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value, *, end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse a stored DATE/TIMESTAMP value into a datetime.

    Date-only values map to midnight, or to 23:59:59.999999 when
    `end_of_day` is set (inclusive range ends such as discount end dates).
    Returns None for NULL/empty input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.max if end_of_day else time.min)
    text = str(value).strip()
    if len(text) == 10:
        d = date.fromisoformat(text)
        return datetime.combine(d, time.max if end_of_day else time.min)
    return datetime.fromisoformat(text)


def parse_date(value) -> Optional[date]:
    """Parse a stored DATE (or TIMESTAMP) value into a date."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])
