# Date and time utilities
import re
from typing import Optional, Union
from datetime import date, datetime, timedelta, timezone

DISPLAY_DATE_RE = re.compile(r"^\d{2}/\d{2}/\d{4}$")

DateLike = Union[date, datetime, str, None]


def _utc_midnight(year: int, month: int, day: int) -> datetime:
    return datetime(year, month, day, tzinfo=timezone.utc)


def parse_date(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a "dd/mm/yyyy" string, falling back to ISO / "yyyy-mm-dd".

    Args:
        value: Date string as stored in the sheet or sent by a form

    Returns:
        UTC midnight datetime, or None if the string is not a real calendar date
    """
    if not value:
        return None

    if DISPLAY_DATE_RE.match(value):
        day, month, year = (int(part) for part in value.split("/"))
        try:
            return _utc_midnight(year, month, day)
        except ValueError:
            pass

    try:
        dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return _utc_midnight(dt.year, dt.month, dt.day)


def format_display(value: DateLike) -> str:
    """Render a date as "dd/mm/yyyy"; unparseable strings come back unchanged."""
    parsed = parse_date(value) if isinstance(value, str) else value
    if parsed is None:
        return value
    return f"{parsed.day:02d}/{parsed.month:02d}/{parsed.year}"


def to_input_format(display_date: str) -> str:
    """
    Reshape "dd/mm/yyyy" into "yyyy-mm-dd" for date input fields.
    """
    if not display_date:
        return ""
    parts = display_date.split("/")
    if len(parts) != 3:
        return ""
    return f"{parts[2]}-{parts[1]}-{parts[0]}"


def to_api_format(input_date: str) -> str:
    """
    Reshape "yyyy-mm-dd" (date input) into "dd/mm/yyyy" for the sheet API.
    """
    if not input_date:
        return ""
    parts = input_date.split("-")
    if len(parts) != 3:
        return ""
    return f"{parts[2]}/{parts[1]}/{parts[0]}"


def _as_date(value: DateLike) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    parsed = parse_date(value)
    return parsed.date() if parsed else None


def business_days(start: DateLike, end: DateLike) -> int:
    """
    Count Monday-Friday days in the inclusive range [start, end].

    Returns 0 when either bound is missing or invalid, or when end < start.
    """
    first = _as_date(start)
    last = _as_date(end)
    if first is None or last is None or last < first:
        return 0

    count = 0
    current = first
    while current <= last:
        if current.weekday() < 5:
            count += 1
        current += timedelta(days=1)
    return count


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """Current UTC time as "YYYY-MM-DDTHH:MM:SS.mmmZ"."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def timestamp_sort_key(value: Optional[str]) -> float:
    """Sort key for ISO timestamps; missing or invalid values sort oldest."""
    if not value:
        return float("-inf")
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return float("-inf")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()
