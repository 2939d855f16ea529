# Team absence calendar data
import calendar
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Tuple

from utils.date_utils import format_display, parse_date
from utils.models import CalendarEvent, VacationRequest


def calendar_events(requests: Iterable[VacationRequest]) -> List[CalendarEvent]:
    """Approved and modified requests whose dates parse, one event per request."""
    events = []
    for r in requests:
        if not r.counts_against_balance:
            continue
        start, end = parse_date(r.start_date), parse_date(r.end_date)
        if start is None or end is None:
            continue
        events.append(CalendarEvent(
            start=format_display(start),
            end=format_display(end),
            title=r.user_name,
            type=r.type,
        ))
    return events


def events_by_day(events: Iterable[CalendarEvent], year: int, month: int) -> Dict[int, List[CalendarEvent]]:
    """
    Bucket events by day of month.

    Ranges are inclusive and clipped to the month; days without events are
    left out.
    """
    days_in_month = calendar.monthrange(year, month)[1]
    first = datetime(year, month, 1, tzinfo=timezone.utc)
    last = first + timedelta(days=days_in_month - 1)

    buckets: Dict[int, List[CalendarEvent]] = {}
    for event in events:
        start, end = parse_date(event.start), parse_date(event.end)
        current = max(start, first)
        stop = min(end, last)
        while current <= stop:
            buckets.setdefault(current.day, []).append(event)
            current += timedelta(days=1)
    return dict(sorted(buckets.items()))


def shift_month(year: int, month: int, offset: int) -> Tuple[int, int]:
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1
