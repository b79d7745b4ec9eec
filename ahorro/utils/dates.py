"""
Calendar helpers.

Every datetime that enters the domain is made timezone-aware, so receipts
captured with and without offsets can still be compared and sorted.
Naive values are read as local wall-clock time.
"""

import calendar
from datetime import datetime, timedelta, timezone


def now_local() -> datetime:
    """Current instant as an aware datetime in the local timezone."""
    return datetime.now().astimezone()


def ensure_aware(moment: datetime) -> datetime:
    """Attach the local timezone to a naive datetime; aware ones pass through."""
    if moment.tzinfo is None or moment.tzinfo.utcoffset(moment) is None:
        return moment.astimezone()
    return moment


def in_timezone_of(moment: datetime, reference: datetime) -> datetime:
    """Express ``moment`` on the wall clock of ``reference``."""
    return ensure_aware(moment).astimezone(ensure_aware(reference).tzinfo)


def start_of_month(reference: datetime) -> datetime:
    """Midnight of the first day of ``reference``'s month, same timezone."""
    reference = ensure_aware(reference)
    return reference.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _follows_local_rules(reference: datetime) -> bool:
    """
    True when ``reference`` carries the machine's current local offset.

    ``now_local()`` and ``ensure_aware()`` produce fixed-offset datetimes.
    For those, other months are resolved with the system's local rules so
    a DST change between the reference and the month is honoured.
    """
    return (
        isinstance(reference.tzinfo, timezone)
        and reference.utcoffset() == reference.astimezone().utcoffset()
    )


def month_bounds(year: int, month: int, reference: datetime) -> tuple[datetime, datetime]:
    """
    First and last instant of a calendar month.

    The bounds follow ``reference``'s timezone. Named zones (``zoneinfo``)
    and local-time references get the offset in force during that month;
    any other fixed offset is used as is. The end is the last microsecond
    of the last day, so the whole final day is covered.
    """
    reference = ensure_aware(reference)
    days_in_month = calendar.monthrange(year, month)[1]
    last_instant = timedelta(days=days_in_month) - timedelta(microseconds=1)

    if _follows_local_rules(reference):
        start = datetime(year, month, 1)
        return start.astimezone(), (start + last_instant).astimezone()

    start = datetime(year, month, 1, tzinfo=reference.tzinfo)
    return start, start + last_instant
