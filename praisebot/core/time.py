"""Business-timezone utilities.

All "day" bucketing happens in one fixed UTC offset with no DST. Stored
instants are always UTC; the offset only decides which local calendar
date an instant belongs to.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple, Union

from praisebot.core.settings import get_settings

DateLike = Union[date, datetime]


def business_timezone(offset_hours: Optional[int] = None) -> timezone:
    """Fixed-offset business timezone (UTC+9 unless configured)."""
    if offset_hours is None:
        offset_hours = get_settings().business_utc_offset_hours
    return timezone(timedelta(hours=offset_hours))


def as_utc(dt: datetime) -> datetime:
    """Normalize a datetime to aware UTC; naive values are taken as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def localize(dt: datetime, offset_hours: Optional[int] = None) -> datetime:
    """Attach the business zone to a naive wall-clock time; aware values pass through."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=business_timezone(offset_hours))
    return dt


def to_business_time(dt: datetime, offset_hours: Optional[int] = None) -> datetime:
    """Convert an instant to business local time."""
    return as_utc(dt).astimezone(business_timezone(offset_hours))


def business_date(dt: datetime, offset_hours: Optional[int] = None) -> date:
    """Local calendar date an instant falls on."""
    return to_business_time(dt, offset_hours).date()


def business_day_bounds(day: date, offset_hours: Optional[int] = None) -> Tuple[datetime, datetime]:
    """
    UTC bounds of one local calendar day.

    Returns (start, end) where start is local midnight (inclusive) and end
    is the next local midnight (exclusive), both as aware UTC datetimes.
    """
    tz = business_timezone(offset_hours)
    start_local = datetime.combine(day, time.min, tzinfo=tz)
    end_local = start_local + timedelta(days=1)
    return start_local.astimezone(timezone.utc), end_local.astimezone(timezone.utc)


def date_key(day: date) -> str:
    """Canonical date string for hashing, e.g. 2024/6/10 (no zero padding)."""
    return f"{day.year}/{day.month}/{day.day}"


def week_range(reference: DateLike, offset_hours: Optional[int] = None) -> Tuple[datetime, datetime]:
    """
    Monday-to-Sunday week containing the reference date.

    Datetimes are first mapped to their business-local date. Returns aware
    business-local datetimes: Monday 00:00:00.000 and Sunday 23:59:59.999.
    """
    if isinstance(reference, datetime):
        day = business_date(reference, offset_hours)
    else:
        day = reference

    tz = business_timezone(offset_hours)
    monday = day - timedelta(days=day.weekday())
    start = datetime.combine(monday, time.min, tzinfo=tz)
    end = datetime.combine(monday + timedelta(days=6), time(23, 59, 59, 999000), tzinfo=tz)
    return start, end


def previous_week_range(reference: DateLike, offset_hours: Optional[int] = None) -> Tuple[datetime, datetime]:
    """Week window seven days before the one containing reference."""
    if isinstance(reference, datetime):
        reference = business_date(reference, offset_hours)
    return week_range(reference - timedelta(days=7), offset_hours)


def utc_now() -> datetime:
    """Get current time in UTC."""
    return datetime.now(timezone.utc)
