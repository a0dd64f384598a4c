"""Time interval helpers.

All comparisons happen on UTC instants. Business hours are wall-clock hours in
a named time zone and are converted to UTC before they leave this module.
"""

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import List, Optional, Tuple, Union
from zoneinfo import ZoneInfo

from .errors import InvalidRequestError

TimeZoneLike = Union[str, tzinfo, None]
Window = Tuple[datetime, datetime]


def utc_now() -> datetime:
    """Get current time in UTC."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure datetime is UTC timezone-aware.

    Naive datetimes are assumed to already be in UTC (this is what SQLite
    hands back). Aware datetimes in another zone are converted.

    Args:
        dt: The datetime to convert

    Returns:
        UTC timezone-aware datetime
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    if dt.tzinfo != timezone.utc:
        return dt.astimezone(timezone.utc)

    return dt


def get_zone(tz: TimeZoneLike) -> tzinfo:
    """Resolve an IANA name or tzinfo to a tzinfo, defaulting to UTC."""
    if tz is None:
        return timezone.utc
    if isinstance(tz, str):
        if tz.upper() == "UTC":
            return timezone.utc
        return ZoneInfo(tz)
    return tz


def localize(dt: datetime, tz: TimeZoneLike) -> datetime:
    """Attach ``tz`` to a naive datetime, or convert an aware one to ``tz``."""
    zone = get_zone(tz)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=zone)
    return dt.astimezone(zone)


def local_date(dt: datetime, tz: TimeZoneLike) -> date:
    """Calendar date of an instant as seen in ``tz``."""
    return ensure_utc(dt).astimezone(get_zone(tz)).date()


def overlaps(
    start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime
) -> bool:
    """Strict interval overlap. Back-to-back intervals do not overlap."""
    start_a, end_a = ensure_utc(start_a), ensure_utc(end_a)
    start_b, end_b = ensure_utc(start_b), ensure_utc(end_b)
    return start_a < end_b and start_b < end_a


def overlap_minutes(
    start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime
) -> float:
    """Length of the shared part of two intervals in minutes (0 if disjoint)."""
    latest_start = max(ensure_utc(start_a), ensure_utc(start_b))
    earliest_end = min(ensure_utc(end_a), ensure_utc(end_b))
    if latest_start >= earliest_end:
        return 0.0
    return (earliest_end - latest_start).total_seconds() / 60


def _wall_clock(day: date, hour: int, zone: tzinfo) -> datetime:
    # hour may be 24 to mean the end of the day
    return datetime.combine(day, time(0), tzinfo=zone) + timedelta(hours=hour)


def _check_hours(start_hour: int, end_hour: int) -> None:
    if not 0 <= start_hour < end_hour <= 24:
        raise InvalidRequestError(
            f"Invalid business hours: {start_hour}:00-{end_hour}:00"
        )


def business_window(
    day: date, start_hour: int = 9, end_hour: int = 18, tz: TimeZoneLike = None
) -> Window:
    """Business hours of ``day`` in ``tz``, returned as UTC instants."""
    _check_hours(start_hour, end_hour)
    zone = get_zone(tz)
    return (
        ensure_utc(_wall_clock(day, start_hour, zone)),
        ensure_utc(_wall_clock(day, end_hour, zone)),
    )


def generate_hourly_slots(
    day: date,
    start_hour: int,
    end_hour: int,
    duration_minutes: int,
    tz: TimeZoneLike = None,
) -> List[Window]:
    """Duration-sized slots starting on every hour boundary in the window.

    Slots start at ``start_hour``, ``start_hour + 1`` ... ``end_hour - 1``. A slot
    that would run past ``end_hour`` is dropped, so every slot ends inside the
    window. Slots longer than an hour overlap their neighbours.
    """
    _check_hours(start_hour, end_hour)
    if duration_minutes <= 0:
        raise InvalidRequestError("Duration must be positive")

    zone = get_zone(tz)
    window_end = _wall_clock(day, end_hour, zone)
    duration = timedelta(minutes=duration_minutes)

    slots = []
    for hour in range(start_hour, end_hour):
        start = _wall_clock(day, hour, zone)
        if start + duration > window_end:
            break
        slots.append((ensure_utc(start), ensure_utc(start + duration)))
    return slots


def shift_days(dt: datetime, days: int, tz: TimeZoneLike = None) -> datetime:
    """Move an instant by whole days keeping its wall-clock time in ``tz``."""
    zone = get_zone(tz)
    local = ensure_utc(dt).astimezone(zone).replace(tzinfo=None)
    return ensure_utc((local + timedelta(days=days)).replace(tzinfo=zone))


def is_business_day(day: date) -> bool:
    """Monday to Friday."""
    return day.weekday() < 5


def next_business_day(day: date) -> date:
    """First business day strictly after ``day``."""
    candidate = day + timedelta(days=1)
    while not is_business_day(candidate):
        candidate += timedelta(days=1)
    return candidate


def format_duration(minutes: int) -> str:
    """Format a duration in minutes as a human-readable string."""
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes != 1 else ''}"

    hours, remaining = divmod(minutes, 60)
    if remaining == 0:
        return f"{hours} hour{'s' if hours != 1 else ''}"
    return f"{hours}h {remaining}m"


def describe_window(start: datetime, end: datetime, tz: TimeZoneLike = None) -> str:
    """Human-readable window, e.g. ``Mon 03 Mar 2025 14:00 - 15:00 UTC``."""
    zone = get_zone(tz)
    local_start = ensure_utc(start).astimezone(zone)
    local_end = ensure_utc(end).astimezone(zone)
    if local_start.date() == local_end.date():
        end_text = local_end.strftime("%H:%M")
    else:
        end_text = local_end.strftime("%a %d %b %Y %H:%M")
    return f"{local_start.strftime('%a %d %b %Y %H:%M')} - {end_text} {local_end.tzname()}"
