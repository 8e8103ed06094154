# Business-day and daylight-saving rules for the clinic (America/New_York).
# Pure functions only, nothing here reads the wall clock.
from datetime import date, datetime, timedelta, timezone

# Python weekday numbers: Monday == 0 ... Sunday == 6
MONDAY, TUESDAY, WEDNESDAY, THURSDAY, FRIDAY, SATURDAY, SUNDAY = range(7)

# Open Sunday through Thursday, closed Friday and Saturday
OPEN_WEEKDAYS = frozenset({SUNDAY, MONDAY, TUESDAY, WEDNESDAY, THURSDAY})

STANDARD_OFFSET_HOURS = -5  # EST
DAYLIGHT_OFFSET_HOURS = -4  # EDT

# Local hour at which the clocks change in both directions
TRANSITION_HOUR = 2


def is_open(day: date) -> bool:
    return day.weekday() in OPEN_WEEKDAYS


def nth_weekday(year: int, month: int, weekday: int, n: int) -> date:
    """
    Date of the n-th given weekday in a month.

    Input: year, month, weekday (Monday == 0) and occurrence n >= 1.

    Returns: first matching weekday on or after the 1st, moved forward n - 1 weeks.
    """
    first = date(year, month, 1)
    days_ahead = (weekday - first.weekday()) % 7
    return first + timedelta(days=days_ahead + 7 * (n - 1))


def dst_start(year: int) -> datetime:
    """
    UTC instant daylight time begins: second Sunday of March, 02:00 local standard time.
    """
    day = nth_weekday(year, 3, SUNDAY, 2)
    return datetime(day.year, day.month, day.day, TRANSITION_HOUR, tzinfo=timezone.utc) - timedelta(hours=STANDARD_OFFSET_HOURS)


def dst_end(year: int) -> datetime:
    """
    UTC instant daylight time ends: first Sunday of November, 02:00 local daylight time.
    """
    day = nth_weekday(year, 11, SUNDAY, 1)
    return datetime(day.year, day.month, day.day, TRANSITION_HOUR, tzinfo=timezone.utc) - timedelta(hours=DAYLIGHT_OFFSET_HOURS)


def utc_offset_hours(day: date, hour: int = 12) -> int:
    """
    Offset from UTC in effect at local civil time (day, hour:00).

    The default noon reference gives the offset for the date as a whole. Passing the hour of a slot
    places the switch at the local transition instant instead of at midnight.
    """
    # Read the wall-clock time as if daylight time applied. Skipped March times and repeated November times
    # then resolve to the offset in effect before the change (zoneinfo fold=0).
    as_daylight = datetime(day.year, day.month, day.day, tzinfo=timezone.utc) + timedelta(hours=hour - DAYLIGHT_OFFSET_HOURS)
    if dst_start(day.year) <= as_daylight < dst_end(day.year):
        return DAYLIGHT_OFFSET_HOURS
    return STANDARD_OFFSET_HOURS


def local_zone(offset_hours: int) -> timezone:
    name = 'EDT' if offset_hours == DAYLIGHT_OFFSET_HOURS else 'EST'
    return timezone(timedelta(hours=offset_hours), name)


def to_utc(day: date, hour: int, minute: int = 0) -> datetime:
    """
    Convert a local civil time on *day* to an aware UTC datetime.
    """
    offset = utc_offset_hours(day, hour)
    local = datetime(day.year, day.month, day.day, hour, minute, tzinfo=local_zone(offset))
    return local.astimezone(timezone.utc)


def to_local(instant: datetime) -> datetime:
    """
    Convert an aware instant to clinic local time using the offset in effect at that instant.
    """
    instant = instant.astimezone(timezone.utc)
    if dst_start(instant.year) <= instant < dst_end(instant.year):
        return instant.astimezone(local_zone(DAYLIGHT_OFFSET_HOURS))
    return instant.astimezone(local_zone(STANDARD_OFFSET_HOURS))
