# Appointment slot generation for a single calendar day
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List

from . import clock_rules

# Business hours in local time: 10 AM - 6 PM
OPEN_HOUR = 10
CLOSE_HOUR = 18
SLOT_MINUTES = 20
SLOT_DURATION = timedelta(minutes=SLOT_MINUTES)


def format_instant(instant: datetime) -> str:
    """
    Serialize an aware datetime as a UTC ISO string with millisecond precision, e.g. 2024-06-10T14:00:00.000Z.

    Bookings are matched to slots by this exact string, so every slot start must go through here.
    """
    # isoformat() zero-pads years below 1000, strftime('%Y') does not on every platform
    return instant.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_instant(raw: str) -> datetime:
    # fromisoformat() only understands the 'Z' suffix from Python 3.11 onwards
    return datetime.fromisoformat(raw.replace('Z', '+00:00')).astimezone(timezone.utc)


@dataclass(frozen=True, order=True)
class Slot:
    start: datetime
    end: datetime

    def to_dict(self) -> Dict[str, str]:
        return {"start": format_instant(self.start), "end": format_instant(self.end)}

    @property
    def start_iso(self) -> str:
        return format_instant(self.start)


def generate_slots(day: date) -> List[Slot]:
    """
    Splits the business hours of a given day into consecutive 20 minute appointment slots.

    Input: calendar date in the clinic's local calendar.

    Returns: list of Slot objects in ascending start order, empty on closed days.
    """
    if not clock_rules.is_open(day):
        return []

    close_time = time(CLOSE_HOUR)
    slots = []
    for hour in range(OPEN_HOUR, CLOSE_HOUR):
        for minute in range(0, 60, SLOT_MINUTES):
            start = clock_rules.to_utc(day, hour, minute)
            end = start + SLOT_DURATION
            # Last slot of the day must not run past closing time
            local_end = clock_rules.to_local(end)
            if local_end.date() > day or local_end.time() > close_time:
                continue
            slots.append(Slot(start, end))
    return sorted(slots)
