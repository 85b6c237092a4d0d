"""
Time-slot builder.

Derives the day's candidate slots from the user's three meal times. All
arithmetic happens in minutes since midnight on a single reference day:
offsets (empty stomach, bedtime) wrap around midnight, midpoints do not.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from dosewise.engine.enums import MealContext
from dosewise.engine.recurrence import DAILY, RecurrenceRule

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60

EMPTY_STOMACH_OFFSET_MINUTES = -60  # Before breakfast
BEDTIME_OFFSET_MINUTES = 120  # After dinner

_TIME_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])$")


class TimeFormatError(ValueError):
    """Raised when a required "HH:mm" value cannot be parsed."""


def parse_time(value: str) -> int:
    """Parse "HH:mm" into minutes since midnight."""
    match = _TIME_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise TimeFormatError(f"Time must be in HH:mm format, got {value!r}")
    return int(match.group(1)) * 60 + int(match.group(2))


def try_parse_time(value: Optional[str]) -> Optional[int]:
    """Lenient variant for stored values: unparseable means "no time"."""
    if value is None:
        return None
    try:
        return parse_time(value)
    except TimeFormatError:
        logger.warning(f"Ignoring unparseable slot time: {value!r}")
        return None


def format_time(minutes: int) -> str:
    minutes %= MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def normalize_time(value: str) -> str:
    """Normalize "8:05" to "08:05"; raises TimeFormatError on garbage."""
    return format_time(parse_time(value))


def add_minutes(minutes: int, delta: int) -> int:
    return (minutes + delta) % MINUTES_PER_DAY


def midpoint(start: int, end: int) -> int:
    return start + (end - start) // 2


def seconds_since_midnight(value: str) -> Optional[int]:
    minutes = try_parse_time(value)
    return None if minutes is None else minutes * 60


def time_distance_minutes(a: str, b: str) -> Optional[int]:
    """Absolute wall-clock distance between two times on the same day."""
    first, second = try_parse_time(a), try_parse_time(b)
    if first is None or second is None:
        return None
    return abs(first - second)


def display_time(value: str) -> str:
    """Render "21:00" as "9:00 PM". Unparseable values are returned as-is."""
    minutes = try_parse_time(value)
    if minutes is None:
        return value
    hour, minute = divmod(minutes, 60)
    suffix = "AM" if hour < 12 else "PM"
    return f"{(hour % 12) or 12}:{minute:02d} {suffix}"


@dataclass
class CandidateSlot:
    """A time-of-day bucket being filled by the assignment engine."""
    time: str
    context: MealContext
    supplements: List = field(default_factory=list)  # List[PlacedSupplement]
    explanation: str = ""
    recurrence: RecurrenceRule = DAILY

    @property
    def sort_key(self) -> int:
        seconds = seconds_since_midnight(self.time)
        # Unparseable times sort after every real slot
        return seconds if seconds is not None else MINUTES_PER_DAY * 60


def build_time_slots(
    breakfast_time: str,
    lunch_time: str,
    dinner_time: str,
    skip_breakfast: bool = False,
) -> List[CandidateSlot]:
    """
    Candidate slots for one day, in emission order:

    empty stomach (breakfast - 60m), with breakfast, mid-morning
    (skipped together when breakfast is skipped), with lunch,
    mid-afternoon, with dinner, bedtime (dinner + 120m).
    """
    breakfast = parse_time(breakfast_time)
    lunch = parse_time(lunch_time)
    dinner = parse_time(dinner_time)

    slots: List[CandidateSlot] = []

    if not skip_breakfast:
        slots.append(CandidateSlot(
            time=format_time(add_minutes(breakfast, EMPTY_STOMACH_OFFSET_MINUTES)),
            context=MealContext.EMPTY_STOMACH,
        ))
        slots.append(CandidateSlot(time=format_time(breakfast), context=MealContext.WITH_BREAKFAST))
        slots.append(CandidateSlot(
            time=format_time(midpoint(breakfast, lunch)),
            context=MealContext.BETWEEN_MEALS,
        ))

    slots.append(CandidateSlot(time=format_time(lunch), context=MealContext.WITH_LUNCH))
    slots.append(CandidateSlot(
        time=format_time(midpoint(lunch, dinner)),
        context=MealContext.BETWEEN_MEALS,
    ))
    slots.append(CandidateSlot(time=format_time(dinner), context=MealContext.WITH_DINNER))
    slots.append(CandidateSlot(
        time=format_time(add_minutes(dinner, BEDTIME_OFFSET_MINUTES)),
        context=MealContext.BEDTIME,
    ))

    return slots
