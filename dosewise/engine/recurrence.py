"""
Recurrence rules for schedule slots and custom-timed supplements.

A rule is one of four variants:
- Daily: every day
- SpecificDays: a set of ISO weekdays (Monday=1 ... Sunday=7)
- EveryNDays: every `interval` days counted from `start_date`
- Weekly: a single ISO weekday

Rules are stored as explicit columns (kind, weekdays, interval, start_date,
weekday) rather than an encoded blob; see `to_columns` / `recurrence_from_columns`.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import ClassVar, Dict, FrozenSet, Iterable, Optional, Union


class RecurrenceValidationError(ValueError):
    """Raised when a recurrence rule is built from invalid parameters."""


WEEKDAY_SHORT_NAMES = {
    1: "Mon",
    2: "Tue",
    3: "Wed",
    4: "Thu",
    5: "Fri",
    6: "Sat",
    7: "Sun",
}

WEEKDAY_FULL_NAMES = {
    1: "Monday",
    2: "Tuesday",
    3: "Wednesday",
    4: "Thursday",
    5: "Friday",
    6: "Saturday",
    7: "Sunday",
}

WEEKDAYS = frozenset({1, 2, 3, 4, 5})
WEEKEND = frozenset({6, 7})


def _as_date(value: Union[date, datetime]) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def _validate_weekday(weekday: int) -> int:
    if isinstance(weekday, bool) or not isinstance(weekday, int) or weekday not in WEEKDAY_SHORT_NAMES:
        raise RecurrenceValidationError(f"Weekday must be an integer 1-7 (Monday=1), got {weekday!r}")
    return weekday


@dataclass(frozen=True)
class Daily:
    kind: ClassVar[str] = "daily"

    def is_active_on(self, day: Union[date, datetime]) -> bool:
        return True

    @property
    def display_name(self) -> str:
        return "Every day"

    def to_columns(self) -> Dict:
        return _columns(self.kind)


@dataclass(frozen=True)
class SpecificDays:
    weekdays: FrozenSet[int]
    kind: ClassVar[str] = "specific_days"

    def __post_init__(self):
        if self.weekdays is None:
            raise RecurrenceValidationError("specific_days requires at least one weekday")
        normalized = frozenset(_validate_weekday(d) for d in self.weekdays)
        if not normalized:
            raise RecurrenceValidationError("specific_days requires at least one weekday")
        object.__setattr__(self, "weekdays", normalized)

    def is_active_on(self, day: Union[date, datetime]) -> bool:
        return _as_date(day).isoweekday() in self.weekdays

    @property
    def display_name(self) -> str:
        if self.weekdays == WEEKDAYS:
            return "Weekdays"
        if self.weekdays == WEEKEND:
            return "Weekends"
        return ", ".join(WEEKDAY_SHORT_NAMES[d] for d in sorted(self.weekdays))

    def to_columns(self) -> Dict:
        return _columns(self.kind, weekdays=sorted(self.weekdays))


@dataclass(frozen=True)
class EveryNDays:
    interval: int
    start_date: date
    kind: ClassVar[str] = "every_n_days"

    def __post_init__(self):
        if isinstance(self.interval, bool) or not isinstance(self.interval, int) or self.interval < 2:
            raise RecurrenceValidationError(f"every_n_days interval must be an integer >= 2, got {self.interval!r}")
        if self.start_date is None:
            raise RecurrenceValidationError("every_n_days requires a start_date")
        object.__setattr__(self, "start_date", _as_date(self.start_date))

    def is_active_on(self, day: Union[date, datetime]) -> bool:
        days_since_start = (_as_date(day) - self.start_date).days
        return days_since_start >= 0 and days_since_start % self.interval == 0

    @property
    def display_name(self) -> str:
        return f"Every {self.interval} days"

    def to_columns(self) -> Dict:
        return _columns(self.kind, interval=self.interval, start_date=self.start_date)


@dataclass(frozen=True)
class Weekly:
    weekday: int
    kind: ClassVar[str] = "weekly"

    def __post_init__(self):
        _validate_weekday(self.weekday)

    def is_active_on(self, day: Union[date, datetime]) -> bool:
        return _as_date(day).isoweekday() == self.weekday

    @property
    def display_name(self) -> str:
        return f"Weekly on {WEEKDAY_FULL_NAMES[self.weekday]}"

    def to_columns(self) -> Dict:
        return _columns(self.kind, weekday=self.weekday)


RecurrenceRule = Union[Daily, SpecificDays, EveryNDays, Weekly]

DAILY = Daily()


def _columns(
    kind: str,
    weekdays: Optional[list] = None,
    interval: Optional[int] = None,
    start_date: Optional[date] = None,
    weekday: Optional[int] = None,
) -> Dict:
    return {
        "kind": kind,
        "weekdays": weekdays,
        "interval": interval,
        "start_date": start_date,
        "weekday": weekday,
    }


def recurrence_from_columns(
    kind: Optional[str],
    weekdays: Optional[Iterable[int]] = None,
    interval: Optional[int] = None,
    start_date: Optional[date] = None,
    weekday: Optional[int] = None,
) -> RecurrenceRule:
    """Rebuild a rule from its stored columns. A missing kind means daily."""
    if kind is None or kind == Daily.kind:
        return DAILY
    if kind == SpecificDays.kind:
        return SpecificDays(frozenset(weekdays or ()))
    if kind == EveryNDays.kind:
        return EveryNDays(interval=interval, start_date=start_date)
    if kind == Weekly.kind:
        return Weekly(weekday=weekday)
    raise RecurrenceValidationError(f"Unknown recurrence kind: {kind!r}")


EMPTY_COLUMNS = _columns(None)


def recurrence_to_dict(rule: RecurrenceRule) -> Dict:
    """JSON-friendly form of a rule, with its display name."""
    data = rule.to_columns()
    data["start_date"] = data["start_date"].isoformat() if data["start_date"] else None
    data["display_name"] = rule.display_name
    return data
