"""
Adherence / Streak Calculator

Pure functions over (logs, slots, supplements) relative to a given "today".
Nothing here touches storage; callers pass already-loaded collections.

A day's expected count only includes slots active that day (recurrence) and,
when supplements are known, non-archived supplements that already existed
on that day. Without supplement context the raw slot sizes are used.

Creation timestamps are stored in UTC; with a timezone they are compared
as calendar dates in that zone, the same calendar the logs are keyed by.
"""

import calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Dict, Iterable, List, Optional, Union

import pytz

MAX_LOOKBACK_DAYS = 365


class DayStatus(str, Enum):
    COMPLETE = "complete"  # All doses taken
    PARTIAL = "partial"  # Some doses taken
    MISSED = "missed"  # Nothing taken (past day)
    FUTURE = "future"  # Not trackable yet
    TODAY = "today"  # Today, still in progress


@dataclass
class DayData:
    date: date
    status: DayStatus
    taken_count: int
    total_count: int

    @property
    def day_letter(self) -> str:
        return self.date.strftime("%a")[0]

    def to_dict(self) -> Dict:
        return {
            "date": self.date.isoformat(),
            "status": self.status.value,
            "taken_count": self.taken_count,
            "total_count": self.total_count,
        }


def date_string(day: Union[date, datetime, str]) -> str:
    """Calendar key used by intake logs ("yyyy-MM-dd")."""
    if isinstance(day, str):
        return day
    if isinstance(day, datetime):
        day = day.date()
    return day.isoformat()


def local_date(moment: Optional[Union[date, datetime]], tz=None) -> Optional[date]:
    """Calendar date of a stored UTC timestamp, seen from `tz` when given."""
    if moment is None or not isinstance(moment, datetime):
        return moment
    if tz is not None:
        if moment.tzinfo is None:
            moment = pytz.utc.localize(moment)
        moment = moment.astimezone(tz)
    return moment.date()


class AdherenceCalculator:
    def __init__(self, logs: Iterable, slots: Iterable, supplements: Iterable = (), today: Optional[date] = None, tz=None):
        self.logs = list(logs)
        self.slots = list(slots)
        self.supplements = list(supplements)
        self.today = today or date.today()
        self.tz = tz

        self._slot_ids = {slot.id for slot in self.slots}
        self._active_supplements = {s.id: s for s in self.supplements if not s.is_archived}

        self._taken_by_date: Dict[str, int] = {}
        for log in self.logs:
            if log.schedule_slot_id in self._slot_ids:
                key = log.date
                self._taken_by_date[key] = self._taken_by_date.get(key, 0) + len(log.supplement_ids_taken or [])

    def _counts_on(self, supplement_id: str, day: date) -> bool:
        supplement = self._active_supplements.get(supplement_id)
        if supplement is None:
            return False
        created = local_date(getattr(supplement, "created_at", None), self.tz)
        return created is None or created <= day

    def active_supplement_count_on(self, day: date) -> int:
        total = 0
        for slot in self.slots:
            if not slot.supplement_ids or not slot.recurrence.is_active_on(day):
                continue
            if not self.supplements:
                total += len(slot.supplement_ids)
            else:
                total += sum(1 for sid in slot.supplement_ids if self._counts_on(sid, day))
        return total

    def taken_count_on(self, day: date) -> int:
        return self._taken_by_date.get(date_string(day), 0)

    def is_day_complete(self, day: date) -> bool:
        active = self.active_supplement_count_on(day)
        return active > 0 and self.taken_count_on(day) >= active

    def calculate_streak(self) -> int:
        """
        Consecutive complete days ending yesterday, plus today if already
        complete. Days with nothing scheduled are skipped, not breaks.
        """
        streak = 1 if self.is_day_complete(self.today) else 0
        check = self.today - timedelta(days=1)

        while (self.today - check).days <= MAX_LOOKBACK_DAYS:
            active = self.active_supplement_count_on(check)
            if active == 0:
                check -= timedelta(days=1)
                continue
            if self.taken_count_on(check) >= active:
                streak += 1
                check -= timedelta(days=1)
                continue
            break

        return streak

    def _day_data(self, day: date) -> DayData:
        return DayData(
            date=day,
            status=DayStatus.MISSED,
            taken_count=self.taken_count_on(day),
            total_count=self.active_supplement_count_on(day),
        )

    def _past_or_today_status(self, data: DayData) -> DayStatus:
        taken, total = data.taken_count, data.total_count
        if data.date == self.today:
            return DayStatus.COMPLETE if total > 0 and taken >= total else DayStatus.TODAY
        if total == 0:
            return DayStatus.MISSED
        if taken >= total:
            return DayStatus.COMPLETE
        if taken > 0:
            return DayStatus.PARTIAL
        return DayStatus.MISSED

    def seven_day_history(self) -> List[DayData]:
        """Six days ago through today, oldest first."""
        days = []
        for days_ago in range(6, -1, -1):
            data = self._day_data(self.today - timedelta(days=days_ago))
            data.status = self._past_or_today_status(data)
            days.append(data)
        return days

    def month_history(self, year: int, month: int, tracking_start: Optional[Union[date, datetime]] = None) -> List[DayData]:
        """Every day of the month; days after today or before tracking started are FUTURE."""
        tracking_start = local_date(tracking_start, self.tz)

        _, days_in_month = calendar.monthrange(year, month)
        days = []
        for day_number in range(1, days_in_month + 1):
            data = self._day_data(date(year, month, day_number))
            if tracking_start is not None and data.date < tracking_start:
                data.status = DayStatus.FUTURE
            elif data.date > self.today:
                data.status = DayStatus.FUTURE
            else:
                data.status = self._past_or_today_status(data)
            days.append(data)
        return days
