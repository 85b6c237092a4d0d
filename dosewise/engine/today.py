"""
Today-view derivations: per-slot status, completion stats, next dose.

`now` is the user's local wall-clock time as a naive datetime; slot times
are interpreted on `now`'s date.
"""

from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from dosewise.engine.adherence import date_string
from dosewise.engine.time_slots import try_parse_time


class SlotStatus(str, Enum):
    UPCOMING = "upcoming"
    TAKEN = "taken"
    PARTIAL = "partial"  # Some supplements marked, not all
    SKIPPED = "skipped"
    MISSED = "missed"

    @property
    def display_text(self) -> str:
        return self.value.upper()


def find_log(logs: Iterable, slot_id: str, day) -> Optional[object]:
    key = date_string(day)
    return next((log for log in logs if log.schedule_slot_id == slot_id and log.date == key), None)


def slot_datetime(slot, now: datetime) -> Optional[datetime]:
    minutes = try_parse_time(slot.time)
    if minutes is None:
        return None
    return now.replace(hour=minutes // 60, minute=minutes % 60, second=0, microsecond=0)


def slot_status(slot, logs: Iterable, now: datetime, supplement_ids: Optional[Iterable[str]] = None) -> SlotStatus:
    """
    Status of `slot` today.

    `supplement_ids` narrows the slot to the supplements actually shown
    (e.g. without archived ones); defaults to the slot's own list.
    """
    expected = set(slot.supplement_ids if supplement_ids is None else supplement_ids)
    log = find_log(logs, slot.id, now)

    if log is not None:
        taken = set(log.supplement_ids_taken or [])
        skipped = set(log.supplement_ids_skipped or [])

        if expected:
            if taken >= expected:
                return SlotStatus.TAKEN
            if skipped >= expected:
                return SlotStatus.SKIPPED
            # A mix of taken and skipped still counts as done
            if (taken | skipped) >= expected:
                return SlotStatus.TAKEN

        if taken & expected or skipped & expected:
            return SlotStatus.PARTIAL

        if log.rescheduled_time is not None and log.rescheduled_time > now:
            return SlotStatus.UPCOMING

    scheduled = slot_datetime(slot, now)
    if scheduled is not None and scheduled < now:
        return SlotStatus.MISSED
    return SlotStatus.UPCOMING


def completion_stats(slots: Iterable, logs: Iterable, day) -> Tuple[int, int]:
    """(taken, total) for `day` over the current slot set."""
    slots = list(slots)
    slot_ids = {slot.id for slot in slots}
    key = date_string(day)
    total = sum(len(slot.supplement_ids) for slot in slots)
    taken = sum(
        len(log.supplement_ids_taken or [])
        for log in logs
        if log.date == key and log.schedule_slot_id in slot_ids
    )
    return taken, total


def supplements_for_slot(slot, supplements: Iterable, logs: Iterable, day) -> List:
    """Slot members plus anything logged against the slot that day (archived included)."""
    relevant = set(slot.supplement_ids)
    log = find_log(logs, slot.id, day)
    if log is not None:
        relevant.update(log.supplement_ids_taken or [])
        relevant.update(log.supplement_ids_skipped or [])
    return [s for s in supplements if s.id in relevant]


def next_upcoming_slot(slots: Iterable, logs: Iterable, now: datetime) -> Optional[object]:
    """First slot in sort order that is scheduled today and still upcoming."""
    logs = list(logs)
    for slot in sorted(slots, key=lambda s: s.sort_order):
        if not slot.supplement_ids or slot_datetime(slot, now) is None:
            continue
        if not slot.recurrence.is_active_on(now):
            continue
        if slot_status(slot, logs, now) == SlotStatus.UPCOMING:
            return slot
    return None
