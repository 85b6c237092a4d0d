from datetime import datetime

from dosewise.engine.recurrence import Weekly
from dosewise.engine.today import (
    SlotStatus,
    completion_stats,
    find_log,
    next_upcoming_slot,
    slot_status,
    supplements_for_slot,
)

from tests.factories import log, slot, supplement

NOW = datetime(2026, 3, 10, 12, 0)  # Tuesday noon
TODAY = "2026-03-10"


def test_status_from_logs():
    morning = slot("m", "08:00", "with_breakfast", ["a", "b"])

    assert slot_status(morning, [log("m", TODAY, taken=["a", "b"])], NOW) == SlotStatus.TAKEN
    assert slot_status(morning, [log("m", TODAY, skipped=["a", "b"])], NOW) == SlotStatus.SKIPPED
    assert slot_status(morning, [log("m", TODAY, taken=["a"], skipped=["b"])], NOW) == SlotStatus.TAKEN
    assert slot_status(morning, [log("m", TODAY, taken=["a"])], NOW) == SlotStatus.PARTIAL


def test_status_from_clock():
    morning = slot("m", "08:00", "with_breakfast", ["a"])
    evening = slot("e", "21:00", "bedtime", ["a"])

    assert slot_status(morning, [], NOW) == SlotStatus.MISSED
    assert slot_status(evening, [], NOW) == SlotStatus.UPCOMING
    # Yesterday's log has no bearing on today
    assert slot_status(morning, [log("m", "2026-03-09", taken=["a"])], NOW) == SlotStatus.MISSED


def test_pending_reschedule_keeps_slot_upcoming():
    morning = slot("m", "08:00", "with_breakfast", ["a"])
    snoozed = log("m", TODAY, rescheduled_time=datetime(2026, 3, 10, 13, 0))

    assert slot_status(morning, [snoozed], NOW) == SlotStatus.UPCOMING
    assert slot_status(morning, [snoozed], datetime(2026, 3, 10, 14, 0)) == SlotStatus.MISSED


def test_status_can_be_narrowed_to_visible_supplements():
    morning = slot("m", "08:00", "with_breakfast", ["a", "archived"])
    logs = [log("m", TODAY, taken=["a"])]

    assert slot_status(morning, logs, NOW) == SlotStatus.PARTIAL
    assert slot_status(morning, logs, NOW, supplement_ids=["a"]) == SlotStatus.TAKEN


def test_completion_stats_only_count_current_slots():
    slots = [slot("m", "08:00", "with_breakfast", ["a", "b"]), slot("e", "21:00", "bedtime", ["c"])]
    logs = [
        log("m", TODAY, taken=["a"]),
        log("e", "2026-03-09", taken=["c"]),
        log("gone", TODAY, taken=["x"]),
    ]

    assert completion_stats(slots, logs, NOW) == (1, 3)


def test_supplements_for_slot_include_logged_ones():
    current = supplement("Vitamin D", id="a")
    archived = supplement("Old Blend", id="old", is_archived=True)
    other = supplement("Zinc", id="z")
    morning = slot("m", "08:00", "with_breakfast", ["a"])

    shown = supplements_for_slot(morning, [current, archived, other], [log("m", TODAY, taken=["old"])], NOW)

    assert [s.id for s in shown] == ["a", "old"]


def test_next_upcoming_slot_skips_done_past_and_inactive():
    slots = [
        slot("m", "08:00", "with_breakfast", ["a"], sort_order=0),
        slot("w", "13:00", "between_meals", ["b"], sort_order=1, recurrence=Weekly(weekday=1)),
        slot("l", "13:30", "with_lunch", ["c"], sort_order=2),
        slot("e", "21:00", "bedtime", ["d"], sort_order=3),
        slot("p", "07:00", "empty_stomach", [], sort_order=999),
    ]

    assert next_upcoming_slot(slots, [], NOW).id == "l"
    assert next_upcoming_slot(slots, [log("l", TODAY, taken=["c"])], NOW).id == "e"
    assert next_upcoming_slot(slots, [], datetime(2026, 3, 10, 22, 0)) is None


def test_find_log_accepts_dates_and_keys():
    entry = log("m", TODAY, taken=["a"])

    assert find_log([entry], "m", NOW) is entry
    assert find_log([entry], "m", TODAY) is entry
    assert find_log([entry], "other", NOW) is None
