from datetime import date, datetime, timedelta

import pytz

from dosewise.engine.adherence import AdherenceCalculator, DayStatus, MAX_LOOKBACK_DAYS
from dosewise.engine.recurrence import SpecificDays

from tests.factories import log, slot, supplement

TODAY = date(2026, 3, 10)  # a Tuesday


def days_ago(n):
    return TODAY - timedelta(days=n)


def single_slot_setup(created=datetime(2026, 3, 1)):
    vitamin = supplement("Vitamin D", id="vit", created_at=created)
    morning = slot("s1", "08:00", "with_breakfast", ["vit"])
    return vitamin, morning


def test_streak_counts_consecutive_complete_days_including_today():
    vitamin, morning = single_slot_setup()
    logs = [log("s1", days_ago(n), taken=["vit"]) for n in range(0, 5)]
    # day five back is scheduled but untouched

    calculator = AdherenceCalculator(logs, [morning], [vitamin], today=TODAY)

    assert calculator.calculate_streak() == 5


def test_incomplete_today_does_not_break_streak():
    vitamin, morning = single_slot_setup()
    logs = [log("s1", days_ago(n), taken=["vit"]) for n in (1, 2)]

    calculator = AdherenceCalculator(logs, [morning], [vitamin], today=TODAY)

    assert not calculator.is_day_complete(TODAY)
    assert calculator.calculate_streak() == 2


def test_day_with_nothing_scheduled_is_skipped_not_a_break():
    # Mon, Tue, (Wed nothing scheduled), Thu
    day1 = date(2026, 3, 2)
    days = [day1, day1 + timedelta(days=1), day1 + timedelta(days=3)]
    vitamin = supplement("Vitamin D", id="vit", created_at=datetime(2026, 3, 2))
    morning = slot("s1", "08:00", "with_breakfast", ["vit"], recurrence=SpecificDays(frozenset({1, 2, 4})))
    logs = [log("s1", d, taken=["vit"]) for d in days]

    calculator = AdherenceCalculator(logs, [morning], [vitamin], today=days[-1])

    assert calculator.active_supplement_count_on(day1 + timedelta(days=2)) == 0
    # Three complete days; the gap day is neither counted nor a break
    assert calculator.calculate_streak() == 3


def test_supplement_added_later_does_not_count_against_earlier_days():
    old, morning = single_slot_setup()
    new = supplement("Iron", id="iron", created_at=datetime(2026, 3, 9, 12, 0))
    morning.supplement_ids.append("iron")
    logs = [log("s1", days_ago(n), taken=["vit"]) for n in (1, 2, 3)]

    calculator = AdherenceCalculator(logs, [morning], [old, new], today=TODAY)

    assert calculator.active_supplement_count_on(days_ago(2)) == 1
    assert calculator.active_supplement_count_on(days_ago(1)) == 2
    assert calculator.calculate_streak() == 0


def test_archived_supplements_are_not_expected():
    vitamin, morning = single_slot_setup()
    gone = supplement("Old Blend", id="old", is_archived=True)
    morning.supplement_ids.append("old")

    calculator = AdherenceCalculator([log("s1", TODAY, taken=["vit"])], [morning], [vitamin, gone], today=TODAY)

    assert calculator.is_day_complete(TODAY)


def test_without_supplement_context_raw_slot_sizes_are_used():
    morning = slot("s1", "08:00", "with_breakfast", ["a", "b"])
    calculator = AdherenceCalculator([log("s1", TODAY, taken=["a"])], [morning], today=TODAY)

    assert calculator.active_supplement_count_on(TODAY) == 2
    assert not calculator.is_day_complete(TODAY)


def test_logs_for_unknown_slots_are_ignored():
    vitamin, morning = single_slot_setup()
    logs = [log("deleted-slot", TODAY, taken=["vit"])]

    assert AdherenceCalculator(logs, [morning], [vitamin], today=TODAY).taken_count_on(TODAY) == 0


def test_streak_lookback_is_bounded():
    vitamin, morning = single_slot_setup(created=datetime(2020, 1, 1))
    logs = [log("s1", days_ago(n), taken=["vit"]) for n in range(0, 400)]

    calculator = AdherenceCalculator(logs, [morning], [vitamin], today=TODAY)

    assert calculator.calculate_streak() == MAX_LOOKBACK_DAYS + 1


def test_seven_day_history():
    vitamin, morning = single_slot_setup()
    morning.supplement_ids.append("iron")
    iron = supplement("Iron", id="iron", created_at=datetime(2026, 3, 1))
    logs = [
        log("s1", days_ago(1), taken=["vit"]),
        log("s1", days_ago(2), taken=["vit", "iron"]),
    ]

    history = AdherenceCalculator(logs, [morning], [vitamin, iron], today=TODAY).seven_day_history()

    assert [d.date for d in history] == [days_ago(n) for n in range(6, -1, -1)]
    assert history[-1].status == DayStatus.TODAY
    assert history[-2].status == DayStatus.PARTIAL
    assert history[-3].status == DayStatus.COMPLETE
    assert history[0].status == DayStatus.MISSED
    assert (history[-2].taken_count, history[-2].total_count) == (1, 2)
    assert history[-1].day_letter == "T"


def test_month_history_marks_untrackable_days_as_future():
    vitamin, morning = single_slot_setup()
    logs = [log("s1", TODAY, taken=["vit"])]

    days = AdherenceCalculator(logs, [morning], [vitamin], today=TODAY).month_history(
        2026, 3, tracking_start=datetime(2026, 3, 5, 9, 30)
    )

    assert len(days) == 31
    assert {d.status for d in days[:4]} == {DayStatus.FUTURE}
    assert days[4].status == DayStatus.MISSED
    assert days[9].status == DayStatus.COMPLETE
    assert {d.status for d in days[10:]} == {DayStatus.FUTURE}
    assert days[9].to_dict() == {"date": "2026-03-10", "status": "complete", "taken_count": 1, "total_count": 1}


def test_creation_day_is_read_in_the_users_timezone():
    # 05:00 UTC on the 10th is still the evening of the 9th at UTC-12
    vitamin = supplement("Vitamin D", id="vit", created_at=datetime(2026, 3, 10, 5, 0))
    morning = slot("s1", "08:00", "with_breakfast", ["vit"])
    logs = [log("s1", date(2026, 3, 9), taken=["vit"])]
    local_today = date(2026, 3, 9)

    naive = AdherenceCalculator(logs, [morning], [vitamin], today=local_today)
    local = AdherenceCalculator(logs, [morning], [vitamin], today=local_today, tz=pytz.timezone("Etc/GMT+12"))

    assert naive.active_supplement_count_on(local_today) == 0
    assert local.active_supplement_count_on(local_today) == 1
    assert local.calculate_streak() == 1


def test_tracking_start_is_read_in_the_users_timezone():
    vitamin, morning = single_slot_setup()
    calculator = AdherenceCalculator([], [morning], [vitamin], today=TODAY, tz=pytz.timezone("Etc/GMT+12"))

    days = calculator.month_history(2026, 3, tracking_start=datetime(2026, 3, 5, 6, 0))

    assert days[3].status == DayStatus.MISSED
    assert days[2].status == DayStatus.FUTURE
