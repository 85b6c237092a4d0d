from datetime import date, datetime
from types import SimpleNamespace

import pytz

from dosewise.engine.enums import MealContext
from dosewise.engine.recurrence import EveryNDays, SpecificDays, Weekly
from dosewise.services import notifications
from dosewise.services.notifications import build_reminder_body, build_snooze_body, deliver_reminder
from dosewise.services.sms_service import SMSService, mask_phone

from tests.factories import slot, supplement

NOW = pytz.utc.localize(datetime(2026, 3, 2, 6, 0))  # Monday


def make_user(id="u1", timezone="UTC", advance=5):
    return SimpleNamespace(
        id=id,
        name="Alex Rivera",
        timezone=timezone,
        phone_number=None,
        notification_advance_minutes=advance,
    )


def jobs_by_id(reminders):
    return {job.id: job for job in reminders.scheduler.get_jobs()}


def test_daily_slot_gets_one_cron_job_before_slot_time(reminders):
    vitamin = supplement("Vitamin D", id="a")
    morning = slot("s1", "08:00", "with_breakfast", ["a"])

    ids = reminders.schedule_notifications(make_user(), [morning], [vitamin], now=NOW)

    assert ids == ["u1:s1"]
    job = jobs_by_id(reminders)["u1:s1"]
    assert "hour='7'" in str(job.trigger)
    assert "minute='55'" in str(job.trigger)
    assert job.args[-1] == "Take your Vitamin D (with breakfast)"


def test_specific_days_get_one_job_per_weekday(reminders):
    morning = slot("s1", "08:00", "with_breakfast", ["a"], recurrence=SpecificDays(frozenset({5, 1})))

    ids = reminders.schedule_notifications(make_user(), [morning], [supplement("A", id="a")], now=NOW)

    assert ids == ["u1:s1-Mon", "u1:s1-Fri"]
    assert "day_of_week='fri'" in str(jobs_by_id(reminders)["u1:s1-Fri"].trigger)


def test_advance_across_midnight_moves_to_previous_weekday(reminders):
    late = slot("s1", "00:02", "between_meals", ["a"], recurrence=Weekly(weekday=3))

    reminders.schedule_notifications(make_user(), [late], [supplement("A", id="a")], now=NOW)

    trigger = str(jobs_by_id(reminders)["u1:s1-weekly"].trigger)
    assert "day_of_week='tue'" in trigger
    assert "hour='23'" in trigger
    assert "minute='57'" in trigger


def test_every_n_days_uses_bounded_one_shot_jobs(reminders):
    rule = EveryNDays(interval=2, start_date=date(2026, 3, 2))
    morning = slot("s1", "08:00", "with_breakfast", ["a"], recurrence=rule)
    after_first = pytz.utc.localize(datetime(2026, 3, 2, 9, 0))

    ids = reminders.schedule_notifications(make_user(), [morning], [supplement("A", id="a")], now=after_first)

    # Window of three: today's run already passed
    assert ids == ["u1:s1-every2-1", "u1:s1-every2-2"]
    jobs = jobs_by_id(reminders)
    assert jobs["u1:s1-every2-1"].trigger.run_date == pytz.utc.localize(datetime(2026, 3, 4, 7, 55))
    assert jobs["u1:s1-every2-2"].trigger.run_date == pytz.utc.localize(datetime(2026, 3, 6, 7, 55))


def test_every_n_days_starts_from_next_occurrence(reminders):
    rule = EveryNDays(interval=7, start_date=date(2026, 2, 1))
    morning = slot("s1", "08:00", "with_breakfast", ["a"], recurrence=rule)

    reminders.schedule_notifications(make_user(), [morning], [supplement("A", id="a")], now=NOW)

    first = jobs_by_id(reminders)["u1:s1-every7-0"]
    assert first.trigger.run_date == pytz.utc.localize(datetime(2026, 3, 8, 7, 55))


def test_every_n_days_keeps_wall_clock_time_across_dst(reminders):
    new_york = pytz.timezone("America/New_York")
    # Clocks spring forward on 2027-03-14
    rule = EveryNDays(interval=2, start_date=date(2027, 3, 14))
    morning = slot("s1", "08:00", "with_breakfast", ["a"], recurrence=rule)
    before = new_york.localize(datetime(2027, 3, 13, 12, 0))

    reminders.schedule_notifications(
        make_user(timezone="America/New_York", advance=0), [morning], [supplement("A", id="a")], now=before
    )

    run_dates = [job.trigger.run_date.astimezone(new_york) for job in reminders.scheduler.get_jobs()]
    assert [(d.day, d.hour, d.minute) for d in run_dates] == [(14, 8, 0), (16, 8, 0), (18, 8, 0)]


def test_every_n_days_advance_across_midnight_uses_previous_day(reminders):
    rule = EveryNDays(interval=3, start_date=date(2026, 3, 3))
    late = slot("s1", "00:02", "between_meals", ["a"], recurrence=rule)

    reminders.schedule_notifications(make_user(), [late], [supplement("A", id="a")], now=NOW)

    first = jobs_by_id(reminders)["u1:s1-every3-0"]
    assert first.trigger.run_date == pytz.utc.localize(datetime(2026, 3, 2, 23, 57))


def test_slots_without_known_supplements_are_skipped(reminders):
    placeholder = slot("p", "07:00", "empty_stomach", [])
    orphan = slot("o", "08:00", "with_breakfast", ["gone"])

    assert reminders.schedule_notifications(make_user(), [placeholder, orphan], [], now=NOW) == []


def test_rescheduling_replaces_only_that_users_jobs(reminders):
    vitamin = supplement("A", id="a")
    first = slot("s1", "08:00", "with_breakfast", ["a"])
    second = slot("s2", "21:00", "bedtime", ["a"])

    reminders.schedule_notifications(make_user("u1"), [first], [vitamin], now=NOW)
    reminders.schedule_notifications(make_user("u2"), [first], [vitamin], now=NOW)
    reminders.schedule_notifications(make_user("u1"), [second], [vitamin], now=NOW)

    assert sorted(jobs_by_id(reminders)) == ["u1:s2", "u2:s1"]


def test_cancel_slot_also_cancels_snoozes(reminders):
    user = make_user()
    morning = slot("s1", "08:00", "with_breakfast", ["a"])
    reminders.schedule_notifications(user, [morning], [supplement("A", id="a")], now=NOW)
    snooze_id = reminders.schedule_snooze(user, morning, ["A"], 30, now=NOW)

    assert snooze_id == f"u1:snooze-s1-{int(NOW.timestamp())}"
    assert jobs_by_id(reminders)[snooze_id].trigger.run_date == pytz.utc.localize(datetime(2026, 3, 2, 6, 30))
    assert reminders.cancel_slot("u1", morning) == 2
    assert reminders.job_ids_for_user("u1") == []


def test_snooze_needs_a_positive_delay(reminders):
    assert reminders.schedule_snooze(make_user(), slot("s1", "08:00", "with_breakfast"), ["A"], 0, now=NOW) is None


def test_reminder_bodies():
    assert build_reminder_body(["Magnesium"], MealContext.BEDTIME) == "Take your Magnesium (before bed)"
    assert build_reminder_body(["Iron", "Vitamin C"], MealContext.EMPTY_STOMACH) == "Take your Iron and Vitamin C"
    assert build_reminder_body(["A", "B", "C"], MealContext.WITH_LUNCH) == "Take your A and 2 others"
    assert build_snooze_body(["Iron"]) == "Time to take your Iron"


def test_delivery_failures_are_contained(monkeypatch):
    def boom():
        raise RuntimeError("network down")

    monkeypatch.setattr(notifications.sms_service, "is_configured", boom)

    deliver_reminder("u1", "s1", "+15551234567", "Alex", "Title", "Body")


def test_sms_message_format():
    service = SMSService()

    assert service.build_reminder_message("Alex Rivera", "Time for your supplements", "Take your Iron") == (
        "Time for your supplements, Alex!\n\nTake your Iron\n\n- Dosewise"
    )
    assert mask_phone("+15551234567") == "+15***4567"


def test_unconfigured_sms_reports_failure():
    result = SMSService().send_reminder("+15551234567", "Alex", "Title", "Body")

    assert not result.success
    assert result.error == "SMS service not configured"
