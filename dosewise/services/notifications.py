"""
Reminder Scheduler - Turns schedule slots into APScheduler jobs.

One job per (slot, recurrence-day):
- daily: one cron job
- specific days: one cron job per weekday
- weekly: one cron job
- every N days: one-shot date jobs for the next few occurrences, since
  "every N days from a start date" is not expressible as a cron rule

Job ids are namespaced by user so one user's reschedule never touches
another's jobs.
"""
from datetime import datetime, time, timedelta
from typing import Iterable, List, Optional
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
import pytz

from dosewise.config import get_settings
from dosewise.engine.enums import MealContext
from dosewise.engine.recurrence import (
    WEEKDAY_SHORT_NAMES,
    Daily,
    EveryNDays,
    SpecificDays,
    Weekly,
)
from dosewise.engine.time_slots import MINUTES_PER_DAY, try_parse_time
from dosewise.services.sms_service import sms_service

logger = logging.getLogger(__name__)

REMINDER_TITLE = "Time for your supplements"
SNOOZE_TITLE = "Reminder"


def _names_phrase(names: List[str]) -> str:
    if len(names) == 1:
        return names[0]
    if len(names) == 2:
        return f"{names[0]} and {names[1]}"
    return f"{names[0]} and {len(names) - 1} others"


def build_reminder_body(names: List[str], context: MealContext) -> str:
    if len(names) == 1:
        return f"Take your {names[0]} ({MealContext(context).display_name.lower()})"
    return f"Take your {_names_phrase(names)}"


def build_snooze_body(names: List[str]) -> str:
    return f"Time to take your {_names_phrase(names)}"


def deliver_reminder(user_id: str, slot_id: str, phone_number: Optional[str], user_name: str, title: str, body: str):
    """Job entry point. Never raises, so a failed delivery cannot stop the scheduler."""
    try:
        if phone_number and sms_service.is_configured():
            result = sms_service.send_reminder(
                to_number=phone_number,
                user_name=user_name,
                title=title,
                body=body
            )
            if result.success:
                logger.info(f"Sent reminder for slot {slot_id} to user {user_id}")
            else:
                logger.error(f"Failed to send reminder to user {user_id}: {result.error}")
        else:
            logger.info(f"Reminder for user {user_id} (slot {slot_id}): {title} - {body}")
    except Exception as e:
        logger.error(f"Error delivering reminder to user {user_id}: {e}")


def user_timezone(user):
    try:
        return pytz.timezone(user.timezone or get_settings().default_timezone)
    except pytz.UnknownTimeZoneError:
        logger.warning(f"Unknown timezone {user.timezone!r} for user {user.id}; using default")
        return pytz.timezone(get_settings().default_timezone)


def local_now(user) -> datetime:
    """The user's wall-clock time as a naive datetime."""
    return datetime.now(user_timezone(user)).replace(tzinfo=None)


class ReminderScheduler:
    """Schedules, cancels and snoozes supplement reminders."""

    def __init__(self, scheduler=None, advance_minutes: Optional[int] = None, every_n_days_window: Optional[int] = None):
        settings = get_settings()
        self.scheduler = scheduler if scheduler is not None else AsyncIOScheduler()
        self.advance_minutes = settings.notification_advance_minutes if advance_minutes is None else advance_minutes
        self.every_n_days_window = (
            settings.every_n_days_notification_window if every_n_days_window is None else every_n_days_window
        )

    # --- Lifecycle ---

    def start(self):
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Reminder scheduler started")

    def shutdown(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Reminder scheduler stopped")

    # --- Job ids ---

    @staticmethod
    def _prefix(user_id: str) -> str:
        return f"{user_id}:"

    def slot_job_ids(self, user_id: str, slot) -> List[str]:
        """Every recurring job id a slot can own under its current recurrence."""
        base = f"{self._prefix(user_id)}{slot.id}"
        rule = slot.recurrence
        if isinstance(rule, SpecificDays):
            return [f"{base}-{WEEKDAY_SHORT_NAMES[d]}" for d in sorted(rule.weekdays)]
        if isinstance(rule, Weekly):
            return [f"{base}-weekly"]
        if isinstance(rule, EveryNDays):
            return [f"{base}-every{rule.interval}-{i}" for i in range(self.every_n_days_window)]
        return [base]

    def _snooze_prefix(self, user_id: str, slot_id: str) -> str:
        return f"{self._prefix(user_id)}snooze-{slot_id}-"

    def job_ids_for_user(self, user_id: str) -> List[str]:
        prefix = self._prefix(user_id)
        return [job.id for job in self.scheduler.get_jobs() if job.id.startswith(prefix)]

    def _remove(self, job_ids: Iterable[str]) -> int:
        existing = {job.id for job in self.scheduler.get_jobs()}
        removed = 0
        for job_id in job_ids:
            if job_id in existing:
                self.scheduler.remove_job(job_id)
                removed += 1
        return removed

    # --- Scheduling ---

    def schedule_notifications(self, user, slots: Iterable, supplements: Iterable, now: Optional[datetime] = None) -> List[str]:
        """
        Replace all of the user's reminders with jobs for `slots`.

        Slots whose supplements cannot be resolved (placeholders, archived
        only) get no job.
        """
        self.cancel_user(user.id)

        tz = user_timezone(user)
        now = now.astimezone(tz) if now is not None else datetime.now(tz)
        advance = user.notification_advance_minutes
        if advance is None:
            advance = self.advance_minutes
        by_id = {s.id: s for s in supplements}

        job_ids: List[str] = []
        for slot in slots:
            slot_supplements = [by_id[i] for i in slot.supplement_ids or [] if i in by_id]
            if not slot_supplements:
                continue
            minutes = try_parse_time(slot.time)
            if minutes is None:
                continue

            body = build_reminder_body([s.name for s in slot_supplements], slot.context)
            args = [user.id, slot.id, user.phone_number, user.name, REMINDER_TITLE, body]
            job_ids.extend(self._schedule_slot(user.id, slot, minutes - advance, tz, now, args))

        logger.info(f"Scheduled {len(job_ids)} reminder jobs for user {user.id}")
        return job_ids

    def _schedule_slot(self, user_id: str, slot, trigger_minutes: int, tz, now: datetime, args: list) -> List[str]:
        rule = slot.recurrence
        ids = self.slot_job_ids(user_id, slot)

        # Advance minutes can push the trigger into the previous day
        day_shift = -1 if trigger_minutes < 0 else 0
        hour, minute = divmod(trigger_minutes % MINUTES_PER_DAY, 60)

        if isinstance(rule, EveryNDays):
            return self._schedule_every_n_days(rule, ids, time(hour, minute), day_shift, tz, now, args)

        if isinstance(rule, Daily):
            self._add_cron(ids[0], tz, args, hour=hour, minute=minute)
            return ids

        weekdays = sorted(rule.weekdays) if isinstance(rule, SpecificDays) else [rule.weekday]
        for job_id, weekday in zip(ids, weekdays):
            shifted = (weekday - 1 + day_shift) % 7 + 1
            self._add_cron(job_id, tz, args, hour=hour, minute=minute, day_of_week=WEEKDAY_SHORT_NAMES[shifted].lower())
        return ids

    def _add_cron(self, job_id: str, tz, args: list, **fields):
        self.scheduler.add_job(
            deliver_reminder,
            CronTrigger(timezone=tz, **fields),
            id=job_id,
            args=args,
            replace_existing=True
        )

    def _schedule_every_n_days(self, rule: EveryNDays, ids: List[str], at: time, day_shift: int, tz, now: datetime, args: list) -> List[str]:
        today = now.date()
        first = rule.start_date
        if first < today:
            periods = -(-(today - first).days // rule.interval)
            first = first + timedelta(days=periods * rule.interval)

        scheduled = []
        for i, job_id in enumerate(ids):
            occurrence = first + timedelta(days=i * rule.interval)
            # Same wall-clock time on every occurrence, across DST changes
            run_day = occurrence + timedelta(days=day_shift)
            run_at = tz.normalize(tz.localize(datetime.combine(run_day, at)))
            if run_at < now:
                continue
            self.scheduler.add_job(
                deliver_reminder,
                DateTrigger(run_date=run_at),
                id=job_id,
                args=args,
                replace_existing=True
            )
            scheduled.append(job_id)
        return scheduled

    def schedule_snooze(self, user, slot, supplement_names: List[str], minutes: int, now: Optional[datetime] = None) -> Optional[str]:
        """One-shot reminder `minutes` from now; nothing is scheduled for non-positive delays."""
        if minutes <= 0 or not supplement_names:
            return None
        tz = user_timezone(user)
        now = now.astimezone(tz) if now is not None else datetime.now(tz)
        job_id = f"{self._snooze_prefix(user.id, slot.id)}{int(now.timestamp())}"
        self.scheduler.add_job(
            deliver_reminder,
            DateTrigger(run_date=now + timedelta(minutes=minutes)),
            id=job_id,
            args=[user.id, slot.id, user.phone_number, user.name, SNOOZE_TITLE, build_snooze_body(supplement_names)],
            replace_existing=True
        )
        logger.info(f"Snoozed slot {slot.id} for user {user.id} by {minutes} minutes")
        return job_id

    # --- Cancellation ---

    def cancel_slot(self, user_id: str, slot) -> int:
        """Cancel a slot's recurring jobs and any pending snoozes."""
        snooze_prefix = self._snooze_prefix(user_id, slot.id)
        snoozes = [job.id for job in self.scheduler.get_jobs() if job.id.startswith(snooze_prefix)]
        removed = self._remove(self.slot_job_ids(user_id, slot) + snoozes)
        if removed:
            logger.info(f"Cancelled {removed} reminder jobs for slot {slot.id}")
        return removed

    def cancel_user(self, user_id: str) -> int:
        removed = self._remove(self.job_ids_for_user(user_id))
        if removed:
            logger.info(f"Cancelled {removed} reminder jobs for user {user_id}")
        return removed


# Process-wide instance used by the app; tests build their own
reminder_scheduler = ReminderScheduler()


def get_reminder_scheduler() -> ReminderScheduler:
    return reminder_scheduler
