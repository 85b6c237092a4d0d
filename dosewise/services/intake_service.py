"""
Intake Service - Records what the user took or skipped today.

Exactly one IntakeLog exists per (slot, date); every action goes through
get-or-create. A log left with nothing taken and nothing skipped is deleted.
"""
from datetime import datetime
from typing import Optional
import logging

from sqlalchemy.orm import Session

from dosewise.config import get_settings
from dosewise.engine.adherence import date_string
from dosewise.engine.today import find_log
from dosewise.models import IntakeLog, ScheduleSlot, User
from dosewise.services.notifications import ReminderScheduler, local_now
from dosewise.services.widget_state import build_widget_state, write_widget_state

logger = logging.getLogger(__name__)


class IntakeService:
    def __init__(self, db: Session, reminders: Optional[ReminderScheduler] = None):
        self.db = db
        self.reminders = reminders

    def _now(self, user: User, now: Optional[datetime]) -> datetime:
        return now or local_now(user)

    def get_or_create_log(self, user: User, slot: ScheduleSlot, day_key: str) -> IntakeLog:
        log = find_log(user.intake_logs, slot.id, day_key)
        if log is None:
            log = IntakeLog(user_id=user.id, schedule_slot_id=slot.id, date=day_key)
            user.intake_logs.append(log)
        return log

    def _save(self, user: User, log: Optional[IntakeLog] = None):
        if log is not None and log.is_empty and log in user.intake_logs:
            user.intake_logs.remove(log)
        self.db.commit()
        if get_settings().widget_state_path is not None:
            write_widget_state(build_widget_state(user, local_now(user)))

    def _cancel_reminders(self, user: User, slot: ScheduleSlot):
        if self.reminders is not None:
            self.reminders.cancel_slot(user.id, slot)

    # --- Per supplement ---

    def mark_supplement_taken(self, user: User, slot: ScheduleSlot, supplement_id: str, now: Optional[datetime] = None) -> IntakeLog:
        now = self._now(user, now)
        log = self.get_or_create_log(user, slot, date_string(now))

        taken = list(log.supplement_ids_taken or [])
        if supplement_id not in taken:
            taken.append(supplement_id)
        log.supplement_ids_taken = taken
        log.supplement_ids_skipped = [i for i in log.supplement_ids_skipped or [] if i != supplement_id]
        log.taken_at = now
        self._save(user, log)

        expected = set(slot.supplement_ids or [])
        if expected and set(taken) >= expected:
            self._cancel_reminders(user, slot)
        return log

    def mark_supplement_skipped(self, user: User, slot: ScheduleSlot, supplement_id: str, now: Optional[datetime] = None) -> IntakeLog:
        now = self._now(user, now)
        log = self.get_or_create_log(user, slot, date_string(now))

        skipped = list(log.supplement_ids_skipped or [])
        if supplement_id not in skipped:
            skipped.append(supplement_id)
        log.supplement_ids_skipped = skipped
        log.supplement_ids_taken = [i for i in log.supplement_ids_taken or [] if i != supplement_id]
        self._save(user, log)
        return log

    def undo_supplement(self, user: User, slot: ScheduleSlot, supplement_id: str, now: Optional[datetime] = None) -> Optional[IntakeLog]:
        """Clear one supplement's mark; returns None once the log is gone."""
        now = self._now(user, now)
        log = find_log(user.intake_logs, slot.id, now)
        if log is None:
            return None

        log.supplement_ids_taken = [i for i in log.supplement_ids_taken or [] if i != supplement_id]
        log.supplement_ids_skipped = [i for i in log.supplement_ids_skipped or [] if i != supplement_id]
        self._save(user, log)
        return None if log.is_empty else log

    # --- Per slot ---

    def mark_slot_taken(self, user: User, slot: ScheduleSlot, now: Optional[datetime] = None) -> IntakeLog:
        now = self._now(user, now)
        log = self.get_or_create_log(user, slot, date_string(now))
        log.supplement_ids_taken = list(slot.supplement_ids or [])
        log.supplement_ids_skipped = []
        log.taken_at = now
        log.rescheduled_time = None  # Any pending reminder is moot
        self._save(user, log)
        self._cancel_reminders(user, slot)
        return log

    def mark_slot_skipped(self, user: User, slot: ScheduleSlot, now: Optional[datetime] = None) -> IntakeLog:
        now = self._now(user, now)
        log = self.get_or_create_log(user, slot, date_string(now))
        log.supplement_ids_skipped = list(slot.supplement_ids or [])
        log.supplement_ids_taken = []
        log.taken_at = None
        self._save(user, log)
        return log

    def undo_slot(self, user: User, slot: ScheduleSlot, now: Optional[datetime] = None) -> bool:
        now = self._now(user, now)
        key = date_string(now)
        logs = [log for log in user.intake_logs if log.schedule_slot_id == slot.id and log.date == key]
        for log in logs:
            user.intake_logs.remove(log)
        self._save(user)
        return bool(logs)

    # --- Remind me later ---

    def remind_me(self, user: User, slot: ScheduleSlot, remind_at: datetime, now: Optional[datetime] = None) -> Optional[str]:
        """
        Store a today-only reschedule time and snooze the slot until then.

        Returns the snooze job id, or None when `remind_at` is not in the
        future or reminders are unavailable.
        """
        now = self._now(user, now)
        if remind_at.date() != now.date():
            raise ValueError("Reminders can only be rescheduled for later today")

        log = self.get_or_create_log(user, slot, date_string(now))
        log.rescheduled_time = remind_at
        self.db.commit()

        minutes = int((remind_at - now).total_seconds() // 60)
        if minutes <= 0 or self.reminders is None:
            return None

        names_by_id = {s.id: s.name for s in user.supplements}
        names = [names_by_id[i] for i in slot.supplement_ids or [] if i in names_by_id]
        return self.reminders.schedule_snooze(user, slot, names, minutes)
