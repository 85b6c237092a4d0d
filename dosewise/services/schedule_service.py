"""
Schedule Service - Keeps a user's persisted schedule in step with their supplements.

Every change to the supplement list or meal times goes through
`regenerate`: generate, merge against the stored slots (preserving ids that
intake logs point at), persist, then re-schedule reminders.
"""
from datetime import date
from typing import Dict, List, Optional
import logging

from sqlalchemy.orm import Session

from dosewise.config import get_settings
from dosewise.engine.adherence import date_string
from dosewise.engine.enums import SupplementCategory, SupplementForm
from dosewise.engine.merge import MergeResult, merge_schedule
from dosewise.engine.reference import Interaction, SupplementReference, Synergy
from dosewise.engine.scheduler import SchedulingEngine
from dosewise.engine.time_slots import normalize_time
from dosewise.models import ScheduleSlot, Supplement, User
from dosewise.services.notifications import ReminderScheduler, local_now
from dosewise.services.widget_state import build_widget_state, write_widget_state

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("dosage", "dosage_unit", "form", "custom_time", "custom_recurrence")


class DuplicateSupplementError(Exception):
    """The user already has an active supplement with this reference or name."""


def _form_value(form) -> Optional[str]:
    if form is None:
        return None
    return SupplementForm(form).value


class ScheduleService:
    def __init__(self, db: Session, engine: SchedulingEngine, reminders: Optional[ReminderScheduler] = None):
        self.db = db
        self.engine = engine
        self.reminders = reminders

    # --- Regeneration ---

    def regenerate(self, user: User) -> MergeResult:
        plans = self.engine.generate_schedule(
            user.active_supplements,
            user.breakfast_time,
            user.lunch_time,
            user.dinner_time,
            bool(user.skip_breakfast),
        )
        result = merge_schedule(user.schedule_slots, user.intake_logs, plans)

        existing = {slot.id: slot for slot in user.schedule_slots}
        keep = set()
        for plan in result.all_slots:
            slot = existing.get(plan.id)
            if slot is None:
                slot = ScheduleSlot(id=plan.id, user_id=user.id, time=plan.time, context=plan.context)
                user.schedule_slots.append(slot)
            slot.time = plan.time
            slot.context = plan.context.value
            slot.supplement_ids = list(plan.supplement_ids)
            slot.explanation = plan.explanation
            slot.sort_order = plan.sort_order
            slot.recurrence = plan.recurrence
            keep.add(plan.id)

        # delete-orphan cascade removes the rest
        for slot in list(user.schedule_slots):
            if slot.id not in keep:
                user.schedule_slots.remove(slot)

        self.db.commit()
        self.db.refresh(user)

        logger.info(
            f"Regenerated schedule for user {user.id}: "
            f"{len(result.slots)} slots, {len(result.placeholders)} placeholders"
        )

        self.reschedule_reminders(user)
        self.publish_widget_state(user)
        return result

    def reschedule_reminders(self, user: User):
        if self.reminders is None or not user.notifications_enabled:
            return
        self.reminders.schedule_notifications(user, user.real_slots, user.supplements)

    def publish_widget_state(self, user: User):
        if get_settings().widget_state_path is None:
            return
        write_widget_state(build_widget_state(user, local_now(user)))

    # --- Preferences ---

    def update_meal_times(
        self,
        user: User,
        breakfast_time: Optional[str] = None,
        lunch_time: Optional[str] = None,
        dinner_time: Optional[str] = None,
        skip_breakfast: Optional[bool] = None,
    ) -> bool:
        """Apply new meal settings; regenerates only when something changed."""
        changed = False
        for field, value in (("breakfast_time", breakfast_time), ("lunch_time", lunch_time), ("dinner_time", dinner_time)):
            if value is None:
                continue
            value = normalize_time(value)
            if getattr(user, field) != value:
                setattr(user, field, value)
                changed = True

        if skip_breakfast is not None and bool(user.skip_breakfast) != skip_breakfast:
            user.skip_breakfast = skip_breakfast
            changed = True

        if changed:
            self.regenerate(user)
        return changed

    # --- Supplement lifecycle ---

    def _find(self, user: User, archived: bool, reference_id: Optional[str] = None, name: Optional[str] = None):
        for supplement in user.supplements:
            if bool(supplement.is_archived) != archived:
                continue
            if reference_id is not None and supplement.reference_id == reference_id:
                return supplement
            if name is not None and supplement.name.lower() == name.lower():
                return supplement
        return None

    def add_from_reference(
        self,
        user: User,
        reference: SupplementReference,
        dosage: Optional[float] = None,
        dosage_unit: Optional[str] = None,
        form: Optional[str] = None,
    ) -> Supplement:
        if self._find(user, archived=False, reference_id=reference.id):
            raise DuplicateSupplementError(f"{reference.primary_name} is already in your supplements")

        supplement = self._find(user, archived=True, reference_id=reference.id)
        if supplement is not None:
            supplement.restore()
            supplement.dosage = dosage
            supplement.dosage_unit = dosage_unit
            supplement.form = _form_value(form)
            logger.info(f"Restored archived supplement {supplement.id} for user {user.id}")
        else:
            supplement = Supplement(
                user_id=user.id,
                name=reference.primary_name,
                category=reference.supplement_category,
                dosage=dosage,
                dosage_unit=dosage_unit,
                form=_form_value(form),
                reference_id=reference.id,
            )
            user.supplements.append(supplement)

        self.regenerate(user)
        return supplement

    def add_manual(
        self,
        user: User,
        name: str,
        category=SupplementCategory.OTHER,
        dosage: Optional[float] = None,
        dosage_unit: Optional[str] = None,
        form: Optional[str] = None,
        custom_time: Optional[str] = None,
        custom_recurrence=None,
        barcode: Optional[str] = None,
    ) -> Supplement:
        name = name.strip()
        if not name:
            raise ValueError("Supplement name is required")
        if custom_time is not None:
            custom_time = normalize_time(custom_time)
        category = SupplementCategory.parse(category)

        if self._find(user, archived=False, name=name):
            raise DuplicateSupplementError(f"{name} is already in your supplements")

        supplement = self._find(user, archived=True, name=name)
        if supplement is not None:
            supplement.restore()
            supplement.category = category.value
            supplement.dosage = dosage
            supplement.dosage_unit = dosage_unit
            supplement.form = _form_value(form)
            supplement.custom_time = custom_time
            supplement.custom_recurrence = custom_recurrence
            logger.info(f"Restored archived supplement {supplement.id} for user {user.id}")
        else:
            supplement = Supplement(
                user_id=user.id,
                name=name,
                category=category,
                dosage=dosage,
                dosage_unit=dosage_unit,
                form=_form_value(form),
                barcode=barcode,
                custom_time=custom_time,
                custom_recurrence=custom_recurrence,
            )
            user.supplements.append(supplement)

        self.regenerate(user)
        return supplement

    def delete_supplement(self, user: User, supplement: Supplement, today: Optional[date] = None) -> str:
        """
        Remove a supplement from the schedule.

        Archived (kept for history) when any log ever recorded it as taken,
        deleted outright otherwise. Returns "archived" or "deleted".
        """
        today_key = date_string(today or local_now(user).date())

        # Skipped entries for today would otherwise linger as missed items
        for log in list(user.intake_logs):
            if log.date != today_key or supplement.id not in (log.supplement_ids_skipped or []):
                continue
            log.supplement_ids_skipped = [i for i in log.supplement_ids_skipped if i != supplement.id]
            if log.is_empty:
                user.intake_logs.remove(log)

        was_taken = any(supplement.id in (log.supplement_ids_taken or []) for log in user.intake_logs)
        if was_taken:
            supplement.archive()
            outcome = "archived"
        else:
            user.supplements.remove(supplement)
            outcome = "deleted"

        logger.info(f"Supplement {supplement.id} {outcome} for user {user.id}")
        self.regenerate(user)
        return outcome

    def update_supplement(self, user: User, supplement: Supplement, **changes) -> bool:
        """
        Update dosage/unit/form/custom time/custom recurrence.

        Only the keys present are applied. Returns True when the schedule
        was regenerated (custom time or recurrence changed).
        """
        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update: {', '.join(sorted(unknown))}")

        if changes.get("custom_time") is not None:
            changes["custom_time"] = normalize_time(changes["custom_time"])
        if "form" in changes:
            changes["form"] = _form_value(changes["form"])

        timing_changed = (
            ("custom_time" in changes and changes["custom_time"] != supplement.custom_time)
            or ("custom_recurrence" in changes and changes["custom_recurrence"] != supplement.custom_recurrence)
        )

        for field, value in changes.items():
            setattr(supplement, field, value)

        if timing_changed:
            self.regenerate(user)
        else:
            self.db.commit()
        return timing_changed

    # --- Reference insights for the user's active supplements ---

    def _reference_ids(self, user: User) -> List[str]:
        ids = []
        for supplement in user.supplements:
            if supplement.is_archived:
                continue
            reference = self.engine.index.resolve(supplement.reference_id, supplement.name)
            if reference is not None:
                ids.append(reference.id)
        return ids

    def interactions_for_user(self, user: User) -> List[Interaction]:
        return self.engine.index.interactions_between(self._reference_ids(user))

    def synergies_for_user(self, user: User) -> List[Synergy]:
        return self.engine.index.synergies_between(self._reference_ids(user))

    def group_by_slot(self, user: User) -> List[Dict]:
        """Active supplements grouped under their slot, in slot order."""
        active = [s for s in user.supplements if not s.is_archived]
        groups = []
        for slot in sorted(user.schedule_slots, key=lambda s: s.sort_order):
            members = [s for s in active if s.id in (slot.supplement_ids or [])]
            if members:
                groups.append({"slot": slot, "supplements": members})
        return groups
