"""
Widget State - Summary values published for display outside the app.

Write-only from the app's point of view: today's progress, the current
streak and the next upcoming dose, serialized as JSON.
"""
from datetime import datetime
from pathlib import Path
from typing import List, Optional
import logging

from pydantic import BaseModel, Field

from dosewise.config import get_settings
from dosewise.engine.adherence import AdherenceCalculator
from dosewise.engine.enums import MealContext
from dosewise.engine.time_slots import display_time
from dosewise.engine.today import completion_stats, next_upcoming_slot
from dosewise.services.notifications import user_timezone

logger = logging.getLogger(__name__)


class WidgetState(BaseModel):
    completed: int = 0
    total: int = 0
    streak: int = 0
    next_dose_time: Optional[str] = None  # "8:00 AM"
    next_dose_supplements: List[str] = Field(default_factory=list)
    next_dose_context: Optional[str] = None  # "With food"
    last_updated: datetime

    @property
    def progress(self) -> float:
        """Fraction of today's doses taken, 0.0 to 1.0."""
        if self.total <= 0:
            return 0.0
        return self.completed / self.total

    @property
    def is_complete(self) -> bool:
        return self.total > 0 and self.completed >= self.total


def build_widget_state(user, now: datetime) -> WidgetState:
    """Derive the summary for `user` as of their local wall-clock `now`."""
    slots = [slot for slot in user.real_slots if slot.is_active_on(now)]
    logs = list(user.intake_logs)
    supplements = list(user.supplements)

    completed, total = completion_stats(slots, logs, now)
    # Placeholders stay in the set so historical logs keep counting
    calculator = AdherenceCalculator(logs, user.schedule_slots, supplements, today=now.date(), tz=user_timezone(user))
    streak = calculator.calculate_streak()

    state = WidgetState(completed=completed, total=total, streak=streak, last_updated=now)

    next_slot = next_upcoming_slot(slots, logs, now)
    if next_slot is not None:
        names_by_id = {s.id: s.name for s in supplements}
        state.next_dose_time = display_time(next_slot.time)
        state.next_dose_supplements = [names_by_id[i] for i in next_slot.supplement_ids if i in names_by_id]
        state.next_dose_context = MealContext(next_slot.context).short_display_name
    return state


def write_widget_state(state: WidgetState, path: Optional[Path] = None) -> bool:
    """Write the payload as JSON; skipped when no path is configured."""
    path = path or get_settings().widget_state_path
    if path is None:
        return False
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(state.model_dump_json(indent=2), encoding="utf-8")
    logger.debug(f"Widget state written to {path}")
    return True
