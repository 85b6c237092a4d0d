from sqlalchemy import Column, String, DateTime, Date, JSON, Integer, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid

from dosewise.db.database import Base
from dosewise.engine.enums import MealContext
from dosewise.engine.recurrence import DAILY, EMPTY_COLUMNS, recurrence_from_columns, recurrence_to_dict


class ScheduleSlot(Base):
    """A time-of-day bucket holding an ordered list of supplement ids."""
    __tablename__ = "schedule_slots"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    time = Column(String, nullable=False)  # "HH:mm"
    context = Column(String, nullable=False)  # MealContext value
    supplement_ids = Column(JSON, default=list)
    explanation = Column(Text, default="")
    sort_order = Column(Integer, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Recurrence rule as explicit columns; no kind means daily
    recurrence_kind = Column(String, nullable=True)
    recurrence_weekdays = Column(JSON, nullable=True)
    recurrence_interval = Column(Integer, nullable=True)
    recurrence_start_date = Column(Date, nullable=True)
    recurrence_weekday = Column(Integer, nullable=True)

    user = relationship("User", back_populates="schedule_slots")

    def __init__(self, **kwargs):
        kwargs.setdefault("id", str(uuid.uuid4()))
        kwargs.setdefault("created_at", datetime.utcnow())
        kwargs.setdefault("supplement_ids", [])
        kwargs.setdefault("explanation", "")
        kwargs.setdefault("sort_order", 0)
        if isinstance(kwargs.get("context"), MealContext):
            kwargs["context"] = kwargs["context"].value
        super().__init__(**kwargs)

    @property
    def recurrence(self):
        return recurrence_from_columns(
            self.recurrence_kind,
            self.recurrence_weekdays,
            self.recurrence_interval,
            self.recurrence_start_date,
            self.recurrence_weekday,
        )

    @recurrence.setter
    def recurrence(self, rule):
        columns = EMPTY_COLUMNS if rule is None or rule == DAILY else rule.to_columns()
        self.recurrence_kind = columns["kind"]
        self.recurrence_weekdays = columns["weekdays"]
        self.recurrence_interval = columns["interval"]
        self.recurrence_start_date = columns["start_date"]
        self.recurrence_weekday = columns["weekday"]

    @property
    def meal_context(self) -> MealContext:
        return MealContext(self.context)

    @property
    def is_placeholder(self) -> bool:
        """Kept only so historical logs still resolve."""
        return not self.supplement_ids

    def is_active_on(self, day) -> bool:
        return self.recurrence.is_active_on(day)

    def to_dict(self):
        context = self.meal_context
        return {
            "id": self.id,
            "time": self.time,
            "context": context.value,
            "context_display": context.display_name,
            "supplement_ids": list(self.supplement_ids or []),
            "explanation": self.explanation or "",
            "sort_order": self.sort_order,
            "recurrence": recurrence_to_dict(self.recurrence),
            "is_placeholder": self.is_placeholder,
        }


class IntakeLog(Base):
    """What was taken or skipped from one slot on one calendar day."""
    __tablename__ = "intake_logs"
    __table_args__ = (UniqueConstraint("schedule_slot_id", "date", name="uq_intake_slot_date"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    # Not a foreign key: slots are deleted and re-inserted under the same id on regeneration
    schedule_slot_id = Column(String, nullable=False, index=True)
    date = Column(String, nullable=False)  # "yyyy-MM-dd"
    supplement_ids_taken = Column(JSON, default=list)
    supplement_ids_skipped = Column(JSON, default=list)
    taken_at = Column(DateTime, nullable=True)
    rescheduled_time = Column(DateTime, nullable=True)  # Today-only "remind me later"
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="intake_logs")

    def __init__(self, **kwargs):
        kwargs.setdefault("id", str(uuid.uuid4()))
        kwargs.setdefault("created_at", datetime.utcnow())
        kwargs.setdefault("supplement_ids_taken", [])
        kwargs.setdefault("supplement_ids_skipped", [])
        super().__init__(**kwargs)

    @property
    def is_empty(self) -> bool:
        return not self.supplement_ids_taken and not self.supplement_ids_skipped

    def to_dict(self):
        return {
            "id": self.id,
            "schedule_slot_id": self.schedule_slot_id,
            "date": self.date,
            "supplement_ids_taken": list(self.supplement_ids_taken or []),
            "supplement_ids_skipped": list(self.supplement_ids_skipped or []),
            "taken_at": self.taken_at.isoformat() if self.taken_at else None,
            "rescheduled_time": self.rescheduled_time.isoformat() if self.rescheduled_time else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
