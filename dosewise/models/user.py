from sqlalchemy import Column, String, DateTime, JSON, Integer, Boolean
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid

from dosewise.db.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Meal times drive the slot builder ("HH:mm")
    breakfast_time = Column(String, nullable=False, default="08:00")
    lunch_time = Column(String, nullable=False, default="12:30")
    dinner_time = Column(String, nullable=False, default="19:00")
    skip_breakfast = Column(Boolean, default=False)

    goals = Column(JSON, default=list)  # Goal values
    timezone = Column(String, default="America/New_York")  # IANA timezone

    # Reminders
    notifications_enabled = Column(Boolean, default=False)
    notification_advance_minutes = Column(Integer, default=5)
    phone_number = Column(String, nullable=True)  # E.164 format: +1234567890

    supplements = relationship("Supplement", back_populates="user", cascade="all, delete-orphan")
    schedule_slots = relationship(
        "ScheduleSlot",
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="ScheduleSlot.sort_order",
    )
    intake_logs = relationship("IntakeLog", back_populates="user", cascade="all, delete-orphan")

    def __init__(self, **kwargs):
        kwargs.setdefault("id", str(uuid.uuid4()))
        kwargs.setdefault("created_at", datetime.utcnow())
        kwargs.setdefault("goals", [])
        kwargs.setdefault("breakfast_time", "08:00")
        kwargs.setdefault("lunch_time", "12:30")
        kwargs.setdefault("dinner_time", "19:00")
        kwargs.setdefault("skip_breakfast", False)
        kwargs.setdefault("timezone", "America/New_York")
        kwargs.setdefault("notifications_enabled", False)
        kwargs.setdefault("notification_advance_minutes", 5)
        super().__init__(**kwargs)

    @property
    def active_supplements(self):
        return [s for s in self.supplements if s.is_schedulable]

    @property
    def real_slots(self):
        """Slots with supplements; historical placeholders excluded."""
        return [s for s in self.schedule_slots if not s.is_placeholder]

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "breakfast_time": self.breakfast_time,
            "lunch_time": self.lunch_time,
            "dinner_time": self.dinner_time,
            "skip_breakfast": bool(self.skip_breakfast),
            "goals": self.goals or [],
            "timezone": self.timezone,
            "notifications_enabled": bool(self.notifications_enabled),
            "notification_advance_minutes": self.notification_advance_minutes,
            "phone_number": self.phone_number,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
