from sqlalchemy import Column, String, DateTime, Date, JSON, Integer, Float, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid

from dosewise.db.database import Base
from dosewise.engine.enums import SupplementCategory
from dosewise.engine.recurrence import EMPTY_COLUMNS, recurrence_from_columns, recurrence_to_dict
from dosewise.engine.reference import format_amount


class Supplement(Base):
    """A supplement the user takes (or took, when archived)."""
    __tablename__ = "supplements"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    name = Column(String, nullable=False)
    category = Column(String, nullable=False, default=SupplementCategory.OTHER.value)
    dosage = Column(Float, nullable=True)
    dosage_unit = Column(String, nullable=True)  # "mg", "IU", "mcg"
    form = Column(String, nullable=True)  # capsule, tablet, softgel, ...
    barcode = Column(String, nullable=True)
    reference_id = Column(String, nullable=True)  # SupplementReference.id
    is_active = Column(Boolean, default=True)
    is_archived = Column(Boolean, default=False)
    archived_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Fixed time overrides automatic placement
    custom_time = Column(String, nullable=True)  # "HH:mm"
    custom_recurrence_kind = Column(String, nullable=True)
    custom_recurrence_weekdays = Column(JSON, nullable=True)
    custom_recurrence_interval = Column(Integer, nullable=True)
    custom_recurrence_start_date = Column(Date, nullable=True)
    custom_recurrence_weekday = Column(Integer, nullable=True)

    user = relationship("User", back_populates="supplements")

    def __init__(self, **kwargs):
        kwargs.setdefault("id", str(uuid.uuid4()))
        kwargs.setdefault("created_at", datetime.utcnow())
        kwargs.setdefault("category", SupplementCategory.OTHER.value)
        kwargs.setdefault("is_active", True)
        kwargs.setdefault("is_archived", False)
        if isinstance(kwargs["category"], SupplementCategory):
            kwargs["category"] = kwargs["category"].value
        super().__init__(**kwargs)

    @property
    def custom_recurrence(self):
        """The custom-time recurrence, or None for the default (daily)."""
        if self.custom_recurrence_kind is None:
            return None
        return recurrence_from_columns(
            self.custom_recurrence_kind,
            self.custom_recurrence_weekdays,
            self.custom_recurrence_interval,
            self.custom_recurrence_start_date,
            self.custom_recurrence_weekday,
        )

    @custom_recurrence.setter
    def custom_recurrence(self, rule):
        columns = rule.to_columns() if rule is not None else EMPTY_COLUMNS
        self.custom_recurrence_kind = columns["kind"]
        self.custom_recurrence_weekdays = columns["weekdays"]
        self.custom_recurrence_interval = columns["interval"]
        self.custom_recurrence_start_date = columns["start_date"]
        self.custom_recurrence_weekday = columns["weekday"]

    @property
    def supplement_category(self) -> SupplementCategory:
        return SupplementCategory.parse(self.category)

    @property
    def is_schedulable(self) -> bool:
        return bool(self.is_active) and not self.is_archived

    @property
    def display_dosage(self):
        if self.dosage is None:
            return None
        unit = self.dosage_unit or ""
        return f"{format_amount(self.dosage)} {unit}".strip()

    def archive(self):
        self.is_archived = True
        self.archived_at = datetime.utcnow()

    def restore(self):
        self.is_archived = False
        self.archived_at = None

    def to_dict(self):
        recurrence = self.custom_recurrence
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "category_display": self.supplement_category.display_name,
            "dosage": self.dosage,
            "dosage_unit": self.dosage_unit,
            "display_dosage": self.display_dosage,
            "form": self.form,
            "barcode": self.barcode,
            "reference_id": self.reference_id,
            "is_active": bool(self.is_active),
            "is_archived": bool(self.is_archived),
            "archived_at": self.archived_at.isoformat() if self.archived_at else None,
            "custom_time": self.custom_time,
            "custom_recurrence": recurrence_to_dict(recurrence) if recurrence else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
