"""Shared FastAPI dependencies and lookups for the routers."""
from typing import Optional

from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session

from dosewise.db import get_db
from dosewise.engine.reference import ReferenceIndex
from dosewise.engine.scheduler import SchedulingEngine
from dosewise.models import ScheduleSlot, Supplement, User
from dosewise.services.intake_service import IntakeService
from dosewise.services.notifications import ReminderScheduler, get_reminder_scheduler
from dosewise.services.reference_data import get_reference_index
from dosewise.services.schedule_service import ScheduleService


def get_schedule_service(
    db: Session = Depends(get_db),
    index: ReferenceIndex = Depends(get_reference_index),
    reminders: ReminderScheduler = Depends(get_reminder_scheduler),
) -> ScheduleService:
    return ScheduleService(db, SchedulingEngine(index), reminders)


def get_intake_service(
    db: Session = Depends(get_db),
    reminders: ReminderScheduler = Depends(get_reminder_scheduler),
) -> IntakeService:
    return IntakeService(db, reminders)


def get_user_or_404(db: Session, user_id: str) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def get_supplement_or_404(db: Session, user_id: str, supplement_id: str) -> Supplement:
    supplement = db.query(Supplement).filter(
        Supplement.id == supplement_id,
        Supplement.user_id == user_id
    ).first()
    if not supplement:
        raise HTTPException(status_code=404, detail="Supplement not found")
    return supplement


def get_slot_or_404(db: Session, user_id: str, slot_id: str, allow_placeholder: Optional[bool] = False) -> ScheduleSlot:
    slot = db.query(ScheduleSlot).filter(
        ScheduleSlot.id == slot_id,
        ScheduleSlot.user_id == user_id
    ).first()
    if not slot or (slot.is_placeholder and not allow_placeholder):
        raise HTTPException(status_code=404, detail="Schedule slot not found")
    return slot
