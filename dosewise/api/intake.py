from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from pydantic import BaseModel

from dosewise.api.deps import get_intake_service, get_slot_or_404, get_supplement_or_404, get_user_or_404
from dosewise.db import get_db
from dosewise.engine.adherence import date_string
from dosewise.engine.time_slots import TimeFormatError, display_time, parse_time
from dosewise.engine.today import (
    completion_stats,
    find_log,
    next_upcoming_slot,
    slot_status,
    supplements_for_slot,
)
from dosewise.services.intake_service import IntakeService
from dosewise.services.notifications import local_now

router = APIRouter()


class IntakeLogResponse(BaseModel):
    id: str
    schedule_slot_id: str
    date: str
    supplement_ids_taken: List[str]
    supplement_ids_skipped: List[str]
    taken_at: Optional[str]
    rescheduled_time: Optional[str]
    created_at: Optional[str]


class TodaySupplement(BaseModel):
    id: str
    name: str
    display_dosage: Optional[str]
    is_archived: bool
    taken: bool
    skipped: bool


class TodaySlot(BaseModel):
    id: str
    time: str
    display_time: str
    context: str
    context_display: str
    explanation: str
    status: str
    status_display: str
    rescheduled_time: Optional[str]
    supplements: List[TodaySupplement]


class TodayResponse(BaseModel):
    date: str
    completed: int
    total: int
    slots: List[TodaySlot]
    next_slot_id: Optional[str]


class RemindRequest(BaseModel):
    time: str  # "HH:mm" later today


class RemindResponse(BaseModel):
    slot_id: str
    rescheduled_time: str
    reminder_job_id: Optional[str]


class UndoResponse(BaseModel):
    slot_id: str
    cleared: bool


def _log_response(log) -> Optional[IntakeLogResponse]:
    if log is None:
        return None
    return IntakeLogResponse(**log.to_dict())


def _today_slot(slot, user, logs, now: datetime) -> TodaySlot:
    log = find_log(logs, slot.id, now)
    taken = set(log.supplement_ids_taken or []) if log else set()
    skipped = set(log.supplement_ids_skipped or []) if log else set()

    members = supplements_for_slot(slot, user.supplements, logs, now)
    # Archived supplements only show up when they were logged today
    visible_ids = [s.id for s in members if not s.is_archived]
    status = slot_status(slot, logs, now, supplement_ids=visible_ids)

    data = slot.to_dict()
    return TodaySlot(
        id=slot.id,
        time=slot.time,
        display_time=display_time(slot.time),
        context=data["context"],
        context_display=data["context_display"],
        explanation=data["explanation"],
        status=status.value,
        status_display=status.display_text,
        rescheduled_time=log.rescheduled_time.isoformat() if log and log.rescheduled_time else None,
        supplements=[
            TodaySupplement(
                id=s.id,
                name=s.name,
                display_dosage=s.display_dosage,
                is_archived=bool(s.is_archived),
                taken=s.id in taken,
                skipped=s.id in skipped,
            )
            for s in members
        ]
    )


@router.get("/{user_id}/intake/today", response_model=TodayResponse)
def get_today(user_id: str, db: Session = Depends(get_db)):
    """
    Today's slots with their status, in the user's timezone.

    Only slots whose recurrence includes today are listed.
    """
    user = get_user_or_404(db, user_id)
    now = local_now(user)
    logs = list(user.intake_logs)
    slots = [slot for slot in user.real_slots if slot.is_active_on(now)]

    completed, total = completion_stats(slots, logs, now)
    next_slot = next_upcoming_slot(slots, logs, now)

    return TodayResponse(
        date=date_string(now),
        completed=completed,
        total=total,
        slots=[_today_slot(slot, user, logs, now) for slot in slots],
        next_slot_id=next_slot.id if next_slot else None
    )


# --- Per slot ---

@router.post("/{user_id}/intake/slots/{slot_id}/taken", response_model=IntakeLogResponse)
def mark_slot_taken(
    user_id: str,
    slot_id: str,
    db: Session = Depends(get_db),
    service: IntakeService = Depends(get_intake_service)
):
    user = get_user_or_404(db, user_id)
    slot = get_slot_or_404(db, user_id, slot_id)
    return _log_response(service.mark_slot_taken(user, slot))


@router.post("/{user_id}/intake/slots/{slot_id}/skipped", response_model=IntakeLogResponse)
def mark_slot_skipped(
    user_id: str,
    slot_id: str,
    db: Session = Depends(get_db),
    service: IntakeService = Depends(get_intake_service)
):
    user = get_user_or_404(db, user_id)
    slot = get_slot_or_404(db, user_id, slot_id)
    return _log_response(service.mark_slot_skipped(user, slot))


@router.post("/{user_id}/intake/slots/{slot_id}/undo", response_model=UndoResponse)
def undo_slot(
    user_id: str,
    slot_id: str,
    db: Session = Depends(get_db),
    service: IntakeService = Depends(get_intake_service)
):
    """Clear today's log for the slot entirely."""
    user = get_user_or_404(db, user_id)
    slot = get_slot_or_404(db, user_id, slot_id)
    return UndoResponse(slot_id=slot.id, cleared=service.undo_slot(user, slot))


@router.post("/{user_id}/intake/slots/{slot_id}/remind", response_model=RemindResponse)
def remind_me_later(
    user_id: str,
    slot_id: str,
    data: RemindRequest,
    db: Session = Depends(get_db),
    service: IntakeService = Depends(get_intake_service)
):
    """Push today's reminder for the slot to a later time today."""
    user = get_user_or_404(db, user_id)
    slot = get_slot_or_404(db, user_id, slot_id)

    try:
        minutes = parse_time(data.time)
    except TimeFormatError as e:
        raise HTTPException(status_code=400, detail=str(e))

    now = local_now(user)
    remind_at = now.replace(hour=minutes // 60, minute=minutes % 60, second=0, microsecond=0)
    if remind_at <= now:
        raise HTTPException(status_code=400, detail="Reminder time must be later today")

    job_id = service.remind_me(user, slot, remind_at, now=now)
    return RemindResponse(slot_id=slot.id, rescheduled_time=remind_at.isoformat(), reminder_job_id=job_id)


# --- Per supplement ---

def _scheduled_supplement(db: Session, user_id: str, slot, supplement_id: str):
    supplement = get_supplement_or_404(db, user_id, supplement_id)
    if supplement.id not in (slot.supplement_ids or []):
        raise HTTPException(status_code=400, detail="Supplement is not scheduled in this slot")
    return supplement


@router.post("/{user_id}/intake/slots/{slot_id}/supplements/{supplement_id}/taken", response_model=IntakeLogResponse)
def mark_supplement_taken(
    user_id: str,
    slot_id: str,
    supplement_id: str,
    db: Session = Depends(get_db),
    service: IntakeService = Depends(get_intake_service)
):
    user = get_user_or_404(db, user_id)
    slot = get_slot_or_404(db, user_id, slot_id)
    supplement = _scheduled_supplement(db, user_id, slot, supplement_id)
    return _log_response(service.mark_supplement_taken(user, slot, supplement.id))


@router.post("/{user_id}/intake/slots/{slot_id}/supplements/{supplement_id}/skipped", response_model=IntakeLogResponse)
def mark_supplement_skipped(
    user_id: str,
    slot_id: str,
    supplement_id: str,
    db: Session = Depends(get_db),
    service: IntakeService = Depends(get_intake_service)
):
    user = get_user_or_404(db, user_id)
    slot = get_slot_or_404(db, user_id, slot_id)
    supplement = _scheduled_supplement(db, user_id, slot, supplement_id)
    return _log_response(service.mark_supplement_skipped(user, slot, supplement.id))


@router.post(
    "/{user_id}/intake/slots/{slot_id}/supplements/{supplement_id}/undo",
    response_model=Optional[IntakeLogResponse]
)
def undo_supplement(
    user_id: str,
    slot_id: str,
    supplement_id: str,
    db: Session = Depends(get_db),
    service: IntakeService = Depends(get_intake_service)
):
    """Clear one supplement's mark; returns null once the day's log is gone."""
    user = get_user_or_404(db, user_id)
    # Placeholders allowed: archived supplements can still be un-marked
    slot = get_slot_or_404(db, user_id, slot_id, allow_placeholder=True)
    return _log_response(service.undo_supplement(user, slot, supplement_id))
