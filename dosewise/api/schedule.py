from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from pydantic import BaseModel

from dosewise.api.deps import get_schedule_service, get_user_or_404
from dosewise.db import get_db
from dosewise.engine.time_slots import TimeFormatError, display_time
from dosewise.services.schedule_service import ScheduleService

router = APIRouter()


class ScheduledSupplement(BaseModel):
    id: str
    name: str
    display_dosage: Optional[str]


class SlotResponse(BaseModel):
    id: str
    time: str
    display_time: str
    context: str
    context_display: str
    supplement_ids: List[str]
    supplements: List[ScheduledSupplement]
    explanation: str
    sort_order: int
    recurrence: dict
    is_placeholder: bool


class RegenerateResponse(BaseModel):
    slots: List[SlotResponse]
    placeholder_count: int


def _slot_response(slot, supplements_by_id: dict) -> SlotResponse:
    data = slot.to_dict()
    members = [supplements_by_id[i] for i in data["supplement_ids"] if i in supplements_by_id]
    return SlotResponse(
        **data,
        display_time=display_time(slot.time),
        supplements=[
            ScheduledSupplement(id=s.id, name=s.name, display_dosage=s.display_dosage)
            for s in members
        ]
    )


@router.get("/{user_id}/schedule", response_model=List[SlotResponse])
def get_schedule(
    user_id: str,
    include_placeholders: bool = Query(False),
    db: Session = Depends(get_db)
):
    """
    The user's slots in display order.

    Placeholders (empty slots kept only for intake history) are hidden
    unless `include_placeholders` is set.
    """
    user = get_user_or_404(db, user_id)
    slots = user.schedule_slots if include_placeholders else user.real_slots
    by_id = {s.id: s for s in user.supplements}
    return [_slot_response(slot, by_id) for slot in sorted(slots, key=lambda s: s.sort_order)]


@router.post("/{user_id}/schedule/regenerate", response_model=RegenerateResponse)
def regenerate_schedule(
    user_id: str,
    db: Session = Depends(get_db),
    service: ScheduleService = Depends(get_schedule_service)
):
    user = get_user_or_404(db, user_id)
    try:
        result = service.regenerate(user)
    except TimeFormatError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))

    by_id = {s.id: s for s in user.supplements}
    return RegenerateResponse(
        slots=[_slot_response(slot, by_id) for slot in user.real_slots],
        placeholder_count=len(result.placeholders)
    )
